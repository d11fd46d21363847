"""Render case results for the CLI."""

from __future__ import annotations

import json
from io import StringIO
from typing import TYPE_CHECKING

from jsonschema import validate
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from covharness import __version__
from covharness.config import get_schema

if TYPE_CHECKING:
    from collections.abc import Sequence

    from covharness.engine.cases import CaseResult


def _totals(results: Sequence[CaseResult]) -> dict[str, int]:
    passed = sum(1 for r in results if r.passed)
    return {"cases": len(results), "passed": passed, "failed": len(results) - passed}


def render_json(results: Sequence[CaseResult]) -> str:
    payload: dict[str, object] = {
        "schema_version": 1,
        "tool": {"name": "covharness", "version": __version__},
        "results": [r.to_dict() for r in results],
        "totals": _totals(results),
    }
    validate(payload, get_schema("report"))
    return json.dumps(payload, indent=2, sort_keys=True)


def render_human(results: Sequence[CaseResult], *, color: bool = True) -> str:
    """One row per case, followed by the failure details of failing cases."""
    table = Table(title="Verification Results", box=box.SIMPLE_HEAVY, header_style="bold", expand=True)
    table.add_column("Case", overflow="fold")
    table.add_column("Source", overflow="fold")
    table.add_column("Result", justify="right")

    for r in results:
        status = "[green]PASS[/green]" if r.passed else f"[red]FAIL ({len(r.failures)})[/red]"
        table.add_row(escape(r.case.name), escape(r.case.source), status)

    totals = _totals(results)
    table.add_section()
    table.add_row(
        "[bold]Overall[/bold]",
        "",
        f"[bold]{totals['passed']}/{totals['cases']} passed[/bold]",
    )

    buf = StringIO()
    console = Console(file=buf, force_terminal=color, no_color=not color)
    console.print()
    console.print(table)
    for r in results:
        if r.passed:
            continue
        console.print(f"[bold red]{escape(r.case.name)}[/bold red] ({escape(r.case.source)})")
        for failure in r.failures:
            console.print(f"  [yellow]{type(failure).__name__}[/yellow]: {escape(str(failure))}")
    console.print()
    return buf.getvalue().rstrip()


__all__ = ["render_human", "render_json"]
