from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer

from covharness import logger
from covharness.cli.errors import EXIT_CONFIG, EXIT_DATAERR, EXIT_GENERIC, EXIT_NOINPUT, EXIT_OK
from covharness.config import LOG_FORMAT, load_settings, resolve_transform
from covharness.engine.cases import load_cases, run_cases
from covharness.engine.sandbox import CoverageContext
from covharness.errors import CaseFileError, ConfigError
from covharness.io import OutputFormat, compute_io_policy, write_output
from covharness.render import render_human, render_json


def _configure_logging(*, quiet: bool, verbose: bool) -> None:
    level = logging.ERROR if quiet else (logging.DEBUG if verbose else logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def register(app: typer.Typer) -> None:
    @app.command("run")
    def run(
        cases: Annotated[
            list[Path],
            typer.Argument(help="Case files (JSON) to verify."),
        ],
        transform: Annotated[
            str | None,
            typer.Option(
                "-t",
                "--transform",
                help="Instrumenting transform as 'module:attribute' (default: [tool.covharness] transform).",
            ),
        ] = None,
        format_: Annotated[
            OutputFormat,
            typer.Option("--format", help="Output format.", case_sensitive=False),
        ] = OutputFormat.AUTO,
        output: Annotated[
            Path | None,
            typer.Option("--output", help="Write results to PATH (use '-' for stdout)."),
        ] = None,
        quiet: Annotated[bool, typer.Option("-q", "--quiet", help="Only log errors.")] = False,
        verbose: Annotated[bool, typer.Option("-v", "--verbose", help="Emit diagnostic logging.")] = False,
    ) -> None:
        """Instrument, execute and verify every case in CASES."""
        _configure_logging(quiet=quiet, verbose=verbose)

        try:
            settings = load_settings()
            transform_fn = resolve_transform(transform, settings)
        except ConfigError as exc:
            typer.echo(f"ERROR: {exc}", err=True)
            raise typer.Exit(code=EXIT_CONFIG) from exc

        loaded = []
        for path in cases:
            if not path.exists():
                typer.echo(f"ERROR: case file not found: {path}", err=True)
                raise typer.Exit(code=EXIT_NOINPUT)
            try:
                loaded.extend(load_cases(path))
            except CaseFileError as exc:
                typer.echo(f"ERROR: {exc}", err=True)
                raise typer.Exit(code=EXIT_DATAERR) from exc

        logger.debug("running %d case(s) from %d file(s)", len(loaded), len(cases))
        # a private context keeps CLI runs from touching the process-wide default
        results = run_cases(
            loaded,
            transform_fn,
            context=CoverageContext(),
            coverage_variable=settings.coverage_variable,
        )

        fmt, color = compute_io_policy(fmt=format_, output=output)
        text = render_json(results) if fmt == OutputFormat.JSON else render_human(results, color=color)
        write_output(text, output)
        raise typer.Exit(code=EXIT_OK if all(r.passed for r in results) else EXIT_GENERIC)


__all__ = ["register"]
