from __future__ import annotations

import json
import textwrap
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from covharness.engine.sandbox import CoverageContext
from covharness.engine.verifier import Verifier, create
from instrumenter import instrument


@pytest.fixture
def cli_runner() -> CliRunner:
    """Return a Click CLI runner for invoking the command-line interface."""
    return CliRunner()


@pytest.fixture
def context() -> CoverageContext:
    """A private coverage context so tests never share counters."""
    return CoverageContext()


@pytest.fixture
def transform() -> Callable[..., Any]:
    return instrument


@pytest.fixture
def make_verifier(context: CoverageContext) -> Callable[..., Verifier]:
    def build(
        code: str,
        options: Mapping[str, Any] | None = None,
        instrument_options: Mapping[str, Any] | None = None,
        input_source_map: Mapping[str, Any] | None = None,
        *,
        transform: Callable[..., Any] = instrument,
    ) -> Verifier:
        return create(
            textwrap.dedent(code),
            options,
            instrument_options,
            input_source_map,
            transform=transform,
            context=context,
        )

    return build


@pytest.fixture
def case_file(tmp_path: Path) -> Callable[..., Path]:
    def write(cases: object, *, filename: str = "cases.json") -> Path:
        path = tmp_path / filename
        path.write_text(json.dumps(cases), encoding="utf-8")
        return path

    return write
