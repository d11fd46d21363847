"""Tests for the transform boundary."""

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from covharness.engine.transform import annotated_code, build_transform_options, run_transform
from covharness.model.records import Failed, InstrumentationRequest, Instrumented
from instrumenter import failing_transform, instrument


def _request(code: str = "x = 1\n", **options: object) -> InstrumentationRequest:
    return InstrumentationRequest(source_code=code, filename="mod.py", options=options)


def test_annotated_code_numbers_every_line() -> None:
    assert annotated_code("a = 1\nb = 2") == "     1: a = 1\n     2: b = 2"


def test_build_transform_options_defaults() -> None:
    opts = build_transform_options(
        filename="mod.py",
        input_source_map=None,
        instrument_options={"coverage_variable": "cov"},
    )
    assert opts == {
        "filename": "mod.py",
        "input_source_map": None,
        "preserve_comments": True,
        "compact": True,
        "coverage_variable": "cov",
    }


def test_debug_disables_compaction() -> None:
    opts = build_transform_options(
        filename="mod.py",
        input_source_map=None,
        instrument_options={"compact": True},
        debug=True,
    )
    assert opts["compact"] is False


def test_request_options_are_read_only() -> None:
    request = _request(coverage_variable="cov")
    with pytest.raises(TypeError):
        request.options["coverage_variable"] = "other"  # type: ignore[index]


def test_run_transform_success_keeps_structured_coverage() -> None:
    result = run_transform(_request(), instrument)
    assert isinstance(result, Instrumented)
    assert result.file_coverage is not None
    assert result.file_coverage["path"] == "mod.py"
    assert result.file_coverage["s"] == {"0": 0}


@pytest.mark.parametrize(
    ("out", "expected_coverage"),
    [
        ("x = 1\n", None),
        ({"code": "x = 1\n"}, None),
        (SimpleNamespace(code="x = 1\n", coverage={"s": {}}), {"s": {}}),
    ],
)
def test_run_transform_normalises_return_shapes(out: object, expected_coverage: object) -> None:
    result = run_transform(_request(), lambda source, options: out)
    assert result == Instrumented(code="x = 1\n", file_coverage=expected_coverage)


def test_run_transform_converts_exceptions(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="covharness")
    result = run_transform(_request("a = 1\nb = 2"), failing_transform)
    assert isinstance(result, Failed)
    assert result.message.startswith("Error instrumenting:\n     1: a = 1\n     2: b = 2\n")
    assert result.message.endswith("plugin panicked")
    assert "instrumenting mod.py failed" in caplog.text


def test_run_transform_quiet_suppresses_logging(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="covharness")
    result = run_transform(_request(), failing_transform, quiet=True)
    assert isinstance(result, Failed)
    assert caplog.records == []


def test_run_transform_rejects_missing_code() -> None:
    result = run_transform(_request(), lambda source, options: {"coverage": {}}, quiet=True)
    assert isinstance(result, Failed)
    assert "transform returned no code (got dict)" in result.message


def test_syntax_error_from_transform_is_a_failed_result() -> None:
    result = run_transform(_request("def broken(:\n"), instrument, quiet=True)
    assert isinstance(result, Failed)
    assert "     1: def broken(:" in result.message
