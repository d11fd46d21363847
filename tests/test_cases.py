"""Tests for declarative case files."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from covharness.engine.cases import Case, load_cases, parse_cases, run_case, run_cases
from covharness.engine.sandbox import CoverageContext
from covharness.errors import AssertionMismatch, CaseFileError, TransformError
from instrumenter import instrument

BRANCHY_CASE = {
    "name": "if taken",
    "code": "def f(a):\n    if a:\n        return 1\n    return 0\noutput = f(args)\n",
    "args": True,
    "output": 1,
    "coverage": {
        "lines": {"2": 1, "3": 1, "4": 0, "5": 1},
        "functions": {"0": 1},
        "branches": {"0": [1, 0]},
        "statements": {"0": 1, "1": 1, "2": 0, "3": 1},
    },
}


def test_parse_object_and_list_forms() -> None:
    from_object = parse_cases({"cases": [BRANCHY_CASE]}, source="a.json")
    from_list = parse_cases([BRANCHY_CASE], source="a.json")
    assert from_object == from_list
    assert from_object[0].name == "if taken"
    assert from_object[0].source == "a.json"


@pytest.mark.parametrize(
    "data",
    [
        {"cases": [{"code": "output = 1"}]},
        [{"name": "x", "code": "output = 1", "options": {"generate": True}}],
        [{"name": "x", "code": "output = 1", "coverage": {"lines": {"one": 1}}}],
        [{"name": "x", "code": "output = 1", "instrument_options": {"coverage_variable": "not valid"}}],
        "cases",
    ],
)
def test_parse_rejects_invalid_files(data: object) -> None:
    with pytest.raises(CaseFileError, match="invalid case file"):
        parse_cases(data, source="bad.json")


def test_load_cases_reads_json(case_file: Callable[..., Path]) -> None:
    path = case_file({"cases": [BRANCHY_CASE]})
    (case,) = load_cases(path)
    assert case.source == str(path)
    assert case.args is True


def test_load_cases_rejects_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")
    with pytest.raises(CaseFileError, match="not valid JSON"):
        load_cases(path)


def test_load_cases_missing_file(tmp_path: Path) -> None:
    with pytest.raises(CaseFileError, match="cannot read"):
        load_cases(tmp_path / "missing.json")


def test_run_case_passes_with_summary(context: CoverageContext) -> None:
    result = run_case(Case.from_dict(BRANCHY_CASE), instrument, context=context)
    assert result.passed
    assert result.summary is not None
    assert result.summary.branches.covered == 1
    data = result.to_dict()
    assert data["passed"] is True
    assert data["failures"] == []
    assert data["summary"]["lines"]["total"] == 4


def test_run_case_collects_mismatches(context: CoverageContext) -> None:
    case = Case.from_dict({**BRANCHY_CASE, "output": 2})
    result = run_case(case, instrument, context=context)
    (failure,) = result.failures
    assert isinstance(failure, AssertionMismatch)
    assert result.to_dict()["failures"][0]["dimension"] == "output"


def test_run_case_reports_creation_errors(context: CoverageContext) -> None:
    case = Case.from_dict({"name": "broken", "code": "def broken(:\n", "options": {"quiet": True}})
    result = run_case(case, instrument, context=context)
    assert not result.passed
    assert isinstance(result.failures[0], TransformError)
    assert result.summary is None
    assert result.to_dict()["failures"][0]["kind"] == "TransformError"


def test_run_case_applies_configured_variable(context: CoverageContext) -> None:
    run_case(Case.from_dict(BRANCHY_CASE), instrument, context=context, coverage_variable="cfg_cov")
    assert context.read("cfg_cov") is not None


def test_run_cases_keeps_order(context: CoverageContext) -> None:
    cases = parse_cases([BRANCHY_CASE, {**BRANCHY_CASE, "name": "else taken", "args": False}])
    results = run_cases(cases, instrument, context=context)
    assert [r.case.name for r in results] == ["if taken", "else taken"]
    assert [r.passed for r in results] == [True, False]


def test_run_case_keeps_camel_case_variable(context: CoverageContext) -> None:
    case = Case.from_dict({**BRANCHY_CASE, "instrument_options": {"coverageVariable": "case_cov"}})
    assert run_case(case, instrument, context=context, coverage_variable="cfg_cov").passed
    assert context.read("case_cov") is not None
    assert context.read("cfg_cov") is None


def test_parse_accepts_camel_case_options() -> None:
    (case,) = parse_cases([{**BRANCHY_CASE, "options": {"generateOnly": True}}])
    assert case.options == {"generateOnly": True}
