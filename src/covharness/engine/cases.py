"""Declarative verification cases stored as JSON files."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jsonschema import ValidationError, validate

from covharness import logger
from covharness.config import get_schema
from covharness.engine.verifier import create
from covharness.errors import AssertionMismatch, CaseFileError, HarnessError, InvalidCoverageRecordError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from covharness.engine.sandbox import CoverageContext
    from covharness.engine.transform import Transform
    from covharness.model.coverage import CoverageSummary


@dataclass(frozen=True, slots=True)
class Case:
    """One entry of a case file."""

    name: str
    code: str
    source: str = "<memory>"
    args: Any = None
    output: Any = None
    coverage: Mapping[str, Any] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)
    instrument_options: Mapping[str, Any] = field(default_factory=dict)
    input_source_map: Mapping[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, source: str = "<memory>") -> Case:
        return cls(
            name=data["name"],
            code=data["code"],
            source=source,
            args=data.get("args"),
            output=data.get("output"),
            coverage=data.get("coverage", {}),
            options=data.get("options", {}),
            instrument_options=data.get("instrument_options", {}),
            input_source_map=data.get("input_source_map"),
        )


@dataclass(frozen=True, slots=True)
class CaseResult:
    case: Case
    failures: tuple[HarnessError, ...] = ()
    summary: CoverageSummary | None = None

    @property
    def passed(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.case.source,
            "name": self.case.name,
            "passed": self.passed,
            "failures": [
                {
                    "kind": type(failure).__name__,
                    "dimension": failure.dimension if isinstance(failure, AssertionMismatch) else None,
                    "message": str(failure),
                }
                for failure in self.failures
            ],
            "summary": None if self.summary is None else self.summary.to_dict(),
        }


def parse_cases(data: object, *, source: str = "<memory>") -> list[Case]:
    """Validate decoded case-file content and build :class:`Case` objects."""
    try:
        validate(data, get_schema("case"))
    except ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        msg = f"{source}: invalid case file at {location}: {exc.message}"
        raise CaseFileError(msg) from exc
    entries = data["cases"] if isinstance(data, dict) else data
    return [Case.from_dict(entry, source=source) for entry in entries]


def load_cases(path: Path) -> list[Case]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"cannot read case file {path}: {exc}"
        raise CaseFileError(msg) from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"{path}: not valid JSON: {exc}"
        raise CaseFileError(msg) from exc
    return parse_cases(data, source=str(path))


def run_case(
    case: Case,
    transform: Transform,
    *,
    context: CoverageContext | None = None,
    coverage_variable: str | None = None,
) -> CaseResult:
    """Create a fresh session for *case* and verify it without raising on mismatches."""
    instrument_options = dict(case.instrument_options)
    if coverage_variable and not {"coverage_variable", "coverageVariable"} & instrument_options.keys():
        instrument_options["coverage_variable"] = coverage_variable
    try:
        verifier = create(
            case.code,
            dict(case.options),
            instrument_options,
            case.input_source_map,
            transform=transform,
            context=context,
        )
        report = verifier.check(case.args, case.output, case.coverage)
    except HarnessError as exc:
        logger.debug("case %r failed before verification: %s", case.name, exc)
        return CaseResult(case=case, failures=(exc,))

    summary = None
    if report.coverage is not None:
        try:
            summary = report.coverage.summary()
        except InvalidCoverageRecordError:
            # already reported by the line coverage check
            summary = None
    return CaseResult(case=case, failures=tuple(report.failures), summary=summary)


def run_cases(
    cases: Iterable[Case],
    transform: Transform,
    *,
    context: CoverageContext | None = None,
    coverage_variable: str | None = None,
) -> list[CaseResult]:
    results = []
    for case in cases:
        result = run_case(case, transform, context=context, coverage_variable=coverage_variable)
        logger.info("%s: %s", case.name, "ok" if result.passed else f"{len(result.failures)} failure(s)")
        results.append(result)
    return results


__all__ = ["Case", "CaseResult", "load_cases", "parse_cases", "run_case", "run_cases"]
