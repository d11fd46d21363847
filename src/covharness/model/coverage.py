"""Read-only view over a single file's Istanbul-style coverage record.

The raw record is what instrumented code leaves in the coverage namespace after it ran.
:class:`CoverageView` snapshots it, drops the bookkeeping fields, and exposes the
comparable surface: hit-count maps passed through untouched plus the derived line
projection. The merge/reset/summary helpers return new views; nothing here mutates.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from covharness.config import BOOKKEEPING_FIELDS
from covharness.errors import InvalidCoverageRecordError
from covharness.model.types import FULL_COVERAGE

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from covharness.model.types import BranchHitMap, HitMap, LineHitMap

_REQUIRED_FIELDS = ("statementMap", "fnMap", "branchMap", "s", "f", "b")


@dataclass(frozen=True, slots=True)
class Totals:
    total: int
    covered: int
    skipped: int
    pct: float


@dataclass(frozen=True, slots=True)
class BranchLineCoverage:
    """Arm coverage for all branches starting on one line."""

    covered: int
    total: int
    coverage: float


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    lines: Totals
    statements: Totals
    functions: Totals
    branches: Totals
    branches_true: Totals | None = None

    def to_dict(self) -> dict[str, dict[str, float] | None]:
        def _totals(t: Totals | None) -> dict[str, float] | None:
            if t is None:
                return None
            return {"total": t.total, "covered": t.covered, "skipped": t.skipped, "pct": t.pct}

        return {
            "lines": _totals(self.lines),
            "statements": _totals(self.statements),
            "functions": _totals(self.functions),
            "branches": _totals(self.branches),
            "branches_true": _totals(self.branches_true),
        }


def percent(covered: int, total: int) -> float:
    if total == 0:
        return FULL_COVERAGE
    return round(covered / total * 100.0, 2)


def _key_from_loc(loc: Mapping[str, Any]) -> str:
    start, end = loc["start"], loc["end"]
    return f"{start['line']}|{start.get('column')}|{end['line']}|{end.get('column')}"


def _merge_hits(
    first_hits: Mapping[str, Any],
    first_map: Mapping[str, Any],
    second_hits: Mapping[str, Any],
    second_map: Mapping[str, Any],
    item_key: Callable[[Any], str],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Combine two hit/map pairs by source location and renumber the result from zero."""
    items: dict[str, list[Any]] = {}

    for key, hits in first_hits.items():
        meta = first_map[key]
        items[item_key(meta)] = [copy.deepcopy(hits), meta]

    for key, hits in second_hits.items():
        meta = second_map[key]
        loc_key = item_key(meta)
        if loc_key not in items:
            items[loc_key] = [copy.deepcopy(hits), meta]
            continue
        pair = items[loc_key]
        if isinstance(hits, list):
            merged = list(pair[0])
            if len(merged) < len(hits):
                merged.extend([0] * (len(hits) - len(merged)))
            for i, h in enumerate(hits):
                merged[i] += h
            pair[0] = merged
        else:
            pair[0] += hits

    out_hits: dict[str, Any] = {}
    out_map: dict[str, Any] = {}
    for idx, (hits, meta) in enumerate(items.values()):
        out_hits[str(idx)] = hits
        out_map[str(idx)] = copy.deepcopy(meta)
    return out_hits, out_map


def _simple_totals(hits: Iterable[int]) -> Totals:
    values = list(hits)
    covered = sum(1 for v in values if v > 0)
    return Totals(total=len(values), covered=covered, skipped=0, pct=percent(covered, len(values)))


def _branch_totals(hits: Mapping[str, list[int]]) -> Totals:
    covered = total = 0
    for arms in hits.values():
        covered += sum(1 for h in arms if h > 0)
        total += len(arms)
    return Totals(total=total, covered=covered, skipped=0, pct=percent(covered, total))


@dataclass(frozen=True, slots=True)
class CoverageView:
    """Comparable surface of one file's coverage record."""

    path: str
    statement_map: dict[str, Any]
    fn_map: dict[str, Any]
    branch_map: dict[str, Any]
    s: HitMap
    f: HitMap
    b: BranchHitMap
    b_t: BranchHitMap | None = None
    input_source_map: dict[str, Any] | None = None
    all: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> CoverageView:
        """Snapshot *raw*, stripping the schema tag and content hash."""
        if not isinstance(raw, Mapping):
            msg = f"coverage record must be a mapping, got {type(raw).__name__}"
            raise InvalidCoverageRecordError(msg)
        missing = [name for name in _REQUIRED_FIELDS if name not in raw]
        if missing:
            msg = f"coverage record is missing field(s): {', '.join(missing)}"
            raise InvalidCoverageRecordError(msg)

        data = {k: copy.deepcopy(v) for k, v in raw.items() if k not in BOOKKEEPING_FIELDS}
        known = {"path", "inputSourceMap", "bT", "all", *_REQUIRED_FIELDS}
        return cls(
            path=str(data.get("path", "")),
            statement_map=data["statementMap"],
            fn_map=data["fnMap"],
            branch_map=data["branchMap"],
            s=data["s"],
            f=data["f"],
            b=data["b"],
            b_t=data.get("bT"),
            input_source_map=data.get("inputSourceMap"),
            all=bool(data.get("all", False)),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_record(self) -> dict[str, Any]:
        """Inverse of :meth:`from_record` (without the stripped bookkeeping fields)."""
        out: dict[str, Any] = {
            "path": self.path,
            "statementMap": copy.deepcopy(self.statement_map),
            "fnMap": copy.deepcopy(self.fn_map),
            "branchMap": copy.deepcopy(self.branch_map),
            "s": dict(self.s),
            "f": dict(self.f),
            "b": copy.deepcopy(self.b),
        }
        if self.b_t is not None:
            out["bT"] = copy.deepcopy(self.b_t)
        if self.input_source_map is not None:
            out["inputSourceMap"] = copy.deepcopy(self.input_source_map)
        if self.all:
            out["all"] = True
        out.update(copy.deepcopy(self.extra))
        return out

    # -- pass-through counters ---------------------------------------------------

    def statement_counts(self) -> HitMap:
        return self.s

    def function_counts(self) -> HitMap:
        return self.f

    def branch_counts(self) -> BranchHitMap:
        return self.b

    def branch_truthiness_counts(self) -> BranchHitMap | None:
        """``None`` when the instrumentation did not track truthiness."""
        return self.b_t

    # -- derived views -----------------------------------------------------------

    def line_counts(self) -> LineHitMap:
        """Project statement hits onto the start line of each statement, summing per line."""
        lines: LineHitMap = {}
        for key, count in self.s.items():
            try:
                line = int(self.statement_map[key]["start"]["line"])
            except KeyError as exc:
                msg = f"statement {key!r} has hits but no usable statementMap entry"
                raise InvalidCoverageRecordError(msg) from exc
            lines[line] = lines.get(line, 0) + count
        return dict(sorted(lines.items()))

    def uncovered_lines(self) -> list[int]:
        return [line for line, hits in self.line_counts().items() if hits == 0]

    def branch_coverage_by_line(self) -> dict[int, BranchLineCoverage]:
        """Aggregate arm hits of every branch by the line the branch starts on."""
        arms_by_line: dict[int, list[int]] = {}
        for key, meta in self.branch_map.items():
            line = meta.get("line")
            if line is None:
                line = meta["loc"]["start"]["line"]
            arms_by_line.setdefault(int(line), []).extend(self.b.get(key, []))

        out: dict[int, BranchLineCoverage] = {}
        for line in sorted(arms_by_line):
            arms = arms_by_line[line]
            covered = sum(1 for h in arms if h > 0)
            out[line] = BranchLineCoverage(
                covered=covered,
                total=len(arms),
                coverage=covered / len(arms) * 100.0 if arms else FULL_COVERAGE,
            )
        return out

    def merge(self, other: CoverageView) -> CoverageView:
        """Return a view with *other*'s hits added, matching items by source location."""
        if other.all:
            return self
        if self.all:
            return other

        s, statement_map = _merge_hits(self.s, self.statement_map, other.s, other.statement_map, _key_from_loc)
        f, fn_map = _merge_hits(self.f, self.fn_map, other.f, other.fn_map, lambda m: _key_from_loc(m["loc"]))

        def branch_key(meta: Mapping[str, Any]) -> str:
            return _key_from_loc(meta["locations"][0])

        b, branch_map = _merge_hits(self.b, self.branch_map, other.b, other.branch_map, branch_key)

        b_t = self.b_t
        if self.b_t is not None and other.b_t is not None:
            b_t, _ = _merge_hits(self.b_t, self.branch_map, other.b_t, other.branch_map, branch_key)

        return CoverageView(
            path=self.path,
            statement_map=statement_map,
            fn_map=fn_map,
            branch_map=branch_map,
            s=s,
            f=f,
            b=b,
            b_t=copy.deepcopy(b_t),
            input_source_map=copy.deepcopy(self.input_source_map),
            extra=copy.deepcopy(self.extra),
        )

    def reset_hits(self) -> CoverageView:
        """Return a copy with every counter zeroed."""
        return CoverageView(
            path=self.path,
            statement_map=copy.deepcopy(self.statement_map),
            fn_map=copy.deepcopy(self.fn_map),
            branch_map=copy.deepcopy(self.branch_map),
            s=dict.fromkeys(self.s, 0),
            f=dict.fromkeys(self.f, 0),
            b={k: [0] * len(v) for k, v in self.b.items()},
            b_t=None if self.b_t is None else {k: [0] * len(v) for k, v in self.b_t.items()},
            input_source_map=copy.deepcopy(self.input_source_map),
            all=self.all,
            extra=copy.deepcopy(self.extra),
        )

    def summary(self) -> CoverageSummary:
        return CoverageSummary(
            lines=_simple_totals(self.line_counts().values()),
            statements=_simple_totals(self.s.values()),
            functions=_simple_totals(self.f.values()),
            branches=_branch_totals(self.b),
            branches_true=None if self.b_t is None else _branch_totals(self.b_t),
        )


__all__ = [
    "BranchLineCoverage",
    "CoverageSummary",
    "CoverageView",
    "Totals",
    "percent",
]
