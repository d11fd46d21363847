"""Shared type aliases and enumerations used across covharness."""

from __future__ import annotations

from enum import StrEnum
from typing import NotRequired, TypeAlias, TypedDict

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ExecutionMode(StrEnum):
    """How the compiled instrumented body is invoked."""

    SYNC = "sync"
    ASYNC = "async"


class SessionState(StrEnum):
    """Lifecycle of a single verifier session."""

    CREATED = "created"
    PRIMED = "primed"
    EXECUTED = "executed"
    VERIFIED = "verified"
    FAILED = "failed"


class Dimension(StrEnum):
    """Names of the checks a verification run performs, in order."""

    OUTPUT = "output"
    LINES = "line coverage"
    FUNCTIONS = "function coverage"
    BRANCHES = "branch coverage"
    BRANCHES_TRUE = "branch truthiness coverage"
    STATEMENTS = "statement coverage"
    INPUT_SOURCE_MAP = "input source map"
    BASELINE = "embedded baseline"


# ---------------------------------------------------------------------------
# Istanbul file-coverage JSON shapes
# ---------------------------------------------------------------------------


class Position(TypedDict):
    line: int
    column: int | None


class Range(TypedDict):
    start: Position
    end: Position


class FunctionMeta(TypedDict):
    name: str
    decl: Range
    loc: Range
    line: int


class BranchMeta(TypedDict):
    loc: Range
    type: str
    locations: list[Range]
    line: NotRequired[int]


class FileCoverageData(TypedDict):
    path: str
    statementMap: dict[str, Range]
    fnMap: dict[str, FunctionMeta]
    branchMap: dict[str, BranchMeta]
    s: dict[str, int]
    f: dict[str, int]
    b: dict[str, list[int]]
    bT: NotRequired[dict[str, list[int]]]
    inputSourceMap: NotRequired[dict[str, object]]
    all: NotRequired[bool]
    _coverageSchema: NotRequired[str]
    hash: NotRequired[str]


HitMap: TypeAlias = dict[str, int]
BranchHitMap: TypeAlias = dict[str, list[int]]
LineHitMap: TypeAlias = dict[int, int]

FULL_COVERAGE: float = 100.0


__all__ = [
    "FULL_COVERAGE",
    "BranchHitMap",
    "BranchMeta",
    "Dimension",
    "ExecutionMode",
    "FileCoverageData",
    "FunctionMeta",
    "HitMap",
    "LineHitMap",
    "Position",
    "Range",
    "SessionState",
]
