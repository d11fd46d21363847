"""Domain model for covharness (pure types and views; no execution)."""

from .coverage import BranchLineCoverage, CoverageSummary, CoverageView, Totals
from .records import (
    EmbeddedBaseline,
    ExpectedCoverage,
    Failed,
    HarnessOptions,
    InstrumentationRequest,
    Instrumented,
    TransformResult,
)
from .types import Dimension, ExecutionMode, SessionState

__all__ = [
    "BranchLineCoverage",
    "CoverageSummary",
    "CoverageView",
    "Dimension",
    "EmbeddedBaseline",
    "ExecutionMode",
    "ExpectedCoverage",
    "Failed",
    "HarnessOptions",
    "InstrumentationRequest",
    "Instrumented",
    "SessionState",
    "Totals",
    "TransformResult",
]
