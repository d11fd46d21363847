"""Centralised exception hierarchy for covharness."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.pretty import pretty_repr

if TYPE_CHECKING:
    from collections.abc import Sequence


class HarnessError(Exception):
    """Base class for all custom covharness exceptions."""


class TransformError(HarnessError):
    """The external instrumenting transform rejected or raised on the given source."""


class CompileError(HarnessError):
    """Instrumented output could not be compiled into a callable."""


class ExecutionError(HarnessError):
    """Instrumented code raised while it was being executed."""


class MissingCoverageError(HarnessError):
    """No coverage record was found after execution."""


class MetadataDecodeError(HarnessError):
    """The embedded baseline marker is missing or its payload cannot be decoded."""


class InvalidCoverageRecordError(HarnessError):
    """A raw coverage record does not have the expected shape."""


class ContextBusyError(HarnessError):
    """Another session already holds the coverage variable on this context."""


class SessionStateError(HarnessError):
    """A verifier session was used outside its single execute/verify cycle."""


class ConfigError(HarnessError):
    """Harness configuration (transform reference, pyproject settings) is unusable."""


class CaseFileError(HarnessError):
    """A declarative case file could not be read or failed schema validation."""


class AssertionMismatch(HarnessError, AssertionError):
    """One comparison dimension differs from its expectation."""

    def __init__(self, dimension: str, actual: object, expected: object, message: str | None = None) -> None:
        self.dimension = dimension
        self.actual = actual
        self.expected = expected
        headline = message or f"{dimension} mismatch"
        super().__init__(
            f"{headline}\n  actual:   {pretty_repr(actual)}\n  expected: {pretty_repr(expected)}"
        )


class VerificationError(HarnessError, AssertionError):
    """Aggregate of every failed check from one verification run."""

    def __init__(self, failures: Sequence[HarnessError]) -> None:
        self.failures = list(failures)
        lines = [f"{len(self.failures)} verification check(s) failed:"]
        lines.extend(f"[{i}] {failure}" for i, failure in enumerate(self.failures, start=1))
        super().__init__("\n".join(lines))


__all__ = [
    "AssertionMismatch",
    "CaseFileError",
    "CompileError",
    "ConfigError",
    "ContextBusyError",
    "ExecutionError",
    "HarnessError",
    "InvalidCoverageRecordError",
    "MetadataDecodeError",
    "MissingCoverageError",
    "SessionStateError",
    "TransformError",
    "VerificationError",
]
