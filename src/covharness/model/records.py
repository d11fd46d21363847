"""Value objects passed between the harness components."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeAlias

from covharness.config import DEFAULT_FILE
from covharness.model.types import ExecutionMode

if TYPE_CHECKING:
    from covharness.model.types import FileCoverageData


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True, slots=True)
class InstrumentationRequest:
    """Everything the external transform receives for one file."""

    source_code: str
    filename: str
    input_source_map: Mapping[str, Any] | None = None
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", _frozen(self.options))


@dataclass(frozen=True, slots=True)
class Instrumented:
    """Successful transform: generated code, optionally with the structured baseline."""

    code: str
    file_coverage: FileCoverageData | None = None


@dataclass(frozen=True, slots=True)
class Failed:
    """The transform raised or returned something unusable."""

    message: str


TransformResult: TypeAlias = Instrumented | Failed


@dataclass(frozen=True, slots=True)
class EmbeddedBaseline:
    """Static coverage baseline scraped from the generated code."""

    path: str
    gcv: str
    hash: str
    coverage_data: dict[str, Any]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EmbeddedBaseline:
        return cls(
            path=str(data["path"]),
            gcv=str(data["gcv"]),
            hash=str(data["hash"]),
            coverage_data=dict(data["coverageData"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "gcv": self.gcv, "hash": self.hash, "coverageData": self.coverage_data}


@dataclass(frozen=True, slots=True)
class ExpectedCoverage:
    """Caller-declared expectations; every dimension defaults to empty."""

    lines: Mapping[int, int] = field(default_factory=dict)
    functions: Mapping[str, int] = field(default_factory=dict)
    branches: Mapping[str, list[int]] = field(default_factory=dict)
    branches_true: Mapping[str, list[int]] = field(default_factory=dict)
    statements: Mapping[str, int] = field(default_factory=dict)
    input_source_map: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        # JSON callers hand us string line numbers
        object.__setattr__(self, "lines", {int(k): v for k, v in self.lines.items()})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | ExpectedCoverage | None) -> ExpectedCoverage:
        """Build from a plain mapping; accepts the camelCase ``branchesTrue``/``inputSourceMap`` too."""
        if isinstance(data, ExpectedCoverage):
            return data
        data = data or {}
        return cls(
            lines=data.get("lines") or {},
            functions=data.get("functions") or {},
            branches=data.get("branches") or {},
            branches_true=data.get("branches_true") or data.get("branchesTrue") or {},
            statements=data.get("statements") or {},
            input_source_map=data.get("input_source_map", data.get("inputSourceMap")),
        )


# camelCase spellings accepted alongside the field names
_OPTION_ALIASES = {"generateOnly": "generate_only", "noCoverage": "no_coverage", "isAsync": "is_async"}


@dataclass(frozen=True, slots=True)
class HarnessOptions:
    """Per-case harness switches (the ``options`` argument of ``create``)."""

    debug: bool = False
    file: str = DEFAULT_FILE
    generate_only: bool = False
    no_coverage: bool = False
    quiet: bool = False
    is_async: bool = False

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.ASYNC if self.is_async else ExecutionMode.SYNC

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | HarnessOptions | None, *, debug: bool = False) -> HarnessOptions:
        """Build options from a mapping; *debug* is used when the mapping does not set it.

        ``generateOnly``, ``noCoverage`` and ``isAsync`` are accepted as aliases.
        """
        if isinstance(data, HarnessOptions):
            return data
        known = {f.name for f in dataclasses.fields(cls)}
        data = dict(data or {})
        for camel, name in _OPTION_ALIASES.items():
            if camel in data:
                value = data.pop(camel)
                data.setdefault(name, value)
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"unknown harness option(s): {', '.join(unknown)}"
            raise ValueError(msg)
        data.setdefault("debug", debug)
        return cls(**data)


__all__ = [
    "EmbeddedBaseline",
    "ExpectedCoverage",
    "Failed",
    "HarnessOptions",
    "InstrumentationRequest",
    "Instrumented",
    "TransformResult",
]
