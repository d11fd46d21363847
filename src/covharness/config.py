"""Central configuration and constants for ``covharness``."""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass
from functools import cache
from importlib import import_module, resources
from pathlib import Path
from typing import TYPE_CHECKING, Any

from covharness import logger
from covharness.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Callable

# Global slot instrumented code writes its counters into unless told otherwise.
DEFAULT_COVERAGE_VARIABLE = "__testing_coverage__"

# Logical filename handed to the transform when the caller does not supply one.
DEFAULT_FILE = "unknown.py"

# Sentinel that precedes the embedded baseline JSON in generated code.
COVERAGE_COMMENT_MARKER = "__coverage_data_json_comment__::"

# Istanbul file-coverage bookkeeping fields that are not part of the comparable surface.
BOOKKEEPING_FIELDS = ("_coverageSchema", "hash")

# Default logging format used by the CLI entry point.
LOG_FORMAT = "%(levelname)s: %(message)s"

# Environment variable that switches ``debug`` on when a case does not set it.
DEBUG_ENV_VAR = "DEBUG"

_SCHEMA_FILES: dict[str, str] = {
    "case": "case.schema.json",
    "report": "report.schema.json",
}


@dataclass(frozen=True, slots=True)
class ProjectSettings:
    """Settings read from ``[tool.covharness]`` in ``pyproject.toml``."""

    transform: str | None = None
    coverage_variable: str = DEFAULT_COVERAGE_VARIABLE


@cache
def get_schema(name: str = "case") -> dict[str, object]:
    """Load and cache a packaged JSON schema."""
    try:
        filename = _SCHEMA_FILES[name]
    except KeyError as exc:
        choices = ", ".join(sorted(_SCHEMA_FILES))
        msg = f"Unsupported schema: {name!r}. Available schemas: {choices}"
        raise ValueError(msg) from exc
    return json.loads(resources.files("covharness.data").joinpath(filename).read_text(encoding="utf-8"))


def debug_from_env() -> bool:
    return os.environ.get(DEBUG_ENV_VAR) == "1"


def find_pyproject(start: Path | None = None) -> Path | None:
    """Return the closest ``pyproject.toml`` at or above *start* (default: cwd)."""
    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def _read_tool_table(pyproject: Path) -> dict[str, Any]:
    try:
        with pyproject.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Failed to parse %s: %s", pyproject, e)
        return {}
    tool = data.get("tool", {})
    table = tool.get("covharness", {}) if isinstance(tool, dict) else {}
    return table if isinstance(table, dict) else {}


def load_settings(pyproject: Path | None = None) -> ProjectSettings:
    """Read ``[tool.covharness]``; missing file or table yields the defaults."""
    path = pyproject or find_pyproject()
    if path is None:
        return ProjectSettings()

    table = _read_tool_table(path)
    transform = table.get("transform")
    variable = table.get("coverage_variable", DEFAULT_COVERAGE_VARIABLE)
    if transform is not None and not isinstance(transform, str):
        msg = f"{path}: tool.covharness.transform must be a 'module:attribute' string"
        raise ConfigError(msg)
    if not isinstance(variable, str) or not variable.isidentifier():
        msg = f"{path}: tool.covharness.coverage_variable must be a Python identifier, got {variable!r}"
        raise ConfigError(msg)
    return ProjectSettings(transform=transform, coverage_variable=variable)


def load_transform(reference: str) -> Callable[..., Any]:
    """Resolve a ``package.module:attribute`` reference to the transform callable."""
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"transform reference must look like 'module:attribute', got {reference!r}"
        raise ConfigError(msg)
    try:
        obj: Any = import_module(module_name)
    except ImportError as exc:
        msg = f"cannot import transform module {module_name!r}: {exc}"
        raise ConfigError(msg) from exc
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            msg = f"transform {reference!r} not found: {exc}"
            raise ConfigError(msg) from exc
    if not callable(obj):
        msg = f"transform {reference!r} is not callable"
        raise ConfigError(msg)
    return obj


def resolve_transform(reference: str | None = None, settings: ProjectSettings | None = None) -> Callable[..., Any]:
    """Pick the explicit *reference* or fall back to the configured transform."""
    ref = reference or (settings or load_settings()).transform
    if not ref:
        msg = "no transform configured; pass one explicitly or set [tool.covharness] transform"
        raise ConfigError(msg)
    return load_transform(ref)


__all__ = [
    "BOOKKEEPING_FIELDS",
    "COVERAGE_COMMENT_MARKER",
    "DEBUG_ENV_VAR",
    "DEFAULT_COVERAGE_VARIABLE",
    "DEFAULT_FILE",
    "LOG_FORMAT",
    "ProjectSettings",
    "debug_from_env",
    "find_pyproject",
    "get_schema",
    "load_settings",
    "load_transform",
    "resolve_transform",
]
