"""Boundary to the external instrumenting transform."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

from covharness import logger
from covharness.model.records import Failed, InstrumentationRequest, Instrumented

if TYPE_CHECKING:
    from covharness.model.records import TransformResult

LINE_NUMBER_WIDTH = 6


class Transform(Protocol):
    """``transform(source, options)`` returning code, a mapping with ``code``, or an object with ``.code``."""

    def __call__(self, source: str, options: Mapping[str, Any], /) -> object: ...


def annotated_code(code: str) -> str:
    """Prefix every line with its right-aligned 1-based line number."""
    return "\n".join(
        f"{str(number).rjust(LINE_NUMBER_WIDTH)}: {line}"
        for number, line in enumerate(str(code).split("\n"), start=1)
    )


def build_transform_options(
    *,
    filename: str,
    input_source_map: Mapping[str, Any] | None,
    instrument_options: Mapping[str, Any],
    debug: bool = False,
) -> dict[str, Any]:
    """Assemble the options mapping handed to the transform."""
    options: dict[str, Any] = {
        "filename": filename,
        "input_source_map": input_source_map,
        "preserve_comments": True,
        "compact": True,
    }
    options.update(instrument_options)
    if debug:
        options["compact"] = False
    return options


def _normalise(out: object) -> TransformResult:
    if isinstance(out, str):
        return Instrumented(code=out)
    if isinstance(out, Mapping):
        code = out.get("code")
        coverage = out.get("coverage")
    else:
        code = getattr(out, "code", None)
        coverage = getattr(out, "coverage", None)
    if not isinstance(code, str):
        return Failed(message=f"transform returned no code (got {type(out).__name__})")
    return Instrumented(code=code, file_coverage=dict(coverage) if isinstance(coverage, Mapping) else None)


def run_transform(request: InstrumentationRequest, transform: Transform, *, quiet: bool = False) -> TransformResult:
    """Invoke *transform* for *request*; exceptions become :class:`Failed` results."""
    options = dict(request.options)
    options.setdefault("filename", request.filename)
    options.setdefault("input_source_map", request.input_source_map)
    try:
        out = transform(request.source_code, options)
    except Exception as ex:  # noqa: BLE001 - every transform failure becomes a Failed result
        if not quiet:
            logger.exception("instrumenting %s failed", request.filename)
        return Failed(message=f"Error instrumenting:\n{annotated_code(request.source_code)}\n{ex}")

    result = _normalise(out)
    if isinstance(result, Failed):
        if not quiet:
            logger.error("instrumenting %s failed: %s", request.filename, result.message)
        return Failed(message=f"Error instrumenting:\n{annotated_code(request.source_code)}\n{result.message}")
    return result


__all__ = [
    "Transform",
    "annotated_code",
    "build_transform_options",
    "run_transform",
]
