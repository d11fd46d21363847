"""Embedded-baseline wire format.

Instrumenting transforms have no side channel besides the code they emit, so they append
a comment holding the zero-state coverage object::

    # __coverage_data_json_comment__::{"path": ..., "gcv": ..., "hash": ..., "coverageData": {...}}

Block-comment languages wrap the same token in ``/* ... */``; the payload then ends at
the last ``*/`` on the marker's line.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from covharness.config import COVERAGE_COMMENT_MARKER
from covharness.errors import MetadataDecodeError
from covharness.model.records import EmbeddedBaseline

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

BLOCK_COMMENT_START = "/*"
BLOCK_COMMENT_END = "*/"
_REQUIRED_KEYS = ("path", "gcv", "hash", "coverageData")


def _extract_payload(line: str) -> str:
    prefix, payload = line.split(COVERAGE_COMMENT_MARKER, 1)
    if BLOCK_COMMENT_START in prefix:
        end = payload.rfind(BLOCK_COMMENT_END)
        if end != -1:
            payload = payload[:end]
    return payload.strip()


def decode_baseline(code: str | None) -> EmbeddedBaseline | None:
    """Return the baseline embedded in *code*, or ``None`` when no marker is present."""
    lines = [line for line in (code or "").splitlines() if COVERAGE_COMMENT_MARKER in line]
    if not lines:
        return None
    if len(lines) > 1 or lines[0].count(COVERAGE_COMMENT_MARKER) > 1:
        msg = f"embedded baseline marker appears {sum(ln.count(COVERAGE_COMMENT_MARKER) for ln in lines)} times"
        raise MetadataDecodeError(msg)

    payload = _extract_payload(lines[0])
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        msg = f"embedded baseline payload is not valid JSON: {exc}"
        raise MetadataDecodeError(msg) from exc

    if not isinstance(data, dict):
        msg = f"embedded baseline payload must be a JSON object, got {type(data).__name__}"
        raise MetadataDecodeError(msg)
    missing = [key for key in _REQUIRED_KEYS if key not in data]
    if missing:
        msg = f"embedded baseline payload is missing key(s): {', '.join(missing)}"
        raise MetadataDecodeError(msg)
    if not isinstance(data["coverageData"], dict):
        msg = "embedded baseline coverageData must be a JSON object"
        raise MetadataDecodeError(msg)
    return EmbeddedBaseline.from_dict(data)


def encode_baseline(baseline: EmbeddedBaseline | Mapping[str, Any], *, comment: str = "#") -> str:
    """Render *baseline* as the single comment line :func:`decode_baseline` reads.

    ``comment="/*"`` produces the block-comment form.
    """
    data = baseline.to_dict() if isinstance(baseline, EmbeddedBaseline) else dict(baseline)
    payload = json.dumps(data, separators=(",", ":"), sort_keys=True)
    if comment == BLOCK_COMMENT_START:
        return f"{BLOCK_COMMENT_START}{COVERAGE_COMMENT_MARKER}{payload}{BLOCK_COMMENT_END}"
    return f"{comment} {COVERAGE_COMMENT_MARKER}{payload}"


__all__ = ["BLOCK_COMMENT_END", "BLOCK_COMMENT_START", "decode_baseline", "encode_baseline"]
