"""Merge patches for object metadata."""

from __future__ import annotations

import json
from collections.abc import Mapping

_GO_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def get_annotations_patch(new_annotations: Mapping[str, str] | None) -> bytes:
    """Return a JSON merge patch that sets the given annotations."""
    metadata: dict[str, dict[str, str]] = {}
    if new_annotations:
        metadata["annotations"] = dict(new_annotations)
    text = json.dumps(
        {"metadata": metadata}, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    # These characters can only occur inside strings, so escaping them is safe.
    text = "".join(_GO_ESCAPES.get(ch, ch) for ch in text)
    return text.encode("utf-8")