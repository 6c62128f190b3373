from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Sequence

import jsonpatch
from jsonpointer import JsonPointer, escape, unescape
from pydantic import BaseModel

ADD = "add"
REPLACE = "replace"
_VALID_OPS = {ADD, REPLACE}


class PatchError(Exception):
    """Raised when a patch cannot be built, serialized or applied."""


def escape_segment(segment: str) -> str:
    """Escape one RFC 6901 reference token (``~`` -> ``~0``, ``/`` -> ``~1``)."""

    return escape(segment)


def unescape_segment(segment: str) -> str:
    return unescape(segment)


def pointer(*parts: Any) -> str:
    """Build a JSON pointer from unescaped parts, e.g. ``pointer("spec", "volumes", 0)``."""

    return JsonPointer.from_parts([str(part) for part in parts]).path


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    return copy.deepcopy(value)


def make_op(op: str, path: str, value: Any) -> Dict[str, Any]:
    """Build a single operation; the target path is not checked against any document."""

    if op not in _VALID_OPS:
        raise PatchError(f"unsupported op: {op}")
    if not isinstance(path, str) or not path.startswith("/"):
        raise PatchError(f"invalid path: {path!r}")
    return {"op": op, "path": path, "value": _plain(value)}


def add_op(path: str, value: Any) -> Dict[str, Any]:
    return make_op(ADD, path, value)


def replace_op(path: str, value: Any) -> Dict[str, Any]:
    return make_op(REPLACE, path, value)


def serialize_patch(ops: Sequence[Dict[str, Any]]) -> bytes:
    try:
        return json.dumps(list(ops), separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise PatchError(f"marshal patch: {exc}") from exc


def apply_patch(document: Dict[str, Any], ops: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Apply ``ops`` to a copy of ``document`` the way the API server would."""

    try:
        return jsonpatch.apply_patch(copy.deepcopy(document), ops, in_place=False)
    except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as exc:
        raise PatchError(f"bad path or conflict: {exc}") from exc


__all__ = [
    "ADD",
    "REPLACE",
    "PatchError",
    "add_op",
    "apply_patch",
    "escape_segment",
    "make_op",
    "pointer",
    "replace_op",
    "serialize_patch",
    "unescape_segment",
]
