"""Derive valid, bounded-length Kubernetes resource names from free-form parts."""

from __future__ import annotations

import re
from hashlib import sha256
from typing import Optional

MAX_NAME_LENGTH = 63
CLAIM_NAME_PREFIX = "pvc"

_INVALID_CHARS = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUNS = re.compile(r"-{2,}")
_DIGEST_LENGTH = 10


def sanitize_name(value: Optional[str], max_length: Optional[int] = MAX_NAME_LENGTH) -> str:
    """Map ``value`` onto ``[a-z0-9-]`` with no leading, trailing or doubled hyphens.

    Truncation happens after collapsing; a hyphen exposed by the cut is
    stripped so the result stays a valid DNS label. Input with no usable
    characters (``""``, ``"___"``) yields ``""``, which is not a valid name;
    callers prefix it, as ``claim_name`` does. ``max_length=None`` disables
    truncation.
    """

    name = (value or "").lower().replace("_", "-")
    name = _INVALID_CHARS.sub("-", name)
    name = _HYPHEN_RUNS.sub("-", name).strip("-")
    if max_length is not None and len(name) > max_length:
        name = name[:max_length].rstrip("-")
    return name


def claim_name(namespace: str, pod_name: str, volume_name: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Deterministic claim name for one pod volume.

    Names that overflow ``max_length`` keep a truncated prefix and end in a
    digest of the full sanitized name, so long names sharing a prefix stay
    distinct.
    """

    full = sanitize_name(
        f"{CLAIM_NAME_PREFIX}-{namespace}-{pod_name}-{volume_name}",
        max_length=None,
    )
    if len(full) <= max_length:
        return full
    digest = sha256(full.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    prefix = full[: max_length - _DIGEST_LENGTH - 1].rstrip("-")
    return f"{prefix}-{digest}"


__all__ = ["CLAIM_NAME_PREFIX", "MAX_NAME_LENGTH", "claim_name", "sanitize_name"]
