"""Annotation keys shared by the admission webhook and the PVC controller.

The webhook writes one set of keys per converted volume plus a pod-scoped
marker; the controller only ever reads them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

ANNOTATION_PREFIX = "pvc-webhook"
VOLUME_ANNOTATION_PREFIX = f"{ANNOTATION_PREFIX}.vol"
CONVERTED_ANNOTATION = f"{ANNOTATION_PREFIX}/converted"
CONVERTED_VALUE = "true"

# Single-claim schema written by older webhook builds. Not read any more.
LEGACY_CLAIM_ANNOTATION = f"{ANNOTATION_PREFIX}/claim"

SIZE_FIELD = "size"
STORAGE_CLASS_FIELD = "storageClass"
ACCESS_MODES_FIELD = "accessModes"
CLAIM_NAME_FIELD = "claimName"

_FIELD_ORDER = (SIZE_FIELD, STORAGE_CLASS_FIELD, ACCESS_MODES_FIELD, CLAIM_NAME_FIELD)


def volume_annotation_key(volume: str, field: str) -> str:
    return f"{VOLUME_ANNOTATION_PREFIX}/{volume}.{field}"


def is_converted(annotations: Optional[Mapping[str, str]]) -> bool:
    return bool(annotations) and annotations.get(CONVERTED_ANNOTATION) == CONVERTED_VALUE


def split_access_modes(value: str) -> List[str]:
    """Split a comma separated access-mode string, dropping blanks."""

    return [mode.strip() for mode in (value or "").split(",") if mode.strip()]


@dataclass(frozen=True)
class ClaimAnnotations:
    """Claim parameters recorded for one converted volume."""

    volume: str
    claim_name: str
    size: str
    storage_class: str
    access_modes: str

    def to_annotations(self) -> Dict[str, str]:
        values = {
            SIZE_FIELD: self.size,
            STORAGE_CLASS_FIELD: self.storage_class,
            ACCESS_MODES_FIELD: self.access_modes,
            CLAIM_NAME_FIELD: self.claim_name,
        }
        return {volume_annotation_key(self.volume, field): values[field] for field in _FIELD_ORDER}

    @property
    def access_mode_list(self) -> List[str]:
        return split_access_modes(self.access_modes)

    @classmethod
    def from_annotations(
        cls, volume: str, annotations: Optional[Mapping[str, str]]
    ) -> Optional["ClaimAnnotations"]:
        """Read the set recorded for ``volume``; ``None`` when no claim name was recorded."""

        annotations = annotations or {}
        claim_name = (annotations.get(volume_annotation_key(volume, CLAIM_NAME_FIELD)) or "").strip()
        if not claim_name:
            return None
        return cls(
            volume=volume,
            claim_name=claim_name,
            size=(annotations.get(volume_annotation_key(volume, SIZE_FIELD)) or "").strip(),
            storage_class=(annotations.get(volume_annotation_key(volume, STORAGE_CLASS_FIELD)) or "").strip(),
            access_modes=(annotations.get(volume_annotation_key(volume, ACCESS_MODES_FIELD)) or "").strip(),
        )


__all__ = [
    "ACCESS_MODES_FIELD",
    "ANNOTATION_PREFIX",
    "CLAIM_NAME_FIELD",
    "CONVERTED_ANNOTATION",
    "CONVERTED_VALUE",
    "ClaimAnnotations",
    "LEGACY_CLAIM_ANNOTATION",
    "SIZE_FIELD",
    "STORAGE_CLASS_FIELD",
    "VOLUME_ANNOTATION_PREFIX",
    "is_converted",
    "split_access_modes",
    "volume_annotation_key",
]
