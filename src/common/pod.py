"""Read-only pod projection shared by the webhook and the controller."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PodDecodeError(ValueError):
    """Raised when an object cannot be read as a pod."""


class VolumeView(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    name: str
    emptyDir: Optional[Dict[str, Any]] = None
    persistentVolumeClaim: Optional[Dict[str, Any]] = None

    @property
    def is_ephemeral(self) -> bool:
        return self.emptyDir is not None


class PodView(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str = ""
    name: str = ""
    generate_name: str = ""
    uid: str = ""
    # None when the pod has no annotation map at all, which is not the same as {}.
    annotations: Optional[Dict[str, str]] = None
    volumes: List[VolumeView] = Field(default_factory=list)
    deletion_timestamp: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    def annotation(self, key: str) -> str:
        return (self.annotations or {}).get(key, "")

    @classmethod
    def from_object(cls, obj: Any) -> "PodView":
        """Project a pod given as plain JSON data (camelCase keys)."""

        if not isinstance(obj, Mapping):
            raise PodDecodeError("decode pod: object must be a mapping")
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        if not isinstance(metadata, Mapping):
            raise PodDecodeError("decode pod: metadata must be a mapping")
        if not isinstance(spec, Mapping):
            raise PodDecodeError("decode pod: spec must be a mapping")
        try:
            return cls(
                namespace=metadata.get("namespace") or "",
                name=metadata.get("name") or "",
                generate_name=metadata.get("generateName") or "",
                uid=metadata.get("uid") or "",
                annotations=metadata.get("annotations"),
                volumes=spec.get("volumes") or [],
                deletion_timestamp=metadata.get("deletionTimestamp"),
            )
        except ValidationError as exc:
            raise PodDecodeError(f"decode pod: {exc}") from exc


__all__ = ["PodDecodeError", "PodView", "VolumeView"]
