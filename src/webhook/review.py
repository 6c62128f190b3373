"""AdmissionReview wire models (admission.k8s.io/v1)."""

from __future__ import annotations

import base64
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"
PATCH_TYPE_JSON_PATCH = "JSONPatch"


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class AdmissionRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    uid: str
    kind: GroupVersionKind = Field(default_factory=GroupVersionKind)
    namespace: Optional[str] = None
    name: Optional[str] = None
    operation: Optional[str] = None
    object: Optional[Any] = Field(default=None, description="Raw current state of the admitted object")


class AdmissionStatus(BaseModel):
    message: str = ""
    code: Optional[int] = None


class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    patchType: Optional[str] = None
    patch: Optional[str] = Field(default=None, description="Base64 encoded JSON Patch document")
    status: Optional[AdmissionStatus] = None

    @classmethod
    def allow(cls, uid: str) -> "AdmissionResponse":
        return cls(uid=uid, allowed=True)

    @classmethod
    def deny(cls, uid: str, message: str, code: int = 500) -> "AdmissionResponse":
        return cls(uid=uid, allowed=False, status=AdmissionStatus(message=message, code=code))

    @classmethod
    def with_patch(cls, uid: str, patch: bytes, message: str = "") -> "AdmissionResponse":
        return cls(
            uid=uid,
            allowed=True,
            patchType=PATCH_TYPE_JSON_PATCH,
            patch=base64.b64encode(patch).decode("ascii"),
            status=AdmissionStatus(message=message) if message else None,
        )

    def decoded_patch(self) -> Optional[bytes]:
        if self.patch is None:
            return None
        return base64.b64decode(self.patch)


class AdmissionReview(BaseModel):
    model_config = ConfigDict(extra="allow")

    apiVersion: str = ADMISSION_API_VERSION
    kind: str = ADMISSION_REVIEW_KIND
    request: Optional[AdmissionRequest] = None
    response: Optional[AdmissionResponse] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.apiVersion,
            "kind": self.kind,
            "response": self.response.model_dump(exclude_none=True) if self.response else None,
        }


__all__ = [
    "ADMISSION_API_VERSION",
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "AdmissionStatus",
    "GroupVersionKind",
    "PATCH_TYPE_JSON_PATCH",
]
