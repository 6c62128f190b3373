"""Admission webhook that replaces emptyDir volumes with PVC-backed volumes."""

from .mutator import Mutator, VolumeConversion
from .review import AdmissionRequest, AdmissionResponse, AdmissionReview

__all__ = [
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "Mutator",
    "VolumeConversion",
]
