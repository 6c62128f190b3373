from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from src.common.annotations import (
    ACCESS_MODES_FIELD,
    CONVERTED_ANNOTATION,
    CONVERTED_VALUE,
    SIZE_FIELD,
    STORAGE_CLASS_FIELD,
    ClaimAnnotations,
    is_converted,
    volume_annotation_key,
)
from src.common.config import StorageDefaults, pick
from src.common.naming import claim_name
from src.common.pod import PodDecodeError, PodView

from .patch import PatchError, add_op, pointer, replace_op, serialize_patch
from .review import AdmissionRequest, AdmissionResponse

CONVERTIBLE_KIND = "Pod"
CONVERTED_MESSAGE = "converted emptyDir to PVC"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolumeConversion:
    index: int
    claim: ClaimAnnotations

    def volume_definition(self) -> Dict[str, Any]:
        return {
            "name": self.claim.volume,
            "persistentVolumeClaim": {"claimName": self.claim.claim_name},
        }


class Mutator:
    """Turns one admission request into one admission response.

    Holds nothing but the immutable storage defaults, so a single instance
    serves concurrent requests.
    """

    def __init__(self, defaults: StorageDefaults) -> None:
        self.defaults = defaults

    def mutate(self, request: AdmissionRequest) -> AdmissionResponse:
        uid = request.uid
        if request.kind.kind != CONVERTIBLE_KIND:
            return AdmissionResponse.allow(uid)

        try:
            pod = PodView.from_object(request.object)
        except PodDecodeError as exc:
            logger.warning("Rejecting admission %s: %s", uid, exc)
            return AdmissionResponse.deny(uid, str(exc))
        pod = self._fill_identity(pod, request)

        if is_converted(pod.annotations):
            logger.debug("Pod %s already converted; skipping", pod.key)
            return AdmissionResponse.allow(uid)

        plan = self.plan(pod)
        if not plan:
            return AdmissionResponse.allow(uid)

        ops = self.build_patch(pod, plan)
        try:
            patch = serialize_patch(ops)
        except PatchError as exc:
            logger.error("Rejecting admission %s: %s", uid, exc)
            return AdmissionResponse.deny(uid, str(exc))

        logger.info(
            "Converting %d emptyDir volume(s) on pod %s: %s",
            len(plan),
            pod.key,
            ", ".join(item.claim.claim_name for item in plan),
        )
        return AdmissionResponse.with_patch(uid, patch, message=CONVERTED_MESSAGE)

    def plan(self, pod: PodView) -> List[VolumeConversion]:
        conversions: List[VolumeConversion] = []
        for index, volume in enumerate(pod.volumes):
            if not volume.is_ephemeral:
                continue
            conversions.append(
                VolumeConversion(
                    index=index,
                    claim=ClaimAnnotations(
                        volume=volume.name,
                        claim_name=claim_name(pod.namespace, pod.name, volume.name),
                        size=self._resolve(pod, volume.name, SIZE_FIELD, self.defaults.size),
                        storage_class=self._resolve(
                            pod, volume.name, STORAGE_CLASS_FIELD, self.defaults.storage_class
                        ),
                        access_modes=self._resolve(
                            pod, volume.name, ACCESS_MODES_FIELD, self.defaults.access_modes
                        ),
                    ),
                )
            )
        return conversions

    def build_patch(self, pod: PodView, plan: List[VolumeConversion]) -> List[Dict[str, Any]]:
        ops = [
            replace_op(pointer("spec", "volumes", item.index), item.volume_definition())
            for item in plan
        ]
        if pod.annotations is None:
            ops.append(add_op(pointer("metadata", "annotations"), {}))
        for item in plan:
            for key, value in item.claim.to_annotations().items():
                ops.append(add_op(pointer("metadata", "annotations", key), value))
        ops.append(add_op(pointer("metadata", "annotations", CONVERTED_ANNOTATION), CONVERTED_VALUE))
        return ops

    @staticmethod
    def _resolve(pod: PodView, volume: str, field: str, default: str) -> str:
        return pick(pod.annotation(volume_annotation_key(volume, field)), default).strip()

    @staticmethod
    def _fill_identity(pod: PodView, request: AdmissionRequest) -> PodView:
        # The API server may not have defaulted namespace or generated the name yet.
        namespace = pick(pod.namespace, request.namespace)
        name = pick(pod.name, request.name, pod.generate_name.rstrip("-"))
        if namespace == pod.namespace and name == pod.name:
            return pod
        return pod.model_copy(update={"namespace": namespace, "name": name})


def build_mutator(defaults: Optional[StorageDefaults] = None) -> Mutator:
    return Mutator(defaults or StorageDefaults.from_env())


__all__ = ["CONVERTIBLE_KIND", "Mutator", "VolumeConversion", "build_mutator"]
