from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from kubernetes.client import ApiClient, ApiException, CoreV1Api
from kubernetes.utils import parse_quantity

from src.common.annotations import LEGACY_CLAIM_ANNOTATION, ClaimAnnotations
from src.common.config import DEFAULT_REQUEST_TIMEOUT
from src.common.pod import PodDecodeError, PodView

PENDING_REQUEUE_SECONDS = 5.0
UNKNOWN_PHASE_REQUEUE_SECONDS = 10.0

PHASE_BOUND = "Bound"
PHASE_PENDING = "Pending"

MANAGED_BY_LABEL = "created-by"
MANAGED_BY_VALUE = "pvc-webhook"
POD_LABEL = "pod"
EVENT_REASON_PROVISIONED = "PVCProvisioned"

VALID_ACCESS_MODES = ("ReadWriteOnce", "ReadOnlyMany", "ReadWriteMany", "ReadWriteOncePod")

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    NOOP = "noop"
    CREATED = "created"
    DELETED = "deleted"
    REQUEUE = "requeue"


# Lower value wins when per-claim outcomes are combined into one pod outcome.
_PRECEDENCE = {Action.REQUEUE: 0, Action.CREATED: 1, Action.DELETED: 2, Action.NOOP: 3}


@dataclass(frozen=True)
class ReconcileOutcome:
    action: Action
    requeue_after: Optional[float] = None
    claims: Tuple[str, ...] = field(default=())

    @classmethod
    def noop(cls) -> "ReconcileOutcome":
        return cls(Action.NOOP)

    @classmethod
    def requeue(cls, seconds: float, claim: str = "") -> "ReconcileOutcome":
        return cls(Action.REQUEUE, requeue_after=seconds, claims=(claim,) if claim else ())

    @staticmethod
    def combine(outcomes: Sequence["ReconcileOutcome"]) -> "ReconcileOutcome":
        if not outcomes:
            return ReconcileOutcome.noop()
        delays = [o.requeue_after for o in outcomes if o.requeue_after is not None]
        best = min(outcomes, key=lambda o: _PRECEDENCE[o.action])
        claims = tuple(c for o in outcomes if o.action == best.action for c in o.claims)
        return ReconcileOutcome(best.action, requeue_after=min(delays) if delays else None, claims=claims)


@dataclass(frozen=True)
class PodKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class Reconciler:
    """Level-triggered state machine keeping one pod's claims in step with the pod.

    Every pass recomputes the desired state from the pod and its claims as
    they are now. Callers must not reconcile the same key concurrently.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        record_events: bool = True,
        api_client: Optional[ApiClient] = None,
    ) -> None:
        self.core_api = core_api
        self.request_timeout = request_timeout
        self.record_events = record_events
        self._api_client = api_client or ApiClient()

    def reconcile(self, key: PodKey) -> ReconcileOutcome:
        pod = self._get_pod(key)
        if pod is None:
            # Owner references let the garbage collector reclaim the claims.
            return ReconcileOutcome.noop()

        claims = self.claims_for(pod)
        if not claims:
            if pod.annotation(LEGACY_CLAIM_ANNOTATION):
                logger.warning(
                    "Pod %s only carries the unsupported %s annotation; re-create it to convert",
                    key,
                    LEGACY_CLAIM_ANNOTATION,
                )
            return ReconcileOutcome.noop()

        if pod.is_deleting:
            outcomes = [self._release(pod, claim) for claim in claims]
        else:
            outcomes = [self._ensure(pod, claim) for claim in claims]
        return ReconcileOutcome.combine(outcomes)

    @staticmethod
    def claims_for(pod: PodView) -> List[ClaimAnnotations]:
        claims: List[ClaimAnnotations] = []
        for volume in pod.volumes:
            claim = ClaimAnnotations.from_annotations(volume.name, pod.annotations)
            if claim is not None:
                claims.append(claim)
        return claims

    def _get_pod(self, key: PodKey) -> Optional[PodView]:
        try:
            raw = self.core_api.read_namespaced_pod(
                name=key.name, namespace=key.namespace, _request_timeout=self.request_timeout
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise
        try:
            return PodView.from_object(self._api_client.sanitize_for_serialization(raw))
        except PodDecodeError as exc:
            logger.error("Skipping pod %s: %s", key, exc)
            return None

    def _get_claim(self, namespace: str, name: str) -> Optional[Any]:
        try:
            return self.core_api.read_namespaced_persistent_volume_claim(
                name=name, namespace=namespace, _request_timeout=self.request_timeout
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise

    def _release(self, pod: PodView, claim: ClaimAnnotations) -> ReconcileOutcome:
        existing = self._get_claim(pod.namespace, claim.claim_name)
        if existing is None:
            return ReconcileOutcome.noop()
        if not is_controlled_by(existing, pod):
            logger.warning(
                "Not deleting PVC %s for deleting pod %s: it is controlled by another object",
                claim.claim_name,
                pod.key,
            )
            return ReconcileOutcome.noop()
        try:
            self.core_api.delete_namespaced_persistent_volume_claim(
                name=claim.claim_name, namespace=pod.namespace, _request_timeout=self.request_timeout
            )
        except ApiException as exc:
            if exc.status == 404:
                return ReconcileOutcome.noop()
            raise
        logger.info("Deleted PVC %s for deleting pod %s", claim.claim_name, pod.key)
        return ReconcileOutcome(Action.DELETED, claims=(claim.claim_name,))

    def _ensure(self, pod: PodView, claim: ClaimAnnotations) -> ReconcileOutcome:
        existing = self._get_claim(pod.namespace, claim.claim_name)
        if existing is not None:
            return self._observe(pod, claim, existing)

        problem = size_problem(claim.size)
        if problem:
            logger.error(
                "Invalid size %r for volume %s of pod %s; not creating PVC %s: %s",
                claim.size,
                claim.volume,
                pod.key,
                claim.claim_name,
                problem,
            )
            return ReconcileOutcome.noop()

        problem = access_modes_problem(claim.access_mode_list)
        if problem:
            logger.error(
                "Invalid access modes %r for volume %s of pod %s; not creating PVC %s: %s",
                claim.access_modes,
                claim.volume,
                pod.key,
                claim.claim_name,
                problem,
            )
            return ReconcileOutcome.noop()

        body = build_claim(pod, claim)
        try:
            self.core_api.create_namespaced_persistent_volume_claim(
                namespace=pod.namespace, body=body, _request_timeout=self.request_timeout
            )
        except ApiException as exc:
            if exc.status == 409:
                logger.info("PVC %s for pod %s already exists", claim.claim_name, pod.key)
                return ReconcileOutcome.requeue(PENDING_REQUEUE_SECONDS, claim.claim_name)
            raise

        logger.info("Created PVC %s (%s) for pod %s", claim.claim_name, claim.size, pod.key)
        self._record_provisioned(pod, claim)
        return ReconcileOutcome(
            Action.CREATED, requeue_after=PENDING_REQUEUE_SECONDS, claims=(claim.claim_name,)
        )

    def _observe(self, pod: PodView, claim: ClaimAnnotations, existing: Any) -> ReconcileOutcome:
        if not is_controlled_by(existing, pod):
            logger.warning(
                "PVC %s mounted by pod %s is controlled by another object; pod names may collide",
                claim.claim_name,
                pod.key,
            )
        status = getattr(existing, "status", None)
        phase = getattr(status, "phase", None)
        if phase == PHASE_BOUND:
            return ReconcileOutcome.noop()
        if phase == PHASE_PENDING:
            logger.debug("PVC %s for pod %s not bound yet", claim.claim_name, pod.key)
            return ReconcileOutcome.requeue(PENDING_REQUEUE_SECONDS, claim.claim_name)
        logger.warning("PVC %s for pod %s in unexpected phase %s", claim.claim_name, pod.key, phase)
        return ReconcileOutcome.requeue(UNKNOWN_PHASE_REQUEUE_SECONDS, claim.claim_name)

    def _record_provisioned(self, pod: PodView, claim: ClaimAnnotations) -> None:
        if not self.record_events:
            return
        try:
            self.core_api.create_namespaced_event(
                namespace=pod.namespace,
                body=build_event(pod, f"Created PVC {claim.claim_name} for Pod {pod.name}"),
                _request_timeout=self.request_timeout,
            )
        except ApiException as exc:
            logger.warning("Could not record event for pod %s: %s", pod.key, exc.reason)


def size_problem(size: str) -> Optional[str]:
    """Return why ``size`` cannot be a storage request, or ``None`` when it can."""

    try:
        quantity = parse_quantity(size)
    except (ValueError, TypeError) as exc:
        return str(exc) or "unparseable quantity"
    if not quantity.is_finite() or quantity <= 0:
        return "size must be a positive quantity"
    return None


def access_modes_problem(modes: Sequence[str]) -> Optional[str]:
    if not modes:
        return "at least one access mode is required"
    unknown = [mode for mode in modes if mode not in VALID_ACCESS_MODES]
    if unknown:
        return f"unknown access mode(s): {', '.join(unknown)}"
    return None


def controlling_pod_ref(obj: Any) -> Optional[Any]:
    """The ``Pod`` owner reference marked as controller on ``obj``, if any."""

    metadata = getattr(obj, "metadata", None)
    for ref in getattr(metadata, "owner_references", None) or []:
        if getattr(ref, "kind", None) == "Pod" and getattr(ref, "controller", False):
            return ref
    return None


def is_controlled_by(obj: Any, pod: PodView) -> bool:
    ref = controlling_pod_ref(obj)
    return ref is not None and bool(pod.uid) and getattr(ref, "uid", None) == pod.uid


def build_claim(pod: PodView, claim: ClaimAnnotations) -> Dict[str, Any]:
    spec: Dict[str, Any] = {
        "accessModes": claim.access_mode_list,
        "resources": {"requests": {"storage": claim.size}},
    }
    if claim.storage_class:
        spec["storageClassName"] = claim.storage_class
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": claim.claim_name,
            "namespace": pod.namespace,
            "labels": {MANAGED_BY_LABEL: MANAGED_BY_VALUE, POD_LABEL: pod.name},
            "ownerReferences": [
                {
                    "apiVersion": "v1",
                    "kind": "Pod",
                    "name": pod.name,
                    "uid": pod.uid,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ],
        },
        "spec": spec,
    }


def build_event(pod: PodView, message: str) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    return {
        "apiVersion": "v1",
        "kind": "Event",
        "metadata": {"generateName": f"{pod.name}.", "namespace": pod.namespace},
        "involvedObject": {
            "apiVersion": "v1",
            "kind": "Pod",
            "name": pod.name,
            "namespace": pod.namespace,
            "uid": pod.uid,
        },
        "reason": EVENT_REASON_PROVISIONED,
        "message": message,
        "type": "Normal",
        "source": {"component": MANAGED_BY_VALUE},
        "firstTimestamp": now,
        "lastTimestamp": now,
        "count": 1,
    }


__all__ = [
    "Action",
    "PENDING_REQUEUE_SECONDS",
    "PodKey",
    "ReconcileOutcome",
    "Reconciler",
    "UNKNOWN_PHASE_REQUEUE_SECONDS",
    "VALID_ACCESS_MODES",
    "access_modes_problem",
    "build_claim",
    "build_event",
    "controlling_pod_ref",
    "is_controlled_by",
    "size_problem",
]
