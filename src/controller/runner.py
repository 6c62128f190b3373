from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from kubernetes import watch
from kubernetes.client import ApiException, CoreV1Api

from src.common.config import ControllerSettings

from .reconciler import MANAGED_BY_LABEL, MANAGED_BY_VALUE, PodKey, Reconciler, controlling_pod_ref
from .workqueue import WorkQueue

WATCH_TIMEOUT_SECONDS = 300
WATCH_RESTART_DELAY = 5.0

logger = logging.getLogger(__name__)


def pod_key_for(obj: Any) -> Optional[PodKey]:
    metadata = getattr(obj, "metadata", None)
    namespace = getattr(metadata, "namespace", None)
    name = getattr(metadata, "name", None)
    if not namespace or not name:
        return None
    return PodKey(namespace=namespace, name=name)


def owner_pod_key(obj: Any) -> Optional[PodKey]:
    """Key of the pod controlling a PVC, taken from its controller owner reference."""

    namespace = getattr(getattr(obj, "metadata", None), "namespace", None)
    ref = controlling_pod_ref(obj)
    if ref is None or not namespace:
        return None
    return PodKey(namespace=namespace, name=ref.name)


class ControllerRunner:
    """Feeds pod and owned-PVC watch events into a work queue served by worker threads.

    Each watch stream starts with a full listing, so every restart (timeout
    or error) doubles as a resync of all pods.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        reconciler: Reconciler,
        settings: ControllerSettings,
        queue: Optional[WorkQueue] = None,
    ) -> None:
        self.core_api = core_api
        self.reconciler = reconciler
        self.settings = settings
        self.queue = queue if queue is not None else WorkQueue()
        self._stop = threading.Event()
        self._watchers: List[watch.Watch] = []
        self._watchers_lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def run(self) -> None:
        scope = self.settings.namespace or "all namespaces"
        logger.info("Starting PVC controller for %s with %d worker(s)", scope, self.settings.workers)
        self._start("watch-pods", self._watch_loop, self._pod_stream, self._on_pod_event)
        self._start("watch-claims", self._watch_loop, self._claim_stream, self._on_claim_event)
        for index in range(self.settings.workers):
            self._start(f"worker-{index}", self._worker)

        while not self._stop.wait(1.0):
            pass
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout=self.settings.request_timeout)
        logger.info("PVC controller stopped")

    def stop(self) -> None:
        """Request a cooperative stop and interrupt any open watch stream."""

        self._stop.set()
        with self._watchers_lock:
            watchers = list(self._watchers)
        for active in watchers:
            active.stop()

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """Reconcile one key from the queue; ``False`` when none was available."""

        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            outcome = self.reconciler.reconcile(key)
        except ApiException as exc:
            delay = self.queue.add_rate_limited(key)
            logger.warning(
                "Reconcile of %s failed (%s %s); retrying in %.1fs",
                key,
                exc.status,
                exc.reason,
                delay,
            )
        except Exception:
            delay = self.queue.add_rate_limited(key)
            logger.exception("Unexpected error reconciling %s; retrying in %.1fs", key, delay)
        else:
            self.queue.forget(key)
            if outcome.requeue_after is not None:
                self.queue.add_after(key, outcome.requeue_after)
            logger.debug("Reconciled %s: %s", key, outcome.action.value)
        finally:
            self.queue.done(key)
        return True

    def _start(self, name: str, target: Callable[..., None], *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _worker(self) -> None:
        while not self.queue.is_shutdown:
            self.process_next()

    def _stream_kwargs(self) -> Dict[str, Any]:
        return {
            "timeout_seconds": WATCH_TIMEOUT_SECONDS,
            "_request_timeout": WATCH_TIMEOUT_SECONDS + self.settings.request_timeout,
        }

    def _pod_stream(self, watcher: watch.Watch):
        if self.settings.namespace:
            return watcher.stream(
                self.core_api.list_namespaced_pod, namespace=self.settings.namespace, **self._stream_kwargs()
            )
        return watcher.stream(self.core_api.list_pod_for_all_namespaces, **self._stream_kwargs())

    def _claim_stream(self, watcher: watch.Watch):
        selector = f"{MANAGED_BY_LABEL}={MANAGED_BY_VALUE}"
        if self.settings.namespace:
            return watcher.stream(
                self.core_api.list_namespaced_persistent_volume_claim,
                namespace=self.settings.namespace,
                label_selector=selector,
                **self._stream_kwargs(),
            )
        return watcher.stream(
            self.core_api.list_persistent_volume_claim_for_all_namespaces,
            label_selector=selector,
            **self._stream_kwargs(),
        )

    def _on_pod_event(self, event: Dict[str, Any]) -> None:
        key = pod_key_for(event.get("object"))
        if key is not None:
            self.queue.add(key)

    def _on_claim_event(self, event: Dict[str, Any]) -> None:
        key = owner_pod_key(event.get("object"))
        if key is not None:
            self.queue.add(key)

    def _watch_loop(self, open_stream: Callable[[watch.Watch], Any], handle: Callable[[Dict[str, Any]], None]) -> None:
        while not self._stop.is_set():
            watcher = watch.Watch()
            with self._watchers_lock:
                self._watchers.append(watcher)
            try:
                for event in open_stream(watcher):
                    if self._stop.is_set():
                        break
                    if event.get("type") == "ERROR":
                        logger.warning("Watch error event: %s", event.get("raw_object"))
                        break
                    handle(event)
            except ApiException as exc:
                logger.warning("Watch failed (%s %s); restarting in %.0fs", exc.status, exc.reason, WATCH_RESTART_DELAY)
                self._stop.wait(WATCH_RESTART_DELAY)
            except Exception:
                logger.exception("Watch stream broke; restarting in %.0fs", WATCH_RESTART_DELAY)
                self._stop.wait(WATCH_RESTART_DELAY)
            finally:
                with self._watchers_lock:
                    self._watchers.remove(watcher)
                watcher.stop()


__all__ = ["ControllerRunner", "owner_pod_key", "pod_key_for"]
