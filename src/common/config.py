from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_SIZE = "10Gi"
DEFAULT_STORAGE_CLASS = "standard"
DEFAULT_ACCESS_MODES = "ReadWriteOnce"

DEFAULT_WORKERS = 2
DEFAULT_REQUEST_TIMEOUT = 30.0


def pick(*values: Optional[str]) -> str:
    """Return the first value that is not blank after trimming, else ``""``."""

    for value in values:
        if value is not None and value.strip():
            return value
    return ""


def _env(name: str, default: str) -> str:
    return pick(os.getenv(name), default)


@dataclass(frozen=True)
class StorageDefaults:
    """Claim parameters used when a volume carries no override annotation."""

    size: str = DEFAULT_SIZE
    storage_class: str = DEFAULT_STORAGE_CLASS
    access_modes: str = DEFAULT_ACCESS_MODES

    @classmethod
    def from_env(
        cls,
        size: Optional[str] = None,
        storage_class: Optional[str] = None,
        access_modes: Optional[str] = None,
    ) -> "StorageDefaults":
        return cls(
            size=pick(size, _env("DEFAULT_SIZE", DEFAULT_SIZE)),
            storage_class=pick(storage_class, _env("DEFAULT_STORAGE_CLASS", DEFAULT_STORAGE_CLASS)),
            access_modes=pick(access_modes, _env("DEFAULT_ACCESS_MODES", DEFAULT_ACCESS_MODES)),
        )


@dataclass(frozen=True)
class ControllerSettings:
    namespace: Optional[str] = None
    workers: int = DEFAULT_WORKERS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_env(
        cls,
        namespace: Optional[str] = None,
        workers: Optional[int] = None,
        request_timeout: Optional[float] = None,
    ) -> "ControllerSettings":
        namespace = pick(namespace, os.getenv("WATCH_NAMESPACE")).strip() or None
        if workers is None:
            workers = int(_env("CONTROLLER_WORKERS", str(DEFAULT_WORKERS)))
        if request_timeout is None:
            request_timeout = float(_env("KUBE_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT)))
        if workers < 1:
            raise ValueError("Controller needs at least one worker")
        if request_timeout <= 0:
            raise ValueError("Request timeout must be positive")
        return cls(namespace=namespace, workers=workers, request_timeout=request_timeout)


__all__ = [
    "ControllerSettings",
    "DEFAULT_ACCESS_MODES",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_SIZE",
    "DEFAULT_STORAGE_CLASS",
    "StorageDefaults",
    "pick",
]
