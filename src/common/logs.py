from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for a CLI process (``LOG_LEVEL`` when ``level`` is unset)."""

    name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    # Watch streams log every HTTP request at DEBUG otherwise.
    logging.getLogger("kubernetes").setLevel(max(numeric, logging.INFO))


__all__ = ["LOG_FORMAT", "configure_logging"]
