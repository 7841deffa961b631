from __future__ import annotations

import logging
import os

LOG_FORMAT: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    level_name = (level or os.environ.get("PNODE_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    if any(getattr(h, "_pnodewatch", False) for h in root.handlers):
        root.setLevel(level_name)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._pnodewatch = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level_name)

    # Per-request lines from the HTTP client drown out the poll summaries.
    logging.getLogger("httpx").setLevel(logging.WARNING)
