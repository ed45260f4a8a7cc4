"""Request counters for the /stats endpoint."""

import os
import platform
import threading
import time
from typing import Any


class RequestStats:
    """Thread-safe request counters, overall and per method:path."""

    def __init__(self):
        self.started_at = time.time()
        self._lock = threading.Lock()
        self._totals = {"total": 0, "success": 0, "error": 0}
        self._endpoints: dict[str, dict[str, int]] = {}

    def record(self, method: str, path: str, status: int) -> None:
        outcome = "success" if 200 <= status < 400 else "error"
        key = f"{method}:{path}"
        with self._lock:
            self._totals["total"] += 1
            self._totals[outcome] += 1
            counts = self._endpoints.setdefault(key, {"total": 0, "success": 0, "error": 0})
            counts["total"] += 1
            counts[outcome] += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            requests = dict(self._totals)
            requests["endpoints"] = {key: dict(c) for key, c in self._endpoints.items()}
        return {
            "status": "healthy",
            "uptime": int(time.time() - self.started_at),
            "process": {
                "pid": os.getpid(),
                "python": platform.python_version(),
            },
            "requests": requests,
        }
