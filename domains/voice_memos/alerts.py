"""One-shot user-visible alerts."""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

from app.utils.helpers import now_iso


@dataclass(frozen=True)
class Alert:
    message: str
    created_at: str


class AlertBoard:
    """Holds alerts until a client reads them once."""

    def __init__(self, max_alerts: int = 50):
        self._alerts: Deque[Alert] = deque(maxlen=max_alerts)
        self._lock = threading.Lock()

    def post(self, message: str) -> Alert:
        alert = Alert(message=message, created_at=now_iso())
        with self._lock:
            self._alerts.append(alert)
        return alert

    def drain(self) -> List[Alert]:
        """Return pending alerts, oldest first, and forget them."""
        with self._lock:
            alerts = list(self._alerts)
            self._alerts.clear()
        return alerts

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
