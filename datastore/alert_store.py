from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.schemas import Alert, AlertCounts, AlertSeverity
from settings import get_settings

logger = logging.getLogger(__name__)


class AlertStore:
    """Process-wide alert collection with an unread counter kept in step under one lock."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._items: Dict[str, Alert] = {}
        self._unread = 0
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    @property
    def unread_count(self) -> int:
        with self._lock:
            return self._unread

    def add(self, alert: Alert) -> None:
        with self._lock:
            previous = self._items.pop(alert.id, None)
            if previous is not None and not previous.acknowledged:
                self._unread -= 1
            self._items[alert.id] = alert.model_copy(deep=True)
            if not alert.acknowledged:
                self._unread += 1
            self._persist()

    def get(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            item = self._items.get(alert_id)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def acknowledge(self, alert_id: str) -> bool:
        """Mark an alert as read; returns False when nothing changed."""
        with self._lock:
            item = self._items.get(alert_id)
            if item is None or item.acknowledged:
                return False
            item.acknowledged = True
            self._unread = max(0, self._unread - 1)
            self._persist()
            return True

    def clear(self, alert_id: str) -> bool:
        with self._lock:
            item = self._items.pop(alert_id, None)
            if item is None:
                return False
            if not item.acknowledged:
                self._unread = max(0, self._unread - 1)
            self._persist()
            return True

    def clear_all(self) -> int:
        with self._lock:
            removed = len(self._items)
            self._items.clear()
            self._unread = 0
            self._persist()
            return removed

    def list(
        self,
        severity: Optional[AlertSeverity] = None,
        acknowledged: Optional[bool] = None,
    ) -> List[Alert]:
        """Return matching alerts, newest first."""

        with self._lock:
            items = list(self._items.values())
        items.reverse()
        return [
            item.model_copy(deep=True)
            for item in items
            if (severity is None or item.severity == severity)
            and (acknowledged is None or item.acknowledged == acknowledged)
        ]

    def counts(self) -> AlertCounts:
        with self._lock:
            items = list(self._items.values())
            unread = self._unread
        return AlertCounts(
            total=len(items),
            unread=unread,
            critical=sum(1 for item in items if item.severity == AlertSeverity.critical),
            warning=sum(1 for item in items if item.severity == AlertSeverity.warning),
            info=sum(1 for item in items if item.severity == AlertSeverity.info),
        )

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [item.model_dump(mode="json") for item in self._items.values()]
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable alert file",
                extra={"reason": str(self.persistence_path)},
            )
            data = []

        if not isinstance(data, list):
            logger.warning(
                "Ignoring alert file without a list of alerts",
                extra={"reason": str(self.persistence_path)},
            )
            data = []

        for index, payload in enumerate(data):
            try:
                alert = Alert.model_validate(payload)
            except ValidationError:
                logger.warning(
                    "Skipping unreadable alert entry",
                    extra={"row_number": index + 1, "reason": str(self.persistence_path)},
                )
                continue
            self._items[alert.id] = alert
        self._unread = sum(1 for item in self._items.values() if not item.acknowledged)


@lru_cache
def build_default_alert_store(path: Optional[str] = None) -> AlertStore:
    settings = get_settings()
    store_path = settings.alerts_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return AlertStore(persistence_path=persistence)
