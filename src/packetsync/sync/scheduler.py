"""Background trigger that periodically runs a full packet sync."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from packetsync.models import SyncResult

logger = logging.getLogger(__name__)


class FullSyncService(Protocol):
    def sync_all(self, trigger_point: str) -> SyncResult:
        ...


class SyncScheduler:
    def __init__(
        self,
        service: FullSyncService,
        interval_seconds: float,
        trigger_point: str = "scheduler",
    ) -> None:
        self.service = service
        self.interval_seconds = max(0.01, interval_seconds)
        self.trigger_point = trigger_point
        self.last_result: SyncResult | None = None
        self.runs = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SyncResult:
        result = self.service.sync_all(self.trigger_point)
        self.last_result = result
        self.runs += 1
        if not result.ok:
            logger.warning("Scheduled packet sync failed: %s", result.message)
        return result

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="packetsync-scheduler", daemon=True)
        self._thread.start()
        logger.info("Packet sync scheduler started (interval=%.2fs)", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
