"""Packet sync executor: batch, encrypt, transmit and reconcile."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence

from packetsync.config import SyncSettings
from packetsync.errors import Outcome, SyncError, SyncErrorKind
from packetsync.models import (
    ACKNOWLEDGED_STATUS,
    SYNC_SUCCESS_STATUS,
    PacketRecord,
    PacketStatus,
    SyncItem,
    SyncResponse,
    SyncResult,
)
from packetsync.sync.envelope import EnvelopeCipher, build_envelope, seal_envelope
from packetsync.sync.payload import FileHasher, build_sync_items, hash_and_size
from packetsync.sync.retry import RetryPolicy, run_with_retry
from packetsync.sync.selector import select_eligible
from packetsync.sync.transport import SyncTransport, parse_sync_response

logger = logging.getLogger(__name__)


class PacketStoreAdapter(Protocol):
    def query_by_status(
        self,
        client_statuses: Sequence[str],
        server_statuses: Sequence[str] = (),
    ) -> list[PacketRecord]:
        ...

    def query_by_ids(self, ids: Sequence[str]) -> list[PacketRecord]:
        ...

    def get_by_id(self, status: str, packet_id: str) -> PacketRecord | None:
        ...

    def update_status(
        self,
        packet_id: str,
        new_status: str,
        expected_status: str | None = None,
    ) -> bool:
        ...


class SyncEventSink(Protocol):
    def record_sync_event(
        self,
        trigger_point: str,
        level: str,
        event_type: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        ...


@dataclass(frozen=True)
class BatchReport:
    batch_size: int
    synced_ids: list[str] = field(default_factory=list)
    unsynced_ids: list[str] = field(default_factory=list)


class PacketSyncService:
    """Announces ready packets to the sync authority.

    ``sync_all`` and ``sync_specific`` share one lock, held for the whole
    retry-wrapped round-trip, so only one batch is in flight per instance.
    Neither call raises: failures come back as an unsuccessful ``SyncResult``.
    """

    def __init__(
        self,
        store: PacketStoreAdapter,
        cipher: EnvelopeCipher,
        transport: SyncTransport,
        settings: SyncSettings | None = None,
        hasher: FileHasher = hash_and_size,
        guard: Callable[[], str | None] | None = None,
        events: SyncEventSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.cipher = cipher
        self.transport = transport
        self.settings = settings or SyncSettings()
        self.retry_policy = RetryPolicy.from_settings(self.settings)
        self._hasher = hasher
        self._guard = guard
        self._events = events
        self._sleep = sleep
        self._lock = threading.Lock()

    def sync_all(self, trigger_point: str) -> SyncResult:
        logger.info(
            "Syncing up to %d packets to the server (trigger=%s)",
            self.settings.batch_count,
            trigger_point,
        )
        return self._run(trigger_point, None)

    def sync_specific(self, trigger_point: str, packet_ids: Sequence[str]) -> SyncResult:
        ids = [str(packet_id) for packet_id in packet_ids]
        logger.info("Syncing %d specific packets to the server (trigger=%s)", len(ids), trigger_point)
        return self._run(trigger_point, ids)

    def fetch_packets_to_be_synced(self) -> list[PacketStatus]:
        return [PacketStatus.from_record(record) for record in select_eligible(self.store)]

    def is_packet_synced(self, packet_id: str) -> bool:
        record = self.store.get_by_id(ACKNOWLEDGED_STATUS, packet_id)
        return record is not None and bool(record.id)

    def _run(self, trigger_point: str, packet_ids: list[str] | None) -> SyncResult:
        mode = "full" if packet_ids is None else "targeted"
        try:
            with self._lock:
                outcome = run_with_retry(
                    lambda: self._attempt(trigger_point, packet_ids),
                    self.retry_policy,
                    sleep=self._sleep,
                )
        except Exception as exc:
            logger.exception("Unexpected failure in packet sync (trigger=%s)", trigger_point)
            outcome = Outcome.failure(SyncErrorKind.INTERNAL_ERROR, str(exc))

        detail: dict[str, Any] = {"trigger_point": trigger_point, "mode": mode}
        if outcome.ok and outcome.value is not None:
            report = outcome.value
            detail.update(
                batch_size=report.batch_size,
                synced_ids=list(report.synced_ids),
                unsynced_ids=list(report.unsynced_ids),
            )
            result = SyncResult(ok=True, message="success", detail=detail)
        else:
            kind = outcome.kind or SyncErrorKind.INTERNAL_ERROR
            logger.error("Packet sync failed (%s): %s", kind.value, outcome.message)
            result = SyncResult(
                ok=False,
                message=outcome.message or kind.value,
                error_kind=kind.value,
                detail=detail,
            )
        self._record_event(trigger_point, result)
        return result

    def _precondition_failure(self) -> str | None:
        if not self.settings.sync_enabled:
            return "packet sync is disabled"
        if not self.settings.endpoint_name:
            return "no packet sync endpoint configured"
        if self._guard is not None:
            return self._guard()
        return None

    def _resolve_records(self, packet_ids: list[str] | None) -> list[PacketRecord]:
        if packet_ids is None:
            return select_eligible(self.store)[: self.settings.batch_count]
        records = self.store.query_by_ids(packet_ids)
        found = {record.id for record in records}
        missing = [packet_id for packet_id in packet_ids if packet_id not in found]
        if missing:
            logger.warning("Skipping %d unknown packet ids: %s", len(missing), ", ".join(missing))
        return records

    def _attempt(self, trigger_point: str, packet_ids: list[str] | None) -> Outcome[BatchReport]:
        reason = self._precondition_failure()
        if reason:
            return Outcome.failure(SyncErrorKind.PRECONDITION_FAILED, reason)

        records = [
            record
            for record in self._resolve_records(packet_ids)
            if record.client_status != ACKNOWLEDGED_STATUS
        ]
        if not records:
            logger.info("No packets pending sync; skipping server call.")
            return Outcome.success(BatchReport(batch_size=0))

        items = build_sync_items(records, self.settings.application_language, self._hasher)
        try:
            encoded = seal_envelope(build_envelope(items), self.cipher)
            raw = self.transport.post(self.settings.endpoint_name, json.dumps(encoded), trigger_point)
            response = parse_sync_response(raw)
        except SyncError as exc:
            logger.warning("Packet sync attempt failed (%s): %s", exc.kind.value, exc.message)
            return Outcome.from_error(exc)

        if response.rejected:
            logger.error("Packet sync rejected by server: %s", response.errors)
            return Outcome.failure(SyncErrorKind.SERVER_REJECTED, str(response.errors))
        return Outcome.success(self._reconcile(records, items, response))

    def _reconcile(
        self,
        records: list[PacketRecord],
        items: list[SyncItem],
        response: SyncResponse,
    ) -> BatchReport:
        sent_statuses = {record.id: record.client_status for record in records}
        synced: list[str] = []
        unsynced: list[str] = []
        for item in items:
            status = response.statuses.get(item.id)
            if status is None or status.upper() != SYNC_SUCCESS_STATUS:
                unsynced.append(item.id)
                continue
            try:
                updated = self.store.update_status(
                    item.id, ACKNOWLEDGED_STATUS, expected_status=sent_statuses.get(item.id)
                )
            except Exception:
                logger.exception("Failed to mark packet %s as synced", item.id)
                unsynced.append(item.id)
                continue
            if updated:
                synced.append(item.id)
            else:
                logger.warning("Packet %s changed or vanished before it could be marked synced", item.id)
                unsynced.append(item.id)
        logger.info("Server acknowledged %d of %d packets.", len(synced), len(items))
        return BatchReport(batch_size=len(items), synced_ids=synced, unsynced_ids=unsynced)

    def _record_event(self, trigger_point: str, result: SyncResult) -> None:
        if self._events is None:
            return
        try:
            self._events.record_sync_event(
                trigger_point,
                level="INFO" if result.ok else "WARNING",
                event_type="packet_sync",
                detail={
                    "ok": result.ok,
                    "message": result.message,
                    "error_kind": result.error_kind,
                    **result.detail,
                },
            )
        except Exception as exc:
            logger.warning("Could not record sync event: %s", str(exc))
