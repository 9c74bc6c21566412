"""Eligibility policy for packets awaiting (re-)synchronization."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from packetsync.models import (
    ACKNOWLEDGED_STATUS,
    SERVER_STATUS_RESEND,
    UPLOAD_PENDING_STATUSES,
    PacketRecord,
)

logger = logging.getLogger(__name__)


class CandidateSource(Protocol):
    def query_by_status(
        self,
        client_statuses: Sequence[str],
        server_statuses: Sequence[str] = (),
    ) -> list[PacketRecord]:
        ...


def is_resend_requested(record: PacketRecord) -> bool:
    return (record.server_status or "").upper() == SERVER_STATUS_RESEND


def is_eligible(record: PacketRecord) -> bool:
    """Return whether the server may still be missing the record's latest state.

    A record the server never saw is eligible. A record the server has seen is
    eligible again only when the server asked for a resend and the local
    status changed strictly after the last known server status.
    """
    if record.server_status is None:
        return True
    if not is_resend_requested(record):
        return False
    if record.client_status_timestamp is None or record.server_status_timestamp is None:
        return False
    return record.client_status_timestamp > record.server_status_timestamp


def select_eligible(store: CandidateSource) -> list[PacketRecord]:
    candidates = store.query_by_status(UPLOAD_PENDING_STATUSES, (SERVER_STATUS_RESEND,))
    # A resend request can outlive the local acknowledgement; SYNCED is terminal.
    eligible = [
        record
        for record in candidates
        if record.client_status != ACKNOWLEDGED_STATUS and is_eligible(record)
    ]
    logger.debug(
        "Selected %d of %d candidate packets for sync.", len(eligible), len(candidates)
    )
    return eligible
