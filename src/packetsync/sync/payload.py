"""Sync item construction from persisted packet records."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Callable

from packetsync.errors import Outcome, SyncErrorKind
from packetsync.models import (
    ACK_FILE_EXTENSION,
    PACKET_FILE_EXTENSION,
    SUPERVISOR_STATUS_APPROVED,
    ClientStatus,
    DemographicSummary,
    PacketRecord,
    SyncItem,
)

logger = logging.getLogger(__name__)

_CHUNK_BYTES = 64 * 1024

FileHasher = Callable[[Path], Outcome[tuple[str, int]]]


def packet_file_path(record: PacketRecord) -> Path | None:
    if not record.ack_file_path:
        return None
    return Path(record.ack_file_path.replace(ACK_FILE_EXTENSION, PACKET_FILE_EXTENSION))


def hash_and_size(path: Path) -> Outcome[tuple[str, int]]:
    digest = hashlib.sha256()
    size = 0
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_BYTES), b""):
                digest.update(chunk)
                size += len(chunk)
    except OSError as exc:
        return Outcome.failure(SyncErrorKind.LOCAL_IO_FAILURE, f"{path}: {exc}")
    return Outcome.success((digest.hexdigest().upper(), size))


def decode_demographics(
    raw: bytes | None,
    default_language: str,
) -> Outcome[DemographicSummary]:
    if raw is None:
        return Outcome.success(None)
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        return Outcome.failure(SyncErrorKind.LOCAL_IO_FAILURE, f"undecodable demographic blob: {exc}")
    if not isinstance(payload, dict):
        return Outcome.failure(SyncErrorKind.LOCAL_IO_FAILURE, "demographic blob is not an object")

    def _text(key: str) -> str | None:
        value = payload.get(key)
        return str(value) if value is not None else None

    lang_code = _text("langCode")
    return Outcome.success(
        DemographicSummary(
            name=_text("name"),
            phone=_text("phone"),
            email=_text("email"),
            lang_code=lang_code.split(",")[0].strip() if lang_code else default_language,
        )
    )


def supervisor_status_for(client_status: str) -> str:
    if client_status.upper() == ClientStatus.RE_REGISTER.value:
        return SUPERVISOR_STATUS_APPROVED
    return client_status


def build_sync_item(
    record: PacketRecord,
    default_language: str,
    hasher: FileHasher = hash_and_size,
) -> SyncItem:
    demographics = decode_demographics(record.additional_info, default_language)
    summary = demographics.value if demographics.ok else None
    if not demographics.ok:
        logger.error("Packet %s demographics ignored: %s", record.id, demographics.message)

    digest: str | None = None
    size: int | None = None
    content_path = packet_file_path(record)
    if content_path is None:
        logger.error("Packet %s has no acknowledgement path; hash and size omitted", record.id)
    else:
        hashed = hasher(content_path)
        if hashed.ok and hashed.value is not None:
            digest, size = hashed.value
        else:
            logger.error("Packet %s hash and size omitted: %s", record.id, hashed.message)

    return SyncItem(
        id=record.id,
        type=record.packet_type.upper(),
        name=summary.name if summary else None,
        phone=summary.phone if summary else None,
        email=summary.email if summary else None,
        lang_code=summary.lang_code if summary else None,
        packet_hash_digest=digest,
        packet_size_bytes=size,
        supervisor_status=supervisor_status_for(record.client_status),
        supervisor_comment=record.status_comments,
    )


def build_sync_items(
    records: list[PacketRecord],
    default_language: str,
    hasher: FileHasher = hash_and_size,
) -> list[SyncItem]:
    return [build_sync_item(record, default_language, hasher) for record in records]
