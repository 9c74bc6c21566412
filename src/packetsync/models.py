"""Shared typed models used across the store, payload and sync layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

SYNC_REQUEST_ID = "packet.sync"
SYNC_REQUEST_VERSION = "1.0"
SYNC_SUCCESS_STATUS = "SUCCESS"
SERVER_STATUS_RESEND = "RESEND"
SUPERVISOR_STATUS_APPROVED = "APPROVED"
ACK_FILE_EXTENSION = ".html"
PACKET_FILE_EXTENSION = ".zip"


class ClientStatus(str, Enum):
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RE_REGISTER = "RE_REGISTER"
    SYNCED = "SYNCED"
    PUSHED = "PUSHED"
    EXPORTED = "EXPORTED"


UPLOAD_PENDING_STATUSES = (
    ClientStatus.APPROVED.value,
    ClientStatus.REJECTED.value,
    ClientStatus.RE_REGISTER.value,
)
ACKNOWLEDGED_STATUS = ClientStatus.SYNCED.value


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # SQLite CURRENT_TIMESTAMP uses a space separator
        parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def format_request_time(value: datetime) -> str:
    utc_value = value.astimezone(timezone.utc)
    return utc_value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class PacketRecord:
    id: str
    client_status: str
    packet_type: str = "NEW"
    server_status: str | None = None
    client_status_timestamp: datetime | None = None
    server_status_timestamp: datetime | None = None
    additional_info: bytes | None = None
    ack_file_path: str | None = None
    status_comments: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PacketRecord":
        additional_info = row.get("additional_info")
        if isinstance(additional_info, str):
            additional_info = additional_info.encode("utf-8")
        return cls(
            id=str(row["id"]),
            client_status=str(row["client_status"]),
            packet_type=str(row.get("packet_type") or "NEW"),
            server_status=row.get("server_status"),
            client_status_timestamp=parse_timestamp(row.get("client_status_timestamp")),
            server_status_timestamp=parse_timestamp(row.get("server_status_timestamp")),
            additional_info=bytes(additional_info) if additional_info is not None else None,
            ack_file_path=row.get("ack_file_path"),
            status_comments=row.get("status_comments"),
        )


@dataclass(frozen=True)
class PacketStatus:
    id: str
    client_status: str
    server_status: str | None
    packet_type: str
    ack_file_path: str | None

    @classmethod
    def from_record(cls, record: PacketRecord) -> "PacketStatus":
        return cls(
            id=record.id,
            client_status=record.client_status,
            server_status=record.server_status,
            packet_type=record.packet_type,
            ack_file_path=record.ack_file_path,
        )


@dataclass(frozen=True)
class DemographicSummary:
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    lang_code: str | None = None


@dataclass(frozen=True)
class SyncItem:
    id: str
    type: str
    supervisor_status: str
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    lang_code: str | None = None
    packet_hash_digest: str | None = None
    packet_size_bytes: int | None = None
    supervisor_comment: str | None = None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "registrationId": self.id,
            "registrationType": self.type,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "langCode": self.lang_code,
            "packetHashValue": self.packet_hash_digest,
            "packetSize": self.packet_size_bytes,
            "supervisorStatus": self.supervisor_status,
            "supervisorComment": self.supervisor_comment,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class SyncRequestEnvelope:
    request_time: str
    items: list[SyncItem]
    id: str = SYNC_REQUEST_ID
    version: str = SYNC_REQUEST_VERSION

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "requesttime": self.request_time,
            "request": [item.to_wire() for item in self.items],
        }


@dataclass(frozen=True)
class SyncResponse:
    statuses: dict[str, str] = field(default_factory=dict)
    errors: Any = None

    @property
    def rejected(self) -> bool:
        return self.errors is not None


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    message: str
    error_kind: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
