"""SQLite storage layer for packet records and sync events."""

from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Sequence

from packetsync.models import PacketRecord, format_timestamp, now_utc


SCHEMA_VERSION = 1

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS store_meta (
        key TEXT PRIMARY KEY,
        value TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS packets (
        id TEXT PRIMARY KEY,
        packet_type TEXT NOT NULL DEFAULT 'NEW',
        client_status TEXT NOT NULL,
        server_status TEXT,
        client_status_timestamp TEXT,
        server_status_timestamp TEXT,
        additional_info BLOB,
        ack_file_path TEXT,
        status_comments TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        trigger_point TEXT NOT NULL,
        level TEXT NOT NULL,
        event_type TEXT NOT NULL,
        detail_json TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_packets_client_status ON packets(client_status, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_packets_server_status ON packets(server_status);",
    "CREATE INDEX IF NOT EXISTS idx_sync_events_created ON sync_events(created_at);",
)

PACKET_COLUMNS = """
    id, packet_type, client_status, server_status, client_status_timestamp,
    server_status_timestamp, additional_info, ack_file_path, status_comments
"""


class PacketStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path.expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        with closing(self.connect()) as conn:
            conn.execute("PRAGMA journal_mode = WAL;")
            for statement in SCHEMA_STATEMENTS:
                conn.execute(statement)
            conn.execute(
                """
                INSERT INTO store_meta(key, value)
                VALUES ('schema_version', ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value;
                """,
                (str(SCHEMA_VERSION),),
            )
            conn.commit()

    def query(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        with closing(self.connect()) as conn:
            cursor = conn.execute(sql, params)
            return [dict(row) for row in cursor.fetchall()]

    def upsert_packet(self, record: PacketRecord) -> None:
        with closing(self.connect()) as conn:
            conn.execute(
                """
                INSERT INTO packets(
                    id, packet_type, client_status, server_status, client_status_timestamp,
                    server_status_timestamp, additional_info, ack_file_path, status_comments
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    packet_type = excluded.packet_type,
                    client_status = excluded.client_status,
                    server_status = excluded.server_status,
                    client_status_timestamp = excluded.client_status_timestamp,
                    server_status_timestamp = excluded.server_status_timestamp,
                    additional_info = excluded.additional_info,
                    ack_file_path = excluded.ack_file_path,
                    status_comments = excluded.status_comments,
                    updated_at = CURRENT_TIMESTAMP;
                """,
                (
                    record.id,
                    record.packet_type,
                    record.client_status,
                    record.server_status,
                    format_timestamp(record.client_status_timestamp),
                    format_timestamp(record.server_status_timestamp),
                    record.additional_info,
                    record.ack_file_path,
                    record.status_comments,
                ),
            )
            conn.commit()

    def query_by_status(
        self,
        client_statuses: Sequence[str],
        server_statuses: Sequence[str] = (),
    ) -> list[PacketRecord]:
        if not client_statuses and not server_statuses:
            return []
        clauses: list[str] = []
        params: list[str] = []
        if client_statuses:
            clauses.append(f"client_status IN ({', '.join('?' for _ in client_statuses)})")
            params.extend(client_statuses)
        if server_statuses:
            clauses.append(f"UPPER(server_status) IN ({', '.join('?' for _ in server_statuses)})")
            params.extend(status.upper() for status in server_statuses)
        rows = self.query(
            f"""
            SELECT {PACKET_COLUMNS}
            FROM packets
            WHERE {" OR ".join(clauses)}
            ORDER BY created_at ASC, rowid ASC;
            """,
            tuple(params),
        )
        return [PacketRecord.from_row(row) for row in rows]

    def query_by_ids(self, ids: Sequence[str]) -> list[PacketRecord]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        placeholders = ", ".join("?" for _ in unique_ids)
        rows = self.query(
            f"SELECT {PACKET_COLUMNS} FROM packets WHERE id IN ({placeholders});",
            tuple(unique_ids),
        )
        by_id = {str(row["id"]): PacketRecord.from_row(row) for row in rows}
        return [by_id[packet_id] for packet_id in unique_ids if packet_id in by_id]

    def get_by_id(self, status: str, packet_id: str) -> PacketRecord | None:
        rows = self.query(
            f"""
            SELECT {PACKET_COLUMNS}
            FROM packets
            WHERE client_status = ? AND id = ?
            LIMIT 1;
            """,
            (status, packet_id),
        )
        if not rows:
            return None
        return PacketRecord.from_row(rows[0])

    def update_status(
        self,
        packet_id: str,
        new_status: str,
        expected_status: str | None = None,
    ) -> bool:
        """Set the client status of one packet.

        With ``expected_status`` the row only changes while it still carries
        that status, so a concurrent local change is never overwritten.
        """
        sql = """
            UPDATE packets
            SET
                client_status = ?,
                client_status_timestamp = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """
        params: list[Any] = [new_status, format_timestamp(now_utc()), packet_id]
        if expected_status is not None:
            sql += " AND client_status = ?"
            params.append(expected_status)
        with closing(self.connect()) as conn:
            cursor = conn.execute(sql, tuple(params))
            conn.commit()
            return cursor.rowcount > 0

    def record_sync_event(
        self,
        trigger_point: str,
        level: str,
        event_type: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        detail_json = json.dumps(detail, sort_keys=True) if detail is not None else None
        with closing(self.connect()) as conn:
            conn.execute(
                """
                INSERT INTO sync_events(trigger_point, level, event_type, detail_json)
                VALUES (?, ?, ?, ?);
                """,
                (trigger_point, level, event_type, detail_json),
            )
            conn.commit()

    def list_sync_events(self, limit: int = 50) -> list[dict[str, Any]]:
        return self.query(
            """
            SELECT id, trigger_point, level, event_type, detail_json, created_at
            FROM sync_events
            ORDER BY id DESC
            LIMIT ?;
            """,
            (max(1, limit),),
        )
