"""Persistence for packet records."""

from packetsync.store.database import PacketStore, SCHEMA_VERSION

__all__ = ["PacketStore", "SCHEMA_VERSION"]
