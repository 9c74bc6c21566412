"""Packet sync engine: selection, retry, envelope and reconciliation."""

from packetsync.sync.envelope import ContextKeyCipher, build_envelope, open_envelope, seal_envelope
from packetsync.sync.executor import BatchReport, PacketSyncService
from packetsync.sync.payload import build_sync_item, decode_demographics, hash_and_size
from packetsync.sync.retry import RetryPolicy, run_with_retry
from packetsync.sync.scheduler import SyncScheduler
from packetsync.sync.selector import is_eligible, select_eligible
from packetsync.sync.transport import HttpSyncTransport, parse_sync_response

__all__ = [
    "ContextKeyCipher",
    "build_envelope",
    "open_envelope",
    "seal_envelope",
    "BatchReport",
    "PacketSyncService",
    "build_sync_item",
    "decode_demographics",
    "hash_and_size",
    "RetryPolicy",
    "run_with_retry",
    "SyncScheduler",
    "is_eligible",
    "select_eligible",
    "HttpSyncTransport",
    "parse_sync_response",
]
