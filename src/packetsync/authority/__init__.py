"""Reference sync authority for local runs and end-to-end tests."""

from packetsync.authority.server import ReferenceSyncAuthority

__all__ = ["ReferenceSyncAuthority"]
