"""Configuration handling for the packet sync engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_BATCH_COUNT = 10
DEFAULT_RETRY_MAX_ATTEMPTS = 2
DEFAULT_RETRY_BACKOFF_MS = 1000
DEFAULT_ENDPOINT_NAME = "packet_sync"
DEFAULT_APPLICATION_LANGUAGE = "eng"


@dataclass(frozen=True)
class SyncSettings:
    batch_count: int = DEFAULT_BATCH_COUNT
    retry_max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS
    retry_backoff_ms: int = DEFAULT_RETRY_BACKOFF_MS
    endpoint_name: str = DEFAULT_ENDPOINT_NAME
    application_language: str = DEFAULT_APPLICATION_LANGUAGE
    sync_enabled: bool = True


def build_settings(
    batch_count: int = DEFAULT_BATCH_COUNT,
    retry_max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS,
    retry_backoff_ms: int = DEFAULT_RETRY_BACKOFF_MS,
    endpoint_name: str = DEFAULT_ENDPOINT_NAME,
    application_language: str = DEFAULT_APPLICATION_LANGUAGE,
    sync_enabled: bool = True,
) -> SyncSettings:
    if int(batch_count) < 1:
        raise ValueError(f"batch_count must be positive: {batch_count}")
    if int(retry_max_attempts) < 1:
        raise ValueError(f"retry_max_attempts must be positive: {retry_max_attempts}")
    if int(retry_backoff_ms) < 0:
        raise ValueError(f"retry_backoff_ms must not be negative: {retry_backoff_ms}")
    return SyncSettings(
        batch_count=int(batch_count),
        retry_max_attempts=int(retry_max_attempts),
        retry_backoff_ms=int(retry_backoff_ms),
        endpoint_name=endpoint_name.strip(),
        application_language=application_language.strip(),
        sync_enabled=bool(sync_enabled),
    )


def _env_flag(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off"}


def settings_from_env(environ: Mapping[str, str] | None = None) -> SyncSettings:
    env = os.environ if environ is None else environ
    return build_settings(
        batch_count=int(env.get("PACKETSYNC_BATCH_COUNT", DEFAULT_BATCH_COUNT)),
        retry_max_attempts=int(env.get("PACKETSYNC_RETRY_MAX_ATTEMPTS", DEFAULT_RETRY_MAX_ATTEMPTS)),
        retry_backoff_ms=int(env.get("PACKETSYNC_RETRY_BACKOFF_MS", DEFAULT_RETRY_BACKOFF_MS)),
        endpoint_name=env.get("PACKETSYNC_ENDPOINT", DEFAULT_ENDPOINT_NAME),
        application_language=env.get("PACKETSYNC_LANGUAGE", DEFAULT_APPLICATION_LANGUAGE),
        sync_enabled=_env_flag(env.get("PACKETSYNC_ENABLED", "true")),
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
