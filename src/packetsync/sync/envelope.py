"""Sync request envelope serialization and encryption."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Any, Callable, Mapping, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from packetsync.errors import EncryptionError
from packetsync.models import SyncItem, SyncRequestEnvelope, format_request_time, now_utc

logger = logging.getLogger(__name__)

DEFAULT_KEY_REF = "default"
_HKDF_SALT = b"packetsync-envelope-v1"
_NONCE_BYTES = 12


class EnvelopeCipher(Protocol):
    def encrypt(self, context_id: str, plaintext: bytes) -> bytes:
        ...


def _default_key_ref(context_id: str) -> str:
    del context_id
    return DEFAULT_KEY_REF


class ContextKeyCipher:
    """AES-256-GCM cipher keyed by a reference resolved from the context id.

    Blob layout: ``len(ref) | ref | nonce | ciphertext+tag``. The key
    reference travels in clear and is bound as associated data so the
    receiving side can pick the matching key.
    """

    def __init__(
        self,
        keys: Mapping[str, bytes],
        resolve_ref: Callable[[str], str] | None = None,
    ) -> None:
        self._keys = dict(keys)
        self._resolve_ref = resolve_ref or _default_key_ref

    @staticmethod
    def generate_key() -> bytes:
        return AESGCM.generate_key(bit_length=256)

    def _data_key(self, key_ref: str) -> bytes:
        master = self._keys.get(key_ref)
        if not master:
            raise EncryptionError(f"No envelope key configured for reference '{key_ref}'")
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_HKDF_SALT,
            info=key_ref.encode("utf-8"),
        )
        return hkdf.derive(master)

    def key_ref_for(self, context_id: str) -> str:
        try:
            return self._resolve_ref(context_id)
        except Exception as exc:
            raise EncryptionError(f"Key reference resolution failed for '{context_id}': {exc}") from exc

    def encrypt(self, context_id: str, plaintext: bytes) -> bytes:
        key_ref = self.key_ref_for(context_id)
        ref_bytes = key_ref.encode("utf-8")
        if not ref_bytes or len(ref_bytes) > 255:
            raise EncryptionError(f"Invalid key reference for '{context_id}'")
        nonce = os.urandom(_NONCE_BYTES)
        ciphertext = AESGCM(self._data_key(key_ref)).encrypt(nonce, plaintext, ref_bytes)
        return bytes([len(ref_bytes)]) + ref_bytes + nonce + ciphertext

    def decrypt(self, blob: bytes) -> bytes:
        if len(blob) < 1:
            raise EncryptionError("Envelope blob is empty")
        ref_length = blob[0]
        ref_bytes = blob[1 : 1 + ref_length]
        nonce = blob[1 + ref_length : 1 + ref_length + _NONCE_BYTES]
        ciphertext = blob[1 + ref_length + _NONCE_BYTES :]
        if len(ref_bytes) != ref_length or len(nonce) != _NONCE_BYTES or not ciphertext:
            raise EncryptionError("Envelope blob is truncated")
        key_ref = ref_bytes.decode("utf-8", errors="replace")
        try:
            return AESGCM(self._data_key(key_ref)).decrypt(nonce, ciphertext, ref_bytes)
        except InvalidTag as exc:
            raise EncryptionError("Envelope authentication failed") from exc


def build_envelope(items: list[SyncItem]) -> SyncRequestEnvelope:
    return SyncRequestEnvelope(request_time=format_request_time(now_utc()), items=list(items))


def serialize_envelope(envelope: SyncRequestEnvelope) -> bytes:
    return json.dumps(envelope.to_wire(), separators=(",", ":")).encode("utf-8")


def _warn_on_mixed_contexts(items: list[SyncItem], key_ref_for: Callable[[str], str]) -> None:
    batch_ref = key_ref_for(items[0].id)
    foreign: list[str] = []
    for item in items[1:]:
        try:
            item_ref = key_ref_for(item.id)
        except EncryptionError as exc:
            logger.warning("Packet %s key reference unknown: %s", item.id, exc.message)
            continue
        if item_ref != batch_ref:
            foreign.append(item.id)
    if foreign:
        logger.warning(
            "Batch sealed under key reference '%s' of packet %s; %d packets resolve elsewhere: %s",
            batch_ref,
            items[0].id,
            len(foreign),
            ", ".join(foreign),
        )


def seal_envelope(envelope: SyncRequestEnvelope, cipher: EnvelopeCipher) -> str:
    """Serialize and encrypt ``envelope`` under its first item's context.

    Every item of the batch shares that one key context. Ciphers exposing
    ``key_ref_for`` get a warning when later items would resolve elsewhere.
    """
    if not envelope.items:
        raise ValueError("Cannot seal an envelope without items")
    key_ref_for = getattr(cipher, "key_ref_for", None)
    if key_ref_for is not None:
        _warn_on_mixed_contexts(envelope.items, key_ref_for)
    ciphertext = cipher.encrypt(envelope.items[0].id, serialize_envelope(envelope))
    return base64.b64encode(ciphertext).decode("ascii")


def open_envelope(encoded: str, cipher: ContextKeyCipher) -> dict[str, Any]:
    try:
        blob = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"Envelope is not valid base64: {exc}") from exc
    payload = json.loads(cipher.decrypt(blob).decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Envelope payload must be an object")
    return payload
