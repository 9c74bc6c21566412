"""Reference HTTP sync authority that decrypts envelopes and acknowledges packets."""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import urlparse

from packetsync.config import configure_logging
from packetsync.errors import EncryptionError
from packetsync.models import SYNC_SUCCESS_STATUS
from packetsync.sync.envelope import DEFAULT_KEY_REF, ContextKeyCipher, open_envelope
from packetsync.sync.transport import DEFAULT_ENDPOINTS

logger = logging.getLogger(__name__)

PACKET_SYNC_PATH = DEFAULT_ENDPOINTS["packet_sync"]


def _accept_all(item: dict[str, Any]) -> str | None:
    del item
    return SYNC_SUCCESS_STATUS


class ReferenceSyncAuthority:
    def __init__(
        self,
        cipher: ContextKeyCipher,
        host: str = "127.0.0.1",
        port: int = 0,
        auth_token: str | None = None,
        decide: Callable[[dict[str, Any]], str | None] | None = None,
    ) -> None:
        self.cipher = cipher
        self.host = host
        self.port = int(port)
        self.auth_token = auth_token
        self.decide = decide or _accept_all
        self.received: list[dict[str, Any]] = []
        self._received_lock = threading.Lock()
        self._httpd: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def handle_sync_body(self, body: Any) -> tuple[int, dict[str, Any]]:
        if not isinstance(body, str):
            return 400, {"errors": [{"message": "body must be a JSON string"}]}
        try:
            envelope = open_envelope(body, self.cipher)
        except (ValueError, EncryptionError) as exc:
            return 400, {"errors": [{"message": f"invalid envelope: {exc}"}]}
        items = envelope.get("request")
        if not isinstance(items, list):
            return 400, {"errors": [{"message": "envelope has no request list"}]}
        with self._received_lock:
            self.received.append(envelope)
        statuses = []
        for item in items:
            if not isinstance(item, dict):
                continue
            status = self.decide(item)
            if status is None:
                continue
            statuses.append({"id": item.get("registrationId"), "status": status})
        return 200, {"response": statuses}

    def start(self) -> str:
        if self._httpd is not None:
            return self.url
        httpd = ThreadingHTTPServer((self.host, self.port), self._build_handler())
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._thread.start()
        return self.url

    def stop(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        self._httpd = None
        self._thread = None

    @property
    def url(self) -> str:
        if self._httpd is None:
            return f"http://{self.host}:{self.port}"
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def _authorized(self, handler: BaseHTTPRequestHandler) -> bool:
        if not self.auth_token:
            return True
        auth = handler.headers.get("Authorization", "")
        return auth.strip() == f"Bearer {self.auth_token}"

    def _build_handler(self):
        server = self

        class _Handler(BaseHTTPRequestHandler):
            def _json(self, status: int, payload: dict[str, Any]) -> None:
                encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

            def do_POST(self) -> None:  # noqa: N802
                content_length = int(self.headers.get("Content-Length", "0"))
                raw = self.rfile.read(max(0, content_length))
                if not server._authorized(self):
                    self._json(401, {"errors": [{"message": "unauthorized"}]})
                    return
                if urlparse(self.path).path != PACKET_SYNC_PATH:
                    self._json(404, {"errors": [{"message": "not_found"}]})
                    return
                try:
                    body = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    self._json(400, {"errors": [{"message": "invalid_json"}]})
                    return
                logger.info(
                    "Packet sync request received (trigger=%s)",
                    self.headers.get("X-Trigger-Point", "unknown"),
                )
                status, payload = server.handle_sync_body(body)
                self._json(status, payload)

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
                return

        return _Handler


def decode_key(encoded: str) -> bytes | None:
    try:
        key = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError):
        return None
    return key if len(key) in (16, 24, 32) else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="packetsync-authority",
        description="Reference sync authority that acknowledges every packet it receives.",
    )
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind host.")
    parser.add_argument("--port", type=int, default=8086, help="Bind port.")
    parser.add_argument("--auth-token", type=str, default=None, help="Optional bearer token.")
    parser.add_argument(
        "--key",
        type=str,
        default=os.getenv("PACKETSYNC_ENVELOPE_KEY"),
        help="Base64 envelope key for the default key reference.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log verbosity level.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.key:
        parser.error("an envelope key is required (--key or PACKETSYNC_ENVELOPE_KEY)")
    key = decode_key(args.key)
    if key is None:
        parser.error("--key must be base64 encoding of 16, 24 or 32 bytes")
    configure_logging(args.log_level)
    cipher = ContextKeyCipher({DEFAULT_KEY_REF: key})
    server = ReferenceSyncAuthority(
        cipher=cipher,
        host=str(args.host),
        port=int(args.port),
        auth_token=args.auth_token,
    )
    url = server.start()
    print(json.dumps({"status": "running", "url": url}, sort_keys=True))
    try:
        while True:
            threading.Event().wait(1.0)
    except KeyboardInterrupt:
        server.stop()


if __name__ == "__main__":
    main()
