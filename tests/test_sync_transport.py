from __future__ import annotations

import socket
import threading
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from packetsync.errors import ConnectivityError, MalformedResponseError
from packetsync.sync.transport import HttpSyncTransport, parse_sync_response


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


class _CannedServer:
    """Answers every POST with a fixed status and body."""

    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self.body = body
        self.requests: list[dict[str, Any]] = []
        canned = self

        class _Handler(BaseHTTPRequestHandler):
            def do_POST(self) -> None:  # noqa: N802
                length = int(self.headers.get("Content-Length", "0"))
                canned.requests.append(
                    {
                        "path": self.path,
                        "body": self.rfile.read(length).decode("utf-8"),
                        "trigger": self.headers.get("X-Trigger-Point"),
                        "auth": self.headers.get("Authorization"),
                    }
                )
                self.send_response(canned.status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(canned.body)))
                self.end_headers()
                self.wfile.write(canned.body)

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
                return

        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    def __enter__(self) -> str:
        self._thread.start()
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def __exit__(self, *exc: object) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        self._thread.join(timeout=2.0)


class _TruncatingServer:
    """Promises a longer body than it sends, then closes the connection."""

    def __init__(self) -> None:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self._thread = threading.Thread(target=self._serve_one, daemon=True)

    def _serve_one(self) -> None:
        conn, _ = self._sock.accept()
        with conn:
            request = b""
            while b"\r\n\r\n" not in request:
                chunk = conn.recv(4096)
                if not chunk:
                    return
                request += chunk
            head, _, body = request.partition(b"\r\n\r\n")
            length = 0
            for line in head.split(b"\r\n"):
                name, _, value = line.partition(b":")
                if name.strip().lower() == b"content-length":
                    length = int(value.strip())
            while len(body) < length:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                body += chunk
            conn.sendall(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/json\r\n"
                b"Content-Length: 100\r\n"
                b"\r\n"
                b'{"resp'
            )

    def __enter__(self) -> str:
        self._thread.start()
        host, port = self._sock.getsockname()[:2]
        return f"http://{host}:{port}"

    def __exit__(self, *exc: object) -> None:
        self._thread.join(timeout=2.0)
        self._sock.close()


class HttpSyncTransportTests(unittest.TestCase):
    def test_post_returns_json_object_and_sends_headers(self) -> None:
        server = _CannedServer(200, b'{"response": []}')
        with server as url:
            transport = HttpSyncTransport(url, auth_token="t0ken", timeout_seconds=2.0)
            payload = transport.post("packet_sync", '"ZW5j"', "manual")
        self.assertEqual(payload, {"response": []})
        self.assertEqual(server.requests[0]["path"], "/v1/packet-sync")
        self.assertEqual(server.requests[0]["body"], '"ZW5j"')
        self.assertEqual(server.requests[0]["trigger"], "manual")
        self.assertEqual(server.requests[0]["auth"], "Bearer t0ken")

    def test_client_error_body_is_returned_for_inspection(self) -> None:
        with _CannedServer(400, b'{"errors": [{"message": "bad"}]}') as url:
            payload = HttpSyncTransport(url, timeout_seconds=2.0).post("packet_sync", '""', "manual")
        self.assertEqual(payload["errors"], [{"message": "bad"}])

    def test_unavailable_status_is_connectivity_failure(self) -> None:
        with _CannedServer(503, b"") as url:
            with self.assertRaises(ConnectivityError):
                HttpSyncTransport(url, timeout_seconds=2.0).post("packet_sync", '""', "manual")

    def test_non_json_body_is_malformed(self) -> None:
        with _CannedServer(200, b"<html>oops</html>") as url:
            with self.assertRaises(MalformedResponseError):
                HttpSyncTransport(url, timeout_seconds=2.0).post("packet_sync", '""', "manual")

    def test_truncated_reply_is_connectivity_failure(self) -> None:
        with _TruncatingServer() as url:
            with self.assertRaises(ConnectivityError):
                HttpSyncTransport(url, timeout_seconds=2.0).post("packet_sync", '""', "manual")

    def test_unreachable_server_is_connectivity_failure(self) -> None:
        transport = HttpSyncTransport(f"http://127.0.0.1:{_unused_port()}", timeout_seconds=1.0)
        with self.assertRaises(ConnectivityError):
            transport.post("packet_sync", '""', "manual")

    def test_unknown_endpoint_name_maps_to_path(self) -> None:
        transport = HttpSyncTransport("http://authority.local/", endpoints={"status": "/v2/status"})
        self.assertEqual(transport._url_for("status"), "http://authority.local/v2/status")
        self.assertEqual(transport._url_for("custom"), "http://authority.local/custom")


class ParseSyncResponseTests(unittest.TestCase):
    def test_success_payload_maps_statuses(self) -> None:
        response = parse_sync_response(
            {"response": [{"id": "p1", "status": "SUCCESS"}, {"id": "p2", "status": None}]}
        )
        self.assertFalse(response.rejected)
        self.assertEqual(response.statuses, {"p1": "SUCCESS", "p2": ""})

    def test_errors_payload_is_rejection(self) -> None:
        response = parse_sync_response({"errors": [{"errorCode": "RPR-001"}]})
        self.assertTrue(response.rejected)
        self.assertEqual(response.statuses, {})

    def test_malformed_payloads_raise(self) -> None:
        for raw in ({}, {"response": "nope"}, {"response": [{"status": "SUCCESS"}]}, {"response": [1]}):
            with self.assertRaises(MalformedResponseError):
                parse_sync_response(raw)


if __name__ == "__main__":
    unittest.main()
