import io
import re
import socketserver
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest
from PIL import Image
from requests.structures import CaseInsensitiveDict

from scanimg.config.models import AppConfig
from scanimg.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "timeout_ms": 2000,
            "concurrency": 2,
            "ignored_dirs": ["node_modules", ".git"],
            "debug": False,
        },
        ui={"progress": False, "output_format": "table"},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a YAML config file on disk."""
    config_file = tmp_path / "scanimg.yaml"
    config_file.write_text(
        "general:\n"
        "  timeout_ms: 1500\n"
        "  concurrency: 3\n"
        "  ignored_dirs: [node_modules, .git, dist]\n"
        "input_dirs: [src]\n"
        "ui:\n"
        "  progress: false\n"
        "  output_format: json\n"
    )
    return config_file

# ============================================================================
# Event Bus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# Image Fixtures
# ============================================================================

def make_image_bytes(width: int, height: int, fmt: str = "PNG") -> bytes:
    """Encodes a solid-colour image with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()

@pytest.fixture
def png_bytes():
    """Factory fixture: png_bytes(w, h) -> encoded PNG."""
    return make_image_bytes

@pytest.fixture
def image_file(tmp_path):
    """Factory fixture writing an image (optionally padded to a byte size)."""
    def _make(name: str, width: int = 4, height: int = 4, size: int = None, fmt: str = "PNG"):
        data = make_image_bytes(width, height, fmt)
        if size is not None:
            assert size >= len(data)
            data = data + b"\0" * (size - len(data))
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path
    return _make

# ============================================================================
# HTTP Fixtures
# ============================================================================

class FakeResponse:
    """Stand-in for requests.Response as used by RemoteProber."""

    def __init__(self, status_code=200, headers=None, body=b"", chunk_delay=0.0):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.body = body
        self.chunk_delay = chunk_delay
        self.bytes_served = 0
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), chunk_size):
            if self.chunk_delay:
                time.sleep(self.chunk_delay)
            chunk = self.body[start:start + chunk_size]
            self.bytes_served += len(chunk)
            yield chunk

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

@pytest.fixture
def fake_response():
    return FakeResponse

_RANGE = re.compile(r"bytes=(\d+)-(\d*)")

class _ImageRequestHandler(BaseHTTPRequestHandler):
    """Serves the routes registered on the server.

    Route keys: body, head_status, get_status, head_length (bool),
    honour_range (bool), delay (seconds before responding).
    """

    def log_message(self, format, *args):
        pass

    def _route(self):
        return self.server.routes.get(self.path.split("?")[0])

    def do_HEAD(self):
        route = self._route()
        if route is None:
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        if route.get("delay"):
            time.sleep(route["delay"])
        status = route.get("head_status", 200)
        self.send_response(status)
        if status == 200 and route.get("head_length", True):
            self.send_header("Content-Length", str(len(route["body"])))
        self.end_headers()

    def do_GET(self):
        route = self._route()
        if route is None or route.get("get_status"):
            status = 404 if route is None else route["get_status"]
            self.send_response(status)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        if route.get("delay"):
            time.sleep(route["delay"])

        body = route["body"]
        match = _RANGE.match(self.headers.get("Range", ""))
        if match and route.get("honour_range", True):
            start = int(match.group(1))
            end = int(match.group(2)) if match.group(2) else len(body) - 1
            end = min(end, len(body) - 1)
            payload = body[start:end + 1]
            self.send_response(206)
            self.send_header("Content-Range", f"bytes {start}-{end}/{len(body)}")
        else:
            payload = body
            self.send_response(200)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        try:
            self.wfile.write(payload)
        except (BrokenPipeError, ConnectionResetError):
            # Client stopped reading after its byte budget
            pass

class _ImageServer(socketserver.ThreadingMixIn, HTTPServer):
    allow_reuse_address = True
    daemon_threads = True

@pytest.fixture
def image_server():
    """Threaded local HTTP server; register routes via server.routes[path] = {...}."""
    server = _ImageServer(("127.0.0.1", 0), _ImageRequestHandler)
    server.routes = {}
    server.url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()

class _SlowRequestHandler(socketserver.BaseRequestHandler):
    """Raw HTTP/1.1 responder that stalls.

    ``slow_headers``: one header line every ``interval`` seconds.
    ``trickle_body``: prompt headers, then a few body bytes every ``interval``.
    HEAD requests in ``trickle_body`` mode are answered immediately.
    """

    def handle(self):
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = self.request.recv(4096)
            if not chunk:
                return
            data += chunk
        method = data.split(b" ", 1)[0]
        mode, interval = self.server.mode, self.server.interval

        try:
            self.request.sendall(b"HTTP/1.1 200 OK\r\n")
            if mode == "slow_headers":
                for i in range(12):
                    time.sleep(interval)
                    self.request.sendall(f"X-Slow-{i}: stalling\r\n".encode())
                self.request.sendall(b"Content-Length: 0\r\n\r\n")
                return

            self.request.sendall(b"Content-Length: 100000\r\nConnection: close\r\n\r\n")
            if method == b"HEAD":
                return
            for _ in range(50):
                time.sleep(interval)
                self.request.sendall(b"\0" * 10)
        except OSError:
            # Client aborted the transfer
            pass

class _SlowServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True

@pytest.fixture
def slow_server():
    """Factory fixture: slow_server(mode, interval) -> base URL of a stalling server."""
    servers = []

    def _start(mode: str, interval: float = 0.3) -> str:
        server = _SlowServer(("127.0.0.1", 0), _SlowRequestHandler)
        server.mode = mode
        server.interval = interval
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}"

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()
