"""Remote image metadata via HEAD plus a single ranged GET.

The probe never raises: every outcome (HTTP status, timeout, transport error,
undecodable header) ends up as a typed StatusEntry on the returned record.

Size precedence:
1. HEAD ``content-length``
2. GET ``content-range`` total (``bytes 0-65535/<total>``)
3. GET ``content-length``, only for a full 200 response
"""

import logging
import re
import socket
from typing import List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import ReadTimeoutError

from scanimg.domain.models import MetadataRecord, ProbePhase, StatusEntry, StatusKind, TargetKind
from scanimg.infrastructure.deadline import Deadline, DeadlineExceeded
from scanimg.infrastructure.image_header import ImageHeaderError, dimensions_from_bytes

logger = logging.getLogger(__name__)

RANGE_END = 65_535
RANGE_HEADER = f"bytes=0-{RANGE_END}"
READ_BUDGET = RANGE_END + 1
CHUNK_SIZE = 16_384

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)\s*$")
_INTEGER = re.compile(r"^\s*(\d+)\s*$")


def parse_length(value: Optional[str]) -> Optional[int]:
    """Non-negative integer header value, or None when absent or malformed."""
    if value is None:
        return None
    match = _INTEGER.match(value)
    return int(match.group(1)) if match else None


def parse_content_range_total(value: Optional[str]) -> Optional[int]:
    """Total from ``bytes a-b/total``; ``*`` or junk means unknown."""
    if not value:
        return None
    match = _CONTENT_RANGE_TOTAL.search(value)
    return int(match.group(1)) if match else None


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (requests.Timeout, DeadlineExceeded)):
        return True
    # requests re-raises a mid-body urllib3 read timeout as ConnectionError
    return any(isinstance(arg, ReadTimeoutError) for arg in getattr(exc, "args", ()))


class _WatchedConnectionMixin:
    """Lets the calling thread's Deadline abort the request on this connection.

    Once the request line and headers are sent, a shutdown callback is
    registered on the active deadline. Shutting the raw socket down wakes a
    reader blocked in ``recv`` (status line, headers or body), so the
    request fails promptly instead of waiting for the per-read timeout.
    """

    def request(self, *args, **kwargs):
        result = super().request(*args, **kwargs)
        deadline = Deadline.current()
        if deadline is not None:
            deadline.on_expire(self._abort)
        return result

    def _abort(self) -> None:
        sock = self.sock
        if not isinstance(sock, socket.socket):
            return
        try:
            # Raw shutdown even for TLS; the SSL object belongs to the probe thread
            socket.socket.shutdown(sock, socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Socket already closed on deadline abort: {e}")


class WatchedHTTPConnection(_WatchedConnectionMixin, HTTPConnection):
    pass


class WatchedHTTPSConnection(_WatchedConnectionMixin, HTTPSConnection):
    pass


class WatchedHTTPConnectionPool(HTTPConnectionPool):
    ConnectionCls = WatchedHTTPConnection


class WatchedHTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = WatchedHTTPSConnection


class DeadlineHTTPAdapter(HTTPAdapter):
    """HTTPAdapter whose connections can be aborted by a Deadline."""

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": WatchedHTTPConnectionPool,
            "https": WatchedHTTPSConnectionPool,
        }


def build_session(concurrency: int, user_agent: str) -> requests.Session:
    """Session whose connection pool matches the number of probe threads."""
    session = requests.Session()
    adapter = DeadlineHTTPAdapter(pool_connections=max(1, concurrency), pool_maxsize=max(1, concurrency))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = user_agent
    return session


class RemoteProber:
    """Probes remote images over a shared requests.Session.

    Each phase runs under its own Deadline. With a session from
    ``build_session`` the deadline is a hard limit: when it fires, the
    in-flight request is aborted and the phase is reported as a timeout.

    Args:
        session: requests.Session (or a compatible object) used for both phases.
        timeout_ms: Deadline applied separately to the HEAD and to the GET.
    """

    def __init__(self, session: requests.Session, timeout_ms: int):
        self.session = session
        self.timeout_seconds = timeout_ms / 1000.0

    def _failure(self, phase: ProbePhase, exc: BaseException, deadline: Deadline) -> StatusEntry:
        if deadline.tripped or is_timeout(exc):
            return StatusEntry(phase=phase, kind=StatusKind.TIMEOUT)
        return StatusEntry(phase=phase, kind=StatusKind.FAILED, detail=str(exc) or exc.__class__.__name__)

    def _head(self, url: str) -> Tuple[StatusEntry, Optional[int]]:
        deadline = Deadline(self.timeout_seconds)
        try:
            with deadline:
                with self.session.head(url, timeout=deadline.timeout(), allow_redirects=True) as response:
                    # An abort can end the header block early; never trust such a response
                    deadline.check()
                    if not is_success(response.status_code):
                        return StatusEntry(phase=ProbePhase.HEAD, kind=StatusKind.HTTP_ERROR, code=response.status_code), None
                    size = parse_length(response.headers.get("content-length"))
                    return StatusEntry(phase=ProbePhase.HEAD, kind=StatusKind.OK, code=response.status_code), size
        except (requests.RequestException, DeadlineExceeded) as exc:
            return self._failure(ProbePhase.HEAD, exc, deadline), None

    def _read_budget(self, response: requests.Response, deadline: Deadline) -> bytes:
        buffer = bytearray()
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            deadline.check()
            if chunk:
                buffer.extend(chunk)
            if len(buffer) >= READ_BUDGET:
                break
        # A body cut short by an abort looks like a clean EOF
        deadline.check()
        return bytes(buffer[:READ_BUDGET])

    def probe(self, url: str, target_id: Optional[str] = None, display: Optional[str] = None) -> MetadataRecord:
        status: List[StatusEntry] = []
        size: Optional[int] = None
        width: Optional[int] = None
        height: Optional[int] = None

        head_entry, head_size = self._head(url)
        status.append(head_entry)
        if head_size is not None:
            size = head_size
        logger.debug(f"{url}: {head_entry} (size={head_size})")

        deadline = Deadline(self.timeout_seconds)
        try:
            with deadline:
                with self.session.get(
                    url,
                    headers={"Range": RANGE_HEADER},
                    timeout=deadline.timeout(),
                    stream=True,
                ) as response:
                    deadline.check()
                    code = response.status_code
                    if not is_success(code):
                        status.append(StatusEntry(phase=ProbePhase.GET, kind=StatusKind.HTTP_ERROR, code=code))
                    else:
                        kind = StatusKind.PARTIAL if code == 206 else StatusKind.OK
                        status.append(StatusEntry(phase=ProbePhase.GET, kind=kind, code=code))

                        if size is None:
                            total = parse_content_range_total(response.headers.get("content-range"))
                            if total is not None:
                                size = total
                            elif code == 200:
                                size = parse_length(response.headers.get("content-length"))

                        data = self._read_budget(response, deadline)
                        try:
                            width, height = dimensions_from_bytes(data)
                        except ImageHeaderError as exc:
                            status.append(StatusEntry(phase=ProbePhase.DECODE, kind=StatusKind.DECODE_FAILED, detail=str(exc)))
        except (requests.RequestException, DeadlineExceeded) as exc:
            status.append(self._failure(ProbePhase.GET, exc, deadline))

        record = MetadataRecord(
            target_id=target_id or f"{TargetKind.REMOTE.value}::{url}",
            target=display or url,
            kind=TargetKind.REMOTE,
            size=size,
            width=width,
            height=height,
            status=tuple(status),
        )
        logger.debug(f"{url}: {record.status_text} (size={size}, dims={width}x{height})")
        return record
