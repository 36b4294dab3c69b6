# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Threaded h2c test server built on the package's own frame codec."""

from __future__ import annotations

import socket
import ssl
import struct
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace

import hpack
import pytest

from h2smuggle.config import ScanSettings
from h2smuggle.errors import H2SmuggleError
from h2smuggle.http.frames import (
    CONNECTION_PREFACE,
    DEFAULT_MAX_FRAME_SIZE,
    ErrorCode,
    Frame,
    FrameFlag,
    FrameReader,
    FrameType,
    data_frame,
    decode_headers,
    encode_headers,
    frame_content,
    header_block_frames,
    new_decoder,
    settings_frame,
    window_update_frame,
)
from h2smuggle.http.models import Header


@dataclass
class ReceivedRequest:
    headers: list[Header]
    body: bytes

    def values(self, name: bytes) -> list[bytes]:
        return [header.value for header in self.headers if header.name == name]


class ServerStream:
    """Response side of the single stream a test connection carries."""

    def __init__(self, conn: socket.socket, stream_id: int = 1):
        self.conn = conn
        self.stream_id = stream_id
        self.encoder = hpack.Encoder()

    def send_frames(self, *frames: Frame) -> None:
        self.conn.sendall(b"".join(frame.serialize() for frame in frames))

    def send_headers(self, pairs, *, end_stream: bool = False) -> None:
        block = encode_headers([Header.of(name, value) for name, value in pairs], self.encoder)
        self.send_frames(*header_block_frames(block, stream_id=self.stream_id, end_stream=end_stream))

    def send_data(self, body: bytes, *, end_stream: bool = True) -> None:
        chunks = [body[i : i + DEFAULT_MAX_FRAME_SIZE] for i in range(0, len(body), DEFAULT_MAX_FRAME_SIZE)] or [b""]
        last = len(chunks) - 1
        self.send_frames(*(data_frame(self.stream_id, chunk, end_stream=end_stream and i == last) for i, chunk in enumerate(chunks)))

    def respond(self, status: int = 200, headers=(), body: bytes = b"") -> None:
        self.send_headers([(":status", str(status)), *headers], end_stream=not body)
        if body:
            self.send_data(body)

    def reset(self, code: int = ErrorCode.PROTOCOL_ERROR) -> None:
        self.send_frames(Frame(FrameType.RST_STREAM, 0, self.stream_id, struct.pack(">I", code)))

    def goaway(self, code: int = ErrorCode.PROTOCOL_ERROR, last_stream_id: int = 0, debug: bytes = b"") -> None:
        self.send_frames(Frame(FrameType.GOAWAY, 0, 0, struct.pack(">II", last_stream_id, code) + debug))

    def close(self) -> None:
        self.conn.close()


Handler = Callable[[ReceivedRequest, ServerStream], None]


class H2TestServer:
    """
    One request per connection, served on its own thread.

    After the handler returns, the server drains the connection until the
    client closes it and counts that in `client_closed`.
    """

    def __init__(self, handler: Handler, tls: ssl.SSLContext | None = None):
        self.handler = handler
        self.tls = tls
        self.requests: list[ReceivedRequest] = []
        self.connections = 0
        self.client_closed = threading.Event()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(16)
        self._sock.settimeout(0.2)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    @property
    def url(self) -> str:
        scheme = "https" if self.tls is not None else "http"
        return f"{scheme}://{self.address}/"

    def start(self) -> H2TestServer:
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2)
        self._sock.close()

    def _accept_loop(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with self._lock:
                self.connections += 1
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn: socket.socket) -> None:
        conn.settimeout(10.0)
        try:
            if self.tls is not None:
                conn = self.tls.wrap_socket(conn, server_side=True)
            request = self._read_request(conn)
            if request is None:
                return
            with self._lock:
                self.requests.append(request)
            stream = ServerStream(conn)
            self.handler(request, stream)
            self._drain(conn)
        except (OSError, H2SmuggleError):
            pass
        finally:
            conn.close()

    def _read_request(self, conn: socket.socket) -> ReceivedRequest | None:
        preface = b""
        while len(preface) < len(CONNECTION_PREFACE):
            chunk = conn.recv(len(CONNECTION_PREFACE) - len(preface))
            if not chunk:
                return None
            preface += chunk
        if preface != CONNECTION_PREFACE:
            return None
        conn.sendall(settings_frame({}).serialize())

        reader = FrameReader(conn.recv)
        decoder = new_decoder(1 << 22)
        headers: list[Header] = []
        body = bytearray()
        block = bytearray()
        end_stream = False
        headers_done = False
        while not (headers_done and end_stream):
            frame = reader.read_frame()
            if frame is None:
                return None
            if frame.frame_type == FrameType.SETTINGS and not frame.has_flag(FrameFlag.ACK):
                conn.sendall(settings_frame(ack=True).serialize())
            elif frame.frame_type == FrameType.HEADERS:
                block = bytearray(frame_content(frame))
                end_stream = frame.has_flag(FrameFlag.END_STREAM)
                if frame.has_flag(FrameFlag.END_HEADERS):
                    headers += decode_headers(bytes(block), decoder)
                    headers_done = True
            elif frame.frame_type == FrameType.CONTINUATION:
                block += frame.payload
                if frame.has_flag(FrameFlag.END_HEADERS):
                    headers += decode_headers(bytes(block), decoder)
                    headers_done = True
            elif frame.frame_type == FrameType.DATA:
                body += frame_content(frame)
                if frame.payload:
                    conn.sendall(
                        window_update_frame(0, len(frame.payload)).serialize()
                        + window_update_frame(frame.stream_id, len(frame.payload)).serialize()
                    )
                end_stream = end_stream or frame.has_flag(FrameFlag.END_STREAM)
        return ReceivedRequest(headers=headers, body=bytes(body))

    def _drain(self, conn: socket.socket) -> None:
        while True:
            try:
                chunk = conn.recv(65536)
            except socket.timeout:
                return
            except OSError:
                chunk = b""
            if not chunk:
                self.client_closed.set()
                return


# Handlers


def echo_lines(request: ReceivedRequest) -> bytes:
    return b"".join(header.name + b": " + header.value + b"\n" for header in request.headers)


def echo_handler(request: ReceivedRequest, stream: ServerStream) -> None:
    """A downgrading edge that forwards every header verbatim to a backend echoing them."""
    stream.respond(200, [("content-type", "text/plain")], echo_lines(request))


def normalising_handler(request: ReceivedRequest, stream: ServerStream) -> None:
    """An edge that rejects conflicting framing fields before forwarding."""
    lengths = set(request.values(b"content-length"))
    if len(lengths) > 1 or (lengths and request.values(b"transfer-encoding")):
        stream.respond(400, [("content-type", "text/plain")], b"bad request\n")
        return
    echo_handler(request, stream)


def hang_handler(request: ReceivedRequest, stream: ServerStream) -> None:
    """Never answers."""


def reset_handler(request: ReceivedRequest, stream: ServerStream) -> None:
    stream.reset(ErrorCode.PROTOCOL_ERROR)


def content_length_backend(request: ReceivedRequest, stream: ServerStream) -> None:
    """
    A backend that honours any forwarded content-length, however it is spelled,
    and waits for body bytes that never come when the declared length is longer.
    """
    for header in request.headers:
        if header.name.strip().lower() != b"content-length":
            continue
        try:
            declared = int(header.value.strip())
        except ValueError:
            continue
        if declared > len(request.body):
            return
    echo_handler(request, stream)


@pytest.fixture
def h2_server():
    servers: list[H2TestServer] = []

    def start(handler: Handler, tls: ssl.SSLContext | None = None) -> H2TestServer:
        server = H2TestServer(handler, tls).start()
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()


@pytest.fixture
def settings() -> ScanSettings:
    return ScanSettings(timeout=3.0, concurrency=4)


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def handlers() -> SimpleNamespace:
    return SimpleNamespace(
        echo=echo_handler,
        normalising=normalising_handler,
        hang=hang_handler,
        reset=reset_handler,
        content_length=content_length_backend,
    )


TLS_DATA = Path(__file__).parent / "data"


@pytest.fixture
def server_tls():
    """Server-side TLS contexts built on the self-signed certificate for `logical.example`."""

    def make(alpn=("h2",), server_names: list | None = None) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(TLS_DATA / "tls_cert.pem", TLS_DATA / "tls_key.pem")
        context.set_alpn_protocols(list(alpn))
        if server_names is not None:

            def record(sock, server_name, ctx):
                server_names.append(server_name)

            context.sni_callback = record
        return context

    return make
