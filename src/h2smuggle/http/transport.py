# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Single-stream HTTP/2 transport over an open connection.

One FrameTransport drives exactly one request on stream 1: preface and
settings, the raw header block, flow-controlled DATA, then frame-by-frame
reassembly of the response until END_STREAM or a terminal condition.
"""

from __future__ import annotations

import logging

import hpack

from ..config import ScanSettings
from ..errors import ConnectionReset, ExchangeError, ProtocolError, StreamReset
from ..utils.deadline import Deadline
from .connection import Connection
from .frames import (
    CONNECTION_PREFACE,
    DEFAULT_INITIAL_WINDOW_SIZE,
    DEFAULT_MAX_FRAME_SIZE,
    MAX_FRAME_SIZE_LIMIT,
    MAX_WINDOW_SIZE,
    ErrorCode,
    Frame,
    FrameFlag,
    FrameReader,
    FrameType,
    SettingCode,
    data_frame,
    decode_headers,
    encode_headers,
    error_code_name,
    frame_content,
    header_block_frames,
    new_decoder,
    parse_goaway,
    parse_rst_stream,
    parse_settings,
    parse_window_update,
    ping_frame,
    settings_frame,
    window_update_frame,
)
from .models import Header, Response

logger = logging.getLogger(__name__)


class FrameTransport:
    def __init__(
        self,
        connection: Connection,
        deadline: Deadline,
        *,
        settings: ScanSettings | None = None,
        stream_id: int = 1,
    ):
        self.connection = connection
        self.deadline = deadline
        self.settings = settings or ScanSettings()
        self.stream_id = stream_id
        self.reader = FrameReader(lambda size: connection.recv(size, deadline))
        self.encoder = hpack.Encoder()
        self.decoder = new_decoder(self.settings.max_header_list_size)

        self.peer_max_frame_size = DEFAULT_MAX_FRAME_SIZE
        self.peer_initial_window = DEFAULT_INITIAL_WINDOW_SIZE
        self.connection_send_window = DEFAULT_INITIAL_WINDOW_SIZE
        self.stream_send_window = DEFAULT_INITIAL_WINDOW_SIZE

        self._headers: list[Header] = []
        self._body = bytearray()
        self._headers_seen = False
        self._stream_ended = False
        self._truncated = False

        self._block = bytearray()
        self._block_stream: int | None = None
        self._block_end_stream = False
        self._expect_continuation = False

    # Sending

    def start(self) -> None:
        """Connection preface, our SETTINGS, and a connection window matching the stream window."""
        initial_window = min(self.settings.initial_window_size, MAX_WINDOW_SIZE)
        frames = [
            settings_frame(
                {
                    SettingCode.ENABLE_PUSH: 0,
                    SettingCode.INITIAL_WINDOW_SIZE: initial_window,
                }
            )
        ]
        if initial_window > DEFAULT_INITIAL_WINDOW_SIZE:
            frames.append(window_update_frame(0, initial_window - DEFAULT_INITIAL_WINDOW_SIZE))
        self._send(CONNECTION_PREFACE + b"".join(frame.serialize() for frame in frames))

    def send_request(self, headers: list[Header], body: bytes = b"") -> None:
        block = encode_headers(headers, self.encoder)
        frames = header_block_frames(
            block,
            stream_id=self.stream_id,
            max_frame_size=self.peer_max_frame_size,
            end_stream=not body,
        )
        logger.debug(
            "Sending %d header fields (%d bytes in %d frames) and %d body bytes",
            len(headers),
            len(block),
            len(frames),
            len(body),
        )
        self._send(b"".join(frame.serialize() for frame in frames))
        if body:
            self._send_body(body)

    def _send_body(self, body: bytes) -> None:
        offset = 0
        total = len(body)
        while offset < total:
            if self._stream_ended or self._truncated:
                logger.debug("Peer ended the stream after %d/%d body bytes; not sending the rest", offset, total)
                return
            window = min(self.connection_send_window, self.stream_send_window)
            if window <= 0:
                self._process_next_frame()
                continue
            chunk = body[offset : offset + min(window, self.peer_max_frame_size)]
            offset += len(chunk)
            self.connection_send_window -= len(chunk)
            self.stream_send_window -= len(chunk)
            self._send(data_frame(self.stream_id, chunk, end_stream=offset >= total).serialize())

    def _send(self, data: bytes) -> None:
        try:
            self.connection.send(data, self.deadline)
        except ExchangeError as exc:
            raise self._with_partial(exc)

    # Receiving

    def read_response(self) -> Response:
        while not (self._stream_ended or self._truncated):
            self._process_next_frame()
        return self._response()

    def exchange(self, headers: list[Header], body: bytes = b"") -> Response:
        self.start()
        self.send_request(headers, body)
        return self.read_response()

    def partial_response(self) -> Response | None:
        """What has been reassembled so far, or None if no header bytes arrived."""
        if not self._headers_seen:
            return None
        return self._response()

    def _response(self) -> Response:
        return Response(
            headers=tuple(self._headers),
            body=bytes(self._body),
            elapsed=self.deadline.elapsed(),
            truncated=self._truncated,
        )

    def _with_partial(self, exc: ExchangeError) -> ExchangeError:
        if exc.partial is None:
            exc.partial = self.partial_response()
        return exc

    def _process_next_frame(self) -> None:
        try:
            frame = self.reader.read_frame()
            if frame is None:
                raise ConnectionReset("connection closed before the response ended")
            self._handle_frame(frame)
        except ExchangeError as exc:
            raise self._with_partial(exc)

    def _handle_frame(self, frame: Frame) -> None:
        frame_type = frame.frame_type
        if self._expect_continuation and frame_type != FrameType.CONTINUATION:
            raise ProtocolError(f"expected CONTINUATION, got frame type 0x{frame_type:x}")

        if frame_type == FrameType.DATA:
            self._on_data(frame)
        elif frame_type == FrameType.HEADERS:
            self._on_headers(frame)
        elif frame_type == FrameType.CONTINUATION:
            self._on_continuation(frame)
        elif frame_type == FrameType.SETTINGS:
            self._on_settings(frame)
        elif frame_type == FrameType.PING:
            if not frame.has_flag(FrameFlag.ACK):
                self._send(ping_frame(frame.payload, ack=True).serialize())
        elif frame_type == FrameType.WINDOW_UPDATE:
            self._on_window_update(frame)
        elif frame_type == FrameType.RST_STREAM:
            if frame.stream_id == self.stream_id:
                code = parse_rst_stream(frame.payload)
                raise StreamReset(f"stream reset by peer ({error_code_name(code)})", error_code=code)
        elif frame_type == FrameType.GOAWAY:
            self._on_goaway(frame)
        elif frame_type == FrameType.PUSH_PROMISE:
            raise ProtocolError("PUSH_PROMISE received although push is disabled")
        else:
            logger.debug("Ignoring frame type 0x%x on stream %d", frame_type, frame.stream_id)

    def _on_data(self, frame: Frame) -> None:
        ours = frame.stream_id == self.stream_id
        end_stream = frame.has_flag(FrameFlag.END_STREAM)
        content = frame_content(frame)
        if ours:
            room = self.settings.max_body_bytes - len(self._body)
            self._body += content[:room]
            if len(content) > room or len(self._body) >= self.settings.max_body_bytes and not end_stream:
                logger.debug("Response body reached %d bytes; truncating", self.settings.max_body_bytes)
                self._truncated = True
            if end_stream:
                self._stream_ended = True
        if self._truncated or self._stream_ended or not frame.payload:
            return
        # Flow control counts the whole payload, padding included.
        updates = [window_update_frame(0, len(frame.payload))]
        if ours:
            updates.append(window_update_frame(self.stream_id, len(frame.payload)))
        self._send(b"".join(update.serialize() for update in updates))

    def _on_headers(self, frame: Frame) -> None:
        if frame.stream_id == self.stream_id:
            self._headers_seen = True
        self._block = bytearray(frame_content(frame))
        self._block_stream = frame.stream_id
        self._block_end_stream = frame.has_flag(FrameFlag.END_STREAM)
        if frame.has_flag(FrameFlag.END_HEADERS):
            self._finish_header_block()
        else:
            self._expect_continuation = True

    def _on_continuation(self, frame: Frame) -> None:
        if not self._expect_continuation or frame.stream_id != self._block_stream:
            raise ProtocolError(f"unexpected CONTINUATION on stream {frame.stream_id}")
        self._block += frame.payload
        if frame.has_flag(FrameFlag.END_HEADERS):
            self._finish_header_block()

    def _finish_header_block(self) -> None:
        self._expect_continuation = False
        # Blocks on every stream go through the decoder to keep the HPACK table in sync.
        headers = decode_headers(bytes(self._block), self.decoder)
        self._block = bytearray()
        if self._block_stream != self.stream_id:
            return
        self._headers.extend(headers)
        if self._block_end_stream:
            self._stream_ended = True

    def _on_settings(self, frame: Frame) -> None:
        if frame.stream_id != 0:
            raise ProtocolError(f"SETTINGS frame on stream {frame.stream_id}")
        if frame.has_flag(FrameFlag.ACK):
            return
        for code, value in parse_settings(frame.payload).items():
            if code == SettingCode.INITIAL_WINDOW_SIZE:
                if value > MAX_WINDOW_SIZE:
                    raise ProtocolError(f"INITIAL_WINDOW_SIZE {value} exceeds the maximum window")
                self.stream_send_window += value - self.peer_initial_window
                self.peer_initial_window = value
            elif code == SettingCode.MAX_FRAME_SIZE:
                if not DEFAULT_MAX_FRAME_SIZE <= value <= MAX_FRAME_SIZE_LIMIT:
                    raise ProtocolError(f"MAX_FRAME_SIZE {value} out of range")
                self.peer_max_frame_size = value
        self._send(settings_frame(ack=True).serialize())

    def _on_window_update(self, frame: Frame) -> None:
        increment = parse_window_update(frame.payload)
        if frame.stream_id == 0:
            self.connection_send_window += increment
        elif frame.stream_id == self.stream_id:
            self.stream_send_window += increment

    def _on_goaway(self, frame: Frame) -> None:
        last_stream_id, code, debug = parse_goaway(frame.payload)
        if code != ErrorCode.NO_ERROR or last_stream_id < self.stream_id:
            detail = f": {debug.decode('utf-8', errors='backslashreplace')}" if debug else ""
            raise ConnectionReset(f"GOAWAY {error_code_name(code)} (last stream {last_stream_id}){detail}")
        logger.debug("Graceful GOAWAY covering stream %d; still reading", self.stream_id)


__all__ = ["FrameTransport"]
