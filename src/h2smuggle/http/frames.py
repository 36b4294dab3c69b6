# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
HTTP/2 frame codec.

Frames are packed by hand and header blocks may carry any bytes. HPACK is
delegated to `hpack`, which compresses names and values without validating
them.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import IntEnum

import hpack

from ..errors import ConnectionReset, ProtocolError
from .models import Header

CONNECTION_PREFACE = b"PRI * HTTP/2.0\r\n\r\nSM\r\n\r\n"
FRAME_HEADER_LENGTH = 9
DEFAULT_MAX_FRAME_SIZE = 16384
MAX_FRAME_SIZE_LIMIT = 2**24 - 1
DEFAULT_INITIAL_WINDOW_SIZE = 65535
MAX_WINDOW_SIZE = 2**31 - 1
STREAM_ID_MASK = 0x7FFFFFFF


class FrameType(IntEnum):
    DATA = 0x0
    HEADERS = 0x1
    PRIORITY = 0x2
    RST_STREAM = 0x3
    SETTINGS = 0x4
    PUSH_PROMISE = 0x5
    PING = 0x6
    GOAWAY = 0x7
    WINDOW_UPDATE = 0x8
    CONTINUATION = 0x9


class FrameFlag(IntEnum):
    END_STREAM = 0x1
    ACK = 0x1
    END_HEADERS = 0x4
    PADDED = 0x8
    PRIORITY = 0x20


class SettingCode(IntEnum):
    HEADER_TABLE_SIZE = 0x1
    ENABLE_PUSH = 0x2
    MAX_CONCURRENT_STREAMS = 0x3
    INITIAL_WINDOW_SIZE = 0x4
    MAX_FRAME_SIZE = 0x5
    MAX_HEADER_LIST_SIZE = 0x6


class ErrorCode(IntEnum):
    NO_ERROR = 0x0
    PROTOCOL_ERROR = 0x1
    INTERNAL_ERROR = 0x2
    FLOW_CONTROL_ERROR = 0x3
    SETTINGS_TIMEOUT = 0x4
    STREAM_CLOSED = 0x5
    FRAME_SIZE_ERROR = 0x6
    REFUSED_STREAM = 0x7
    CANCEL = 0x8
    COMPRESSION_ERROR = 0x9
    CONNECT_ERROR = 0xA
    ENHANCE_YOUR_CALM = 0xB
    INADEQUATE_SECURITY = 0xC
    HTTP_1_1_REQUIRED = 0xD


def error_code_name(code: int) -> str:
    try:
        return ErrorCode(code).name
    except ValueError:
        return f"0x{code:x}"


@dataclass(frozen=True)
class Frame:
    """One HTTP/2 frame; `payload` is everything after the 9-byte header."""

    frame_type: int
    flags: int = 0
    stream_id: int = 0
    payload: bytes = b""

    def has_flag(self, flag: int) -> bool:
        return bool(self.flags & flag)

    def serialize(self) -> bytes:
        length = len(self.payload)
        if length > MAX_FRAME_SIZE_LIMIT:
            raise ValueError(f"frame payload of {length} bytes exceeds the 24-bit length field")
        header = struct.pack(">I", length)[1:]
        header += struct.pack(">BB", self.frame_type, self.flags)
        header += struct.pack(">I", self.stream_id & STREAM_ID_MASK)
        return header + bytes(self.payload)

    def __bytes__(self) -> bytes:
        return self.serialize()


def parse_frame_header(data: bytes) -> tuple[int, int, int, int]:
    """Return (length, type, flags, stream_id) from a 9-byte frame header."""
    if len(data) != FRAME_HEADER_LENGTH:
        raise ProtocolError(f"frame header must be {FRAME_HEADER_LENGTH} bytes, got {len(data)}")
    length = struct.unpack(">I", b"\x00" + data[:3])[0]
    frame_type, flags = data[3], data[4]
    stream_id = struct.unpack(">I", data[5:9])[0] & STREAM_ID_MASK
    return length, frame_type, flags, stream_id


# Builders


def settings_frame(settings: Mapping[int, int] | None = None, *, ack: bool = False) -> Frame:
    if ack:
        return Frame(FrameType.SETTINGS, FrameFlag.ACK, 0)
    payload = b"".join(struct.pack(">HI", int(code), int(value)) for code, value in (settings or {}).items())
    return Frame(FrameType.SETTINGS, 0, 0, payload)


def ping_frame(opaque: bytes, *, ack: bool = False) -> Frame:
    return Frame(FrameType.PING, FrameFlag.ACK if ack else 0, 0, bytes(opaque).ljust(8, b"\x00")[:8])


def window_update_frame(stream_id: int, increment: int) -> Frame:
    return Frame(FrameType.WINDOW_UPDATE, 0, stream_id, struct.pack(">I", increment & STREAM_ID_MASK))


def data_frame(stream_id: int, data: bytes, *, end_stream: bool = False) -> Frame:
    return Frame(FrameType.DATA, FrameFlag.END_STREAM if end_stream else 0, stream_id, bytes(data))


def header_block_frames(
    block: bytes,
    *,
    stream_id: int,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
    end_stream: bool = False,
) -> list[Frame]:
    """
    Split an encoded header block into HEADERS + CONTINUATION frames.

    END_STREAM (if requested) sits on the HEADERS frame; END_HEADERS on the last frame.
    """
    if max_frame_size <= 0:
        raise ValueError("max_frame_size must be positive")
    chunks = [block[i : i + max_frame_size] for i in range(0, len(block), max_frame_size)] or [b""]
    frames: list[Frame] = []
    last = len(chunks) - 1
    for index, chunk in enumerate(chunks):
        flags = FrameFlag.END_HEADERS if index == last else 0
        if index == 0:
            if end_stream:
                flags |= FrameFlag.END_STREAM
            frames.append(Frame(FrameType.HEADERS, flags, stream_id, chunk))
        else:
            frames.append(Frame(FrameType.CONTINUATION, flags, stream_id, chunk))
    return frames


# Parsers


def parse_settings(payload: bytes) -> dict[int, int]:
    if len(payload) % 6:
        raise ProtocolError(f"SETTINGS payload length {len(payload)} is not a multiple of 6")
    return {code: value for code, value in struct.iter_unpack(">HI", payload)}


def parse_window_update(payload: bytes) -> int:
    if len(payload) != 4:
        raise ProtocolError(f"WINDOW_UPDATE payload must be 4 bytes, got {len(payload)}")
    return struct.unpack(">I", payload)[0] & STREAM_ID_MASK


def parse_rst_stream(payload: bytes) -> int:
    if len(payload) != 4:
        raise ProtocolError(f"RST_STREAM payload must be 4 bytes, got {len(payload)}")
    return struct.unpack(">I", payload)[0]


def parse_goaway(payload: bytes) -> tuple[int, int, bytes]:
    """Return (last_stream_id, error_code, debug_data)."""
    if len(payload) < 8:
        raise ProtocolError(f"GOAWAY payload too short ({len(payload)} bytes)")
    last_stream_id, error_code = struct.unpack(">II", payload[:8])
    return last_stream_id & STREAM_ID_MASK, error_code, payload[8:]


def frame_content(frame: Frame) -> bytes:
    """Payload of a DATA/HEADERS frame with padding and priority fields removed."""
    payload = frame.payload
    pad_length = 0
    if frame.frame_type in (FrameType.DATA, FrameType.HEADERS) and frame.has_flag(FrameFlag.PADDED):
        if not payload:
            raise ProtocolError("PADDED frame without pad length")
        pad_length = payload[0]
        payload = payload[1:]
    if frame.frame_type == FrameType.HEADERS and frame.has_flag(FrameFlag.PRIORITY):
        if len(payload) < 5:
            raise ProtocolError("HEADERS frame too short for PRIORITY fields")
        payload = payload[5:]
    if pad_length:
        if pad_length > len(payload):
            raise ProtocolError("padding exceeds frame payload")
        payload = payload[: len(payload) - pad_length]
    return payload


# HPACK


def encode_headers(headers: Iterable[Header], encoder: hpack.Encoder | None = None) -> bytes:
    """HPACK-encode headers exactly as given: no lowercasing, no validation, order kept."""
    encoder = encoder or hpack.Encoder()
    return encoder.encode([header.as_tuple() for header in headers])


def new_decoder(max_header_list_size: int | None = None) -> hpack.Decoder:
    decoder = hpack.Decoder()
    if max_header_list_size:
        decoder.max_header_list_size = max_header_list_size
    return decoder


def decode_headers(block: bytes, decoder: hpack.Decoder | None = None) -> list[Header]:
    decoder = decoder or new_decoder()
    try:
        decoded = decoder.decode(bytes(block), raw=True)
    except hpack.HPACKError as exc:
        raise ProtocolError(f"cannot decode header block: {exc}") from exc
    return [Header(bytes(name), bytes(value)) for name, value in decoded]


class FrameReader:
    """Reads whole frames from a `recv(size) -> bytes` callable."""

    def __init__(self, recv: Callable[[int], bytes]):
        self._recv = recv

    def read_frame(self) -> Frame | None:
        """Next frame, or None on a clean EOF at a frame boundary."""
        header = self._read_exactly(FRAME_HEADER_LENGTH, allow_eof=True)
        if header is None:
            return None
        length, frame_type, flags, stream_id = parse_frame_header(header)
        payload = self._read_exactly(length) if length else b""
        return Frame(frame_type, flags, stream_id, payload or b"")

    def _read_exactly(self, size: int, *, allow_eof: bool = False) -> bytes | None:
        buffer = bytearray()
        while len(buffer) < size:
            chunk = self._recv(size - len(buffer))
            if not chunk:
                if allow_eof and not buffer:
                    return None
                raise ConnectionReset(f"connection closed mid-frame ({len(buffer)}/{size} bytes)")
            buffer += chunk
        return bytes(buffer)


__all__ = [
    "CONNECTION_PREFACE",
    "DEFAULT_INITIAL_WINDOW_SIZE",
    "DEFAULT_MAX_FRAME_SIZE",
    "ErrorCode",
    "Frame",
    "FrameFlag",
    "FrameReader",
    "FrameType",
    "MAX_FRAME_SIZE_LIMIT",
    "MAX_WINDOW_SIZE",
    "SettingCode",
    "data_frame",
    "decode_headers",
    "encode_headers",
    "error_code_name",
    "frame_content",
    "header_block_frames",
    "new_decoder",
    "parse_frame_header",
    "parse_goaway",
    "parse_rst_stream",
    "parse_settings",
    "parse_window_update",
    "ping_frame",
    "settings_frame",
    "window_update_frame",
]
