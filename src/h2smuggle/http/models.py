# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Request/response models shared by the transport, executor and probes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace


def _to_bytes(value: str | bytes | bytearray) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


@dataclass(frozen=True)
class Header:
    """
    One raw header field.

    Unchecked: names and values may be empty, uppercase,
    duplicated, or contain CR/LF/NUL. Nothing in the engine normalises them.
    """

    name: bytes
    value: bytes

    @classmethod
    def of(cls, name: str | bytes, value: str | bytes) -> Header:
        return cls(_to_bytes(name), _to_bytes(value))

    def as_tuple(self) -> tuple[bytes, bytes]:
        return (self.name, self.value)

    def __str__(self) -> str:
        name = self.name.decode("utf-8", errors="backslashreplace")
        value = self.value.decode("utf-8", errors="backslashreplace")
        return f"{name}: {value}"


def make_headers(pairs: Iterable[Header | tuple[str | bytes, str | bytes]]) -> tuple[Header, ...]:
    """Build an ordered header tuple from Header objects or (name, value) pairs."""
    return tuple(item if isinstance(item, Header) else Header.of(item[0], item[1]) for item in pairs)


@dataclass(frozen=True)
class RequestParams:
    """Everything needed for one exchange; read-only to the engine."""

    target: str
    method: str | bytes = "GET"
    override_addr: str | None = None
    headers: tuple[Header, ...] = ()
    disable_auto_headers: bool = False
    body: bytes = b""
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, tuple):
            object.__setattr__(self, "headers", make_headers(self.headers))
        if not isinstance(self.body, bytes):
            object.__setattr__(self, "body", _to_bytes(self.body))

    def evolve(self, **changes) -> RequestParams:
        return replace(self, **changes)

    def with_headers(self, *headers: Header, prepend: bool = False) -> RequestParams:
        added = tuple(headers)
        combined = added + self.headers if prepend else self.headers + added
        return replace(self, headers=combined)


@dataclass(frozen=True)
class Response:
    """Raw response: every decoded header field in arrival order plus the body bytes."""

    headers: tuple[Header, ...] = ()
    body: bytes = b""
    elapsed: float = 0.0
    truncated: bool = False

    @property
    def status(self) -> int | None:
        """First final (non-1xx) `:status`, falling back to the first one seen."""
        first: int | None = None
        for value in self.header_values(b":status"):
            try:
                code = int(value)
            except ValueError:
                continue
            if first is None:
                first = code
            if code >= 200:
                return code
        return first

    def header_values(self, name: str | bytes) -> list[bytes]:
        wanted = _to_bytes(name)
        return [header.value for header in self.headers if header.name == wanted]


__all__ = ["Header", "RequestParams", "Response", "make_headers"]
