# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy and exception helpers."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .http.models import Response


class ErrorCategory(str, Enum):
    TIMEOUT = "TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DNS_ERROR = "DNS_ERROR"
    SSL_ERROR = "SSL_ERROR"
    PROTOCOL_NOT_SUPPORTED = "PROTOCOL_NOT_SUPPORTED"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    STREAM_RESET = "STREAM_RESET"
    CONNECTION_RESET = "CONNECTION_RESET"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INPUT_ERROR = "INPUT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    NONE = "NONE"


class H2SmuggleError(Exception):
    """Base class for every error raised by h2smuggle."""

    category = ErrorCategory.UNKNOWN_ERROR


class ConfigurationError(H2SmuggleError):
    """Contradictory or malformed inputs, detected before any network I/O."""

    category = ErrorCategory.CONFIGURATION_ERROR


class InputError(H2SmuggleError):
    """Unreadable or empty body/target source; fatal to the invocation."""

    category = ErrorCategory.INPUT_ERROR


class ExchangeError(H2SmuggleError):
    """
    Failure of a single request/response exchange.

    `partial` holds whatever response data had been reassembled before the
    failure, if any header bytes arrived.
    """

    category = ErrorCategory.CONNECTION_ERROR

    def __init__(self, message: str, *, partial: Response | None = None):
        super().__init__(message)
        self.partial = partial


class ConnectError(ExchangeError):
    category = ErrorCategory.CONNECTION_ERROR


class ResolutionError(ConnectError):
    category = ErrorCategory.DNS_ERROR


class TLSError(ConnectError):
    category = ErrorCategory.SSL_ERROR


class ProtocolNotSupported(ConnectError):
    """The peer completed the handshake but did not select h2."""

    category = ErrorCategory.PROTOCOL_NOT_SUPPORTED


class ProtocolError(ExchangeError):
    """Malformed or unexpected frame sequence from the peer."""

    category = ErrorCategory.PROTOCOL_ERROR


class StreamReset(ProtocolError):
    category = ErrorCategory.STREAM_RESET

    def __init__(self, message: str, *, error_code: int = 0, partial: Response | None = None):
        super().__init__(message, partial=partial)
        self.error_code = error_code


class ConnectionReset(ProtocolError):
    """The connection ended (EOF, socket reset, GOAWAY) before the stream did."""

    category = ErrorCategory.CONNECTION_RESET


class ExchangeTimeout(ExchangeError):
    category = ErrorCategory.TIMEOUT


def categorize_exception(exc: BaseException) -> ErrorCategory:
    """
    Map h2smuggle/socket/ssl exceptions to ErrorCategory.
    """
    import socket
    import ssl as ssl_module

    if isinstance(exc, H2SmuggleError):
        return exc.category

    if isinstance(exc, (socket.timeout, TimeoutError)):
        return ErrorCategory.TIMEOUT

    if isinstance(exc, (ssl_module.SSLError, ssl_module.CertificateError)):
        return ErrorCategory.SSL_ERROR

    if isinstance(exc, (socket.gaierror, socket.herror)):
        return ErrorCategory.DNS_ERROR

    if isinstance(exc, (ConnectionResetError, BrokenPipeError)):
        return ErrorCategory.CONNECTION_RESET

    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorCategory.CONNECTION_ERROR

    return ErrorCategory.UNKNOWN_ERROR


def error_category_to_reason(category: ErrorCategory | None) -> str:
    """User-facing reason string."""
    mapping = {
        ErrorCategory.TIMEOUT: "Timed out waiting for the peer",
        ErrorCategory.CONNECTION_ERROR: "Network connectivity issue",
        ErrorCategory.DNS_ERROR: "DNS resolution failure",
        ErrorCategory.SSL_ERROR: "TLS handshake failure",
        ErrorCategory.PROTOCOL_NOT_SUPPORTED: "Peer does not speak HTTP/2 (ALPN)",
        ErrorCategory.PROTOCOL_ERROR: "Malformed frame sequence from peer",
        ErrorCategory.STREAM_RESET: "Stream reset by peer",
        ErrorCategory.CONNECTION_RESET: "Connection closed by peer",
        ErrorCategory.CONFIGURATION_ERROR: "Invalid request parameters",
        ErrorCategory.INPUT_ERROR: "Unreadable or empty input",
        ErrorCategory.UNKNOWN_ERROR: "Unexpected error during exchange",
        ErrorCategory.NONE: "",
        None: "",
    }
    return mapping.get(category, "Exchange failed")


def describe_exception(exc: BaseException) -> str:
    """Reason string plus the exception's own message."""
    reason = error_category_to_reason(categorize_exception(exc))
    message = str(exc)
    if message and reason:
        return f"{reason}: {message}"
    return message or reason


__all__ = [
    "ConfigurationError",
    "ConnectError",
    "ConnectionReset",
    "ErrorCategory",
    "ExchangeError",
    "ExchangeTimeout",
    "H2SmuggleError",
    "InputError",
    "ProtocolError",
    "ProtocolNotSupported",
    "ResolutionError",
    "StreamReset",
    "TLSError",
    "categorize_exception",
    "describe_exception",
    "error_category_to_reason",
]
