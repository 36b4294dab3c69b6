# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Connection establishment: dial, TLS + ALPN, and a deadline-aware socket wrapper."""

from __future__ import annotations

import ipaddress
import logging
import socket
import ssl
import threading
from dataclasses import dataclass

from ..errors import (
    ConnectError,
    ConnectionReset,
    ExchangeTimeout,
    ProtocolNotSupported,
    ResolutionError,
    TLSError,
)
from ..utils.deadline import Deadline
from .url import TargetURL, split_host_port

logger = logging.getLogger(__name__)

ALPN_PROTOCOL = "h2"
RECV_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class ConnectionPlan:
    """
    Where to dial versus who to claim to be.

    `dial_host`/`dial_port` come from the override address when one is given;
    `server_name` (SNI) and `authority` always come from the logical target.
    """

    scheme: str
    dial_host: str
    dial_port: int
    server_name: str
    authority: str

    @property
    def use_tls(self) -> bool:
        return self.scheme == "https"

    @property
    def dial_address(self) -> str:
        host = f"[{self.dial_host}]" if ":" in self.dial_host else self.dial_host
        return f"{host}:{self.dial_port}"


def plan_connection(target: TargetURL, override_addr: str | None = None) -> ConnectionPlan:
    dial_host, dial_port = target.host, target.port
    if override_addr:
        override_host, override_port = split_host_port(override_addr)
        dial_host = override_host
        dial_port = override_port or target.port
    return ConnectionPlan(
        scheme=target.scheme,
        dial_host=dial_host,
        dial_port=dial_port,
        server_name=target.host,
        authority=target.authority,
    )


def build_ssl_context(verify: bool = False) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    context.set_alpn_protocols([ALPN_PROTOCOL])
    return context


class Connection:
    """An open transport connection; every blocking call draws on a Deadline."""

    def __init__(self, sock: socket.socket, plan: ConnectionPlan | None = None, *, alpn_protocol: str | None = None):
        self._sock = sock
        self.plan = plan
        self.alpn_protocol = alpn_protocol
        self.closed = False

    def send(self, data: bytes, deadline: Deadline | None = None) -> None:
        try:
            if deadline is not None:
                self._sock.settimeout(deadline.remaining())
            self._sock.sendall(data)
        except socket.timeout as exc:
            raise ExchangeTimeout("timed out while sending") from exc
        except OSError as exc:
            raise ConnectionReset(f"send failed: {exc}") from exc

    def recv(self, size: int, deadline: Deadline | None = None) -> bytes:
        try:
            if deadline is not None:
                self._sock.settimeout(deadline.remaining())
            return self._sock.recv(min(size, RECV_CHUNK_SIZE))
        except socket.timeout as exc:
            raise ExchangeTimeout("timed out waiting for the peer") from exc
        except OSError as exc:
            raise ConnectionReset(f"receive failed: {exc}") from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._sock.close()
        except OSError as exc:  # pragma: no cover - close on an already broken socket
            logger.debug("Error closing connection: %s", exc)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host.partition("%")[0])
    except ValueError:
        return False
    return True


def _getaddrinfo(host: str, port: int, flags: int = 0) -> list[tuple]:
    try:
        return socket.getaddrinfo(host, port, 0, socket.SOCK_STREAM, 0, flags)
    except (OSError, UnicodeError) as exc:
        raise ResolutionError(f"cannot resolve {host}: {exc}") from exc


def resolve(host: str, port: int, deadline: Deadline) -> list[tuple]:
    """
    Addresses for `host`, bounded by the deadline.

    IP literals are converted without a lookup. Names are looked up on a
    private daemon thread per call; getaddrinfo cannot be interrupted, so on
    timeout that thread is abandoned and ends on its own.
    """
    if _is_ip_literal(host):
        addresses = _getaddrinfo(host, port, socket.AI_NUMERICHOST)
    else:
        addresses = []
        failures: list[ResolutionError] = []

        def lookup() -> None:
            try:
                addresses.extend(_getaddrinfo(host, port))
            except ResolutionError as exc:
                failures.append(exc)

        thread = threading.Thread(target=lookup, name=f"h2smuggle-resolve-{host}", daemon=True)
        thread.start()
        thread.join(deadline.remaining())
        if thread.is_alive():
            raise ExchangeTimeout(f"timed out resolving {host}")
        if failures:
            raise failures[0]
    if not addresses:
        raise ResolutionError(f"no addresses for {host}")
    return addresses


def _dial(plan: ConnectionPlan, deadline: Deadline) -> socket.socket:
    last_error: OSError | None = None
    for family, socktype, proto, _, sockaddr in resolve(plan.dial_host, plan.dial_port, deadline):
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last_error = exc
            continue
        try:
            sock.settimeout(deadline.remaining())
            sock.connect(sockaddr)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except socket.timeout:
            sock.close()
            raise ExchangeTimeout(f"timed out connecting to {plan.dial_address}") from None
        except ExchangeTimeout:
            sock.close()
            raise
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        return sock
    raise ConnectError(f"cannot connect to {plan.dial_address}: {last_error}")


def open_connection(plan: ConnectionPlan, deadline: Deadline, *, verify_ssl: bool = False) -> Connection:
    """
    Open a fresh connection for exactly one exchange.

    TLS targets must negotiate h2 via ALPN; plain targets speak h2 with prior
    knowledge. Any failure closes the socket before raising.
    """
    sock = _dial(plan, deadline)
    logger.debug("Connected to %s for %s", plan.dial_address, plan.authority)
    if not plan.use_tls:
        return Connection(sock, plan, alpn_protocol=None)

    try:
        sock.settimeout(deadline.remaining())
        tls_sock = build_ssl_context(verify_ssl).wrap_socket(sock, server_hostname=plan.server_name)
    except socket.timeout:
        sock.close()
        raise ExchangeTimeout(f"timed out during TLS handshake with {plan.dial_address}") from None
    except ExchangeTimeout:
        sock.close()
        raise
    except ssl.SSLError as exc:
        sock.close()
        raise TLSError(f"TLS handshake with {plan.dial_address} failed: {exc}") from exc
    except OSError as exc:
        sock.close()
        raise ConnectError(f"TLS handshake with {plan.dial_address} failed: {exc}") from exc

    protocol = tls_sock.selected_alpn_protocol()
    if protocol != ALPN_PROTOCOL:
        tls_sock.close()
        raise ProtocolNotSupported(f"{plan.server_name} negotiated {protocol or 'no protocol'} instead of {ALPN_PROTOCOL}")
    return Connection(tls_sock, plan, alpn_protocol=protocol)


__all__ = [
    "ALPN_PROTOCOL",
    "Connection",
    "ConnectionPlan",
    "build_ssl_context",
    "open_connection",
    "plan_connection",
    "resolve",
]
