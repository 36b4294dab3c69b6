# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Target URL parsing."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from ..errors import ConfigurationError

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


@dataclass(frozen=True)
class TargetURL:
    """
    Logical target of an exchange.

    `host` is the ASCII (IDNA-encoded) host without IPv6 brackets; it feeds SNI.
    `authority` is what goes into `:authority` and keeps an explicit
    non-default port.
    """

    scheme: str
    host: str
    port: int
    authority: str
    path: str

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.authority}{self.path}"


def normalize_target(raw: str) -> str:
    """
    Strip surrounding whitespace and default bare `host[:port]` targets to https.

    Example:
      example.com:8443 -> https://example.com:8443
    """
    text = str(raw or "").strip()
    if text and "://" not in text:
        text = f"https://{text}"
    return text


def parse_target(raw: str) -> TargetURL:
    text = normalize_target(raw)
    if not text:
        raise ConfigurationError("empty target")
    try:
        url = httpx.URL(text)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"invalid target {raw!r}: {exc}") from exc

    scheme = url.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ConfigurationError(f"unsupported scheme {scheme!r} in target {raw!r}")

    host = url.raw_host.decode("ascii")
    if not host:
        raise ConfigurationError(f"target {raw!r} has no host")

    authority = f"[{host}]" if ":" in host else host
    if url.port is not None:
        authority = f"{authority}:{url.port}"

    return TargetURL(
        scheme=scheme,
        host=host,
        port=url.port or DEFAULT_PORTS[scheme],
        authority=authority,
        path=url.raw_path.decode("ascii") or "/",
    )


def split_host_port(value: str) -> tuple[str, int | None]:
    """
    Split `host:port`, `[v6]:port`, `[v6]` or a bare host.

    Raises ConfigurationError on an unparsable port.
    """
    text = str(value or "").strip()
    if not text:
        raise ConfigurationError("empty address")

    port_text: str | None = None
    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep:
            raise ConfigurationError(f"unterminated IPv6 literal in {value!r}")
        if rest:
            if not rest.startswith(":"):
                raise ConfigurationError(f"invalid address {value!r}")
            port_text = rest[1:]
    elif text.count(":") == 1:
        host, _, port_text = text.partition(":")
    else:
        # Bare host or an unbracketed IPv6 literal.
        host = text

    if not host:
        raise ConfigurationError(f"address {value!r} has no host")
    if port_text is None:
        return host, None
    try:
        port = int(port_text)
    except ValueError:
        raise ConfigurationError(f"invalid port in address {value!r}") from None
    if not 0 < port < 65536:
        raise ConfigurationError(f"port out of range in address {value!r}")
    return host, port


__all__ = ["DEFAULT_PORTS", "TargetURL", "normalize_target", "parse_target", "split_host_port"]
