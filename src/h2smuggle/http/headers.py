# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Header assembly: the exact ordered header list placed on the wire."""

from __future__ import annotations

from .models import Header, RequestParams
from .url import TargetURL, parse_target

PSEUDO_HEADER_ORDER: tuple[bytes, ...] = (b":method", b":scheme", b":authority", b":path")


def build_pseudo_headers(
    method: str | bytes,
    target: TargetURL,
    *,
    path: str | bytes | None = None,
    authority: str | bytes | None = None,
) -> list[Header]:
    """Request pseudo-headers in canonical order, optionally overriding path/authority."""
    return [
        Header.of(":method", method),
        Header.of(":scheme", target.scheme),
        Header.of(":authority", target.authority if authority is None else authority),
        Header.of(":path", target.path if path is None else path),
    ]


def assemble_headers(params: RequestParams, target: TargetURL | None = None) -> list[Header]:
    """
    Build the final header list for `params`.

    With auto headers disabled the caller's list is returned as-is, even when
    mandatory pseudo-headers are missing. Otherwise the four pseudo-headers are
    prepended and any explicit duplicates are kept after them.
    """
    if params.disable_auto_headers:
        return list(params.headers)
    target = target or parse_target(params.target)
    return build_pseudo_headers(params.method or "GET", target) + list(params.headers)


__all__ = ["PSEUDO_HEADER_ORDER", "assemble_headers", "build_pseudo_headers"]
