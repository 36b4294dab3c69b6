# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Smuggling techniques.

Each technique is a pure transform of the baseline RequestParams. The
framing-hang family is generated from (framing field x placement); the rest
are written out individually.
"""

from __future__ import annotations

from collections.abc import Callable

from ..http.headers import build_pseudo_headers
from ..http.models import Header, RequestParams
from ..http.url import parse_target
from .rules import any_of, hang_on_framing, reflected, smuggled_response, status_divergence
from .types import ProbeTemplate

CANARY = "h2smuggle"
CANARY_HOST = "h2smuggle-canary.invalid"
CANARY_PATH = "/h2smuggle-canary"
CANARY_HEADER = b"x-h2smuggle"

PROBE_BODY = CANARY.encode()
# Bytes declared beyond what is sent; a backend honouring the declared length waits for them.
HANG_EXTRA = 8
UNTERMINATED_CHUNK = b"ff\r\n" + PROBE_BODY
TERMINATING_CHUNK = b"0\r\n\r\n"
SMUGGLED_REQUEST = f"GET {CANARY_PATH} HTTP/1.1\r\nHost: {CANARY_HOST}\r\n\r\n".encode()

Placement = Callable[[RequestParams, bytes, bytes], RequestParams]


def _with_pseudo(params: RequestParams, *extra: Header, path: str | bytes | None = None, skip: bytes = b"") -> RequestParams:
    """Hand-build the pseudo-header set, with `extra` right after it and auto headers disabled."""
    target = parse_target(params.target)
    pseudo = [h for h in build_pseudo_headers(params.method, target, path=path) if h.name != skip]
    return params.evolve(headers=tuple(pseudo) + extra + params.headers, disable_auto_headers=True)


# Placements of a framing field.


def _plain(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    return params.with_headers(Header(name, value))


def _uppercase(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    return params.with_headers(Header(name.title(), value))


def _name_space(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    return params.with_headers(Header(name + b" ", value))


def _value_space(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    return params.with_headers(Header(name, b" " + value))


def _value_crlf(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    return params.with_headers(Header(CANARY_HEADER, b"1\r\n" + name + b": " + value))


def _name_crlf(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    return params.with_headers(Header(CANARY_HEADER + b": 1\r\n" + name, value))


def _path_crlf(params: RequestParams, name: bytes, value: bytes) -> RequestParams:
    target = parse_target(params.target)
    path = target.path.encode() + b" HTTP/1.1\r\n" + name + b": " + value + b"\r\n" + CANARY_HEADER + b": "
    return _with_pseudo(params, path=path)


PLACEMENTS: dict[str, tuple[Placement, str]] = {
    "plain": (_plain, "as a regular header"),
    "uppercase": (_uppercase, "with a capitalised name"),
    "name-space": (_name_space, "with a trailing space in the name"),
    "value-space": (_value_space, "with a leading space in the value"),
    "value-crlf": (_value_crlf, "injected through another header's value"),
    "name-crlf": (_name_crlf, "injected through a header name"),
    "path-crlf": (_path_crlf, "injected through :path"),
}

# field -> (name, probe value, probe body, control value, control body)
FRAMING_FIELDS: dict[str, tuple[bytes, bytes, bytes, bytes, bytes]] = {
    "cl": (
        b"content-length",
        str(len(PROBE_BODY) + HANG_EXTRA).encode(),
        PROBE_BODY,
        str(len(PROBE_BODY)).encode(),
        PROBE_BODY,
    ),
    "te": (b"transfer-encoding", b"chunked", UNTERMINATED_CHUNK, b"chunked", TERMINATING_CHUNK),
}


def framing_template(field: str, placement: str) -> ProbeTemplate:
    name, probe_value, probe_body, control_value, control_body = FRAMING_FIELDS[field]
    inject, where = PLACEMENTS[placement]

    def build(params: RequestParams) -> RequestParams:
        return inject(params.evolve(method="POST", body=probe_body), name, probe_value)

    def control(params: RequestParams) -> RequestParams:
        return inject(params.evolve(method="POST", body=control_body), name, control_value)

    return ProbeTemplate(
        name=f"{field}-{placement}",
        description=f"{name.decode()} declaring more body than sent, {where}",
        signature="probe hangs while the consistently framed control completes",
        build=build,
        rule=hang_on_framing,
        control=control,
    )


def _cl_duplicate(params: RequestParams) -> RequestParams:
    return params.evolve(method="POST", body=PROBE_BODY).with_headers(
        Header(b"content-length", str(len(PROBE_BODY)).encode()),
        Header(b"content-length", str(len(PROBE_BODY) + HANG_EXTRA).encode()),
    )


def _te_cl_conflict(params: RequestParams) -> RequestParams:
    return params.evolve(method="POST", body=TERMINATING_CHUNK).with_headers(
        Header(b"content-length", str(len(TERMINATING_CHUNK)).encode()),
        Header(b"transfer-encoding", b"chunked"),
    )


def _header_injection(separator: bytes) -> Callable[[RequestParams], RequestParams]:
    def build(params: RequestParams) -> RequestParams:
        return params.with_headers(Header(CANARY_HEADER, b"1" + separator + CANARY_HEADER + b"-injected: " + PROBE_BODY))

    return build


def _duplicate_authority(params: RequestParams) -> RequestParams:
    return _with_pseudo(params, Header.of(":authority", CANARY_HOST))


def _duplicate_path(params: RequestParams) -> RequestParams:
    return _with_pseudo(params, Header.of(":path", CANARY_PATH))


def _missing_scheme(params: RequestParams) -> RequestParams:
    return _with_pseudo(params, skip=b":scheme")


def _empty_header_name(params: RequestParams) -> RequestParams:
    return params.with_headers(Header(b"", b"1\r\n\r\n" + SMUGGLED_REQUEST))


def _oversized_header_name(params: RequestParams) -> RequestParams:
    # Large enough that even Huffman-coded it spans several frames.
    return params.with_headers(Header(CANARY_HEADER + b"-" + b"a" * 32768, b"1"))


def _control_char_value(params: RequestParams) -> RequestParams:
    return params.with_headers(Header(CANARY_HEADER, b"1\x00\x0b\x7f\r\n\r\n" + SMUGGLED_REQUEST))


def _cl_zero_tunnel(params: RequestParams) -> RequestParams:
    return params.evolve(method="POST", body=SMUGGLED_REQUEST).with_headers(Header(b"content-length", b"0"))


def default_templates() -> list[ProbeTemplate]:
    templates = [framing_template(field, placement) for field in FRAMING_FIELDS for placement in PLACEMENTS]
    cl_short, cl_long = str(len(PROBE_BODY)), str(len(PROBE_BODY) + HANG_EXTRA)
    injected = reflected((CANARY_HEADER + b"-injected", PROBE_BODY))
    templates += [
        ProbeTemplate(
            name="cl-duplicate",
            description="two conflicting content-length fields",
            signature="both content-length lines reach the backend verbatim",
            build=_cl_duplicate,
            rule=reflected(("content-length", cl_short), ("content-length", cl_long)),
        ),
        ProbeTemplate(
            name="te-cl-conflict",
            description="content-length together with transfer-encoding: chunked",
            signature="both framing lines reach the backend verbatim",
            build=_te_cl_conflict,
            rule=reflected(("content-length", str(len(TERMINATING_CHUNK))), ("transfer-encoding", "chunked")),
        ),
        ProbeTemplate(
            name="header-crlf-injection",
            description="CRLF inside a header value",
            signature="the injected header appears as its own line at the backend",
            build=_header_injection(b"\r\n"),
            rule=injected,
        ),
        ProbeTemplate(
            name="header-lf-injection",
            description="bare LF inside a header value",
            signature="the injected header appears as its own line at the backend",
            build=_header_injection(b"\n"),
            rule=injected,
        ),
        ProbeTemplate(
            name="duplicate-authority",
            description="second :authority carrying a canary host",
            signature="canary host reflected as Host, or status diverges from baseline",
            build=_duplicate_authority,
            rule=any_of(reflected(("host", CANARY_HOST)), status_divergence),
        ),
        ProbeTemplate(
            name="duplicate-path",
            description="second :path carrying a canary path",
            signature="status diverges from baseline",
            build=_duplicate_path,
            rule=status_divergence,
        ),
        ProbeTemplate(
            name="missing-scheme",
            description="request without :scheme",
            signature="status diverges from baseline",
            build=_missing_scheme,
            rule=status_divergence,
        ),
        ProbeTemplate(
            name="empty-header-name",
            description="zero-length header name whose value carries a pipelined request",
            signature="an extra HTTP/1.x response in the body",
            build=_empty_header_name,
            rule=smuggled_response,
        ),
        ProbeTemplate(
            name="oversized-header-name",
            description="header name spanning several CONTINUATION frames",
            signature="an extra HTTP/1.x response in the body",
            build=_oversized_header_name,
            rule=smuggled_response,
        ),
        ProbeTemplate(
            name="control-char-value",
            description="NUL/VT/DEL and CRLF in a header value carrying a pipelined request",
            signature="an extra HTTP/1.x response in the body",
            build=_control_char_value,
            rule=smuggled_response,
        ),
        ProbeTemplate(
            name="cl-zero-tunnel",
            description="content-length: 0 with a complete request as the body",
            signature="an extra HTTP/1.x response in the body",
            build=_cl_zero_tunnel,
            rule=smuggled_response,
        ),
    ]
    return templates


__all__ = [
    "CANARY",
    "CANARY_HOST",
    "CANARY_PATH",
    "FRAMING_FIELDS",
    "PLACEMENTS",
    "SMUGGLED_REQUEST",
    "default_templates",
    "framing_template",
]
