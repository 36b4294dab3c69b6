# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import itertools

import pytest

from h2smuggle.http.headers import PSEUDO_HEADER_ORDER, assemble_headers, build_pseudo_headers
from h2smuggle.http.models import Header, RequestParams
from h2smuggle.http.url import parse_target

EXPLICIT = [
    Header(b"x-b", b"2"),
    Header(b":path", b"/other"),
    Header(b"Content-Length", b"5"),
    Header(b"x-a", b"1"),
    Header(b"x-a", b"1"),
]


@pytest.mark.parametrize("count", [0, 1, 3, 5])
def test_pseudo_headers_come_first_in_canonical_order(count):
    for ordering in itertools.permutations(EXPLICIT[:count]):
        params = RequestParams(target="https://example.com:8443/p?q=1", method="PUT", headers=ordering)
        assembled = assemble_headers(params)

        assert tuple(h.name for h in assembled[:4]) == PSEUDO_HEADER_ORDER
        assert [h.value for h in assembled[:4]] == [b"PUT", b"https", b"example.com:8443", b"/p?q=1"]
        assert assembled[4:] == list(ordering)


def test_explicit_duplicate_pseudo_header_is_kept():
    params = RequestParams(target="http://example.com/", headers=[Header(b":authority", b"evil.example")])
    assembled = assemble_headers(params)
    assert [h.value for h in assembled if h.name == b":authority"] == [b"example.com", b"evil.example"]


@pytest.mark.parametrize(
    "headers",
    [
        [],
        [Header(b"x", b"1"), Header(b"x", b"1"), Header(b"X", b"2")],
        [Header(b"", b""), Header(b"bad\r\nname", b"\x00\x7f"), Header(b":method", b"GET")],
        [Header(b":path", b"/"), Header(b":path", b"/admin")],
    ],
)
def test_disabled_injection_passes_list_through(headers):
    params = RequestParams(target="https://example.com/", headers=headers, disable_auto_headers=True)
    assert assemble_headers(params) == headers


def test_build_pseudo_headers_overrides():
    target = parse_target("https://example.com/")
    headers = build_pseudo_headers("GET", target, path=b"/x y", authority="other")
    assert headers[2] == Header(b":authority", b"other")
    assert headers[3] == Header(b":path", b"/x y")
