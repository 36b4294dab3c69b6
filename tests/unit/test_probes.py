# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest

from h2smuggle.errors import ConfigurationError, ExchangeTimeout, StreamReset
from h2smuggle.http.frames import encode_headers, header_block_frames
from h2smuggle.http.headers import assemble_headers
from h2smuggle.http.models import Header, RequestParams, Response, make_headers
from h2smuggle.models.report import Verdict
from h2smuggle.probes import BASELINE, DEFAULT_REGISTRY, Evidence, Outcome, ProbeRegistry, ProbeTemplate
from h2smuggle.probes.rules import any_of, hang_on_framing, reflected, smuggled_response, status_divergence
from h2smuggle.probes.techniques import CANARY_HOST, FRAMING_FIELDS, PLACEMENTS, framing_template


def ok(status=200, body=b""):
    return Outcome(response=Response(headers=make_headers([(":status", str(status))]), body=body))


TIMEOUT = Outcome(error=ExchangeTimeout("timed out after 1s"))
RESET = Outcome(error=StreamReset("reset", error_code=1))
BASE = RequestParams(target="https://example.com/app", headers=[Header(b"user-agent", b"test")])


# Rules


def test_hang_on_framing_needs_a_completing_control():
    assert hang_on_framing(Evidence(ok(), TIMEOUT, ok(200)))[0] == Verdict.VULNERABLE
    assert hang_on_framing(Evidence(ok(), ok(400)))[0] == Verdict.NOT_VULNERABLE
    assert hang_on_framing(Evidence(ok(), TIMEOUT, TIMEOUT))[0] == Verdict.INCONCLUSIVE
    assert hang_on_framing(Evidence(ok(), TIMEOUT))[0] == Verdict.INCONCLUSIVE
    assert hang_on_framing(Evidence(ok(), RESET))[0] == Verdict.INCONCLUSIVE


def test_reflected_requires_every_line_only_in_probe():
    rule = reflected(("content-length", "9"), ("content-length", "17"))
    probe_body = b":method: POST\ncontent-length: 9\r\nContent-Length:17\n"
    verdict, detail = rule(Evidence(ok(body=b"user-agent: x\n"), ok(body=probe_body)))
    assert verdict == Verdict.VULNERABLE
    assert "content-length: 17" in detail

    assert rule(Evidence(ok(), ok(body=b"content-length: 9\n")))[0] == Verdict.NOT_VULNERABLE
    assert rule(Evidence(ok(body=b"content-length: 17\n"), ok(body=probe_body)))[0] == Verdict.NOT_VULNERABLE
    # Substrings of other lines do not count.
    assert rule(Evidence(ok(), ok(body=b"x-content-length: 9\ncontent-length: 170\n")))[0] == Verdict.NOT_VULNERABLE


def test_timeouts_alone_are_never_vulnerable_outside_framing_rule():
    evidence = Evidence(ok(), TIMEOUT)
    for rule in (reflected(("a", "b")), smuggled_response, status_divergence):
        assert rule(evidence)[0] == Verdict.INCONCLUSIVE


def test_smuggled_response_counts_extra_status_lines():
    baseline = ok(body=b"HTTP/1.1 200 OK\n")
    assert smuggled_response(Evidence(baseline, ok(body=b"HTTP/1.1 200 OK\nHTTP/1.0 404 Not Found\n")))[0] == Verdict.VULNERABLE
    assert smuggled_response(Evidence(baseline, ok(body=b"HTTP/1.1 200 OK\n")))[0] == Verdict.NOT_VULNERABLE


@pytest.mark.parametrize(
    "probe_status, expected",
    [
        (200, Verdict.NOT_VULNERABLE),
        (400, Verdict.NOT_VULNERABLE),
        (431, Verdict.NOT_VULNERABLE),
        (502, Verdict.INCONCLUSIVE),
        (404, Verdict.VULNERABLE),
        (302, Verdict.VULNERABLE),
    ],
)
def test_status_divergence(probe_status, expected):
    assert status_divergence(Evidence(ok(200), ok(probe_status)))[0] == expected


def test_any_of_prefers_vulnerable_then_inconclusive():
    def vulnerable(evidence):
        return Verdict.VULNERABLE, "v"

    def clean(evidence):
        return Verdict.NOT_VULNERABLE, "n"

    def unsure(evidence):
        return Verdict.INCONCLUSIVE, "i"

    evidence = Evidence(ok(), ok())
    assert any_of(clean, vulnerable)(evidence) == (Verdict.VULNERABLE, "v")
    assert any_of(clean, unsure)(evidence) == (Verdict.INCONCLUSIVE, "i")
    assert any_of(clean, clean)(evidence) == (Verdict.NOT_VULNERABLE, "n")


# Registry


def test_default_registry_contents():
    names = DEFAULT_REGISTRY.names()
    assert len(names) == len(set(names)) == len(FRAMING_FIELDS) * len(PLACEMENTS) + 11
    for name in ("cl-plain", "te-path-crlf", "cl-duplicate", "duplicate-authority", "cl-zero-tunnel"):
        assert name in DEFAULT_REGISTRY
    assert "baseline" not in DEFAULT_REGISTRY
    for template in DEFAULT_REGISTRY:
        assert template.description and template.signature


def test_registry_register_and_select():
    registry = ProbeRegistry()
    template = ProbeTemplate("custom", "d", "s", build=lambda p: p, rule=status_divergence)
    registry.register(template)
    with pytest.raises(ValueError):
        registry.register(template)
    registry.register(template, replace=True)
    assert len(registry) == 1

    selected = DEFAULT_REGISTRY.select(["cl-duplicate", "cl-plain"])
    assert selected.names() == ["cl-plain", "cl-duplicate"]
    with pytest.raises(ConfigurationError, match="nope"):
        DEFAULT_REGISTRY.select(["nope"])


# Techniques


def test_baseline_is_conformant():
    params = BASELINE.build(BASE)
    assert params.method == "GET"
    assert params.body == b""
    assert not params.disable_auto_headers
    assert Header(b"accept", b"*/*") in params.headers


def test_framing_templates_declare_more_than_they_send():
    template = framing_template("cl", "plain")
    probe = template.build(BASE)
    control = template.control(BASE)
    declared = int(probe.headers[-1].value)
    assert probe.headers[-1].name == b"content-length"
    assert declared > len(probe.body)
    assert int(control.headers[-1].value) == len(control.body)
    assert probe.method == control.method == "POST"

    te = framing_template("te", "plain")
    assert not te.build(BASE).body.endswith(b"0\r\n\r\n")
    assert te.control(BASE).body == b"0\r\n\r\n"


@pytest.mark.parametrize(
    "placement, expected_name",
    [
        ("uppercase", b"Content-Length"),
        ("name-space", b"content-length "),
    ],
)
def test_framing_placements_shape_the_name(placement, expected_name):
    probe = framing_template("cl", placement).build(BASE)
    assert probe.headers[-1].name == expected_name


def test_crlf_placements_smuggle_the_field_inside_other_fields():
    value_crlf = framing_template("cl", "value-crlf").build(BASE)
    assert b"\r\ncontent-length: " in value_crlf.headers[-1].value

    path_crlf = framing_template("te", "path-crlf").build(BASE)
    assert path_crlf.disable_auto_headers
    path = [h.value for h in path_crlf.headers if h.name == b":path"]
    assert len(path) == 1
    assert path[0].startswith(b"/app HTTP/1.1\r\ntransfer-encoding: chunked\r\n")


def test_duplicate_pseudo_header_techniques():
    authority = DEFAULT_REGISTRY.get("duplicate-authority").build(BASE)
    wire = assemble_headers(authority)
    assert [h.value for h in wire if h.name == b":authority"] == [b"example.com", CANARY_HOST.encode()]
    assert [h.name for h in wire[:5]] == [b":method", b":scheme", b":authority", b":path", b":authority"]

    missing = assemble_headers(DEFAULT_REGISTRY.get("missing-scheme").build(BASE))
    assert b":scheme" not in [h.name for h in missing]


def test_oversized_header_name_needs_continuation():
    params = DEFAULT_REGISTRY.get("oversized-header-name").build(BASE)
    block = encode_headers(assemble_headers(params))
    assert len(header_block_frames(block, stream_id=1)) > 1


def test_cl_duplicate_carries_two_conflicting_lengths():
    params = DEFAULT_REGISTRY.get("cl-duplicate").build(BASE)
    lengths = [h.value for h in params.headers if h.name == b"content-length"]
    assert len(lengths) == 2 and lengths[0] != lengths[1]
    assert int(lengths[0]) == len(params.body)
