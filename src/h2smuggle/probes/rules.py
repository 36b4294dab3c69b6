# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Comparison rules: (baseline, probe[, control]) evidence -> (verdict, detail).

A probe that failed at the transport level is Inconclusive under every rule
except `hang_on_framing`, where a timeout against a completing control is the
signature itself.
"""

from __future__ import annotations

import re

from ..models.report import Verdict
from .types import Evidence, Rule

REJECTION_STATUSES = frozenset({400, 413, 414, 431})
RESPONSE_LINE = re.compile(rb"HTTP/1\.[01] [1-5]\d\d")


def _probe_failed(evidence: Evidence) -> tuple[Verdict, str] | None:
    if evidence.probe.ok:
        return None
    return Verdict.INCONCLUSIVE, f"probe failed: {evidence.probe.describe()}"


def hang_on_framing(evidence: Evidence) -> tuple[Verdict, str]:
    probe = evidence.probe
    if probe.ok:
        return Verdict.NOT_VULNERABLE, f"probe completed with status {probe.status}"
    if not probe.timed_out:
        return Verdict.INCONCLUSIVE, f"probe failed: {probe.describe()}"
    control = evidence.control
    if control is None:
        return Verdict.INCONCLUSIVE, "probe timed out and no control was sent"
    if control.ok:
        return Verdict.VULNERABLE, f"probe timed out while the control completed with status {control.status}"
    return Verdict.INCONCLUSIVE, f"probe timed out and the control failed too: {control.describe()}"


def _text(value: str | bytes) -> str:
    return value.decode("utf-8", errors="backslashreplace") if isinstance(value, bytes) else value


def _line_pattern(name: str | bytes, value: str | bytes) -> re.Pattern[bytes]:
    name = name.encode() if isinstance(name, str) else name
    value = value.encode() if isinstance(value, str) else value
    return re.compile(
        rb"^[ \t]*" + re.escape(name) + rb"[ \t]*:[ \t]*" + re.escape(value) + rb"[ \t]*\r?$",
        re.IGNORECASE | re.MULTILINE,
    )


def reflected(*fields: tuple[str | bytes, str | bytes]) -> Rule:
    """Every `name: value` line shows up on its own line in the probe body and none in the baseline's."""
    patterns = [_line_pattern(name, value) for name, value in fields]
    labels = ", ".join(f"{_text(name)}: {_text(value)}" for name, value in fields)

    def rule(evidence: Evidence) -> tuple[Verdict, str]:
        failed = _probe_failed(evidence)
        if failed:
            return failed
        in_probe = all(pattern.search(evidence.probe.body) for pattern in patterns)
        in_baseline = any(pattern.search(evidence.baseline.body) for pattern in patterns)
        if in_probe and not in_baseline:
            return Verdict.VULNERABLE, f"backend reflected {labels}"
        return Verdict.NOT_VULNERABLE, f"{labels} not reflected"

    return rule


def smuggled_response(evidence: Evidence) -> tuple[Verdict, str]:
    failed = _probe_failed(evidence)
    if failed:
        return failed
    probe_count = len(RESPONSE_LINE.findall(evidence.probe.body))
    baseline_count = len(RESPONSE_LINE.findall(evidence.baseline.body))
    if probe_count > baseline_count:
        return Verdict.VULNERABLE, f"{probe_count} HTTP/1.x response line(s) in body (baseline {baseline_count})"
    return Verdict.NOT_VULNERABLE, "no extra response fragment"


def status_divergence(evidence: Evidence) -> tuple[Verdict, str]:
    failed = _probe_failed(evidence)
    if failed:
        return failed
    baseline_status = evidence.baseline.status
    probe_status = evidence.probe.status
    if probe_status == baseline_status:
        return Verdict.NOT_VULNERABLE, f"status {probe_status} matches baseline"
    if probe_status is None:
        return Verdict.INCONCLUSIVE, "probe response has no status"
    if probe_status in REJECTION_STATUSES:
        return Verdict.NOT_VULNERABLE, f"request rejected with {probe_status}"
    if probe_status >= 500:
        return Verdict.INCONCLUSIVE, f"server error {probe_status} (baseline {baseline_status})"
    return Verdict.VULNERABLE, f"status diverged from {baseline_status} to {probe_status}"


def any_of(*rules: Rule) -> Rule:
    """Vulnerable if any rule says so; NotVulnerable only if all agree."""

    def rule(evidence: Evidence) -> tuple[Verdict, str]:
        results = [inner(evidence) for inner in rules]
        for verdict, detail in results:
            if verdict == Verdict.VULNERABLE:
                return verdict, detail
        for verdict, detail in results:
            if verdict != Verdict.NOT_VULNERABLE:
                return verdict, detail
        return results[0] if results else (Verdict.INCONCLUSIVE, "no rules")

    return rule


__all__ = [
    "REJECTION_STATUSES",
    "any_of",
    "hang_on_framing",
    "reflected",
    "smuggled_response",
    "status_divergence",
]
