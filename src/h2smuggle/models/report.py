# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Dataclasses for per-technique and per-target verdicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Verdict(str, Enum):
    VULNERABLE = "VULNERABLE"
    NOT_VULNERABLE = "NOT_VULNERABLE"
    INCONCLUSIVE = "INCONCLUSIVE"
    CONNECTION_ERROR = "CONNECTION_ERROR"

    @property
    def definitive(self) -> bool:
        return self in {Verdict.VULNERABLE, Verdict.NOT_VULNERABLE}


@dataclass(frozen=True)
class ProbeResult:
    target: str
    technique: str
    verdict: Verdict
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "technique": self.technique,
            "verdict": self.verdict.value,
            "detail": self.detail,
        }


def overall_verdict(results: list[ProbeResult]) -> Verdict:
    """
    Vulnerable if any technique is; NotVulnerable if every technique resolved
    definitively; otherwise Inconclusive. Assumes the baseline succeeded.
    """
    if any(result.verdict == Verdict.VULNERABLE for result in results):
        return Verdict.VULNERABLE
    if all(result.verdict.definitive for result in results):
        return Verdict.NOT_VULNERABLE
    return Verdict.INCONCLUSIVE


@dataclass
class TargetReport:
    """Everything the classifier concluded about one target."""

    target: str
    verdict: Verdict
    results: list[ProbeResult] = field(default_factory=list)
    baseline_status: int | None = None
    error: str | None = None

    @property
    def vulnerable_techniques(self) -> list[str]:
        return [result.technique for result in self.results if result.verdict == Verdict.VULNERABLE]

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "verdict": self.verdict.value,
            "baseline_status": self.baseline_status,
            "error": self.error,
            "vulnerable_techniques": self.vulnerable_techniques,
            "results": [result.to_dict() for result in self.results],
        }


__all__ = ["ProbeResult", "TargetReport", "Verdict", "overall_verdict"]
