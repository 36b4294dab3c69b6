# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Result sink and per-target text blocks."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable
from typing import TextIO

from ..models.report import TargetReport, Verdict


def format_target_report(report: TargetReport, *, verbose: bool = True) -> str:
    """One self-contained block for a target; quiet mode lists only vulnerable techniques."""
    header = f"{report.target}: {report.verdict.value}"
    if report.baseline_status is not None:
        header += f" (baseline {report.baseline_status})"
    lines = [header]
    if report.error:
        lines.append(f"  error: {report.error}")
    for result in report.results:
        if not verbose and result.verdict != Verdict.VULNERABLE:
            continue
        line = f"  {result.technique}: {result.verdict.value}"
        if result.detail:
            line += f" - {result.detail}"
        lines.append(line)
    return "\n".join(lines) + "\n"


class ResultSink:
    """
    Collects reports from concurrent workers.

    Appending and writing happen under one lock so a target's block is never
    interleaved with another's.
    """

    def __init__(
        self,
        *,
        verbose: bool = True,
        stream: TextIO | None = None,
        formatter: Callable[..., str] = format_target_report,
    ):
        self.verbose = verbose
        self.stream = stream
        self.formatter = formatter
        self.reports: list[TargetReport] = []
        self._lock = threading.Lock()

    def emit(self, report: TargetReport) -> None:
        with self._lock:
            self.reports.append(report)
            if self.stream is None:
                return
            if self.verbose or report.verdict == Verdict.VULNERABLE:
                self.stream.write(self.formatter(report, verbose=self.verbose))
                self.stream.flush()

    @classmethod
    def to_stdout(cls, *, verbose: bool = True) -> ResultSink:
        return cls(verbose=verbose, stream=sys.stdout)


__all__ = ["ResultSink", "format_target_report"]
