# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Programmatic entry points and a small facade over them."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import TextIO

from .config import ScanSettings, load_settings
from .errors import H2SmuggleError, InputError
from .http.executor import execute
from .http.models import Header, RequestParams
from .models.report import TargetReport
from .probes import DEFAULT_REGISTRY, ProbeTemplate
from .scan.classifier import Classifier
from .scan.report import ResultSink
from .scan.scanner import TargetScanner
from .scan.targets import normalize_targets


def do_request(
    params: RequestParams,
    *,
    settings: ScanSettings | None = None,
) -> tuple[list[Header], bytes, H2SmuggleError | None]:
    """
    Run one exchange and flatten it to (headers, body, error).

    On error the headers/body are whatever had been received before the
    failure, possibly nothing.
    """
    try:
        response = execute(params, settings=settings)
    except H2SmuggleError as exc:
        partial = getattr(exc, "partial", None)
        if partial is None:
            return [], b"", exc
        return list(partial.headers), partial.body, exc
    return list(response.headers), response.body, None


def detect_multiple_targets(
    targets: Iterable[str],
    override_addr: str | None = None,
    concurrency: int | None = None,
    timeout: float | None = None,
    verbose: bool = True,
    *,
    stream: TextIO | None = None,
    sink: ResultSink | None = None,
    templates: Iterable[ProbeTemplate] | None = None,
    settings: ScanSettings | None = None,
) -> list[TargetReport]:
    """
    Classify every target with bounded concurrency.

    Reports are written to `stream` (stdout by default) as each target
    finishes, unless an explicit `sink` is given. Raises InputError when no
    targets remain after normalisation; per-target network failures only
    ever show up in the returned reports.
    """
    pending = normalize_targets(targets)
    if not pending:
        raise InputError("no targets to scan")
    settings = settings or load_settings()
    classifier = Classifier(templates, settings=settings)
    if sink is None:
        sink = ResultSink(verbose=verbose, stream=sys.stdout if stream is None else stream)
    if concurrency is None:
        concurrency = settings.concurrency
    scanner = TargetScanner(classifier, concurrency=concurrency, sink=sink)
    return scanner.scan(pending, override_addr=override_addr, timeout=timeout)


class H2Smuggle:
    """Convenience wrapper holding settings and a technique selection across calls."""

    def __init__(self, settings: ScanSettings | None = None, *, techniques: Iterable[str] | None = None):
        self.settings = settings or load_settings()
        registry = DEFAULT_REGISTRY.select(techniques) if techniques is not None else DEFAULT_REGISTRY
        self.templates = list(registry)
        self.classifier = Classifier(self.templates, settings=self.settings)

    def request(self, params: RequestParams) -> tuple[list[Header], bytes, H2SmuggleError | None]:
        return do_request(params, settings=self.settings)

    def classify(self, target: str, *, override_addr: str | None = None, timeout: float | None = None) -> TargetReport:
        return self.classifier.classify(target, override_addr=override_addr, timeout=timeout)

    def detect(
        self,
        targets: Iterable[str],
        *,
        override_addr: str | None = None,
        concurrency: int | None = None,
        timeout: float | None = None,
        verbose: bool = True,
        stream: TextIO | None = None,
    ) -> list[TargetReport]:
        return detect_multiple_targets(
            targets,
            override_addr,
            concurrency,
            timeout,
            verbose,
            stream=stream,
            templates=self.templates,
            settings=self.settings,
        )


__all__ = ["H2Smuggle", "detect_multiple_targets", "do_request"]
