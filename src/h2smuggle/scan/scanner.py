# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Fan targets out over a fixed pool of worker threads."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterable

from ..errors import describe_exception
from ..models.report import TargetReport, Verdict
from .classifier import Classifier
from .report import ResultSink

logger = logging.getLogger(__name__)

_STOP = object()


class TargetScanner:
    """
    Bounded-concurrency scan.

    Targets go onto a queue followed by one stop sentinel per worker. Each
    worker classifies targets until it pulls a sentinel. A failure on one
    target becomes that target's CONNECTION_ERROR report and never stops
    the other workers.
    """

    def __init__(
        self,
        classifier: Classifier | None = None,
        *,
        concurrency: int = 1,
        sink: ResultSink | None = None,
    ):
        self.classifier = classifier or Classifier()
        self.concurrency = max(1, int(concurrency or 1))
        self.sink = sink or ResultSink(verbose=False)

    def scan(
        self,
        targets: Iterable[str],
        *,
        override_addr: str | None = None,
        timeout: float | None = None,
    ) -> list[TargetReport]:
        pending = list(targets)
        if not pending:
            return []
        work: queue.Queue = queue.Queue()
        for target in pending:
            work.put(target)
        worker_count = min(self.concurrency, len(pending))
        for _ in range(worker_count):
            work.put(_STOP)

        logger.info("Scanning %d target(s) with %d worker(s)", len(pending), worker_count)
        threads = [
            threading.Thread(
                target=self._worker,
                args=(work, override_addr, timeout),
                name=f"h2smuggle-worker-{index}",
                daemon=True,
            )
            for index in range(worker_count)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return list(self.sink.reports)

    def _worker(self, work: queue.Queue, override_addr: str | None, timeout: float | None) -> None:
        while True:
            target = work.get()
            try:
                if target is _STOP:
                    return
                self.sink.emit(self.classify_one(target, override_addr=override_addr, timeout=timeout))
            finally:
                work.task_done()

    def classify_one(self, target: str, *, override_addr: str | None = None, timeout: float | None = None) -> TargetReport:
        try:
            return self.classifier.classify(target, override_addr=override_addr, timeout=timeout)
        except Exception as exc:
            logger.warning("Classification of %s failed: %s", target, exc, exc_info=logger.isEnabledFor(logging.DEBUG))
            return TargetReport(target=target, verdict=Verdict.CONNECTION_ERROR, error=describe_exception(exc))


__all__ = ["TargetScanner"]
