# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Per-target classification: baseline first, then every technique against it."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from enum import Enum

from ..config import ScanSettings, load_settings
from ..errors import H2SmuggleError
from ..http.executor import execute
from ..http.models import Header, RequestParams, Response
from ..models.report import ProbeResult, TargetReport, Verdict, overall_verdict
from ..probes import BASELINE, DEFAULT_REGISTRY, Evidence, Outcome, ProbeTemplate

logger = logging.getLogger(__name__)

Executor = Callable[..., Response]


class ClassifierState(str, Enum):
    IDLE = "IDLE"
    BASELINE_SENT = "BASELINE_SENT"
    BASELINE_OK = "BASELINE_OK"
    BASELINE_FAILED = "BASELINE_FAILED"
    TECHNIQUE_SENT = "TECHNIQUE_SENT"
    TECHNIQUE_RESULT = "TECHNIQUE_RESULT"


TRANSITIONS: dict[ClassifierState, frozenset[ClassifierState]] = {
    ClassifierState.IDLE: frozenset({ClassifierState.BASELINE_SENT}),
    ClassifierState.BASELINE_SENT: frozenset({ClassifierState.BASELINE_OK, ClassifierState.BASELINE_FAILED}),
    ClassifierState.BASELINE_OK: frozenset({ClassifierState.TECHNIQUE_SENT}),
    ClassifierState.BASELINE_FAILED: frozenset(),
    ClassifierState.TECHNIQUE_SENT: frozenset({ClassifierState.TECHNIQUE_RESULT}),
    ClassifierState.TECHNIQUE_RESULT: frozenset({ClassifierState.TECHNIQUE_SENT}),
}


class Classifier:
    """
    Decide a verdict for one target.

    The classifier holds no per-target state, so one instance is shared by
    every scanner worker. `on_transition(target, old, new)` is called on each
    state change.
    """

    def __init__(
        self,
        templates: Iterable[ProbeTemplate] | None = None,
        *,
        executor: Executor | None = None,
        settings: ScanSettings | None = None,
        on_transition: Callable[[str, ClassifierState, ClassifierState], None] | None = None,
    ):
        self.templates = list(templates) if templates is not None else list(DEFAULT_REGISTRY)
        self.executor = executor or execute
        self.settings = settings or load_settings()
        self.on_transition = on_transition

    def base_params(self, target: str, *, override_addr: str | None = None, timeout: float | None = None) -> RequestParams:
        return RequestParams(
            target=target,
            override_addr=override_addr or None,
            headers=(Header.of("user-agent", self.settings.user_agent),),
            timeout=timeout,
        )

    def classify(self, target: str, *, override_addr: str | None = None, timeout: float | None = None) -> TargetReport:
        state = ClassifierState.IDLE
        baseline_params = BASELINE.build(self.base_params(target, override_addr=override_addr, timeout=timeout))

        state = self._advance(target, state, ClassifierState.BASELINE_SENT)
        baseline = self.run(baseline_params)
        if not baseline.ok:
            self._advance(target, state, ClassifierState.BASELINE_FAILED)
            logger.info("Baseline for %s failed: %s", target, baseline.describe())
            return TargetReport(target=target, verdict=Verdict.CONNECTION_ERROR, error=baseline.describe())
        state = self._advance(target, state, ClassifierState.BASELINE_OK)

        results: list[ProbeResult] = []
        for template in self.templates:
            state = self._advance(target, state, ClassifierState.TECHNIQUE_SENT)
            result = self.evaluate(target, template, baseline_params, baseline)
            state = self._advance(target, state, ClassifierState.TECHNIQUE_RESULT)
            logger.debug("%s %s: %s (%s)", target, template.name, result.verdict.value, result.detail)
            results.append(result)

        verdict = overall_verdict(results)
        logger.info("%s overall verdict %s", target, verdict.value)
        return TargetReport(target=target, verdict=verdict, results=results, baseline_status=baseline.status)

    def evaluate(
        self,
        target: str,
        template: ProbeTemplate,
        baseline_params: RequestParams,
        baseline: Outcome,
    ) -> ProbeResult:
        probe = self.run(template.build(baseline_params))
        control = None
        if probe.timed_out and template.control is not None:
            control = self.run(template.control(baseline_params))
        verdict, detail = template.rule(Evidence(baseline=baseline, probe=probe, control=control))
        return ProbeResult(target=target, technique=template.name, verdict=verdict, detail=detail)

    def run(self, params: RequestParams) -> Outcome:
        started = time.monotonic()
        try:
            response = self.executor(params, settings=self.settings)
        except H2SmuggleError as exc:
            return Outcome(error=exc, elapsed=time.monotonic() - started)
        return Outcome(response=response, elapsed=time.monotonic() - started)

    def _advance(self, target: str, state: ClassifierState, new_state: ClassifierState) -> ClassifierState:
        if new_state not in TRANSITIONS[state]:
            raise RuntimeError(f"invalid classifier transition {state.value} -> {new_state.value}")
        logger.debug("%s: %s -> %s", target, state.value, new_state.value)
        if self.on_transition is not None:
            self.on_transition(target, state, new_state)
        return new_state


__all__ = ["Classifier", "ClassifierState", "TRANSITIONS"]
