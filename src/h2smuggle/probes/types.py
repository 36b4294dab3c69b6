# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe template and evidence types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ..errors import ExchangeTimeout, H2SmuggleError, describe_exception
from ..http.models import RequestParams, Response
from ..models.report import Verdict

Transform = Callable[[RequestParams], RequestParams]


@dataclass(frozen=True)
class Outcome:
    """One executed exchange: a response or the error that replaced it."""

    response: Response | None = None
    error: H2SmuggleError | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.response is not None and self.error is None

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, ExchangeTimeout)

    @property
    def status(self) -> int | None:
        return self.response.status if self.response is not None else None

    @property
    def body(self) -> bytes:
        return self.response.body if self.response is not None else b""

    def describe(self) -> str:
        if self.error is not None:
            return describe_exception(self.error)
        return f"status {self.status}"


@dataclass(frozen=True)
class Evidence:
    baseline: Outcome
    probe: Outcome
    control: Outcome | None = None


Rule = Callable[[Evidence], "tuple[Verdict, str]"]


@dataclass(frozen=True)
class ProbeTemplate:
    """
    One smuggling technique.

    `build` turns the baseline params into the malformed variant. `control`,
    when present, builds the same malformation with consistent framing; it is
    only sent when the probe itself timed out. `signature` documents the wire
    evidence `rule` looks for.
    """

    name: str
    description: str
    signature: str
    build: Transform
    rule: Rule
    control: Transform | None = None


__all__ = ["Evidence", "Outcome", "ProbeTemplate", "Rule", "Transform"]
