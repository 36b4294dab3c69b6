# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""A single timeout budget shared by every blocking step of one exchange."""

from __future__ import annotations

import time
from collections.abc import Callable

from ..errors import ConfigurationError, ExchangeTimeout


class Deadline:
    """
    Absolute expiry computed once from a relative timeout.

    Every socket operation asks for `remaining()` right before blocking, so
    resolution, connect, handshake, send and receive all draw from the same
    budget.
    """

    def __init__(self, timeout: float, *, clock: Callable[[], float] = time.monotonic):
        if timeout is None or timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout!r}")
        self.timeout = float(timeout)
        self._clock = clock
        self.started_at = clock()
        self.expires_at = self.started_at + self.timeout

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def remaining(self) -> float:
        """Seconds left; raises ExchangeTimeout once the budget is spent."""
        left = self.expires_at - self._clock()
        if left <= 0:
            raise ExchangeTimeout(f"timed out after {self.timeout:g}s")
        return left


__all__ = ["Deadline"]
