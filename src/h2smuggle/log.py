# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging helpers for h2smuggle."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
PACKAGE_LOGGER = "h2smuggle"


def resolve_log_level(level: str | None = None, verbose: int = 0) -> int:
    """
    Pick the effective level.

    An explicit level name wins, then `-v` (INFO) / `-vv` (DEBUG), then
    H2SMUGGLE_LOG_LEVEL read at call time, then WARNING. Unknown names
    fall back to WARNING.
    """
    if level:
        name = level
    elif verbose >= 2:
        return logging.DEBUG
    elif verbose == 1:
        return logging.INFO
    else:
        name = os.getenv("H2SMUGGLE_LOG_LEVEL", "WARNING")
    value = getattr(logging, name.strip().upper(), None)
    return value if isinstance(value, int) else logging.WARNING


def setup_logging(level: str | None = None, *, verbose: int = 0) -> int:
    """Configure standard logging for CLI/library use and return the level applied to h2smuggle loggers."""
    effective_level = resolve_log_level(level, verbose)
    logging.basicConfig(level=effective_level, format=LOG_FORMAT)
    logging.getLogger(PACKAGE_LOGGER).setLevel(effective_level)
    return effective_level


__all__ = ["resolve_log_level", "setup_logging"]
