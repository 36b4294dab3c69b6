# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Configuration helpers for h2smuggle."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"h2smuggle/{__version__}"
MAX_WINDOW_SIZE = 2**31 - 1


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _positive(value: int, default: int) -> int:
    return value if value > 0 else default


@dataclass
class ScanSettings:
    """Engine and scanner defaults."""

    timeout: float = 10.0
    concurrency: int = 100
    verify_ssl: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    max_body_bytes: int = 16 * 1024 * 1024
    max_header_list_size: int = 1024 * 1024
    initial_window_size: int = 16 * 1024 * 1024
    body_lines: int = 10

    @classmethod
    def from_env(cls) -> "ScanSettings":
        """Create settings from environment variables (evaluated at call time)."""
        timeout = _float_env("H2SMUGGLE_TIMEOUT", cls.timeout)
        if timeout <= 0:
            timeout = cls.timeout
        initial_window_size = _positive(_int_env("H2SMUGGLE_INITIAL_WINDOW_SIZE", cls.initial_window_size), cls.initial_window_size)
        return cls(
            timeout=timeout,
            concurrency=_positive(_int_env("H2SMUGGLE_THREADS", cls.concurrency), cls.concurrency),
            verify_ssl=_bool_env("H2SMUGGLE_VERIFY_SSL", cls.verify_ssl),
            user_agent=os.getenv("H2SMUGGLE_USER_AGENT", cls.user_agent),
            max_body_bytes=_positive(_int_env("H2SMUGGLE_MAX_BODY_BYTES", cls.max_body_bytes), cls.max_body_bytes),
            max_header_list_size=_positive(
                _int_env("H2SMUGGLE_MAX_HEADER_LIST_SIZE", cls.max_header_list_size), cls.max_header_list_size
            ),
            initial_window_size=min(initial_window_size, MAX_WINDOW_SIZE),
            body_lines=_int_env("H2SMUGGLE_BODY_LINES", cls.body_lines),
        )


def load_settings() -> ScanSettings:
    """Load scan settings from environment with sensible defaults."""
    return ScanSettings.from_env()
