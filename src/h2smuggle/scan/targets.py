# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Target list helpers."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from ..errors import InputError


def normalize_targets(lines: Iterable[str]) -> list[str]:
    """Strip whitespace and drop blank lines; order and duplicates are kept."""
    return [text for text in (str(line).strip() for line in lines) if text]


def read_targets_file(path: str | Path) -> list[str]:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise InputError(f"cannot read targets file {path}: {exc}") from exc
    targets = normalize_targets(text.splitlines())
    if not targets:
        raise InputError(f"targets file {path} lists no targets")
    return targets


__all__ = ["normalize_targets", "read_targets_file"]
