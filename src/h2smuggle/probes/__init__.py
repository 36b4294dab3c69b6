# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe suite: templates, comparison rules and the default registry."""

from .registry import BASELINE, DEFAULT_REGISTRY, ProbeRegistry
from .types import Evidence, Outcome, ProbeTemplate

__all__ = ["BASELINE", "DEFAULT_REGISTRY", "Evidence", "Outcome", "ProbeRegistry", "ProbeTemplate"]
