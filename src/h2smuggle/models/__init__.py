# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Dataclass exports for h2smuggle."""

from ..http.models import Header, RequestParams, Response
from .report import ProbeResult, TargetReport, Verdict, overall_verdict

__all__ = [
    "Header",
    "ProbeResult",
    "RequestParams",
    "Response",
    "TargetReport",
    "Verdict",
    "overall_verdict",
]
