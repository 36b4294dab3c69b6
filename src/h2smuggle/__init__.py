# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""h2smuggle: HTTP/2 frame-level request smuggling detection."""

from .config import ScanSettings, load_settings
from .errors import ErrorCategory, H2SmuggleError
from .http.models import Header, RequestParams, Response
from .models.report import ProbeResult, TargetReport, Verdict
from .runtime import H2Smuggle, detect_multiple_targets, do_request
from .version import __version__

__all__ = [
    "ErrorCategory",
    "H2Smuggle",
    "H2SmuggleError",
    "Header",
    "ProbeResult",
    "RequestParams",
    "Response",
    "ScanSettings",
    "TargetReport",
    "Verdict",
    "__version__",
    "detect_multiple_targets",
    "do_request",
    "load_settings",
]
