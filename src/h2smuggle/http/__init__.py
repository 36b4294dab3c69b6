# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP/2 engine: connection, frame transport, header assembly, execution."""

from .connection import ConnectionPlan, open_connection, plan_connection
from .executor import execute
from .headers import assemble_headers, build_pseudo_headers
from .models import Header, RequestParams, Response, make_headers
from .url import TargetURL, parse_target

__all__ = [
    "ConnectionPlan",
    "Header",
    "RequestParams",
    "Response",
    "TargetURL",
    "assemble_headers",
    "build_pseudo_headers",
    "execute",
    "make_headers",
    "open_connection",
    "parse_target",
    "plan_connection",
]
