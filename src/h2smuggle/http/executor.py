# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""One full request/response exchange on a fresh connection."""

from __future__ import annotations

import logging

from ..config import ScanSettings, load_settings
from ..errors import ExchangeError
from ..utils.deadline import Deadline
from .connection import open_connection, plan_connection
from .headers import assemble_headers
from .models import RequestParams, Response
from .transport import FrameTransport
from .url import parse_target

logger = logging.getLogger(__name__)


def execute(params: RequestParams, *, settings: ScanSettings | None = None) -> Response:
    """
    Connect, send `params` exactly as assembled, and read the whole response.

    Any well-formed receipt is returned, whatever its status. Exchange-level
    failures raise an ExchangeError subclass; bad params raise
    ConfigurationError before any network I/O. The connection is always
    closed before returning.
    """
    settings = settings or load_settings()
    target = parse_target(params.target)
    plan = plan_connection(target, params.override_addr)
    headers = assemble_headers(params, target)
    deadline = Deadline(params.timeout if params.timeout is not None else settings.timeout)

    logger.debug(
        "Exchange %s %s via %s (%d headers, %d body bytes)",
        params.method,
        target,
        plan.dial_address,
        len(headers),
        len(params.body),
    )
    connection = open_connection(plan, deadline, verify_ssl=settings.verify_ssl)
    try:
        response = FrameTransport(connection, deadline, settings=settings).exchange(headers, params.body)
    except ExchangeError as exc:
        logger.debug("Exchange with %s failed after %.2fs: %s", target, deadline.elapsed(), exc)
        raise
    finally:
        connection.close()
    logger.debug("Exchange with %s returned status %s in %.2fs", target, response.status, response.elapsed)
    return response


__all__ = ["execute"]
