# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""h2smuggle CLI."""

from __future__ import annotations

import argparse
import codecs
import json
import re
import sys
from pathlib import Path
from typing import TextIO

from ..config import ScanSettings, load_settings
from ..errors import ConfigurationError, H2SmuggleError, InputError, describe_exception
from ..http.models import Header, RequestParams
from ..log import setup_logging
from ..probes import DEFAULT_REGISTRY
from ..runtime import detect_multiple_targets, do_request
from ..scan.report import ResultSink
from ..scan.targets import read_targets_file
from ..version import __version__

_NUMBER = r"(?:\d+(?:\.\d*)?|\.\d+)"
_UNIT = r"(?:ns|us|µs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"^(?:{_NUMBER}|(?:{_NUMBER}{_UNIT})+)$")
_DURATION_PART_RE = re.compile(rf"({_NUMBER})({_UNIT})")
_DURATION_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """Seconds from `10`, `2.5s`, `500ms`, `1m` or a sequence such as `1m30s`."""
    compact = (text or "").strip()
    if not _DURATION_RE.match(compact):
        raise argparse.ArgumentTypeError(f"invalid duration: {text!r}")
    parts = _DURATION_PART_RE.findall(compact)
    seconds = sum(float(value) * _DURATION_UNITS[unit] for value, unit in parts) if parts else float(compact)
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"duration must be positive: {text!r}")
    return seconds


def unquote_arg(text: str) -> bytes:
    """Decode backslash escapes (`\\r`, `\\n`, `\\t`, `\\xNN`); keep the raw text when that fails."""
    raw = text.encode("utf-8", errors="surrogateescape")
    try:
        return codecs.escape_decode(raw)[0]
    except ValueError:
        return raw


def parse_header_arg(text: str) -> Header:
    """
    `name:value`, split at the first colon and otherwise kept verbatim.

    An empty name followed by another colon makes a pseudo-header:
      :path:/admin -> (":path", "/admin")
    """
    name, sep, value = text.partition(":")
    if not sep:
        raise ConfigurationError(f"invalid header: {text!r}")
    if not name and ":" in value:
        name, _, value = value.partition(":")
        name = ":" + name
    return Header(unquote_arg(name), unquote_arg(value))


def read_body_file(path: str) -> bytes:
    try:
        body = Path(path).read_bytes()
    except OSError as exc:
        raise InputError(f"cannot read body file {path}: {exc}") from exc
    if not body:
        raise InputError(f"body file {path} is empty")
    return body


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="h2smuggle", description="HTTP/2 request smuggling probe and detector")
    parser.add_argument("--timeout", type=parse_duration, default=None, help="Timeout for each exchange (e.g. 10s, 500ms)")
    parser.add_argument("--connect-to", dest="connect_to", default=None, help="Dial this host[:port] instead of the target host")
    parser.add_argument("--verify-ssl", action="store_true", help="Verify TLS certificates")
    parser.add_argument("--log-level", default=None, help="Logging level (default from H2SMUGGLE_LOG_LEVEL)")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More log output (-v info, -vv debug)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    request = subparsers.add_parser("request", help="Make one request with custom headers")
    request.add_argument("url", help="Target URL")
    request.add_argument("headers", nargs="*", metavar="HEADER", help="Header as name:value (e.g. 'transfer-encoding : chunked')")
    request.add_argument("--method", default=None, help="Request method (default GET)")
    request.add_argument("--body-str", default=None, help="Send this string as the body (escape sequences like \\r \\n are supported)")
    request.add_argument("--body-file", default=None, help="Read the request body from this file")
    request.add_argument("--no-auto-headers", action="store_true", help="Don't send pseudo-headers automatically")
    request.add_argument("--body-lines", type=int, default=None, help="How many body lines to print (-1 means no limit)")

    detect = subparsers.add_parser("detect", help="Detect whether targets are vulnerable")
    detect.add_argument("urls", nargs="*", metavar="URL", help="Targets to scan")
    detect.add_argument("--targets", default=None, help="Read the target list from this file")
    detect.add_argument("--threads", type=int, default=None, help="Number of worker threads")
    detect.add_argument("--silent", action="store_true", help="Only print vulnerable targets")
    detect.add_argument("--json", action="store_true", help="Print a JSON array of reports when done")
    detect.add_argument("--technique", action="append", default=None, help="Run only this technique (repeatable)")
    detect.add_argument("--list-techniques", action="store_true", help="List available techniques and exit")
    return parser


def print_exchange(
    headers: list[Header],
    body: bytes,
    error: BaseException | None,
    *,
    body_lines: int,
    stream: TextIO | None = None,
) -> None:
    out = stream or sys.stdout
    if error is not None:
        print(f"Error is {describe_exception(error)}", file=out)
    for header in headers:
        print(header, file=out)
    print(file=out)
    lines = body.split(b"\n") if body else []
    if body_lines >= 0:
        lines = lines[:body_lines]
    for line in lines:
        print(line.decode("utf-8", errors="backslashreplace"), file=out)


def run_request(args: argparse.Namespace, settings: ScanSettings) -> int:
    if args.no_auto_headers and args.method not in (None, "GET"):
        raise ConfigurationError("cannot combine --method and --no-auto-headers")
    if args.body_file is not None and args.body_str is not None:
        raise ConfigurationError("both --body-file and --body-str specified")

    body = read_body_file(args.body_file) if args.body_file is not None else unquote_arg(args.body_str or "")
    params = RequestParams(
        target=args.url,
        method=unquote_arg(args.method or "GET"),
        override_addr=args.connect_to,
        headers=tuple(parse_header_arg(item) for item in args.headers),
        disable_auto_headers=args.no_auto_headers,
        body=body,
        timeout=settings.timeout,
    )
    headers, response_body, error = do_request(params, settings=settings)
    if isinstance(error, ConfigurationError):
        raise error
    body_lines = args.body_lines if args.body_lines is not None else settings.body_lines
    print_exchange(headers, response_body, error, body_lines=body_lines)
    return 0


def run_detect(args: argparse.Namespace, settings: ScanSettings) -> int:
    if args.list_techniques:
        for template in DEFAULT_REGISTRY:
            print(f"{template.name}: {template.description}")
        return 0

    targets = list(args.urls)
    if args.targets:
        targets.extend(read_targets_file(args.targets))
    templates = list(DEFAULT_REGISTRY.select(args.technique)) if args.technique else None
    sink = ResultSink(verbose=False, stream=None) if args.json else None

    reports = detect_multiple_targets(
        targets,
        args.connect_to,
        args.threads if args.threads is not None else settings.concurrency,
        settings.timeout,
        not args.silent,
        sink=sink,
        templates=templates,
        settings=settings,
    )
    if args.json:
        json.dump([report.to_dict() for report in reports], sys.stdout, indent=2, sort_keys=True)
        sys.stdout.write("\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, verbose=args.verbose)

    settings = load_settings()
    if args.timeout is not None:
        settings.timeout = args.timeout
    if args.verify_ssl:
        settings.verify_ssl = True

    try:
        if args.command == "request":
            return run_request(args, settings)
        return run_detect(args, settings)
    except H2SmuggleError as exc:
        print(f"Error: {describe_exception(exc)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
