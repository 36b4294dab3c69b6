# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Classification and batch scanning."""

from .classifier import Classifier, ClassifierState
from .report import ResultSink, format_target_report
from .scanner import TargetScanner
from .targets import normalize_targets, read_targets_file

__all__ = [
    "Classifier",
    "ClassifierState",
    "ResultSink",
    "TargetScanner",
    "format_target_report",
    "normalize_targets",
    "read_targets_file",
]
