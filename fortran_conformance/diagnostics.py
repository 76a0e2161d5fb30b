# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Diagnostic records and the thread-safe aggregator they are collected in.
"""

import threading
from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List

ERROR = "error"
WARNING = "warning"
SEVERITIES = (ERROR, WARNING)

PARTIAL_SUFFIX = " (partial scan)"


@dataclass(frozen=True)
class Diagnostic:
    """A single finding against a single location in a file."""

    rule: str
    severity: str
    file: str
    line: int
    column: int
    message: str
    partial: bool = False

    @property
    def sort_key(self):
        return (self.file, self.line, self.column, self.rule)

    @property
    def dedupe_key(self):
        return (self.rule, self.file, self.line, self.column, self.message)

    @property
    def is_blocking(self) -> bool:
        return self.severity == ERROR

    def as_partial(self) -> "Diagnostic":
        if self.partial:
            return self
        return replace(self, partial=True,
                       message=self.message + PARTIAL_SUFFIX)

    def with_severity(self, severity: str) -> "Diagnostic":
        if severity == self.severity:
            return self
        return replace(self, severity=severity)

    def format(self) -> str:
        return (f"{self.file}:{self.line}:{self.column}: "
                f"{self.severity} [{self.rule}] {self.message}")

    def record(self) -> Dict:
        return {
            "rule": self.rule,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
            "message": self.message,
            "partial": self.partial,
        }


class DiagnosticAggregator:
    """
    Collects diagnostics from any number of worker threads. Inserts are
    serialized by a lock; duplicates (same rule, file, position and
    message) are dropped. Reads always come back in a fixed order, so the
    output of a run doesn't depend on the order files finished in.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._diagnostics: Dict[tuple, Diagnostic] = {}

    def add(self, diagnostic: Diagnostic) -> bool:
        """Add one diagnostic. Returns False if it was a duplicate."""
        with self._lock:
            key = diagnostic.dedupe_key
            if key in self._diagnostics:
                return False
            self._diagnostics[key] = diagnostic
            return True

    def extend(self, diagnostics: Iterable[Diagnostic]) -> int:
        """Add several diagnostics under one lock; returns how many were
        new."""
        added = 0
        with self._lock:
            for diagnostic in diagnostics:
                key = diagnostic.dedupe_key
                if key not in self._diagnostics:
                    self._diagnostics[key] = diagnostic
                    added += 1
        return added

    def __len__(self):
        with self._lock:
            return len(self._diagnostics)

    def diagnostics(self) -> List[Diagnostic]:
        with self._lock:
            found = list(self._diagnostics.values())
        return sorted(found, key=lambda d: d.sort_key)

    def count_by_severity(self) -> Dict[str, int]:
        counts = Counter(d.severity for d in self.diagnostics())
        return {severity: counts.get(severity, 0) for severity in SEVERITIES}

    def count_by_rule(self) -> Dict[str, int]:
        return dict(sorted(Counter(d.rule for d in self.diagnostics())
                           .items()))

    def by_file(self) -> Dict[str, List[Diagnostic]]:
        grouped: Dict[str, List[Diagnostic]] = {}
        for diagnostic in self.diagnostics():
            grouped.setdefault(diagnostic.file, []).append(diagnostic)
        return grouped

    @property
    def has_blocking_errors(self) -> bool:
        return any(d.is_blocking for d in self.diagnostics())

    def records(self) -> List[Dict]:
        return [d.record() for d in self.diagnostics()]
