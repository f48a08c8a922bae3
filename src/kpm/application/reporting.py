from __future__ import annotations

import threading
from typing import TextIO

from kpm.domain.diagnostics import Diagnostic, Location, Severity


class Reporter:
    """Progress lines for a run plus the diagnostics attached to its result.

    A ``None`` writer drops every progress line.
    """

    def __init__(self, writer: TextIO | None) -> None:
        self.writer = writer
        self.diagnostics: list[Diagnostic] = []
        self._lock = threading.Lock()

    def info(self, message: str) -> None:
        if self.writer is None:
            return
        with self._lock:
            self.writer.write(message + "\n")
            self.writer.flush()

    def note(
        self,
        code: str,
        rule: str,
        message: str,
        *,
        severity: Severity = Severity.INFO,
        location: Location | None = None,
    ) -> None:
        with self._lock:
            self.diagnostics.append(
                Diagnostic(code=code, rule=rule, severity=severity, message=message, location=location)
            )
