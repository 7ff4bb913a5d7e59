"""Structured, non-printing diagnostics collected during a generation run.

The compiler pipeline never writes to stdout or stderr itself.  Every skip,
rename, or ambiguity is recorded as a :class:`Diagnostic` in a
:class:`DiagnosticCollector`; the CLI renders the collected diagnostics on
stderr through :mod:`specgen.output` once the run finishes (or fails).

Nothing is silently dropped: a named type skipped because its ``$ref``
cannot be resolved, a dependent skipped because of it, and every automatic
rename all leave an entry here.
"""

from __future__ import annotations

import enum
import threading
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict


class Severity(str, enum.Enum):
    """How serious a diagnostic is."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DiagnosticCode(str, enum.Enum):
    """Stable machine-readable identifiers for every diagnostic category."""

    UNKNOWN_DIALECT = "unknown-dialect"
    RESOLUTION_SKIP = "resolution-skip"
    DEPENDENCY_SKIP = "dependency-skip"
    COMPILATION_AMBIGUITY = "compilation-ambiguity"
    IDENTIFIER_COLLISION = "identifier-collision"
    UNSUPPORTED_KEYWORD = "unsupported-keyword"


class Diagnostic(BaseModel):
    """A single reported condition.

    ``location`` is a JSON pointer or ``METHOD /path`` string identifying
    where in the input document the condition was found.
    """

    model_config = ConfigDict(frozen=True)

    code: DiagnosticCode
    severity: Severity
    message: str
    location: Optional[str] = None

    def render(self) -> str:
        """Return a one-line human-readable form (``[code] message (at location)``)."""
        text = f"[{self.code.value}] {self.message}"
        if self.location:
            text += f" (at {self.location})"
        return text


class DiagnosticCollector:
    """Thread-safe, append-only list of diagnostics for one run."""

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []
        self._lock = threading.Lock()

    def report(
        self,
        code: DiagnosticCode,
        message: str,
        *,
        severity: Severity = Severity.WARNING,
        location: Optional[str] = None,
    ) -> Diagnostic:
        diagnostic = Diagnostic(
            code=code, severity=severity, message=message, location=location
        )
        with self._lock:
            self._items.append(diagnostic)
        return diagnostic

    def by_code(self, code: DiagnosticCode) -> list[Diagnostic]:
        return [d for d in self._items if d.code == code]

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self._items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
