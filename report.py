"""
Portal Check Reporting - structured findings and the sinks that render them.

Components never print directly: they build a Finding and hand it to the
Reporter they were given. Every finding kind has its own upper-case tag so
a run's output can be grepped for one failure mode without catching others.
"""

import json
import logging
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional, Iterable

logger = logging.getLogger(__name__)


INFO = "info"
WARNING = "warning"
ERROR = "error"

# Failure kinds
CATALOG_NOT_FOUND = "CATALOG_NOT_FOUND"
CATALOG_UNPARSABLE = "CATALOG_UNPARSABLE"
INVENTORY_UNREADABLE = "INVENTORY_UNREADABLE"
IDENTIFIER_NOT_FOUND = "IDENTIFIER_NOT_FOUND"
FILE_UNRESOLVED = "FILE_UNRESOLVED"
FILE_DRIFT_DETECTED = "FILE_DRIFT_DETECTED"
REMOTE_FETCH_FAILURE = "REMOTE_FETCH_FAILURE"
FIXITY_MISMATCH = "FIXITY_MISMATCH"
MANIFEST_CORRELATION_FAILURE = "MANIFEST_CORRELATION_FAILURE"
OBJECT_FAILED = "OBJECT_FAILED"

# Informational kinds
OBJECT_LOADED = "OBJECT_LOADED"
FILE_RESOLVED = "FILE_RESOLVED"
FETCH_SKIPPED = "FETCH_SKIPPED"
FETCH_COMPLETE = "FETCH_COMPLETE"
FIXITY_OK = "FIXITY_OK"

SEVERITY = {
    CATALOG_NOT_FOUND: ERROR,
    CATALOG_UNPARSABLE: ERROR,
    INVENTORY_UNREADABLE: ERROR,
    IDENTIFIER_NOT_FOUND: WARNING,
    FILE_UNRESOLVED: ERROR,
    FILE_DRIFT_DETECTED: ERROR,
    REMOTE_FETCH_FAILURE: ERROR,
    FIXITY_MISMATCH: ERROR,
    MANIFEST_CORRELATION_FAILURE: ERROR,
    OBJECT_FAILED: ERROR,
    OBJECT_LOADED: INFO,
    FILE_RESOLVED: INFO,
    FETCH_SKIPPED: INFO,
    FETCH_COMPLETE: INFO,
    FIXITY_OK: INFO,
}


@dataclass(frozen=True)
class Finding:
    """One reportable event about an object or one of its files."""

    kind: str
    object_path: str
    message: str
    file_id: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> str:
        return SEVERITY.get(self.kind, ERROR)

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "object": self.object_path,
            "file": self.file_id,
            "message": self.message,
            "detail": self.detail,
        }

    def format_line(self) -> str:
        """Single greppable line: ``[KIND] object[: file] - message``."""
        location = self.object_path
        if self.file_id:
            location = f"{location}: {self.file_id}"
        return f"[{self.kind}] {location} - {self.message}"


class Reporter:
    """
    Observer interface passed into every component.

    Subclasses implement emit(); report() serialises calls so findings from
    worker threads never interleave inside a sink.
    """

    def __init__(self):
        self._lock = threading.Lock()

    def report(self, finding: Finding) -> None:
        with self._lock:
            self.emit(finding)

    def emit(self, finding: Finding) -> None:
        raise NotImplementedError

    def progress(
        self,
        object_path: str,
        file_id: str,
        bytes_done: int,
        total: Optional[int],
    ) -> None:
        """Transfer progress for a remote fetch. Default: ignore."""
        pass

    def close(self) -> None:
        pass


class ConsoleReporter(Reporter):
    """Human-readable sink: info to stdout when verbose, problems to stderr."""

    MARKERS = {INFO: "✓", WARNING: "⚠", ERROR: "✗"}

    def __init__(self, verbose: bool = True, quiet: bool = False, stream=None, err_stream=None):
        super().__init__()
        self.verbose = verbose
        self.quiet = quiet
        self.stream = stream
        self.err_stream = err_stream

    def emit(self, finding: Finding) -> None:
        severity = finding.severity

        if severity == INFO and (self.quiet or not self.verbose):
            return
        if severity == WARNING and self.quiet:
            return

        out = self.stream or sys.stdout
        if severity != INFO:
            out = self.err_stream or sys.stderr

        print(f"  {self.MARKERS[severity]} {finding.format_line()}", file=out)

        if self.verbose and finding.detail and severity != INFO:
            for key, value in finding.detail.items():
                print(f"      {key}: {value}", file=out)

    def progress(self, object_path, file_id, bytes_done, total) -> None:
        if total:
            logger.debug(
                "%s: %s %d/%d bytes (%d%%)",
                object_path,
                file_id,
                bytes_done,
                total,
                100 * bytes_done // total,
            )
        else:
            logger.debug("%s: %s %d bytes", object_path, file_id, bytes_done)


class JsonLinesReporter(Reporter):
    """Machine-readable sink: one JSON object per finding."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.path, "w", encoding="utf-8")

    def emit(self, finding: Finding) -> None:
        self._handle.write(json.dumps(finding.to_dict(), sort_keys=True) + "\n")
        self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if not self._handle.closed:
                self._handle.close()


class CollectingReporter(Reporter):
    """In-memory sink used for the run summary (and by tests)."""

    def __init__(self):
        super().__init__()
        self.findings: List[Finding] = []

    def emit(self, finding: Finding) -> None:
        self.findings.append(finding)

    def of_kind(self, kind: str) -> List[Finding]:
        return [f for f in self.findings if f.kind == kind]

    def errors(self) -> List[Finding]:
        return [f for f in self.findings if f.is_error]

    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for finding in self.findings:
            counts[finding.kind] = counts.get(finding.kind, 0) + 1
        return counts


class MultiReporter(Reporter):
    """Fan a finding out to several sinks."""

    def __init__(self, reporters: Iterable[Reporter]):
        super().__init__()
        self.reporters = list(reporters)

    def report(self, finding: Finding) -> None:
        # Each sink holds its own lock
        for reporter in self.reporters:
            reporter.report(finding)

    def emit(self, finding: Finding) -> None:
        for reporter in self.reporters:
            reporter.emit(finding)

    def progress(self, object_path, file_id, bytes_done, total) -> None:
        for reporter in self.reporters:
            reporter.progress(object_path, file_id, bytes_done, total)

    def close(self) -> None:
        for reporter in self.reporters:
            reporter.close()
