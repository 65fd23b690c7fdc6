"""
Portal Check Audit - per-object consistency and fixity pipeline.

For every object with a catalog:
1. Index the catalog (identifier + File Entities)
2. Resolve each File Entity against the inventory (local check)
3. Optionally fetch head-resolved files from the portal
4. Optionally verify the fetched bytes against the manifest

Local checks and remote fetches run on separate pools; the fetch pool is
kept small so the portal is not flooded. Objects share no state, so a
failure in one is reported and the rest of the scan carries on.
"""

import logging
import tempfile
import time
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ThreadPoolExecutor,
    as_completed,
    wait,
)
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from catalog import index_catalog
from config import AuditConfig
from consistency import FileCheck, check_entities
from fetch import RemoteFetcher
from inventory import Inventory
from report import (
    Reporter,
    CollectingReporter,
    MultiReporter,
    Finding,
    OBJECT_FAILED,
    OBJECT_LOADED,
    REMOTE_FETCH_FAILURE,
    FETCH_COMPLETE,
    FETCH_SKIPPED,
    FILE_RESOLVED,
    FIXITY_OK,
    IDENTIFIER_NOT_FOUND,
    CATALOG_NOT_FOUND,
    CATALOG_UNPARSABLE,
    INVENTORY_UNREADABLE,
    FILE_UNRESOLVED,
    FILE_DRIFT_DETECTED,
    FIXITY_MISMATCH,
    MANIFEST_CORRELATION_FAILURE,
)
from repository import CatalogRecord, OcflRepository, iter_catalog_records
from utils import format_bytes
from verify import FixityResult, FixityValidator

logger = logging.getLogger(__name__)


# Records held in memory per check worker before the walk pauses
IN_FLIGHT_PER_WORKER = 2

# Summary rows, in report order
SUMMARY_KINDS = (
    OBJECT_LOADED,
    FILE_RESOLVED,
    FETCH_COMPLETE,
    FETCH_SKIPPED,
    FIXITY_OK,
    IDENTIFIER_NOT_FOUND,
    CATALOG_NOT_FOUND,
    CATALOG_UNPARSABLE,
    INVENTORY_UNREADABLE,
    FILE_UNRESOLVED,
    FILE_DRIFT_DETECTED,
    REMOTE_FETCH_FAILURE,
    FIXITY_MISMATCH,
    MANIFEST_CORRELATION_FAILURE,
    OBJECT_FAILED,
)


@dataclass(frozen=True)
class FetchJob:
    """A head-resolved file queued for remote fetch."""

    object_path: str
    identifier: str
    inventory: Inventory
    check: FileCheck

    @property
    def physical_path(self) -> str:
        return self.check.outcome.physical_path


class AuditSummary:
    """Counts of every finding kind produced by a run."""

    def __init__(self, collector: CollectingReporter, duration: float, repo_root: str):
        self.counts: Dict[str, int] = collector.counts()
        self.errors: List[Finding] = collector.errors()
        self.duration = duration
        self.repo_root = repo_root
        self.generated_at = datetime.now().isoformat(timespec="seconds")

    def count(self, kind: str) -> int:
        return self.counts.get(kind, 0)

    def passed(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict:
        return {
            "repo_root": self.repo_root,
            "status": "PASS" if self.passed() else "FAIL",
            "duration_seconds": round(self.duration, 3),
            "counts": dict(self.counts),
            "generated_at": self.generated_at,
        }

    def format_report(self, verbose: bool = True) -> str:
        """Format the end-of-run summary."""
        lines = []
        lines.append("=" * 70)
        lines.append("  PORTAL CHECK SUMMARY")
        lines.append("=" * 70)
        lines.append(f"  Repository: {self.repo_root}")
        lines.append(f"  Duration:   {self.duration:.2f}s")
        lines.append("")

        for kind in SUMMARY_KINDS:
            value = self.count(kind)
            if value or verbose:
                lines.append(f"  {kind:<30} {value:>8,}")

        lines.append("")
        if self.passed():
            lines.append("  ✓ AUDIT PASSED")
        else:
            lines.append(f"  ✗ AUDIT FAILED ({len(self.errors)} problem(s))")
            for finding in self.errors[:10]:
                lines.append(f"    - {finding.format_line()}")
            if len(self.errors) > 10:
                lines.append(f"    ... and {len(self.errors) - 10} more")

        lines.append("=" * 70)
        return "\n".join(lines)


class PortalAudit:
    """Runs the consistency (and optionally fetch + fixity) audit over a repository."""

    def __init__(
        self,
        config: AuditConfig,
        reporter: Reporter,
        fetcher: Optional[RemoteFetcher] = None,
        validator: Optional[FixityValidator] = None,
    ):
        """
        Args:
            config: Run settings
            reporter: Sink for findings (a collector is attached for the summary)
            fetcher: Remote fetcher to use; built from config.portal_url if None
            validator: Fixity validator; built around the reporter if None

        Raises:
            RepositoryNotInitializedError: If config.repo_root is not a storage root
        """
        self.config = config
        self.repo = OcflRepository(config.repo_root)

        self.collector = CollectingReporter()
        self.reporter = MultiReporter([reporter, self.collector])

        self._owns_fetcher = False
        self._temp_scratch: Optional[Path] = None
        self.fetcher = fetcher
        if self.fetcher is None and config.portal_url:
            if config.scratch_dir:
                scratch = Path(config.scratch_dir)
            else:
                scratch = self._temp_scratch = Path(
                    tempfile.mkdtemp(prefix="portal-check-")
                )
            self.fetcher = RemoteFetcher(
                config.portal_url,
                scratch,
                timeout=config.timeout,
                chunk_size=config.chunk_size,
                keep_partial=config.keep_partial,
            )
            self._owns_fetcher = True

        self.validator = validator or FixityValidator(self.reporter)

    def check_record(self, record: CatalogRecord) -> List[FetchJob]:
        """Local pass for one object; returns the files to fetch, if any."""
        identifier, entities = index_catalog(
            record.crate, self.config.namespace, record.path, self.reporter
        )
        checks = check_entities(record.path, record.inventory, entities, self.reporter)

        if self.fetcher is None:
            return []

        jobs = []
        for check in checks:
            if not check.at_head:
                continue

            physical_path = check.outcome.physical_path
            if not self.config.should_fetch(physical_path):
                self.reporter.report(
                    Finding(
                        FETCH_SKIPPED,
                        record.path,
                        f"{physical_path} does not match fetch filter",
                        file_id=check.entity.identifier,
                    )
                )
                continue

            jobs.append(FetchJob(record.path, identifier, record.inventory, check))

        return jobs

    def fetch_and_verify(self, job: FetchJob) -> Optional[FixityResult]:
        """Fetch one file and, if configured, check its fixity."""
        entity = job.check.entity

        def on_progress(bytes_done: int, total: Optional[int]) -> None:
            self.reporter.progress(job.object_path, entity.identifier, bytes_done, total)

        result = self.fetcher.fetch(
            job.identifier, entity.logical_path, progress_callback=on_progress
        )

        if not result.success:
            self.reporter.report(
                Finding(
                    REMOTE_FETCH_FAILURE,
                    job.object_path,
                    result.error,
                    file_id=entity.identifier,
                    detail={
                        "url": result.url,
                        "partial_file": str(result.path) if result.path else None,
                        "bytes_written": result.bytes_written,
                    },
                )
            )
            return None

        self.reporter.report(
            Finding(
                FETCH_COMPLETE,
                job.object_path,
                f"{result.url} ({format_bytes(result.bytes_written)})",
                file_id=entity.identifier,
            )
        )

        try:
            if self.config.fixity:
                return self.validator.verify(
                    job.inventory,
                    job.physical_path,
                    result.path,
                    job.object_path,
                    file_id=entity.identifier,
                )
            return None
        finally:
            if not self.config.keep_downloads:
                result.path.unlink(missing_ok=True)

    def _handle_check(
        self,
        future: Future,
        object_path: str,
        fetch_pool: ThreadPoolExecutor,
        fetches: Dict[Future, FetchJob],
    ) -> None:
        try:
            jobs = future.result()
        except Exception as e:
            logger.exception("check failed for %s", object_path)
            self.reporter.report(
                Finding(OBJECT_FAILED, object_path, f"Check failed: {e}")
            )
            return

        for job in jobs:
            fetches[fetch_pool.submit(self.fetch_and_verify, job)] = job

    def _handle_fetch(self, future: Future, job: FetchJob) -> None:
        try:
            future.result()
        except Exception as e:
            logger.exception("fetch/verify failed for %s", job.object_path)
            self.reporter.report(
                Finding(
                    OBJECT_FAILED,
                    job.object_path,
                    f"Fetch/verify failed: {e}",
                    file_id=job.check.entity.identifier,
                )
            )

    def _reap_fetches(self, fetches: Dict[Future, FetchJob]) -> None:
        for future in [f for f in fetches if f.done()]:
            self._handle_fetch(future, fetches.pop(future))

    def _cleanup_scratch(self) -> None:
        """Remove the temporary scratch directory unless it holds kept files."""
        if self._temp_scratch is None or not self._temp_scratch.is_dir():
            return
        if any(self._temp_scratch.iterdir()):
            logger.warning("Downloaded files kept in %s", self._temp_scratch)
            return
        self._temp_scratch.rmdir()

    def run(self) -> AuditSummary:
        """
        Audit every object in the repository.

        Records are checked as the walk produces them. Once the check pool
        has IN_FLIGHT_PER_WORKER records per worker queued, the walk waits
        for one to finish, so each record is released after its check and
        fetches start before the walk is over.
        """
        start_time = time.time()
        window = self.config.check_workers * IN_FLIGHT_PER_WORKER

        try:
            with ThreadPoolExecutor(
                max_workers=self.config.check_workers
            ) as check_pool, ThreadPoolExecutor(
                max_workers=self.config.fetch_workers
            ) as fetch_pool:
                # future -> object path; the record itself is not retained
                checks: Dict[Future, str] = {}
                fetches: Dict[Future, FetchJob] = {}

                for record in iter_catalog_records(
                    self.repo, self.reporter, self.config.catalogs
                ):
                    checks[check_pool.submit(self.check_record, record)] = record.path
                    del record

                    if len(checks) >= window:
                        done, _ = wait(checks, return_when=FIRST_COMPLETED)
                        for future in done:
                            self._handle_check(
                                future, checks.pop(future), fetch_pool, fetches
                            )
                        self._reap_fetches(fetches)

                for future in as_completed(list(checks)):
                    self._handle_check(future, checks.pop(future), fetch_pool, fetches)

                for future in as_completed(list(fetches)):
                    self._handle_fetch(future, fetches.pop(future))
        finally:
            if self._owns_fetcher:
                self.fetcher.close()
            self._cleanup_scratch()

        return AuditSummary(
            self.collector, time.time() - start_time, str(self.config.repo_root)
        )
