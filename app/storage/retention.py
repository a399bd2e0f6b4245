"""Time-based retention for job records, uploads and composed outputs."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from app.errors import StorageError
from app.jobs.models import JobStatus, utcnow
from app.jobs.store import JobStore
from app.log import get_logger
from app.storage.media_store import MediaStore, remove_file

logger = get_logger("storage.retention")


@dataclass
class SweepReport:
    jobs_reaped: int = 0
    inputs_released: int = 0
    files_removed: int = 0
    errors: int = 0


class RetentionManager:
    """Recurring sweep, independent of any single job's lifecycle.

    1. Reap job records (and completed outputs) older than the window,
       measured from completed_at / failed_at, or created_at while processing.
    2. Delete the inputs of completed jobs once the cleanup delay has passed.
    3. Delete any upload/output file whose mtime is older than the window,
       referenced or not.

    Every deletion is best-effort; one failing file never aborts the sweep.
    """

    def __init__(
        self,
        store: JobStore,
        upload_store: MediaStore,
        output_store: MediaStore,
        retention_window: timedelta,
        input_cleanup_delay: timedelta,
        interval_seconds: float = 3600,
    ):
        self._store = store
        self._upload_store = upload_store
        self._output_store = output_store
        self._window = retention_window
        self._input_delay = input_cleanup_delay
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or utcnow()
        report = SweepReport()

        def expired(j) -> bool:
            return now - j.reference_time > self._window

        for job in self._store.list():
            if expired(job):
                # Re-checked under the store lock: the job may have finished since list()
                reaped = self._store.delete_if(job.id, expired)
                if reaped is None:
                    continue
                report.jobs_reaped += 1
                if reaped.status == JobStatus.COMPLETED:
                    self._remove(reaped.output_path, report)
                logger.info(
                    f"Reaped job {reaped.id} ({reaped.status.value})",
                    extra={"reaped_job_id": reaped.id},
                )
                continue

            if (
                job.status == JobStatus.COMPLETED
                and not job.inputs_released
                and now - job.completed_at >= self._input_delay
            ):
                self._remove_all((job.input_a_path, job.input_b_path), report)
                if self._store.update(job.id, lambda j: j.release_inputs()) is not None:
                    report.inputs_released += 1
                logger.info(f"Cleaned up input files for job {job.id}")

        cutoff = (now - self._window).timestamp()
        for media_store in (self._upload_store, self._output_store):
            self._remove_all(media_store.iter_expired(cutoff), report)

        if report.jobs_reaped or report.files_removed or report.errors:
            logger.info(
                "Retention sweep finished",
                extra={
                    "jobs_reaped": report.jobs_reaped,
                    "inputs_released": report.inputs_released,
                    "files_removed": report.files_removed,
                    "errors": report.errors,
                },
            )
        return report

    def _remove_all(self, paths: Iterable[str], report: SweepReport) -> None:
        for path in paths:
            self._remove(path, report)

    def _remove(self, path: str, report: SweepReport) -> None:
        try:
            if remove_file(path):
                report.files_removed += 1
        except StorageError as e:
            report.errors += 1
            logger.warning(f"Cleanup error: {e}", extra={"path": e.path})

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _sweep_loop(self) -> None:
        """Sweep immediately, then every interval. File I/O runs off the event loop."""
        loop = asyncio.get_running_loop()
        while self._running:
            try:
                await loop.run_in_executor(None, self.sweep)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Retention sweep failed")
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
