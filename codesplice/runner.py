"""Job lifecycle: admission, backend call, timeout race, extraction, apply.

    pending -> running -> succeeded | no_change | parse_failed | backend_error
                          | empty_output | timed_out | cancelled

Every terminal transition goes through `_finish`, which clears the
indicator, deregisters the job and finalizes its log entry in one
synchronous step, then emits exactly one notification. A second
finalization (late backend completion after a timeout or a cancel) is a
no-op.
"""

import asyncio
import os
import time
from typing import Any, Callable, Dict, List, Optional

from . import config
from .applier import EditApplier
from .backends.base import BackendResult, BackendTransport
from .errors import NONZERO_EXIT, BackendError
from .extractor import ExtractResult, extract, is_no_change
from .job_log import JobLog, get_job_log
from .notify import (
    NoticeLevel,
    Notifier,
    NullIndicator,
    ProgressIndicator,
    StderrNotifier,
    level_for,
)
from .registry import Job, JobStatus, Selection, SelectionRegistry
from .utils import dbg, dbg_dump, shorten

Extractor = Callable[[str, str], ExtractResult]


class JobRunner:
    def __init__(
        self,
        backend: BackendTransport,
        registry: SelectionRegistry,
        applier: EditApplier,
        job_log: Optional[JobLog] = None,
        notifier: Optional[Notifier] = None,
        indicator: Optional[ProgressIndicator] = None,
        timeout: float = config.JOB_TIMEOUT,
        extractor: Extractor = extract,
    ):
        self.backend = backend
        self.registry = registry
        self.applier = applier
        self.job_log = job_log if job_log is not None else get_job_log()
        self.notifier = notifier if notifier is not None else StderrNotifier()
        self.indicator = indicator if indicator is not None else NullIndicator()
        self.timeout = float(timeout)
        self.extractor = extractor
        self._tasks: Dict[int, "asyncio.Task[None]"] = {}
        self._waiters: Dict[int, "asyncio.Future[JobStatus]"] = {}

    # ---- submission ---------------------------------------------------

    def submit(self, selection: Selection, prompt_text: str, mode_label: str = "custom") -> Job:
        """Admit a job and schedule it on the running loop.

        Raises SubmissionRejected when the range overlaps an active job on the
        same document; in that case nothing is registered or logged.
        """
        loop = asyncio.get_running_loop()
        job = Job(
            id=self.job_log.next_id(),
            document_id=selection.document_id,
            current_start_line=selection.start_line,
            current_end_line=selection.end_line,
            mode_label=mode_label or "custom",
        )
        self.registry.admit(job)
        self.job_log.start(
            job.id,
            job.mode_label,
            job.document_id,
            (job.current_start_line, job.current_end_line),
            prompt_text,
        )
        self.indicator.show(job.id, job.document_id, job.current_start_line, job.current_end_line)
        self._waiters[job.id] = loop.create_future()
        task = loop.create_task(self._drive(job, selection, prompt_text))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, jid=job.id: self._tasks.pop(jid, None))
        dbg(
            f"runner: submitted #{job.id} [{job.mode_label}] "
            f"{job.document_id}:{job.current_start_line}-{job.current_end_line} "
            f"backend={getattr(self.backend, 'name', '?')}"
        )
        dbg_dump(f"runner: prompt #{job.id}", prompt_text)
        return job

    # ---- driving ------------------------------------------------------

    async def _drive(self, job: Job, selection: Selection, prompt_text: str) -> None:
        try:
            try:
                handle = await self.backend.start(prompt_text)
            except BackendError as e:
                self._finish(job, JobStatus.BACKEND_ERROR, error=str(e))
                return
            if job.status.terminal:
                self._terminate(handle)
                return
            job.backend_handle = handle
            job.status = JobStatus.RUNNING
            self.job_log.mark_running(job.id)

            try:
                result = await asyncio.wait_for(
                    self.backend.wait(handle, self.timeout), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                result = BackendResult.timeout()
            except BackendError as e:
                self._finish(job, JobStatus.BACKEND_ERROR, error=str(e))
                return

            if job.status.terminal:
                dbg(f"runner: #{job.id} late completion ignored ({job.status.value})")
                return
            if result.timed_out:
                self._terminate(handle)
                self._finish(job, JobStatus.TIMED_OUT, error=f"timed out after {self.timeout:g}s")
                return
            self._complete(job, selection, result)
        except asyncio.CancelledError:
            if not job.status.terminal:
                self._finish(job, JobStatus.CANCELLED, error="cancelled")
            raise
        except Exception as e:
            dbg(f"runner: #{job.id} failed unexpectedly: {type(e).__name__}: {e}")
            self._finish(job, JobStatus.BACKEND_ERROR, error=f"{type(e).__name__}: {e}")

    def _complete(self, job: Job, selection: Selection, result: BackendResult) -> None:
        # Everything from here to _finish is synchronous: extract, apply and
        # sibling shift land as one step on the loop.
        raw = result.stdout_text()
        dbg_dump(f"runner: raw response #{job.id}", raw)

        if result.exit_code != 0:
            detail = result.stderr_text().strip() or raw.strip() or f"exit code {result.exit_code}"
            self._finish(
                job,
                JobStatus.BACKEND_ERROR,
                raw=raw,
                error=str(BackendError(NONZERO_EXIT, f"exit {result.exit_code}: {detail}")),
            )
            return
        if not result.stdout:
            self._finish(job, JobStatus.EMPTY_OUTPUT, error="backend returned no output")
            return

        outcome = self.extractor(raw, selection.original_text)
        if not outcome.ok:
            self._finish(
                job,
                JobStatus.PARSE_FAILED,
                raw=raw,
                error=f"{outcome.reason}: {outcome.describe()}",
            )
            return
        if is_no_change(selection.original_text, outcome.code):
            self._finish(job, JobStatus.NO_CHANGE, raw=raw, parsed=outcome.code)
            return

        try:
            applied = self.applier.apply(
                job.document_id,
                job.current_start_line,
                job.current_end_line,
                outcome.code,
                job_id=job.id,
            )
        except Exception as e:
            self._finish(
                job,
                JobStatus.BACKEND_ERROR,
                raw=raw,
                parsed=outcome.code,
                error=f"apply failed: {type(e).__name__}: {e}",
            )
            return
        self._finish(job, JobStatus.SUCCEEDED, raw=raw, parsed=outcome.code, applied=applied)

    def _terminate(self, handle: Any) -> None:
        try:
            self.backend.terminate(handle)
        except Exception as e:
            dbg(f"runner: terminate failed: {type(e).__name__}: {e}")

    # ---- finalization -------------------------------------------------

    def _finish(
        self,
        job: Job,
        status: JobStatus,
        raw: str = "",
        parsed: Optional[str] = None,
        error: Optional[str] = None,
        applied: Optional[int] = None,
    ) -> bool:
        if job.status.terminal:
            return False
        job.status = status
        self.indicator.clear(job.id)
        self.registry.deregister(job.id)
        self.job_log.finish(job.id, status, raw_response=raw, parsed_code=parsed, error_message=error)

        remaining = len(self.registry.jobs_for(job.document_id))
        self.notifier.notify(self._message(job, status, error, applied, remaining), level_for(status))
        dbg(f"runner: #{job.id} -> {status.value}" + (f" ({shorten(error)})" if error else ""))

        waiter = self._waiters.pop(job.id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(status)
        return True

    @staticmethod
    def _message(
        job: Job,
        status: JobStatus,
        error: Optional[str],
        applied: Optional[int],
        remaining: int,
    ) -> str:
        where = f"{os.path.basename(job.document_id) or job.document_id}:{job.current_start_line}"
        head = f"#{job.id} [{job.mode_label}] {where}"
        if status == JobStatus.SUCCEEDED:
            msg = f"{head}: applied {applied} line{'s' if applied != 1 else ''}"
        elif status == JobStatus.NO_CHANGE:
            msg = f"{head}: no changes needed"
        elif status == JobStatus.PARSE_FAILED:
            msg = f"{head}: response rejected ({error}); raw output kept in the job log"
        elif status == JobStatus.BACKEND_ERROR:
            msg = f"{head}: backend error: {shorten(error or '', 200)}"
        elif status == JobStatus.EMPTY_OUTPUT:
            msg = f"{head}: backend returned no output"
        elif status == JobStatus.TIMED_OUT:
            msg = f"{head}: {error or 'timed out'}"
        else:
            msg = f"{head}: cancelled"
        if remaining:
            msg += f" ({remaining} job{'s' if remaining != 1 else ''} still running in this document)"
        return msg

    # ---- cancellation -------------------------------------------------

    def cancel(self, job_id: int) -> bool:
        job = self.registry.get(job_id)
        if job is None or job.status.terminal:
            return False
        if job.backend_handle is not None:
            self._terminate(job.backend_handle)
        self._finish(job, JobStatus.CANCELLED, error="cancelled by user")
        task = self._tasks.get(job_id)
        if task is not None and not task.done():
            task.cancel()
        return True

    def cancel_nearest(self, document_id: str, cursor_line: int) -> Optional[int]:
        """Cancel the job closest to the cursor (0 if the cursor is inside it)."""
        jobs = self.registry.jobs_for(document_id)
        if not jobs:
            return None
        nearest = min(jobs, key=lambda j: (j.distance_to(cursor_line), j.id))
        return nearest.id if self.cancel(nearest.id) else None

    def cancel_all(self) -> int:
        return sum(1 for job in self.registry.active() if self.cancel(job.id))

    # ---- waiting / status ---------------------------------------------

    async def wait(self, job_id: int) -> Optional[JobStatus]:
        waiter = self._waiters.get(job_id)
        if waiter is not None:
            return await asyncio.shield(waiter)
        entry = self.job_log.get(job_id)
        return entry.status if entry is not None else None

    async def wait_idle(self) -> None:
        while self._tasks or self._waiters:
            pending: List[Any] = list(self._tasks.values()) + list(self._waiters.values())
            await asyncio.gather(*pending, return_exceptions=True)

    def status_lines(self) -> List[str]:
        now = time.time()
        lines = []
        for job in self.registry.active():
            name = os.path.basename(job.document_id) or job.document_id
            lines.append(
                f"#{job.id} [{job.mode_label}] {name}:{job.current_start_line}-"
                f"{job.current_end_line} {job.status.value} {now - job.started_at:.0f}s"
            )
        return lines

    def notify(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> None:
        self.notifier.notify(message, level)
