"""Runner — in-process worker pool for report jobs plus the recovery scan.

Two ways work arrives:
  1. enqueue(): fast path from the Stripe webhook. Non-blocking; a full queue
     raises QueueFullError and the report waits for the next recovery scan.
  2. Recovery scan: once at startup and every poll_interval, re-enqueues
     draft/processing reports created within recovery_window. This is what
     makes the pipeline survive restarts; the queue is only a fast path.

Each report is retried up to max_retries times, every attempt bounded by
job_timeout, with 2s, 4s, 8s ... backoff between attempts. Exhausting the
attempts marks the report failed (terminal). Shutdown cancels workers,
including in-flight attempts and backoff sleeps; such reports stay
draft/processing for the next process to recover.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol, runtime_checkable

import structlog

from riskmapper.core.config import Settings
from riskmapper.core.exceptions import QueueFullError
from riskmapper.store import Store
from riskmapper.worker.job import ReportJob

logger = structlog.get_logger(__name__)


@runtime_checkable
class Enqueuer(Protocol):
    """Narrow hand-off used by the webhook route."""

    def enqueue(self, report_id: uuid.UUID) -> None:
        ...


@dataclass
class RunnerConfig:
    workers: int = 3
    poll_interval: float = 30.0  # seconds between recovery scans
    job_timeout: float = 300.0  # per attempt
    max_retries: int = 3
    recovery_window: timedelta = timedelta(days=1)
    mark_failed_timeout: float = 10.0
    backoff_base: float = 1.0  # attempt n waits backoff_base * 2**n

    def __post_init__(self) -> None:
        defaults = RunnerConfig.__dataclass_fields__
        for name in ("workers", "poll_interval", "job_timeout", "max_retries", "mark_failed_timeout"):
            if getattr(self, name) <= 0:
                setattr(self, name, defaults[name].default)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RunnerConfig":
        return cls(
            workers=settings.worker_count,
            poll_interval=settings.poll_interval_seconds,
            job_timeout=settings.job_timeout_seconds,
            max_retries=settings.max_retries,
            recovery_window=timedelta(hours=settings.recovery_window_hours),
            mark_failed_timeout=settings.mark_failed_timeout_seconds,
        )

    @property
    def queue_size(self) -> int:
        return self.workers * 2


class Runner:
    def __init__(self, job: ReportJob, store: Store, config: RunnerConfig | None = None):
        self.job = job
        self.store = store
        self.config = config or RunnerConfig()
        self._queue: asyncio.Queue[uuid.UUID] = asyncio.Queue(maxsize=self.config.queue_size)
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        # Queued or in flight; a report is never held twice
        self._tracked: set[uuid.UUID] = set()

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    # ── Public API ──────────────────────────────────────────────────

    def enqueue(self, report_id: uuid.UUID) -> None:
        """Hand a report to the pool without blocking.

        Raises:
            QueueFullError: the queue is at capacity; the recovery scan will pick it up.
        """
        if self._offer(report_id):
            logger.info("report_enqueued", report_id=str(report_id), queue_depth=self._queue.qsize())

    async def start(self) -> None:
        """Run the worker pool and recovery scan until stop() or cancellation.

        Returns only after every worker task has exited.
        """
        if self._tasks:
            raise RuntimeError("Runner already started")

        self._stop.clear()
        logger.info(
            "runner_starting",
            workers=self.config.workers,
            poll_interval=self.config.poll_interval,
            job_timeout=self.config.job_timeout,
            max_retries=self.config.max_retries,
        )

        self._tasks = [
            asyncio.create_task(self._work(worker_id), name=f"report-worker-{worker_id}")
            for worker_id in range(self.config.workers)
        ]
        self._tasks.append(asyncio.create_task(self._poll(), name="report-recovery-scan"))

        try:
            await self._stop.wait()
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
            logger.info("runner_stopped", abandoned=len(self._tracked))
            self._tracked.clear()
            while not self._queue.empty():
                self._queue.get_nowait()

    def stop(self) -> None:
        """Signal shutdown. Await the start() task to wait for workers to exit."""
        self._stop.set()

    async def recover_once(self) -> int:
        """Re-enqueue pending reports not already held. Returns how many were enqueued."""
        try:
            reports = await self.store.list_pending_reports(self.config.recovery_window)
        except Exception as e:
            logger.error("recovery_scan_failed", error=str(e), error_type=type(e).__name__)
            return 0

        enqueued = 0
        for report in reports:
            try:
                if self._offer(report.id):
                    enqueued += 1
            except QueueFullError:
                logger.info("recovery_scan_queue_full", enqueued=enqueued, pending=len(reports))
                break

        if enqueued:
            logger.info("recovery_scan_enqueued", enqueued=enqueued, pending=len(reports))
        return enqueued

    # ── Internals ───────────────────────────────────────────────────

    def _offer(self, report_id: uuid.UUID) -> bool:
        """Queue the id unless already held. False means it was already held."""
        if report_id in self._tracked:
            logger.debug("report_already_tracked", report_id=str(report_id))
            return False
        try:
            self._queue.put_nowait(report_id)
        except asyncio.QueueFull as exc:
            raise QueueFullError(report_id) from exc
        self._tracked.add(report_id)
        return True

    async def _poll(self) -> None:
        while True:
            await self.recover_once()
            await asyncio.sleep(self.config.poll_interval)

    async def _work(self, worker_id: int) -> None:
        log = logger.bind(worker_id=worker_id)
        log.info("worker_started")
        try:
            while True:
                report_id = await self._queue.get()
                try:
                    await self._run_with_retry(report_id, log)
                finally:
                    self._tracked.discard(report_id)
                    self._queue.task_done()
        except asyncio.CancelledError:
            log.info("worker_stopping")
            raise

    async def _run_with_retry(self, report_id: uuid.UUID, log) -> None:
        log = log.bind(report_id=str(report_id))
        max_retries = self.config.max_retries
        reason = ""

        for attempt in range(1, max_retries + 1):
            try:
                await asyncio.wait_for(self.job.run(report_id), timeout=self.config.job_timeout)
            except TimeoutError:
                reason = f"job attempt timed out after {self.config.job_timeout}s"
                log.warning("job_attempt_timed_out", attempt=attempt, max_retries=max_retries)
            except Exception as e:
                reason = str(e) or type(e).__name__
                log.warning(
                    "job_attempt_failed",
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                log.info("job_completed", attempt=attempt)
                return

            if attempt < max_retries:
                # Cancellable: shutdown interrupts the wait immediately
                await asyncio.sleep(self.config.backoff_base * 2**attempt)

        log.error("job_permanently_failed", attempts=max_retries, error=reason)
        await self._mark_failed(report_id, reason, log)

    async def _mark_failed(self, report_id: uuid.UUID, reason: str, log) -> None:
        """Best-effort terminal write, bounded by mark_failed_timeout and allowed to finish during shutdown."""
        write = asyncio.ensure_future(
            asyncio.wait_for(
                self.store.mark_report_failed(report_id, reason),
                timeout=self.config.mark_failed_timeout,
            )
        )
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            log.warning("shutdown_during_mark_failed")
            try:
                await write
            except Exception as e:
                log.error("mark_report_failed_error", error=str(e), error_type=type(e).__name__)
            raise
        except Exception as e:
            log.error("mark_report_failed_error", error=str(e), error_type=type(e).__name__)
