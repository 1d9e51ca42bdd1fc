"""Background report generation: the per-report job and the worker pool that runs it."""

from riskmapper.worker.job import ReportJob
from riskmapper.worker.runner import Enqueuer, Runner, RunnerConfig

__all__ = ["Enqueuer", "ReportJob", "Runner", "RunnerConfig"]
