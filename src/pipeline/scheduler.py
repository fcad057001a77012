"""Periodic buffer sweep on a background scheduler."""

from typing import Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from observability import log_run_summary

from .orchestrator import SweepResult, TaskPipeline

logger = structlog.get_logger()

SWEEP_JOB_ID = "buffer_sweep"


class SweepScheduler:
    """Runs TaskPipeline.sweep every interval; never two at once."""

    def __init__(
        self,
        pipeline: TaskPipeline,
        interval_seconds: int = 60,
        on_error: Optional[Callable] = None,
    ):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self.on_error = on_error
        self.scheduler = BackgroundScheduler()

    def run_now(self) -> SweepResult | None:
        result = self.pipeline.sweep()
        if result is not None:
            log_run_summary()
        return result

    def _default_error_handler(self, event):
        logger.error(
            "job_error",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )
        if self.on_error:
            try:
                self.on_error(event)
            except Exception as e:
                logger.error("on_error_callback_failed", error=str(e))

    def start(self):
        self.scheduler.add_job(
            self.run_now,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.add_listener(self._default_error_handler, EVENT_JOB_ERROR)
        self.scheduler.start()
        logger.info("sweep.scheduled", interval_seconds=self.interval_seconds)

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()

    @property
    def running(self) -> bool:
        return self.scheduler.running
