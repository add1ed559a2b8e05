"""In-process registry of clone jobs and their buffered event logs."""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from .cloner import clone_page
from .config import CloneConfig
from .events import CloneEvent, EventListener, EventSink
from .models import CloneResult

logger = logging.getLogger("page_cloner")

JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
JOB_CANCELLED = "cancelled"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_job_id(prefix: str = "job") -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"{prefix}_{time.time_ns() // 1_000_000}_{suffix}"


@dataclass
class CloneJob:
    """State of one clone request."""

    id: str
    url: str
    status: str = JOB_RUNNING
    result: Optional[CloneResult] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    events: List[CloneEvent] = field(default_factory=list)
    subscribers: List[EventListener] = field(default_factory=list)
    task: Optional["asyncio.Task[CloneResult]"] = None

    @property
    def finished(self) -> bool:
        return self.status != JOB_RUNNING

    def record(self, event: CloneEvent) -> None:
        self.events.append(event)
        for subscriber in list(self.subscribers):
            try:
                subscriber(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Subscriber failed for job %s", self.id)

    def summary(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "created_at": self.created_at,
            "error": self.error,
            "result": self.result.to_dict() if self.result else None,
        }


class JobManager:
    """Runs clone pipelines as asyncio tasks, one event log per job."""

    def __init__(
        self,
        config: Optional[CloneConfig] = None,
        runner: Callable[..., Awaitable[CloneResult]] = clone_page,
    ) -> None:
        self.config = config or CloneConfig()
        self._runner = runner
        self._jobs: Dict[str, CloneJob] = {}

    def start(self, url: str, config: Optional[CloneConfig] = None) -> CloneJob:
        """Schedule a clone on the running event loop and return its job."""
        job = CloneJob(id=generate_job_id(), url=url)
        self._jobs[job.id] = job
        sink = EventSink(listener=job.record, job_id=job.id)
        job.task = asyncio.create_task(self._run(job, sink, config or self.config))
        job.task.add_done_callback(lambda task: self._settle(job, task))
        logger.info("Started job %s for %s", job.id, url)
        return job

    @staticmethod
    def _settle(job: CloneJob, task: "asyncio.Task[CloneResult]") -> None:
        # A task cancelled before its first step never reaches _run's handlers.
        if task.cancelled() and job.status == JOB_RUNNING:
            job.status = JOB_CANCELLED
            job.error = "cancelled"

    async def _run(self, job: CloneJob, sink: EventSink, config: CloneConfig) -> CloneResult:
        try:
            result = await self._runner(job.url, config, sink)
        except asyncio.CancelledError:
            job.status = JOB_CANCELLED
            job.error = "cancelled"
            raise
        except Exception as exc:  # pylint: disable=broad-except
            job.status = JOB_FAILED
            job.error = str(exc) or exc.__class__.__name__
            logger.error("Job %s failed: %s", job.id, job.error)
            raise
        job.result = result
        job.status = JOB_COMPLETED
        return result

    def get(self, job_id: str) -> CloneJob:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise KeyError(f"Unknown job: {job_id}") from None

    def events(self, job_id: str, since: int = 0) -> List[CloneEvent]:
        return self.get(job_id).events[max(0, since):]

    def subscribe(self, job_id: str, listener: EventListener) -> None:
        """Replay the job's buffered events to ``listener``, then stream new ones."""
        job = self.get(job_id)
        for event in list(job.events):
            listener(event)
        job.subscribers.append(listener)

    def unsubscribe(self, job_id: str, listener: EventListener) -> None:
        job = self.get(job_id)
        if listener in job.subscribers:
            job.subscribers.remove(listener)

    async def wait(self, job_id: str) -> CloneJob:
        """Wait until the job finishes; failures are reported on the job, not raised."""
        job = self.get(job_id)
        if job.task is not None:
            await asyncio.gather(job.task, return_exceptions=True)
        return job

    def cancel(self, job_id: str) -> bool:
        job = self.get(job_id)
        if job.task is None or job.task.done():
            return False
        return job.task.cancel()

    def list(self) -> List[Dict[str, object]]:
        """Job summaries, newest first."""
        jobs = sorted(self._jobs.values(), key=lambda job: job.created_at, reverse=True)
        return [job.summary() for job in jobs]
