"""Typed progress events emitted while a clone runs."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger("page_cloner")

STEPS = ("launch", "navigate", "scroll", "snapshot", "download", "rewrite", "save", "done", "error")
EVENT_KINDS = ("pipeline", "step", "console", "network", "error")

_LOG_LEVELS = {
    "pipeline": logging.INFO,
    "step": logging.INFO,
    "console": logging.DEBUG,
    "network": logging.DEBUG,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class CloneEvent:
    """One entry of a run's event stream."""

    kind: str
    message: str
    timestamp: float
    job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


EventListener = Callable[[CloneEvent], None]


class EventSink:
    """Ordered, append-only event stream for a single pipeline run.

    Steps must advance strictly through :data:`STEPS`, except ``error`` which
    may follow any step. The stream closes after ``step:done`` or the
    ``error`` event; anything emitted later is dropped.
    """

    def __init__(
        self,
        listener: Optional[EventListener] = None,
        job_id: Optional[str] = None,
    ) -> None:
        self.events: List[CloneEvent] = []
        self.job_id = job_id
        self._listeners: List[EventListener] = [listener] if listener else []
        self._step_index = -1
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def current_step(self) -> Optional[str]:
        return STEPS[self._step_index] if self._step_index >= 0 else None

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def emit(self, kind: str, message: str) -> Optional[CloneEvent]:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        if self._closed:
            logger.debug("Dropping %s event after terminal event: %s", kind, message)
            return None
        event = CloneEvent(kind=kind, message=message, timestamp=time.time(), job_id=self.job_id)
        self.events.append(event)
        logger.log(_LOG_LEVELS[kind], "[%s] %s", kind, message)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Event listener failed for %s event", kind)
        return event

    def pipeline(self, message: str) -> None:
        self.emit("pipeline", message)

    def console(self, message: str) -> None:
        self.emit("console", message)

    def network(self, message: str) -> None:
        self.emit("network", message)

    def step(self, name: str) -> None:
        if name not in STEPS:
            raise ValueError(f"Unknown step: {name}")
        if self._closed:
            logger.debug("Dropping step %s after terminal event", name)
            return
        index = STEPS.index(name)
        if name != "error" and index <= self._step_index:
            raise ValueError(
                f"Step {name!r} cannot follow {self.current_step!r}"
            )
        self.emit("step", name)
        self._step_index = index
        if name == "done":
            self._closed = True

    def fail(self, message: str) -> None:
        """Emit ``step:error`` followed by the terminal ``error`` event."""
        if self._closed:
            return
        self.step("error")
        self.emit("error", message)
        self._closed = True
