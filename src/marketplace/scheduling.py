"""Deferred work.

The mock settlement path confirms gateway successes a few seconds later,
the way the real aggregator would call back. The delay goes through an
injected ``Scheduler`` so tests can run the callback on demand.
"""

import threading
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, fn, *args):
        """Run ``fn(*args)`` after ``delay`` seconds."""
        ...


class ThreadingScheduler(Scheduler):
    def call_later(self, delay: float, fn, *args):
        timer = threading.Timer(delay, fn, args=args)
        timer.daemon = True
        timer.start()
        logger.debug("callback_scheduled", delay=delay, callback=getattr(fn, "__name__", repr(fn)))
        return timer


_current_scheduler: Scheduler | None = None


def get_scheduler() -> Scheduler:
    global _current_scheduler
    if _current_scheduler is None:
        _current_scheduler = ThreadingScheduler()
    return _current_scheduler


def set_scheduler(scheduler: Scheduler) -> None:
    """Override the active scheduler (useful for tests)."""
    global _current_scheduler
    _current_scheduler = scheduler


def reset_scheduler() -> None:
    global _current_scheduler
    _current_scheduler = None
