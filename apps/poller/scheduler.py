"""
Fixed-interval repeater for pipeline invocations.

    handle = Poller().every(10).times(3).start(run_once)
    summary = handle.wait()

- every(seconds) fixes the interval, times(n) the repetition count (-1 = forever).
- The first tick fires immediately; the next one is scheduled only after the
  current invocation returns, so ticks never overlap.
- A failing invocation is logged and counted. With stop_on_error=True the
  schedule stops on it, otherwise it keeps going. Failed ticks still count.
- RunHandle.cancel() ends any schedule, including an unbounded one, and
  interrupts the wait between ticks.
"""
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from apps.common.log import get_logger

logger = get_logger("poller")

FOREVER = -1

# wait(seconds, stop_event) -> True if the schedule was cancelled while waiting
Wait = Callable[[float, threading.Event], bool]


def event_wait(seconds: float, stop: threading.Event) -> bool:
    return stop.wait(seconds)


class State(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    STOPPED = "stopped"


class StopReason(str, Enum):
    EXHAUSTED = "exhausted"   # finite count reached; normal termination
    CANCELLED = "cancelled"
    FAILED = "failed"         # stop_on_error and an invocation raised


@dataclass
class TickFailure:
    tick: int
    kind: str      # exception class name, e.g. SourceUnavailable
    message: str


@dataclass
class RunSummary:
    attempts: int = 0
    failures: int = 0
    stop_reason: Optional[StopReason] = None
    last_result: Any = None
    last_error: Optional[BaseException] = None
    errors: List[TickFailure] = field(default_factory=list)


class RunHandle:
    def __init__(self) -> None:
        self.state = State.IDLE
        self.summary = RunSummary()
        self._stop = threading.Event()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def cancel(self) -> None:
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[RunSummary]:
        """Block until the schedule stops; None if `timeout` expired first."""
        if not self._done.wait(timeout):
            return None
        return self.summary


class Poller:
    def __init__(self, wait: Wait = event_wait):
        self.wait = wait
        self.interval: Optional[float] = None

    def every(self, seconds: int) -> "Iterator":
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
            raise ValueError(f"interval must be a positive whole number of seconds, got {seconds!r}")
        self.interval = float(seconds)
        return Iterator(self)


class Iterator:
    def __init__(self, poller: Poller):
        self.poller = poller
        self.iterations: Optional[int] = None

    def times(self, n: int) -> "Runner":
        if isinstance(n, bool) or not isinstance(n, int) or (n < 1 and n != FOREVER):
            raise ValueError(f"repetitions must be >= 1 or {FOREVER} for unbounded, got {n!r}")
        self.iterations = n
        return Runner(self)


class Runner:
    def __init__(self, iterator: Iterator):
        self.iterator = iterator

    @property
    def interval(self) -> float:
        return self.iterator.poller.interval

    @property
    def iterations(self) -> int:
        return self.iterator.iterations

    @property
    def unbounded(self) -> bool:
        return self.iterations == FOREVER

    def start(self, fn: Callable[[], Any], stop_on_error: bool = False) -> RunHandle:
        handle = RunHandle()
        handle.state = State.SCHEDULED
        t = threading.Thread(target=self._loop, args=(fn, handle, stop_on_error), name="poller", daemon=True)
        handle._thread = t
        t.start()
        return handle

    def run(self, fn: Callable[[], Any], stop_on_error: bool = False) -> RunSummary:
        return self.start(fn, stop_on_error).wait()

    def _loop(self, fn: Callable[[], Any], handle: RunHandle, stop_on_error: bool) -> None:
        s = handle.summary
        wait = self.iterator.poller.wait
        logger.info("schedule started", extra={"interval": self.interval, "iterations": self.iterations})
        try:
            while True:
                if handle.cancelled:
                    s.stop_reason = StopReason.CANCELLED
                    break

                handle.state = State.RUNNING
                tick = s.attempts + 1
                try:
                    s.last_result = fn()
                except Exception as e:
                    s.failures += 1
                    s.last_error = e
                    s.errors.append(TickFailure(tick=tick, kind=type(e).__name__, message=str(e)))
                    logger.exception("tick failed", extra={"tick": tick, "kind": type(e).__name__})
                    if stop_on_error:
                        s.attempts = tick
                        s.stop_reason = StopReason.FAILED
                        break
                s.attempts = tick

                if not self.unbounded and s.attempts >= self.iterations:
                    s.stop_reason = StopReason.EXHAUSTED
                    break

                handle.state = State.SCHEDULED
                if wait(self.interval, handle._stop):
                    s.stop_reason = StopReason.CANCELLED
                    break
        finally:
            handle.state = State.STOPPED
            logger.info(
                "schedule stopped",
                extra={"attempts": s.attempts, "failures": s.failures,
                       "reason": s.stop_reason.value if s.stop_reason else None},
            )
            handle._done.set()
