"""Debounced recompute driven by plan-change events."""

from __future__ import annotations

import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Union

from pension_projector.config import Settings
from pension_projector.errors import PlanValidationError
from pension_projector.schemas.projection import ExecutionOutcome, PlanInput
from pension_projector.utils.logging import get_logger

logger = get_logger("client.trigger")

PlanLike = Union[PlanInput, Mapping[str, Any]]


class TriggerState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMPUTING = "computing"
    SETTLED = "settled"


class SupportsCompute(Protocol):
    def compute(self, plan: PlanLike) -> ExecutionOutcome: ...


class Cancellable(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Cancellable]


def _thread_timer(interval: float, callback: Callable[[], None]) -> Cancellable:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class RecalculationTrigger:
    """
    idle -> pending -> computing -> settled, keyed by a request sequence number.

    Every ``notify`` bumps the sequence number and restarts the debounce
    window. When the window elapses the latest plan is sent to the
    dispatcher. A result is delivered only if its sequence number is still
    the newest one; anything older is dropped when it lands. In-flight calls
    are never aborted.
    """

    def __init__(
        self,
        dispatcher: SupportsCompute,
        on_result: Callable[[int, ExecutionOutcome], None],
        *,
        debounce_seconds: float = 0.3,
        on_error: Optional[Callable[[int, Exception], None]] = None,
        timer_factory: TimerFactory = _thread_timer,
        executor: Optional[Executor] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.on_result = on_result
        self.on_error = on_error
        self.debounce_seconds = float(debounce_seconds)
        self._timer_factory = timer_factory
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="recalc")

        # RLock: consumers may call notify() from inside on_result
        self._lock = threading.RLock()
        self._state = TriggerState.IDLE
        self._seq = 0
        self._latest: Optional[PlanLike] = None
        self._timer: Optional[Cancellable] = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        dispatcher: SupportsCompute,
        on_result: Callable[[int, ExecutionOutcome], None],
        *,
        on_error: Optional[Callable[[int, Exception], None]] = None,
    ) -> "RecalculationTrigger":
        return cls(dispatcher, on_result, debounce_seconds=settings.debounce_seconds, on_error=on_error)

    @property
    def state(self) -> TriggerState:
        with self._lock:
            return self._state

    @property
    def sequence(self) -> int:
        with self._lock:
            return self._seq

    def notify(self, plan: PlanLike) -> int:
        """Record a plan change; returns its sequence number."""
        with self._lock:
            if self._closed:
                raise RuntimeError("trigger is closed")
            self._seq += 1
            seq = self._seq
            self._latest = plan
            self._state = TriggerState.PENDING
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.debounce_seconds, lambda: self._window_elapsed(seq))
            self._timer.start()
            return seq

    def flush(self) -> None:
        """Skip the rest of the debounce window for the pending change, if any."""
        with self._lock:
            if self._state is not TriggerState.PENDING:
                return
            seq = self._seq
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._window_elapsed(seq)

    def _window_elapsed(self, seq: int) -> None:
        with self._lock:
            if self._closed or seq != self._seq or self._state is not TriggerState.PENDING:
                return  # superseded by a later change
            self._timer = None
            self._state = TriggerState.COMPUTING
            plan = self._latest
            self._executor.submit(self._run, seq, plan)

    def _run(self, seq: int, plan: PlanLike) -> None:
        try:
            outcome = self.dispatcher.compute(plan)
        except PlanValidationError as e:
            self._settle(seq, error=e)
        except Exception as e:
            logger.exception(f"recompute_failed seq={seq}")
            self._settle(seq, error=e)
        else:
            self._settle(seq, outcome=outcome)

    def _settle(
        self,
        seq: int,
        *,
        outcome: Optional[ExecutionOutcome] = None,
        error: Optional[Exception] = None,
    ) -> None:
        # delivery happens under the lock so a newer notify() cannot slip in
        # between the sequence check and the callback
        with self._lock:
            if self._closed or seq != self._seq:
                logger.debug(f"result_discarded seq={seq} latest={self._seq}")
                return
            self._state = TriggerState.SETTLED
            if error is not None:
                if self.on_error is not None:
                    self.on_error(seq, error)
                else:
                    logger.warning(f"recompute_error_undelivered seq={seq} err={error}")
                return
            self.on_result(seq, outcome)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._owns_executor:
            self._executor.shutdown(wait=False)
