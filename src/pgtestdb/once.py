import threading

from enum import Enum
from types import TracebackType
from typing import Callable, Generic, NamedTuple, TypeVar


T = TypeVar('T')


class CellState(Enum):
    UNINITIALIZED = "uninitialized"
    READY         = "ready"
    FAILED        = "failed"


class _Outcome(NamedTuple, Generic[T]):
    value     : T | None
    error     : BaseException | None
    traceback : TracebackType | None


class OnceCell(Generic[T]):
    """Memoizes the first outcome of a computation, success or failure, for every later caller.

    Readers take the fast path by reading the published outcome, which is a single immutable
    tuple swapped in under the lock. Writers serialize on the lock and re-check before computing,
    so concurrent first callers run the computation exactly once and all observe its outcome.
    A cached exception is re-raised as the same object on every call, each time with the
    traceback of the original failure.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._outcome: _Outcome[T] | None = None

    @property
    def state(self) -> CellState:
        outcome = self._outcome
        if outcome is None:
            return CellState.UNINITIALIZED
        return CellState.FAILED if outcome.error is not None else CellState.READY

    def get_or_compute(self, compute: Callable[[], T]) -> T:
        outcome = self._outcome
        if outcome is None:
            with self._lock:
                outcome = self._outcome
                if outcome is None:
                    try:
                        outcome = _Outcome(compute(), None, None)
                    except Exception as exc:
                        outcome = _Outcome(None, exc, exc.__traceback__)
                    self._outcome = outcome
        if outcome.error is not None:
            raise outcome.error.with_traceback(outcome.traceback)
        return outcome.value  # type: ignore[return-value]

    def peek(self) -> T | None:
        """The cached value if the cell is READY, else None. Never computes."""
        outcome = self._outcome
        return outcome.value if outcome is not None and outcome.error is None else None

    def reset(self, cleanup: Callable[[T | None], None] | None = None) -> bool:
        """Forget a READY value so the next caller computes again. A FAILED cell stays failed.

        `cleanup` runs under the lock with the forgotten value (None when nothing was computed
        yet); callers arriving meanwhile wait for it and then compute afresh. If it raises, the
        cell keeps its value. Returns False for a FAILED cell, where nothing is done.
        """
        with self._lock:
            outcome = self._outcome
            if outcome is not None and outcome.error is not None:
                return False
            self._outcome = None
            try:
                if cleanup is not None:
                    cleanup(outcome.value if outcome is not None else None)
            except BaseException:
                self._outcome = outcome
                raise
            return True
