import contextlib
import time
from collections.abc import Iterable, Sequence
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@contextlib.contextmanager
def timed(f: Optional[Callable[[int], None]] = None):
    """Time the execution of code in the with-block, calling the function
    f (if it is given) with the elapsed time in nanoseconds."""
    start = time.perf_counter_ns()
    try:
        yield
    finally:
        if f is not None:
            f(time.perf_counter_ns() - start)


class Maybe(Generic[T]):
    """A value which may be None, for chaining the fallbacks used when filling in
    compiler options and reading form metadata."""

    __slots__ = ("_inner",)

    def __init__(self, inner: Optional[T]) -> None:
        self._inner = inner

    def __repr__(self):
        return f"Maybe({self._inner!r})"

    def or_else(self, else_fn: Callable[[], T]) -> T:
        """Return the value, or the result of calling `else_fn` if it is None."""
        return else_fn() if self._inner is None else self._inner

    def or_else_get(self, else_v: T) -> T:
        """Return the value, or `else_v` if it is None."""
        return else_v if self._inner is None else self._inner


def partition(coll: Sequence[T], n: int) -> Iterable[tuple[T, ...]]:
    """Partition `coll` into groups of size `n`. The final group may be shorter
    than `n` if `coll` does not divide evenly."""
    assert n > 0
    items = tuple(coll)
    for start in range(0, len(items), n):
        yield items[start : start + n]
