"""Threading primitives shared by the agents.

Provides cancellation tokens with deadlines, fail-fast task groups, a
many-readers/one-writer lock and a ticker that drops ticks instead of
queueing them.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Tuple

from .errors import Cancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """Cancellation signal threaded through every blocking call.

    A token is cancelled explicitly with ``cancel()`` or implicitly once its
    deadline passes. Cancelling a token cancels every child derived from it.
    """

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = deadline
        self._lock = threading.Lock()
        self._children: "weakref.WeakSet[CancelToken]" = weakref.WeakSet()
        self.reason: Optional[str] = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    def child(self, timeout: Optional[float] = None) -> "CancelToken":
        """Derive a token that is cancelled with this one, or sooner."""
        deadline = self._deadline
        if timeout is not None:
            own = time.monotonic() + timeout
            deadline = own if deadline is None else min(deadline, own)
        token = CancelToken(deadline=deadline)
        with self._lock:
            self._children.add(token)
        if self._event.is_set():
            token.cancel(self.reason or "cancelled")
        return token

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            children = list(self._children)
        for token in children:
            token.cancel(reason)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, or None if there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if cancelled meanwhile."""
        remaining = self.remaining()
        if remaining is not None and (timeout is None or remaining < timeout):
            timeout = remaining
        self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(self.reason or "cancelled")

    def timeout(self, default: float) -> float:
        """Clamp a per-request timeout to the time left on this token."""
        self.raise_if_cancelled()
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(0.001, min(default, remaining))


class TaskGroup:
    """Runs sibling tasks on a thread pool and fails fast.

    The first task to raise cancels the group's token, which every task is
    expected to pass down to its network calls. ``wait()`` blocks until all
    tasks return and then re-raises the earliest error.

    Usage::

        with TaskGroup(token, name="state") as group:
            health = group.spawn(client.cluster_health, token=group.token)
            recovery = group.spawn(client.indices_recovery, token=group.token)
        health.result(), recovery.result()
    """

    def __init__(
        self,
        token: Optional[CancelToken] = None,
        max_workers: Optional[int] = None,
        name: str = "task",
    ):
        self.token = (token or CancelToken()).child()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._futures: List[Future] = []
        self._errors: List[Tuple[int, BaseException]] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def spawn(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        def run() -> Any:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                with self._lock:
                    self._errors.append((next(self._seq), exc))
                self.token.cancel(f"sibling task failed: {exc}")
                raise

        future = self._executor.submit(run)
        self._futures.append(future)
        return future

    def cancel(self, reason: str = "cancelled") -> None:
        self.token.cancel(reason)

    def wait(self) -> None:
        """Wait for every task, then raise the earliest error if any failed."""
        try:
            for future in list(self._futures):
                try:
                    future.result()
                except Exception:
                    pass  # collected in self._errors
        finally:
            self._executor.shutdown(wait=True)
        if self._errors:
            _, first = min(self._errors, key=lambda item: item[0])
            raise first

    def __enter__(self) -> "TaskGroup":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            self.cancel(f"task group body failed: {exc}")
            self._executor.shutdown(wait=True)
            return
        self.wait()


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Waiting writers block new readers so a steady stream of reads cannot
    starve a drain.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class Ticker(threading.Thread):
    """Produces a tick immediately and then every ``interval`` seconds.

    The consumer side holds at most one pending tick. A tick that arrives
    while one is still pending is dropped and counted in ``skipped``.
    """

    daemon = True

    def __init__(
        self,
        interval: float,
        token: CancelToken,
        *,
        name: str = "ticker",
        on_skip: Optional[Callable[[], None]] = None,
    ):
        super().__init__(name=name)
        self.interval = interval
        self.token = token
        self.skipped = 0
        self._on_skip = on_skip
        self._ticks: "queue.Queue[float]" = queue.Queue(maxsize=1)

    def run(self) -> None:
        self._offer()
        while not self.token.wait(self.interval):
            self._offer()

    def _offer(self) -> None:
        try:
            self._ticks.put_nowait(time.time())
        except queue.Full:
            self.skipped += 1
            logger.warning(f"[{self.name}] previous tick still in progress, skipping (skipped={self.skipped})")
            if self._on_skip is not None:
                self._on_skip()

    def next_tick(self) -> Optional[float]:
        """Block until the next tick. Returns None once the token is cancelled."""
        while not self.token.cancelled:
            try:
                return self._ticks.get(timeout=min(self.interval, 0.5))
            except queue.Empty:
                continue
        return None

    def __iter__(self) -> Iterator[float]:
        while True:
            tick = self.next_tick()
            if tick is None:
                return
            yield tick
