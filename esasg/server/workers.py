"""Background workers driving the agents.

Each worker is a daemon thread bound to a cancellation token. Periodic
workers run one iteration per tick and survive iteration failures; a
``FatalError`` stops the worker and is kept in ``error`` for the entry
point to report.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..concurrency import CancelToken, Ticker
from ..errors import AgentError, Cancelled, FatalError
from .instrumentation import LoopMetrics

logger = logging.getLogger(__name__)


class PeriodicWorker(threading.Thread):
    """Calls ``fn(token)`` on every tick of a drop-on-busy ticker."""

    daemon = True

    def __init__(
        self,
        name: str,
        fn: Callable[[CancelToken], None],
        interval: float,
        token: CancelToken,
        *,
        metrics: Optional[LoopMetrics] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(name=name)
        self.fn = fn
        self.interval = interval
        self.token = token
        self.metrics = metrics
        self.timeout = timeout
        self.error: Optional[BaseException] = None
        self.last_success: Optional[float] = None
        self.last_error: Optional[str] = None

    def run(self) -> None:
        logger.info(f"[{self.name}] starting (interval={self.interval}s)")
        ticker = Ticker(self.interval, self.token, name=f"{self.name}-ticker", on_skip=self._on_skip)
        ticker.start()
        for _ in ticker:
            if not self._iterate():
                break
        logger.info(f"[{self.name}] stopped")

    def _iterate(self) -> bool:
        token = self.token.child(timeout=self.timeout)
        started = time.monotonic()
        if self.metrics:
            self.metrics.loops.inc()
        try:
            self.fn(token)
        except FatalError as exc:
            logger.error(f"[{self.name}] fatal: {exc}")
            self.error = exc
            return False
        except Cancelled as exc:
            if self.token.cancelled:
                return False
            self._failed(exc)
        except AgentError as exc:
            self._failed(exc)
        else:
            self.last_success = time.time()
            self.last_error = None
        finally:
            if self.metrics:
                self.metrics.loop_duration.observe(time.monotonic() - started)
        return True

    def _failed(self, exc: BaseException) -> None:
        self.last_error = str(exc)
        if self.metrics:
            self.metrics.loop_failures.inc()
        logger.error(f"[{self.name}] iteration failed: {exc}")

    def _on_skip(self) -> None:
        if self.metrics:
            self.metrics.skipped_ticks.inc()

    def is_ready(self) -> bool:
        return self.last_success is not None and self.error is None

    def stop(self) -> None:
        self.token.cancel("stopped")


class QueueConsumerWorker(threading.Thread):
    """Receives queue messages and handles each one on its own thread.

    At most ``max_workers`` messages are in flight; receiving pauses while
    every slot is busy.
    """

    daemon = True

    def __init__(
        self,
        receive: Callable[[CancelToken], list],
        handle: Callable[..., object],
        token: CancelToken,
        *,
        max_workers: int = 10,
        error_backoff: float = 5.0,
        name: str = "queue-consumer",
    ):
        super().__init__(name=name)
        self.receive = receive
        self.handle = handle
        self.token = token
        self.max_workers = max_workers
        self.error_backoff = error_backoff
        self.error: Optional[BaseException] = None
        self.last_receive: Optional[float] = None
        self._slots = threading.BoundedSemaphore(max_workers)

    def run(self) -> None:
        logger.info(f"[{self.name}] starting (max_workers={self.max_workers})")
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=self.name) as pool:
            while not self.token.cancelled:
                try:
                    messages = self.receive(self.token)
                except Cancelled:
                    break
                except FatalError as exc:
                    logger.error(f"[{self.name}] fatal: {exc}")
                    self.error = exc
                    break
                except AgentError as exc:
                    logger.error(f"[{self.name}] receive failed: {exc}")
                    self.token.wait(self.error_backoff)
                    continue
                self.last_receive = time.time()
                for message in messages:
                    if not self._acquire_slot():
                        break
                    future = pool.submit(self.handle, message, self.token)
                    future.add_done_callback(self._release_slot)
        logger.info(f"[{self.name}] stopped")

    def _acquire_slot(self) -> bool:
        while not self.token.cancelled:
            if self._slots.acquire(timeout=0.5):
                return True
        return False

    def _release_slot(self, future) -> None:
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            logger.error(f"[{self.name}] message handler crashed: {exc!r}")

    def is_ready(self) -> bool:
        return self.last_receive is not None and self.error is None

    def stop(self) -> None:
        self.token.cancel("stopped")
