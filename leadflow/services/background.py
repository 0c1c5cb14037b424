"""
Detached background work.

BackgroundRunner.spawn() hands a callable to a small thread pool and returns
the Future without waiting. Failures are logged from a done-callback and never
reach the caller; pending work can be cancelled. InlineRunner runs the
callable immediately in the calling thread (tests, CLI scripts).
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List

from leadflow.config import COST_FETCH_WORKERS

logger = logging.getLogger('services.background')


def _log_failure(name: str):
    def callback(future: Future):
        if future.cancelled():
            logger.info("Background task %s cancelled", name)
            return
        error = future.exception()
        if error is not None:
            logger.error("Background task %s failed: %s", name, error,
                         exc_info=(type(error), error, error.__traceback__))
    return callback


class BackgroundRunner:
    """Fire-and-forget task pool. Nothing spawned here is ever joined into a response."""

    def __init__(self, max_workers: int = None):
        self._executor = ThreadPoolExecutor(max_workers=max_workers or COST_FETCH_WORKERS,
                                            thread_name_prefix='leadflow-bg')
        self._pending: List[Future] = []

    def spawn(self, name: str, fn: Callable, *args, **kwargs) -> Future:
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(_log_failure(name))
        self._pending = [f for f in self._pending if not f.done()] + [future]
        return future

    def cancel_pending(self) -> int:
        """Cancel tasks that have not started yet. Returns how many were cancelled."""
        cancelled = sum(1 for f in self._pending if f.cancel())
        self._pending = [f for f in self._pending if not f.done()]
        return cancelled

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=True)


class InlineRunner:
    """Runs spawned work synchronously; same logging contract as BackgroundRunner."""

    def spawn(self, name: str, fn: Callable, *args, **kwargs) -> Future:
        future = Future()
        future.add_done_callback(_log_failure(name))
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def cancel_pending(self) -> int:
        return 0

    def shutdown(self, wait: bool = False):
        pass


_default_runner = None


def get_background_runner() -> BackgroundRunner:
    """Process-wide runner, created on first use."""
    global _default_runner
    if _default_runner is None:
        _default_runner = BackgroundRunner()
    return _default_runner
