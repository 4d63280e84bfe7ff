"""Background execution for blocking engine calls.

Resolution, inventory queries, agent spawns and probes all block. Callers
with a foreground loop (a UI or an interactive CLI) submit them here and
receive completions through a single-consumer queue drained on a fixed tick.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .common.config import EngineConfig
from .tunnel.models import TunnelHandle
from .tunnel.prober import ProcessTableProber

logger = logging.getLogger(__name__)

DETECT_KIND = "detect"


@dataclass(frozen=True)
class WorkerMessage:
    """Completion of one background operation: a result or the error it raised."""

    kind: str
    result: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BackgroundWorker:
    """Runs callables on daemon threads and queues their completions.

    Any number of threads may post concurrently; only the foreground loop
    calls :meth:`drain`.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self._messages: queue.Queue[WorkerMessage] = queue.Queue()

    def submit(self, kind: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> threading.Thread:
        """Run ``fn(*args, **kwargs)`` in the background.

        Args:
            kind: Tag copied onto the completion message
            fn: Blocking callable to run

        Returns:
            The started daemon thread
        """

        def _run() -> None:
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Background {kind} failed: {e}")
                self._messages.put(WorkerMessage(kind, error=e))
            else:
                self._messages.put(WorkerMessage(kind, result=result))

        thread = threading.Thread(target=_run, name=f"ssm-tunnel-{kind}", daemon=True)
        thread.start()
        logger.debug(f"Submitted background {kind} on {thread.name}")
        return thread

    def drain(self) -> list[WorkerMessage]:
        """Every completion queued so far, without blocking."""
        messages: list[WorkerMessage] = []
        while True:
            try:
                messages.append(self._messages.get_nowait())
            except queue.Empty:
                return messages


class TunnelMonitor:
    """Periodic background re-detection of running tunnels.

    At most one detection is in flight; a tick that falls while one is
    running schedules nothing.
    """

    def __init__(
        self,
        config: EngineConfig,
        worker: BackgroundWorker,
        prober: ProcessTableProber | None = None,
    ):
        self.config = config
        self.worker = worker
        self.prober = prober or ProcessTableProber(config)
        self.tunnels: list[TunnelHandle] = []
        self.last_error: Exception | None = None
        self._in_flight = False
        self._last_started: float | None = None

    @property
    def detecting(self) -> bool:
        return self._in_flight

    def tick(self, now: float | None = None) -> bool:
        """Start a detection if one is due.

        Returns:
            True if a detection was submitted on this tick
        """
        now = time.monotonic() if now is None else now
        if self._in_flight:
            return False
        if self._last_started is not None and now - self._last_started < self.config.redetect_interval:
            return False

        self._in_flight = True
        self._last_started = now
        self.worker.submit(DETECT_KIND, self.prober.detect_active_tunnels)
        return True

    def handle(self, message: WorkerMessage) -> bool:
        """Apply a detection completion; other kinds are left to the caller.

        Returns:
            True if the message was a detection result
        """
        if message.kind != DETECT_KIND:
            return False

        self._in_flight = False
        if message.ok:
            self.tunnels = list(message.result)
            self.last_error = None
        else:
            self.last_error = message.error
        return True


def run_loop(worker: BackgroundWorker, handle: Callable[[WorkerMessage], Any], ticks: int) -> int:
    """Drain ``worker`` every ``tick_interval`` seconds for ``ticks`` ticks.

    Returns:
        Number of messages handed to ``handle``
    """
    handled = 0
    for tick in range(ticks):
        for message in worker.drain():
            handle(message)
            handled += 1
        if tick < ticks - 1:
            time.sleep(worker.config.tick_interval)
    return handled
