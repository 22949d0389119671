"""Background thread that drains the sync queue."""
import threading
from typing import Optional

from .sync import SyncManager
from ..utils.logger import get_logger

logger = get_logger()


class QueueDrainScheduler:
    """Drains the queue every interval, and right away when the network comes back."""

    def __init__(self, sync_manager: SyncManager, interval_seconds: float = 60.0,
                 connectivity=None, poll_seconds: float = 5.0):
        self.sync_manager = sync_manager
        self.interval_seconds = interval_seconds
        self.connectivity = connectivity if connectivity is not None else sync_manager.connectivity
        self.poll_seconds = min(poll_seconds, interval_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._was_online: Optional[bool] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="paylog-queue-drain", daemon=True)
        self._thread.start()
        logger.info(f"Queue drain scheduler started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Queue drain scheduler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self, elapsed: float) -> bool:
        """
        One scheduling decision. Returns True if a drain was triggered.

        A drain runs when the interval has elapsed or when connectivity just
        changed from offline to online.
        """
        online = self.connectivity.is_online() if self.connectivity is not None else True
        restored = self._was_online is False and online
        self._was_online = online

        if restored:
            logger.info("Connectivity restored; draining queue")
        if restored or elapsed >= self.interval_seconds:
            try:
                self.sync_manager.drain_queue_now()
            except Exception as e:
                logger.error(f"Queue drain failed: {e}")
            return True
        return False

    def _run(self) -> None:
        elapsed = 0.0
        while not self._stop.wait(self.poll_seconds):
            elapsed += self.poll_seconds
            if self.tick(elapsed):
                elapsed = 0.0
