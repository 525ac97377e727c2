"""
Photo Sync Service for the photo frame.
Reconciles the server's photo list with the local cache every few seconds
and hands each new display sequence to the slideshow scheduler.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from photoframe.common.logger import setup_logger
from photoframe.player.reconciler import DisplaySequence, PhotoReconciler, SequenceStatus
from photoframe.player.scheduler import SlideshowScheduler

logger = setup_logger(__name__)


class SyncService:
    """
    Runs reconciliation passes in a background thread.

    Passes never overlap: the next one is scheduled only after the previous
    pass has returned.
    """

    # Default sync interval in seconds
    DEFAULT_SYNC_INTERVAL = 10

    def __init__(
        self,
        reconciler: PhotoReconciler,
        scheduler: SlideshowScheduler,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        on_sequence: Optional[Callable[[DisplaySequence], None]] = None
    ):
        """
        Initialize the sync service.

        Args:
            reconciler: Builds display sequences
            scheduler: Slideshow receiving the sequences
            sync_interval: Seconds between reconciliation passes
            on_sequence: Callback after every pass (passed the new sequence)
        """
        self._reconciler = reconciler
        self._scheduler = scheduler
        self.sync_interval = sync_interval
        self._on_sequence = on_sequence

        # Freshly cached photos replace their remote url in the slideshow
        self._reconciler.on_backfilled = self._scheduler.swap_ref

        # Background thread state
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()
        self._sync_lock = threading.Lock()

        # Sync statistics
        self._last_sync_time: Optional[datetime] = None
        self._last_status: Optional[SequenceStatus] = None
        self._consecutive_failures = 0
        self._total_syncs = 0
        self._total_failures = 0

        logger.info("SyncService initialized - interval: %ss", self.sync_interval)

    def start(self) -> None:
        """Start the background sync thread."""
        if self._running:
            logger.warning("Sync service already running")
            return

        self._running = True
        self._stop_event.clear()

        self._thread = threading.Thread(
            target=self._sync_loop,
            name="SyncService",
            daemon=True
        )
        self._thread.start()

        logger.info("Sync service started")

    def stop(self) -> None:
        """Stop the background sync thread."""
        if not self._running:
            return

        logger.info("Stopping sync service...")
        self._running = False
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)

        logger.info("Sync service stopped")

    def _sync_loop(self) -> None:
        """Background thread sync loop."""
        logger.info("Sync loop started - interval: %ss", self.sync_interval)

        # Initial sync
        self.sync_now()

        while self._running:
            # Wait for interval or stop signal
            if self._stop_event.wait(timeout=self.sync_interval):
                break

            if self._running:
                self.sync_now()

        logger.info("Sync loop ended")

    def sync_now(self) -> Optional[DisplaySequence]:
        """
        Run one reconciliation pass and publish the result to the scheduler.

        Returns:
            The new display sequence, or None if the pass failed unexpectedly
        """
        with self._sync_lock:
            self._total_syncs += 1
            try:
                sequence = self._reconciler.reconcile()
            except Exception as e:
                logger.error("Reconciliation failed: %s", e)
                self._consecutive_failures += 1
                self._total_failures += 1
                return None

            self._last_sync_time = datetime.now()
            self._record_status(sequence.status)
            self._publish(sequence)

        if self._on_sequence:
            try:
                self._on_sequence(sequence)
            except Exception as e:
                logger.error("Error in sequence callback: %s", e)

        return sequence

    def _record_status(self, status: SequenceStatus) -> None:
        if status == SequenceStatus.OFFLINE:
            self._consecutive_failures += 1
            self._total_failures += 1
        elif status == SequenceStatus.ONLINE:
            self._consecutive_failures = 0

        if status != self._last_status:
            logger.info("Photo source is now %s", status.value)
        self._last_status = status

    def _publish(self, sequence: DisplaySequence) -> None:
        """Hand the sequence to the scheduler."""
        if sequence.is_empty:
            self._scheduler.stop()
            self._scheduler.update_sequence(sequence)
        elif self._scheduler.is_running:
            self._scheduler.update_sequence(sequence)
        else:
            self._scheduler.start(sequence)

    @property
    def is_running(self) -> bool:
        """Check if sync service is running."""
        return self._running

    @property
    def last_status(self) -> Optional[SequenceStatus]:
        """Status of the most recent sequence."""
        return self._last_status

    @property
    def consecutive_failures(self) -> int:
        """Number of consecutive passes without reaching the server."""
        return self._consecutive_failures

    def get_status(self) -> Dict[str, Any]:
        """
        Get sync service status for reporting.

        Returns:
            Dictionary with sync status information
        """
        return {
            'running': self._running,
            'last_sync_time': self._last_sync_time.isoformat() if self._last_sync_time else None,
            'last_status': self._last_status.value if self._last_status else None,
            'consecutive_failures': self._consecutive_failures,
            'total_syncs': self._total_syncs,
            'total_failures': self._total_failures,
            'sync_interval': self.sync_interval,
        }

    def __repr__(self) -> str:
        """String representation."""
        return f"SyncService(interval={self.sync_interval}s, running={self._running})"
