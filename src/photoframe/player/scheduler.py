"""
Slideshow scheduler for the photo frame.

Splits the display sequence into fixed-size pages and advances through them
with a self-rescheduling single-shot timer: each tick renders the next page
and arms the following tick, so an interval change applies to the very next
transition.

States:
- IDLE: no slideshow, no timer
- RUNNING: a page is shown; a timer is armed whenever there is more than one page
"""

import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from photoframe.common.logger import setup_logger
from photoframe.player.reconciler import DisplaySequence, PhotoRef
from photoframe.player.settings import (
    MAX_INTERVAL_SECONDS,
    MIN_INTERVAL_SECONDS,
    FrameSettings,
    clamp_interval,
)

logger = setup_logger(__name__)

# Photos per slideshow page
DEFAULT_PAGE_SIZE = 15


class SchedulerState(Enum):
    """Represents the current scheduler state."""
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class Page:
    """One rendered slideshow page; short pages are padded with None."""

    index: int
    total: int
    items: Tuple[Optional[PhotoRef], ...]

    def to_dict(self, resolve_source: Optional[Callable[[PhotoRef], Optional[str]]] = None) -> Dict[str, Any]:
        """
        Args:
            resolve_source: Maps a ref to the location the display loads it
                from; refs it returns None for keep their remote url
        """
        return {
            'index': self.index,
            'total': self.total,
            'items': [
                ref.to_dict(resolve_source(ref) if resolve_source else None) if ref else None
                for ref in self.items
            ],
        }


class SlideshowScheduler:
    """
    Owns the display sequence and the slideshow timer.

    At most one timer is armed at any moment: every start, stop, navigation
    and interval change cancels the pending timer before arming a new one.
    A generation counter makes a timer that fired while being cancelled a
    no-op.
    """

    def __init__(
        self,
        settings: Optional[FrameSettings] = None,
        on_render: Optional[Callable[[Page], None]] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        min_interval: int = MIN_INTERVAL_SECONDS,
        max_interval: int = MAX_INTERVAL_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer
    ):
        """
        Args:
            settings: FrameSettings used to load and persist the interval
            on_render: Callback(page) when a page should be displayed
            page_size: Photos per page
            min_interval: Shortest allowed interval in seconds
            max_interval: Longest allowed interval in seconds
            timer_factory: Creates single-shot timers, threading.Timer signature
        """
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        self._settings = settings
        self.on_render = on_render
        self.page_size = page_size
        self.min_interval = min_interval
        self.max_interval = max_interval
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._state = SchedulerState.IDLE
        self._sequence = DisplaySequence()
        self._current_page = 0
        self._timer = None
        self._timer_generation = 0

        initial = settings.slide_interval_seconds if settings else min_interval
        self._interval = clamp_interval(initial, min_interval, max_interval)

        logger.info(
            "SlideshowScheduler initialized - page size %d, interval %ds",
            page_size, self._interval
        )

    # ─── Properties ─────────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    @property
    def sequence(self) -> DisplaySequence:
        with self._lock:
            return self._sequence

    @property
    def current_page(self) -> int:
        with self._lock:
            return self._current_page

    @property
    def total_pages(self) -> int:
        with self._lock:
            return self._page_count(self._sequence)

    @property
    def interval_seconds(self) -> int:
        with self._lock:
            return self._interval

    @property
    def timer_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _page_count(self, sequence: DisplaySequence) -> int:
        return math.ceil(len(sequence) / self.page_size)

    # ─── Lifecycle ──────────────────────────────────────────────────

    def start(self, sequence: DisplaySequence) -> bool:
        """
        Start the slideshow on page 0.

        Returns:
            True if started, False if the sequence is empty
        """
        if sequence.is_empty:
            logger.warning("Not starting slideshow: no photos")
            return False

        with self._lock:
            self._cancel_timer()
            self._sequence = sequence
            self._current_page = 0
            self._state = SchedulerState.RUNNING

            logger.info(
                "Slideshow started: %d photos on %d pages",
                len(sequence), self._page_count(sequence)
            )
            self._render_current()
            if self._page_count(sequence) > 1:
                self._arm_timer()
        return True

    def update_sequence(self, sequence: DisplaySequence) -> None:
        """
        Replace the photos without restarting the slideshow.

        The current page and the armed timer are kept. If the current page no
        longer exists the slideshow goes back to page 0.
        """
        with self._lock:
            if self._state != SchedulerState.RUNNING:
                self._sequence = sequence
                return

            old_slice = self._page_items(self._sequence, self._current_page)
            self._sequence = sequence
            total = self._page_count(sequence)

            if self._current_page >= max(total, 1):
                logger.info("Page %d no longer exists, back to page 0", self._current_page)
                self._current_page = 0
                self._render_current()
            elif self._page_items(sequence, self._current_page) != old_slice:
                # Same page, new photos on it
                self._render_current()

            if total > 1 and self._timer is None:
                self._arm_timer()

    def stop(self) -> None:
        """Stop the slideshow and cancel the timer."""
        with self._lock:
            self._cancel_timer()
            if self._state == SchedulerState.RUNNING:
                logger.info("Slideshow stopped")
            self._state = SchedulerState.IDLE

    # ─── Commands ───────────────────────────────────────────────────

    def navigate(self, direction: Union[int, str]) -> bool:
        """
        Show the next or previous page and restart the countdown.

        Args:
            direction: 1 / "next" or -1 / "prev"

        Returns:
            True if the page changed
        """
        step = self._direction_step(direction)

        with self._lock:
            total = self._page_count(self._sequence)
            if self._state != SchedulerState.RUNNING or total <= 1:
                return False

            self._current_page = (self._current_page + step) % total
            logger.debug("Navigated to page %d/%d", self._current_page + 1, total)
            self._render_current()
            self._arm_timer()
        return True

    @staticmethod
    def _direction_step(direction: Union[int, str]) -> int:
        if direction in ('next', 'right', 'forward'):
            return 1
        if direction in ('prev', 'previous', 'left', 'back'):
            return -1
        if isinstance(direction, int) and not isinstance(direction, bool) and direction != 0:
            return 1 if direction > 0 else -1
        raise ValueError(f"Invalid navigation direction: {direction!r}")

    def set_interval(self, seconds: Any) -> int:
        """
        Change the slide interval.

        The value is clamped, persisted, and applied immediately by re-arming
        the timer with the new duration.

        Returns:
            The interval actually applied
        """
        value = clamp_interval(seconds, self.min_interval, self.max_interval)

        with self._lock:
            self._interval = value
            if (self._state == SchedulerState.RUNNING
                    and self._page_count(self._sequence) > 1):
                self._arm_timer()

        if self._settings is not None:
            try:
                self._settings.update(slide_interval_seconds=value)
            except OSError as e:
                logger.error("Could not persist slide interval: %s", e)

        logger.info("Slide interval set to %ds", value)
        return value

    def swap_ref(self, url: str, ref: PhotoRef) -> bool:
        """
        Point the slot for url at a new reference (e.g. a freshly cached copy).

        If the slot is on the page being shown, that page is rendered again in
        place. Swaps and page transitions are serialized, so a swap never
        lands in the middle of a transition.

        Returns:
            True if url is part of the current sequence
        """
        with self._lock:
            index = self._sequence.index_of(url)
            if index is None:
                return False

            self._sequence = self._sequence.replace_ref(url, ref)
            if (self._state == SchedulerState.RUNNING
                    and index // self.page_size == self._current_page):
                self._render_current()
        return True

    # ─── Timer ──────────────────────────────────────────────────────

    def _arm_timer(self) -> None:
        """Cancel any pending timer and arm the next step. Lock must be held."""
        self._cancel_timer()
        generation = self._timer_generation
        timer = self._timer_factory(self._interval, self._on_timer, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        """Cancel the pending timer, if any. Lock must be held."""
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        """Timer callback: advance one page and arm the next step."""
        with self._lock:
            if generation != self._timer_generation or self._state != SchedulerState.RUNNING:
                return

            self._timer = None
            total = self._page_count(self._sequence)
            if total == 0:
                return

            self._current_page = (self._current_page + 1) % total
            self._render_current()
            if total > 1:
                self._arm_timer()

    # ─── Rendering ──────────────────────────────────────────────────

    def _page_items(self, sequence: DisplaySequence, page_index: int) -> Tuple[Optional[PhotoRef], ...]:
        start = page_index * self.page_size
        items = sequence.items[start:start + self.page_size]
        return tuple(items) + (None,) * (self.page_size - len(items))

    def current_page_view(self) -> Page:
        """Get the page currently shown (padded to the page size)."""
        with self._lock:
            return Page(
                index=self._current_page,
                total=self._page_count(self._sequence),
                items=self._page_items(self._sequence, self._current_page),
            )

    def _render_current(self) -> None:
        """Hand the current page to the render callback. Lock must be held."""
        if not self.on_render:
            return
        page = self.current_page_view()
        try:
            self.on_render(page)
        except Exception as e:
            logger.error("Error rendering page %d: %s", page.index, e)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"SlideshowScheduler(state={self._state.value}, "
            f"page={self._current_page}, interval={self._interval}s)"
        )
