"""Live countdown to an event's start time."""
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from processor.event_processor import parse_event_date
from processor.models import CountdownState, Remaining

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
EXPIRED_LABEL = 'Event started'


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_epoch_ms(target) -> int:
    """
    Convert a countdown target into epoch milliseconds.

    Args:
        target: datetime or ISO 8601 string

    Raises:
        ValueError: If the target is missing or unparsable
    """
    if target is None:
        raise ValueError("Countdown target is required")
    parsed = parse_event_date(target)
    if parsed is None:
        raise ValueError(f"Invalid countdown target: {target!r}")
    return (parsed - EPOCH) // timedelta(milliseconds=1)


def remaining_from_ms(delta_ms: int) -> Remaining:
    """Split a non-negative duration in milliseconds into days/hours/minutes/seconds."""
    return Remaining(
        days=delta_ms // MS_PER_DAY,
        hours=(delta_ms % MS_PER_DAY) // MS_PER_HOUR,
        minutes=(delta_ms % MS_PER_HOUR) // MS_PER_MINUTE,
        seconds=(delta_ms % MS_PER_MINUTE) // MS_PER_SECOND,
        total_ms=delta_ms
    )


def compute_state(target_ms: int, current_ms: int) -> CountdownState:
    """Countdown state for a target instant at a given time."""
    delta = target_ms - current_ms
    if delta <= 0:
        return CountdownState.expired_state()
    return CountdownState.pending(remaining_from_ms(delta))


def format_compact(state: CountdownState) -> str:
    """
    Single-line form for event cards, e.g. "2d 04h 09m".

    Days are omitted when zero; seconds are never shown.
    """
    if state.expired:
        return EXPIRED_LABEL
    remaining = state.remaining
    parts = []
    if remaining.days > 0:
        parts.append(f"{remaining.days}d")
    parts.append(f"{remaining.hours:02d}h")
    parts.append(f"{remaining.minutes:02d}m")
    return ' '.join(parts)


def format_full(state: CountdownState) -> List[Tuple[str, str]]:
    """
    Block form for the event details page as (value, label) pairs.

    The days block is omitted when zero; other values are zero-padded.
    """
    if state.expired:
        return [(EXPIRED_LABEL, '')]
    remaining = state.remaining
    blocks = []
    if remaining.days > 0:
        blocks.append((str(remaining.days), 'Days'))
    blocks.append((f"{remaining.hours:02d}", 'Hours'))
    blocks.append((f"{remaining.minutes:02d}", 'Mins'))
    blocks.append((f"{remaining.seconds:02d}", 'Secs'))
    return blocks


def _start_timer(delay: float, callback: Callable[[], None]):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class CountdownClock:
    """
    Countdown that recomputes the time left once per second.

    At most one timer is armed at a time. The timer is cancelled on
    cancel(), on reset() and once the countdown expires.
    """

    def __init__(
        self,
        target,
        on_tick: Callable[[CountdownState], None],
        clock: Optional[Callable[[], int]] = None,
        scheduler: Optional[Callable[[float, Callable[[], None]], object]] = None
    ):
        """
        Initialize the countdown without starting it.

        Args:
            target: Event start as datetime or ISO 8601 string
            on_tick: Called with the new state on start and on every change
            clock: Returns the current time in epoch milliseconds
            scheduler: Arms a one-shot timer: scheduler(delay_seconds, callback)
                returning an object with cancel()
        """
        self.target_ms = to_epoch_ms(target)
        self.on_tick = on_tick
        self.clock = clock or now_ms
        self.scheduler = scheduler or _start_timer
        self.state: Optional[CountdownState] = None
        self._timer = None
        self._generation = 0
        self._started_ms = 0
        self._ticks = 0
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        """True while a tick is scheduled."""
        return self._timer is not None

    def start(self) -> 'CountdownClock':
        """Compute the initial state and arm the timer unless already expired."""
        with self._lock:
            self._cancel_timer()
            self.state = None
            self._started_ms = self.clock()
            self._ticks = 0
            self._update(self._started_ms, self._started_ms)
        return self

    def cancel(self) -> None:
        """Stop ticking. Safe to call more than once."""
        with self._lock:
            if self._timer is not None:
                logger.debug(f"Cancelling countdown to {self.target_ms}")
            self._cancel_timer()

    def reset(self, target) -> 'CountdownClock':
        """Point the countdown at a new target, discarding the previous timer."""
        target_ms = to_epoch_ms(target)
        with self._lock:
            self._cancel_timer()
            self.target_ms = target_ms
        return self.start()

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _next_delay(self, current_ms: int) -> float:
        # Ticks land on whole seconds after start
        self._ticks += 1
        due_ms = self._started_ms + self._ticks * MS_PER_SECOND
        return max(0, due_ms - current_ms) / MS_PER_SECOND

    def _update(self, tick_ms: int, current_ms: int) -> None:
        new_state = compute_state(self.target_ms, tick_ms)
        changed = new_state != self.state
        self.state = new_state

        if new_state.expired:
            self._cancel_timer()
        else:
            generation = self._generation
            self._timer = self.scheduler(
                self._next_delay(current_ms), lambda: self._tick(generation)
            )

        if changed:
            self.on_tick(new_state)

    def _tick(self, generation: int) -> None:
        with self._lock:
            # Callback from a timer that was cancelled or replaced
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
            current_ms = self.clock()
            # A late timer catches up to the last whole second that has passed
            self._ticks = max(self._ticks, (current_ms - self._started_ms) // MS_PER_SECOND)
            self._update(self._started_ms + self._ticks * MS_PER_SECOND, current_ms)

    def __enter__(self) -> 'CountdownClock':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


def create_countdown(
    target,
    on_tick: Callable[[CountdownState], None],
    clock: Optional[Callable[[], int]] = None,
    scheduler: Optional[Callable[[float, Callable[[], None]], object]] = None
) -> CountdownClock:
    """
    Start a countdown to an event.

    Args:
        target: Event start as datetime or ISO 8601 string
        on_tick: Called with the state immediately and on every change
        clock: Optional millisecond clock, defaults to wall-clock time
        scheduler: Optional one-shot timer factory, defaults to threading.Timer

    Returns:
        The running CountdownClock; call cancel() (or use it as a context
        manager) when the countdown is no longer displayed

    Raises:
        ValueError: If target is missing or unparsable
    """
    return CountdownClock(target, on_tick, clock=clock, scheduler=scheduler).start()
