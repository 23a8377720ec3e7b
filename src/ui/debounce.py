"""
Debounce combinator for bursty control interactions.

Calls are queued and replayed together once ``wait_seconds`` have passed
since the most recent one. Nothing runs on a timer: the owner polls with
``flush()`` (Streamlit reruns the script on every interaction, so polling
happens naturally). The clock is injectable for tests.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class _PendingCall:
    fn: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


class Debouncer:
    """Queue of deferred calls released as one batch after a quiet period."""

    def __init__(self, wait_seconds: float = 0.2, clock: Optional[Clock] = None):
        self.wait_seconds = max(0.0, float(wait_seconds))
        self._clock = clock or time.monotonic
        self._pending: List[_PendingCall] = []
        self._last_submit: Optional[float] = None
        self.batches_flushed = 0

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Queue ``fn(*args, **kwargs)`` and restart the quiet period."""
        self._pending.append(_PendingCall(fn, args, kwargs))
        self._last_submit = self._clock()

    def remaining(self) -> float:
        """Seconds until the pending batch becomes ready (0 when ready or idle)."""
        if not self._pending or self._last_submit is None:
            return 0.0
        return max(0.0, self._last_submit + self.wait_seconds - self._clock())

    def ready(self) -> bool:
        return self.has_pending and self.remaining() == 0.0

    def flush(self, force: bool = False) -> int:
        """
        Run the pending batch if the quiet period has elapsed (or ``force``).

        Returns the number of calls executed.
        """
        if not self._pending:
            return 0
        if not force and not self.ready():
            return 0

        batch, self._pending = self._pending, []
        self._last_submit = None
        for call in batch:
            call.fn(*call.args, **call.kwargs)

        self.batches_flushed += 1
        logger.debug("Debounced batch of %s calls applied", len(batch))
        return len(batch)

    def cancel(self) -> int:
        """Drop pending calls without running them."""
        dropped = len(self._pending)
        self._pending = []
        self._last_submit = None
        return dropped
