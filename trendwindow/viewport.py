"""Boundary-proximity decisions from the chart's visible logical range."""
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import settings
from .schemas import VisibleRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryDecision:
    needs_more_before: bool = False
    needs_more_after: bool = False

    def __bool__(self):
        return self.needs_more_before or self.needs_more_after


def edge_buffer(data_length: int, ratio: float = 0.08, floor: int = 3, ceiling: int = 12) -> int:
    """Index distance from either end that counts as "near the edge"."""
    return max(floor, min(ceiling, math.floor(data_length * ratio)))


class ViewportMonitor:
    """
    Translates visible-range events into fetch decisions.

    Events arrive at animation-frame rate during drags, so evaluation is
    throttled to one per ``debounce_ms``. After a programmatic reset of the
    view, ``suppress`` ignores the transient events the reset itself causes.
    """

    def __init__(
        self,
        right_offset: int = settings.RIGHT_OFFSET,
        debounce_ms: int = settings.DEBOUNCE_MS,
        cooldown_ms: int = settings.RESET_COOLDOWN_MS,
        edge_ratio: float = settings.EDGE_RATIO,
        edge_min: int = settings.EDGE_MIN,
        edge_max: int = settings.EDGE_MAX,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.right_offset = right_offset
        self.debounce = debounce_ms / 1000.0
        self.cooldown = cooldown_ms / 1000.0
        self.edge_ratio = edge_ratio
        self.edge_min = edge_min
        self.edge_max = edge_max
        self._clock = clock
        self.reset()

    def reset(self):
        self.last_check = -math.inf
        self.ignore_until = -math.inf

    def suppress(self):
        """Start the cooldown that follows a reset-view-to-full-range."""
        self.ignore_until = self._clock() + self.cooldown

    def decide(self, visible: VisibleRange) -> BoundaryDecision:
        """Evaluate proximity without throttling."""
        n = visible.data_length
        if n <= 0:
            return BoundaryDecision()
        buffer = edge_buffer(n, self.edge_ratio, self.edge_min, self.edge_max)
        # rightOffset inflates to_index even when the view sits at the data end
        effective_to = visible.to_index - self.right_offset
        return BoundaryDecision(
            needs_more_before=visible.from_index < buffer,
            needs_more_after=effective_to > (n - 1 - buffer),
        )

    def check(self, visible: VisibleRange) -> Optional[BoundaryDecision]:
        """Throttled evaluation; None when the event was ignored."""
        now = self._clock()
        if now < self.ignore_until:
            return None
        if now - self.last_check < self.debounce:
            return None
        self.last_check = now
        if visible.data_length <= 0:
            return None
        decision = self.decide(visible)
        if decision:
            logger.debug("Boundary near: %s (visible %s)", decision, visible)
        return decision
