import logging
from typing import Optional

from .fetch import Direction
from .schemas import Range

logger = logging.getLogger(__name__)


class RangeTracker:
    """Wall-clock interval and granularity currently materialized in the series."""

    def __init__(self):
        self._range: Optional[Range] = None

    @property
    def current(self) -> Optional[Range]:
        return self._range

    def reset(self, start: int, end: int, granularity: str) -> Range:
        """Replace the window wholesale (initial load or granularity switch)."""
        self._range = Range(start=start, end=end, granularity=granularity)
        logger.debug("Range reset to %s", self._range)
        return self._range

    def clear(self):
        self._range = None

    def extend(self, direction: Direction, start: int, end: int, granularity: str) -> Range:
        """Widen the window by a fetched interval on one side."""
        if self._range is None:
            raise ValueError("cannot extend an empty range; reset it first")
        if granularity != self._range.granularity:
            raise ValueError(
                f"granularity {granularity!r} does not match tracked {self._range.granularity!r}"
            )
        if direction == Direction.BEFORE:
            self._range = self._range.model_copy(update={"start": min(self._range.start, start)})
        else:
            self._range = self._range.model_copy(update={"end": max(self._range.end, end)})
        return self._range
