"""Canonical ordered, deduplicated representation of loaded trend points."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .schemas import Point

# RFC 3339 allows any number of fraction digits; fromisoformat before
# Python 3.11 only takes 3 or 6
_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def time_key(point: Point) -> Optional[int]:
    """
    Canonical epoch-seconds key for a point, or None when its time is not a
    real timestamp (age labels, "11:00" style slots and similar placeholders).
    """
    return parse_time(point.time)


def parse_time(t: Union[int, float, str]) -> Optional[int]:
    if isinstance(t, bool):
        return None
    if isinstance(t, (int, float)):
        return math.floor(t) if math.isfinite(t) else None
    if not isinstance(t, str):
        return None

    # Only parse strings that look like a date/time
    if "-" not in t and "T" not in t:
        return None
    text = t.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return math.floor(parsed.timestamp())


@dataclass(frozen=True)
class Series:
    """
    Immutable snapshot: keyed points strictly ascending by time key, followed
    by positional points in their original order.
    """
    entries: Tuple[Tuple[int, Point], ...] = ()
    positional: Tuple[Point, ...] = ()

    def __post_init__(self):
        for (prev, _), (cur, _) in zip(self.entries, self.entries[1:]):
            if cur <= prev:
                raise ValueError(f"series keys not strictly ascending at {prev} -> {cur}")

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> "Series":
        """Build a series from unordered points; later duplicates win."""
        by_key: Dict[int, Point] = {}
        positional: List[Point] = []
        for p in points:
            key = time_key(p)
            if key is None:
                positional.append(p)
            else:
                by_key[key] = p
        return cls(tuple(sorted(by_key.items(), key=lambda kv: kv[0])), tuple(positional))

    def __len__(self) -> int:
        return len(self.entries) + len(self.positional)

    def __iter__(self) -> Iterator[Point]:
        return iter(self.points())

    def points(self) -> List[Point]:
        """Flat list in render order, the form handed to the chart."""
        return [p for _, p in self.entries] + list(self.positional)

    def keys(self) -> List[int]:
        return [k for k, _ in self.entries]

    def find(self, key: int) -> Optional[Point]:
        lo, hi = 0, len(self.entries)
        while lo < hi:
            mid = (lo + hi) // 2
            if self.entries[mid][0] < key:
                lo = mid + 1
            else:
                hi = mid
        if lo < len(self.entries) and self.entries[lo][0] == key:
            return self.entries[lo][1]
        return None

    def bounds(self) -> Optional[Tuple[int, int]]:
        if not self.entries:
            return None
        return self.entries[0][0], self.entries[-1][0]


EMPTY_SERIES = Series()
