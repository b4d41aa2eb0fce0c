"""Merge a freshly fetched chunk into an existing series."""
from __future__ import annotations

from typing import Dict, Iterable, List

from .fetch import Direction
from .schemas import Point
from .series import Series, time_key


def merge(series: Series, chunk: Iterable[Point], direction: Direction) -> Series:
    """
    Combine ``series`` with ``chunk``.

    The chunk wins on duplicate time keys; a newer fetch carries the latest
    computation for that instant. For a ``before`` merge the chunk's keys are
    laid down ahead of the existing ones, for ``after`` behind them, but the
    final order comes only from sorting by key, so merging the same chunk
    twice gives the same series as merging it once.

    Points without a parsable timestamp are never keyed; the chunk's
    positional points replace the existing ones when it has any.
    """
    incoming: Dict[int, Point] = {}
    incoming_positional: List[Point] = []
    for p in chunk:
        key = time_key(p)
        if key is None:
            incoming_positional.append(p)
        else:
            incoming[key] = p

    if direction == Direction.BEFORE:
        by_key = dict(incoming)
        for key, p in series.entries:
            by_key.setdefault(key, p)
    else:
        by_key = dict(series.entries)
        by_key.update(incoming)

    entries = tuple(sorted(by_key.items(), key=lambda kv: kv[0]))
    positional = tuple(incoming_positional) if incoming_positional else series.positional
    return Series(entries, positional)
