"""
Data sources the window manager pulls from.

Both expose ``fetch_series(subject, start_iso, end_iso, granularity)``
returning points inside ``[start, end]``. Neither promises ordering or
uniqueness across calls.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .config import settings
from .database import get_db
from .granularity import Granularity, get_granularity
from .schemas import Point
from .series import parse_time

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """The data source could not deliver points for a window."""


class SeriesSource(Protocol):
    async def fetch_series(
        self, subject: Dict[str, Any], start: str, end: str, granularity: str
    ) -> List[Point]:
        ...


def _parse_bound(value: str) -> int:
    ts = parse_time(value)
    if ts is None:
        raise SourceError(f"Invalid timestamp: {value!r}")
    return ts


def remote_point(raw: Dict[str, Any]) -> Point:
    """Map a scoring-service time series point onto a chart point."""
    value = raw.get("display")
    if value is None:
        value = raw.get("value")
    if value is None or "time" not in raw:
        raise SourceError(f"Malformed point from scoring service: {raw!r}")
    return Point(
        time=raw["time"],
        value=value,
        label=raw.get("label") or None,
        dimensions=raw.get("dimensions") or None,
    )


class HttpSeriesSource:
    """Client for the scoring service's time series endpoint."""

    endpoint = "/api/calc/time-series"

    def __init__(
        self,
        base_url: str = settings.SCORING_API_URL,
        timeout: Optional[float] = settings.FETCH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch_series(self, subject, start, end, granularity):
        body = {
            "birthData": subject.get("birthData", {}),
            "start": start,
            "end": end,
            "granularity": granularity,
        }
        logger.debug("Requesting %s..%s (%s) from %s", start, end, granularity, self.base_url)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(f"{self.base_url}{self.endpoint}", json=body)
            except httpx.HTTPError as exc:
                raise SourceError(f"Scoring service unreachable: {exc}") from exc

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error")
            except (ValueError, AttributeError):
                detail = None
            raise SourceError(detail or f"HTTP error! status: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise SourceError("Scoring service returned invalid JSON") from exc
        return [remote_point(p) for p in data.get("points") or []]


def get_bucketed_points(conn, subject: str, start: int, end: int, gran: Granularity) -> List[Point]:
    """
    Get points downsampled to the granularity's bucket size.

    Args:
        conn: Database connection
        subject: Subject the points belong to
        start: Start timestamp in seconds
        end: End timestamp in seconds
        gran: Granularity object

    Returns:
        list: Points ordered by bucket start
    """
    cursor = conn.cursor()
    size = gran.seconds

    # Rows are read in whole buckets so a bucket always averages the same
    # rows, but only buckets starting inside [start, end] are returned
    first_row = start // size * size
    last_row = end // size * size + size - 1

    # Using integer division to create buckets; dimensions only survive
    # buckets holding a single row
    cursor.execute("""
        SELECT (time / ?) * ? as bucket_start,
               AVG(value) as avg_value,
               MIN(label) as label,
               CASE WHEN COUNT(*) = 1 THEN MAX(dimensions) END as dimensions
        FROM trend_points
        WHERE subject = ? AND time >= ? AND time <= ?
        GROUP BY bucket_start
        HAVING bucket_start >= ? AND bucket_start <= ?
        ORDER BY bucket_start
    """, (size, size, subject, first_row, last_row, start, end))

    return [
        Point(
            time=int(row["bucket_start"]),
            value=float(row["avg_value"]),
            label=row["label"],
            dimensions=json.loads(row["dimensions"]) if row["dimensions"] else None,
        )
        for row in cursor.fetchall()
    ]


class SqliteSeriesSource:
    """Serves points from the local trend store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    def _query(self, subject: str, start: int, end: int, gran: Granularity) -> List[Point]:
        with get_db(self.db_path) as conn:
            return get_bucketed_points(conn, subject, start, end, gran)

    async def fetch_series(self, subject, start, end, granularity):
        try:
            gran = get_granularity(granularity)
        except ValueError as exc:
            raise SourceError(str(exc)) from exc
        subject_id = subject.get("subject") or "default"
        return await asyncio.to_thread(
            self._query, subject_id, _parse_bound(start), _parse_bound(end), gran
        )


def make_source(kind: str = settings.DATA_SOURCE) -> SeriesSource:
    if kind == "http":
        return HttpSeriesSource()
    if kind == "sqlite":
        return SqliteSeriesSource()
    raise ValueError(f"Unknown data source: {kind!r}")
