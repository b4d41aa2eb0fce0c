"""
Orchestrates the trend chart window: viewport signals in, merged series out.

Each edge (``before``/``after``) runs its own small state machine::

    IDLE --needs more--> AWAITING_FETCH --epoch valid--> MERGING --> IDLE
                         AWAITING_FETCH --stale/failed--> IDLE

A reload (initial load or granularity switch) forces both edges back to IDLE
and bumps the coordinator generation, which turns every older fetch stale.
All mutation happens in the handlers below, after the staleness check, and
only through the ``WindowContext`` they are given.
"""
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .fetch import Direction, FetchCoordinator, FetchTicket, utcnow
from .granularity import get_granularity
from .merger import merge
from .range_tracker import RangeTracker
from .schemas import Point, Range, VisibleRange
from .series import EMPTY_SERIES, Series, parse_time
from .viewport import ViewportMonitor

logger = logging.getLogger(__name__)

SeriesFetcher = Callable[[Dict[str, Any], str, str, str], Awaitable[List[Point]]]
SeriesSink = Callable[[List[Point]], Optional[Awaitable[None]]]
FetchErrorHandler = Callable[[Direction, BaseException], None]
PointClickHandler = Callable[[Point], None]

EDGES = (Direction.BEFORE, Direction.AFTER)


class SlotState(str, Enum):
    IDLE = "idle"
    AWAITING_FETCH = "awaiting_fetch"
    MERGING = "merging"


@dataclass
class WindowContext:
    """Mutable state owned by one WindowManager."""
    series: Series = EMPTY_SERIES
    tracker: RangeTracker = field(default_factory=RangeTracker)
    states: Dict[Direction, SlotState] = field(
        default_factory=lambda: {d: SlotState.IDLE for d in EDGES}
    )
    reloading: Optional[FetchTicket] = None


def to_iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class WindowManager:
    def __init__(
        self,
        fetch_series: SeriesFetcher,
        subject: Optional[Dict[str, Any]] = None,
        on_series: Optional[SeriesSink] = None,
        on_error: Optional[FetchErrorHandler] = None,
        on_point_click: Optional[PointClickHandler] = None,
        monitor: Optional[ViewportMonitor] = None,
        now: Callable[[], datetime] = utcnow,
        **coordinator_options,
    ):
        self._fetch_series = fetch_series
        self.subject = subject or {}
        self._on_series = on_series
        self._on_error = on_error
        self._on_point_click = on_point_click
        self.monitor = monitor or ViewportMonitor()
        self.coordinator = FetchCoordinator(
            self._fetch,
            self._handle_resolved,
            self._handle_failed,
            now=now,
            **coordinator_options,
        )
        self.ctx = WindowContext()

    # -- read-only views ---------------------------------------------------

    @property
    def series(self) -> List[Point]:
        return self.ctx.series.points()

    @property
    def range(self) -> Optional[Range]:
        return self.ctx.tracker.current

    def state(self, direction: Direction) -> SlotState:
        return self.ctx.states[direction]

    # -- collaborators -----------------------------------------------------

    def _fetch(self, ticket: FetchTicket) -> Awaitable[List[Point]]:
        return self._fetch_series(
            self.subject, to_iso(ticket.start), to_iso(ticket.end), ticket.granularity
        )

    async def _push(self, ctx: WindowContext):
        if self._on_series is None:
            return
        result = self._on_series(ctx.series.points())
        if inspect.isawaitable(result):
            await result

    def _report(self, direction: Direction, exc: BaseException):
        logger.warning("Fetch %s failed: %r", direction.value, exc)
        if self._on_error is None:
            return
        try:
            self._on_error(direction, exc)
        except Exception:
            logger.exception("Error handler raised for %s fetch", direction.value)

    # -- operations --------------------------------------------------------

    async def set_range(self, start: int, end: int, granularity: str) -> bool:
        """
        Full reload of the window. Series and Range are replaced wholesale;
        anything fetched for the previous window is discarded on arrival.
        Returns False when the reload failed or was itself superseded.
        """
        get_granularity(granularity)
        Range(start=start, end=end, granularity=granularity)

        ctx = self.ctx
        ticket = self.coordinator.begin_reload(start, end, granularity)
        ctx.reloading = ticket
        for d in EDGES:
            ctx.states[d] = SlotState.IDLE
        self.monitor.reset()

        try:
            points = await self.coordinator.run(ticket)
        except Exception as exc:
            if self.coordinator.is_current(ticket):
                ctx.reloading = None
                self._report(Direction.RELOAD, exc)
            return False
        return await self._handle_reloaded(ctx, ticket, points)

    def extend(self, direction: Direction, force: bool = False) -> Optional[FetchTicket]:
        """Request more data on one edge; None when nothing was issued."""
        ctx = self.ctx
        rng = ctx.tracker.current
        if rng is None or ctx.reloading is not None:
            return None
        ticket = self.coordinator.request(direction, rng, force=force)
        if ticket is not None:
            ctx.states[direction] = SlotState.AWAITING_FETCH
        return ticket

    def on_visible_range_change(self, visible: VisibleRange) -> List[FetchTicket]:
        """Handler for the chart's visible-range event."""
        if self.ctx.tracker.current is None:
            return []
        decision = self.monitor.check(visible)
        if not decision:
            return []
        issued = []
        if decision.needs_more_before:
            issued.append(self.extend(Direction.BEFORE))
        if decision.needs_more_after:
            issued.append(self.extend(Direction.AFTER))
        return [t for t in issued if t is not None]

    def on_point_click(self, time: Union[int, float, str]) -> Optional[Point]:
        """Resolve a clicked chart time to its point and pass it on."""
        key = parse_time(time)
        if key is None:
            return None
        point = self.ctx.series.find(key)
        if point is not None and self._on_point_click is not None:
            self._on_point_click(point)
        return point

    async def wait_idle(self):
        await self.coordinator.wait_idle()

    async def close(self):
        await self.coordinator.cancel_all()
        for d in EDGES:
            self.ctx.states[d] = SlotState.IDLE

    # -- transitions -------------------------------------------------------

    async def _handle_reloaded(self, ctx: WindowContext, ticket: FetchTicket, points: List[Point]) -> bool:
        if not self.coordinator.is_current(ticket):
            logger.debug("Discarding superseded reload %s", ticket)
            return False
        ctx.reloading = None
        ctx.series = Series.from_points(points)
        ctx.tracker.reset(ticket.start, ticket.end, ticket.granularity)
        # The chart resets its view to the full range on reload
        self.monitor.suppress()
        logger.info(
            "Loaded %d points for %s..%s (%s)",
            len(ctx.series), to_iso(ticket.start), to_iso(ticket.end), ticket.granularity,
        )
        await self._push(ctx)
        return True

    async def _handle_resolved(self, ticket: FetchTicket, points: List[Point]):
        ctx = self.ctx
        direction = ticket.direction
        if not self.coordinator.is_current(ticket):
            logger.debug("Discarding stale %s", ticket)
            if not self.coordinator.in_flight(direction) and ctx.states.get(direction) is SlotState.AWAITING_FETCH:
                ctx.states[direction] = SlotState.IDLE
            return

        ctx.states[direction] = SlotState.MERGING
        ctx.series = merge(ctx.series, points, direction)
        ctx.tracker.extend(direction, ticket.start, ticket.end, ticket.granularity)
        ctx.states[direction] = SlotState.IDLE
        logger.debug("Merged %d points %s, series now %d", len(points), direction.value, len(ctx.series))
        await self._push(ctx)

    def _handle_failed(self, ticket: FetchTicket, exc: BaseException):
        self.ctx.states[ticket.direction] = SlotState.IDLE
        self._report(ticket.direction, exc)
