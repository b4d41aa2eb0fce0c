"""
Request lifecycle for window extensions: single flight per direction,
epoch-based staleness and clamping to the reachable time window.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from .config import settings
from .granularity import extension_for
from .schemas import Point, Range

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    RELOAD = "reload"  # full-window slot used by set_range


@dataclass(frozen=True)
class FetchTicket:
    """Everything captured when a fetch is issued."""
    direction: Direction
    epoch: int
    generation: int
    start: int
    end: int
    granularity: str


FetchFn = Callable[[FetchTicket], Awaitable[List[Point]]]
ResultHandler = Callable[[FetchTicket, List[Point]], Awaitable[None]]
ErrorHandler = Callable[[FetchTicket, BaseException], None]


def shift_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year + years, day=28)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FetchCoordinator:
    """
    Decides the concrete extension window for a direction and issues it.

    Every issued fetch mints a new epoch. A result may be applied only while
    ``is_current`` holds for its ticket: no newer fetch for the same slot has
    been issued and no reload has bumped the generation since. The network
    call itself is never aborted; a superseded result is just ignored.
    """

    def __init__(
        self,
        fetch: FetchFn,
        on_result: ResultHandler,
        on_error: ErrorHandler,
        timeout: Optional[float] = settings.FETCH_TIMEOUT,
        years_back: int = settings.CLAMP_YEARS_BACK,
        years_forward: int = settings.CLAMP_YEARS_FORWARD,
        now: Callable[[], datetime] = utcnow,
    ):
        self._fetch = fetch
        self._on_result = on_result
        self._on_error = on_error
        self.timeout = timeout
        self.years_back = years_back
        self.years_forward = years_forward
        self._now = now

        self._epoch = 0
        self.generation = 0
        self._current: Dict[Direction, int] = {}
        self._in_flight: Dict[Direction, int] = {}
        self._exhausted: Set[Direction] = set()
        self._tasks: Set[asyncio.Task] = set()

    # -- bookkeeping -------------------------------------------------------

    @property
    def epoch(self) -> int:
        return self._epoch

    def _mint(self, direction: Direction, start: int, end: int, granularity: str) -> FetchTicket:
        self._epoch += 1
        self._current[direction] = self._epoch
        self._in_flight[direction] = self._epoch
        return FetchTicket(direction, self._epoch, self.generation, start, end, granularity)

    def is_current(self, ticket: FetchTicket) -> bool:
        return (
            ticket.generation == self.generation
            and self._current.get(ticket.direction) == ticket.epoch
        )

    def in_flight(self, direction: Direction) -> bool:
        return direction in self._in_flight

    def exhausted(self, direction: Direction) -> bool:
        return direction in self._exhausted

    def _release(self, ticket: FetchTicket):
        # A superseded fetch must not clear the flag of the one that replaced it
        if self._in_flight.get(ticket.direction) == ticket.epoch:
            del self._in_flight[ticket.direction]

    def reset(self):
        """Invalidate everything in flight; used on reload and granularity switch."""
        self.generation += 1
        self._current.clear()
        self._in_flight.clear()
        self._exhausted.clear()

    # -- planning ----------------------------------------------------------

    def bounds(self) -> Tuple[int, int]:
        """Earliest and latest reachable timestamps, epoch seconds."""
        now = self._now()
        earliest = shift_years(now, -self.years_back)
        latest = shift_years(now, self.years_forward)
        return int(earliest.timestamp()), int(latest.timestamp())

    def plan(self, direction: Direction, rng: Range) -> Optional[Tuple[int, int]]:
        """
        Extension window for ``direction``, shrunk to the clamp when it would
        cross it. Returns None and marks the direction exhausted when the
        current boundary already sits at the clamp.
        """
        ext = int(extension_for(rng.granularity).total_seconds())
        earliest, latest = self.bounds()
        if direction == Direction.BEFORE:
            if rng.start <= earliest:
                self._mark_exhausted(direction)
                return None
            return max(rng.start - ext, earliest), rng.start
        if direction == Direction.AFTER:
            if rng.end >= latest:
                self._mark_exhausted(direction)
                return None
            return rng.end, min(rng.end + ext, latest)
        raise ValueError(f"cannot plan an extension for {direction!r}")

    def _mark_exhausted(self, direction: Direction):
        if direction not in self._exhausted:
            logger.info("No more data reachable %s the current window", direction.value)
        self._exhausted.add(direction)

    # -- issuing -----------------------------------------------------------

    def request(self, direction: Direction, rng: Range, force: bool = False) -> Optional[FetchTicket]:
        """
        Issue an extension fetch in the background.

        A trigger for a direction that already has a fetch in flight is
        dropped unless ``force`` is set, in which case the new fetch
        supersedes the old one.
        """
        if direction in self._exhausted:
            return None
        if direction in self._in_flight and not force:
            logger.debug("Dropping %s trigger, fetch already in flight", direction.value)
            return None
        window = self.plan(direction, rng)
        if window is None:
            return None
        ticket = self._mint(direction, window[0], window[1], rng.granularity)
        logger.debug("Issuing %s", ticket)
        task = asyncio.get_running_loop().create_task(self._drive(ticket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return ticket

    def begin_reload(self, start: int, end: int, granularity: str) -> FetchTicket:
        """Bump the generation and mint the ticket for a full-window fetch."""
        self.reset()
        return self._mint(Direction.RELOAD, start, end, granularity)

    async def run(self, ticket: FetchTicket) -> List[Point]:
        """Await the data source for ``ticket``, releasing its slot afterwards."""
        try:
            return await asyncio.wait_for(self._fetch(ticket), self.timeout)
        finally:
            self._release(ticket)

    async def _drive(self, ticket: FetchTicket):
        try:
            points = await self.run(ticket)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self.is_current(ticket):
                self._on_error(ticket, exc)
            else:
                logger.debug("Ignoring failure of superseded %s: %s", ticket, exc)
            return
        try:
            await self._on_result(ticket, points)
        except Exception:
            # Runs detached from any caller
            logger.exception("Applying %s failed", ticket)

    async def wait_idle(self):
        """Wait until every background fetch has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self):
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
