from dataclasses import dataclass
from datetime import timedelta
from typing import Dict

@dataclass
class Granularity:
    symbol: str  # e.g. "hour", "day", "month"
    name: str    # e.g. "1 hour", "1 day"
    seconds: int  # bucket size in seconds (month/year approximate)
    extension: timedelta  # how far one edge fetch reaches

    def __repr__(self):
        return f"<Granularity {self.symbol} ({self.name})>"

# Create granularity instances
hour = Granularity('hour', '1 hour', 3_600, timedelta(days=1))
day = Granularity('day', '1 day', 86_400, timedelta(days=15))
week = Granularity('week', '1 week', 604_800, timedelta(days=28))
month = Granularity('month', '1 month', 2_592_000, timedelta(days=180))
year = Granularity('year', '1 year', 31_536_000, timedelta(days=365))

# Create a lookup dictionary for easy access by symbol
GRANULARITIES: Dict[str, Granularity] = {
    g.symbol: g for g in [hour, day, week, month, year]
}

# Extension used for symbols outside the table
DEFAULT_EXTENSION = timedelta(days=15)


def get_granularity(symbol: str) -> Granularity:
    """Look up a granularity by symbol, raising ValueError for unknown ones."""
    try:
        return GRANULARITIES[symbol]
    except KeyError:
        raise ValueError(
            f"Invalid granularity. Valid options are: {', '.join(GRANULARITIES.keys())}"
        ) from None


def extension_for(symbol: str) -> timedelta:
    gran = GRANULARITIES.get(symbol)
    return gran.extension if gran else DEFAULT_EXTENSION


def pick_granularity(span_seconds: int) -> str:
    """
    Determine the appropriate granularity based on the visible time span.

    Args:
        span_seconds: The visible time span in seconds

    Returns:
        str: The appropriate granularity symbol ('hour', 'day', ...)
    """
    if span_seconds > 2 * 365 * 86_400:    # > 2 years
        return "month"
    elif span_seconds > 60 * 86_400:       # > 60 days
        return "week"
    elif span_seconds > 3 * 86_400:        # > 3 days
        return "day"
    else:
        return "hour"
