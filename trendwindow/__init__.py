"""Incremental time-series window manager for the trend chart."""
from .fetch import Direction, FetchCoordinator, FetchTicket
from .merger import merge
from .range_tracker import RangeTracker
from .schemas import Point, Range, VisibleRange
from .series import Series, time_key
from .viewport import BoundaryDecision, ViewportMonitor
from .window_manager import SlotState, WindowContext, WindowManager

__version__ = "0.1.0"
