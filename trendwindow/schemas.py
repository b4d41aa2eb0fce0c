from pydantic import BaseModel, model_validator
from typing import Dict, Optional, Union

class Point(BaseModel):
    """Schema for a single trend point.

    ``time`` is epoch seconds (UTC), an ISO-8601 string, or a
    non-chronological placeholder such as an age label.
    """
    time: Union[int, float, str]
    value: float
    label: Optional[str] = None
    dimensions: Optional[Dict[str, float]] = None

class Range(BaseModel):
    """Materialized window, epoch seconds inclusive."""
    start: int
    end: int
    granularity: str

    @model_validator(mode="after")
    def _check_order(self):
        if self.start > self.end:
            raise ValueError(f"range start {self.start} is after end {self.end}")
        return self

class VisibleRange(BaseModel):
    """Visible logical-index range reported by the chart."""
    from_index: float
    to_index: float
    data_length: int

class TimeRangeRequest(BaseModel):
    """Schema for a full reload request."""
    start: int
    end: int
    granularity: Optional[str] = None
    subject: Optional[str] = None

