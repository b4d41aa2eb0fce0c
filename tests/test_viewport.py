import pytest

from trendwindow.schemas import VisibleRange
from trendwindow.viewport import ViewportMonitor, edge_buffer

from fakes import FakeClock


@pytest.mark.parametrize("length,expected", [(0, 3), (10, 3), (50, 4), (100, 8), (149, 11), (1000, 12)])
def test_edge_buffer_is_clamped(length, expected):
    assert edge_buffer(length) == expected


def test_before_boundary_trigger():
    monitor = ViewportMonitor(right_offset=5)
    near = monitor.decide(VisibleRange(from_index=5, to_index=60, data_length=100))
    far = monitor.decide(VisibleRange(from_index=10, to_index=60, data_length=100))
    assert near.needs_more_before is True
    assert far.needs_more_before is False
    assert not far


def test_after_boundary_discounts_right_offset():
    monitor = ViewportMonitor(right_offset=5)
    # to_index 95 is the data end plus the chart's blank padding
    assert monitor.decide(VisibleRange(from_index=40, to_index=95, data_length=100)).needs_more_after is False
    assert monitor.decide(VisibleRange(from_index=40, to_index=97, data_length=100)).needs_more_after is True


def test_empty_data_never_triggers():
    monitor = ViewportMonitor(clock=FakeClock())
    assert monitor.check(VisibleRange(from_index=-10, to_index=50, data_length=0)) is None
    assert not monitor.decide(VisibleRange(from_index=-10, to_index=50, data_length=0))


def test_check_is_throttled():
    clock = FakeClock()
    monitor = ViewportMonitor(debounce_ms=300, clock=clock)
    visible = VisibleRange(from_index=0, to_index=50, data_length=100)
    assert monitor.check(visible).needs_more_before
    clock.advance(0.1)
    assert monitor.check(visible) is None
    clock.advance(0.25)
    assert monitor.check(visible).needs_more_before


def test_cooldown_after_reset_view():
    clock = FakeClock()
    monitor = ViewportMonitor(debounce_ms=300, cooldown_ms=500, clock=clock)
    visible = VisibleRange(from_index=0, to_index=50, data_length=100)
    monitor.suppress()
    clock.advance(0.4)
    assert monitor.check(visible) is None
    clock.advance(0.2)
    assert monitor.check(visible).needs_more_before


def test_reset_clears_throttle_and_cooldown():
    clock = FakeClock()
    monitor = ViewportMonitor(clock=clock)
    visible = VisibleRange(from_index=0, to_index=50, data_length=100)
    monitor.check(visible)
    monitor.suppress()
    monitor.reset()
    assert monitor.check(visible) is not None
