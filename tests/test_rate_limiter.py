from conftest import FakeClock

from mlsbridge.adapters.clients.rate_limiter import RateLimiter


def test_allows_exactly_rpm_then_denies():
    clock = FakeClock()
    rl = RateLimiter(5, clock=clock)
    first = clock()

    for i in range(5):
        d = rl.check_limit()
        assert d.allowed is True
        assert d.remaining == 4 - i
        clock.advance(1)

    denied = rl.check_limit()
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_time >= first + 60


def test_denied_check_is_not_recorded_and_window_slides():
    clock = FakeClock()
    rl = RateLimiter(2, clock=clock)
    assert rl.check_limit().allowed
    clock.advance(10)
    assert rl.check_limit().allowed
    assert not rl.check_limit().allowed

    # oldest request leaves the trailing minute
    clock.advance(51)
    assert rl.check_limit().allowed
    assert not rl.check_limit().allowed


def test_retry_after_counts_down_to_reset():
    clock = FakeClock()
    rl = RateLimiter(1, clock=clock)
    rl.check_limit()
    clock.advance(20)
    d = rl.check_limit()
    assert not d.allowed
    assert d.retry_after(clock()) == 40


def test_hourly_cap_applies_after_minute_window():
    clock = FakeClock()
    rl = RateLimiter(10, requests_per_hour=3, clock=clock)
    for _ in range(3):
        assert rl.check_limit().allowed
        clock.advance(61)
    d = rl.check_limit()
    assert not d.allowed

    clock.advance(3600)
    assert rl.check_limit().allowed


def test_status_does_not_consume():
    clock = FakeClock()
    rl = RateLimiter(3, clock=clock)
    rl.check_limit()
    assert rl.status().remaining == 2
    assert rl.status().remaining == 2
    rl.reset()
    assert rl.status().remaining == 3
