import math
import threading

import pytest

from authguard.app.core.errors import InvalidConfigurationError, InvalidIdentifierError
from authguard.app.services.rate_limit import RateLimitConfig, RateLimiter


def exhaust(limiter, identifier, count=5):
    return [limiter.check_limit(identifier) for _ in range(count)]


def test_window_admission(limiter):
    decisions = exhaust(limiter, "user-1")
    assert all(d.allowed for d in decisions)
    assert [d.remaining_attempts for d in decisions] == [4, 3, 2, 1, 0]
    assert all(d.blocked_until is None for d in decisions)


def test_first_violation_blocks_for_base_duration(limiter, clock):
    exhaust(limiter, "user-1")
    decision = limiter.check_limit("user-1")

    assert decision.allowed is False
    assert decision.remaining_attempts == 0
    assert decision.blocked_until == clock.now + 30_000
    assert decision.next_reset_time == clock.now + 60_000
    assert limiter.get_status("user-1").backoff_level == 1


def test_denied_while_blocked_does_not_escalate_or_record(limiter, clock):
    exhaust(limiter, "user-1")
    first = limiter.check_limit("user-1")

    clock.advance(10_000)
    for _ in range(3):
        decision = limiter.check_limit("user-1")
        assert decision.allowed is False
        assert decision.blocked_until == first.blocked_until
        assert decision.next_reset_time is None

    status = limiter.get_status("user-1")
    assert status.backoff_level == 1
    assert len(status.attempts) == 5


def test_second_violation_escalates(limiter, clock):
    exhaust(limiter, "user-1")
    limiter.check_limit("user-1")

    # Block expires but the five attempts are still inside the window.
    clock.advance(30_000)
    decision = limiter.check_limit("user-1")

    assert decision.allowed is False
    assert decision.blocked_until - clock.now == 60_000
    assert limiter.get_status("user-1").backoff_level == 2


def test_backoff_decays_after_quiet_period(limiter, clock):
    exhaust(limiter, "user-1")
    limiter.check_limit("user-1")
    clock.advance(30_000)
    limiter.check_limit("user-1")
    assert limiter.get_status("user-1").backoff_level == 2

    clock.advance(90_001)
    assert all(d.allowed for d in exhaust(limiter, "user-1"))
    decision = limiter.check_limit("user-1")

    assert decision.blocked_until - clock.now == 30_000
    assert limiter.get_status("user-1").backoff_level == 1


def test_backoff_does_not_decay_at_exact_reset_period(limiter, clock):
    exhaust(limiter, "user-1")
    limiter.check_limit("user-1")

    clock.advance(90_000)
    assert all(d.allowed for d in exhaust(limiter, "user-1"))
    decision = limiter.check_limit("user-1")

    assert decision.blocked_until - clock.now == 60_000
    assert limiter.get_status("user-1").backoff_level == 2


def test_expired_block_keeps_backoff_level(limiter, clock):
    exhaust(limiter, "user-1")
    limiter.check_limit("user-1")

    clock.advance(60_001)
    decision = limiter.check_limit("user-1")

    assert decision.allowed is True
    assert limiter.get_status("user-1").backoff_level == 1


def test_default_reset_period_is_three_blocks(clock):
    limiter = RateLimiter({"max_attempts": 1, "window_ms": 1_000, "block_duration_ms": 1_000}, clock=clock)
    assert limiter.config.effective_reset_period_ms == 3_000

    limiter.check_limit("k")
    limiter.check_limit("k")
    clock.advance(2_000)
    limiter.check_limit("k")
    limiter.check_limit("k")
    assert limiter.get_status("k").backoff_level == 2

    clock.advance(3_001)
    limiter.check_limit("k")
    limiter.check_limit("k")
    assert limiter.get_status("k").backoff_level == 1


def test_sliding_window_eviction(limiter, clock):
    exhaust(limiter, "user-1")
    clock.advance(60_001)

    decision = limiter.check_limit("user-1")
    assert decision.allowed is True
    assert decision.remaining_attempts == 4


def test_attempt_leaves_window_at_exact_boundary(limiter, clock):
    exhaust(limiter, "user-1")
    clock.advance(60_000)

    assert limiter.check_limit("user-1").allowed is True


def test_window_slides_per_attempt(limiter, clock):
    limiter.check_limit("user-1")
    clock.advance(30_000)
    exhaust(limiter, "user-1", count=4)

    clock.advance(30_000)
    # Only the first attempt has aged out.
    decision = limiter.check_limit("user-1")
    assert decision.allowed is True
    assert decision.remaining_attempts == 0
    assert limiter.check_limit("user-1").allowed is False


def test_reset_restores_fresh_allowance(limiter):
    exhaust(limiter, "user-1")
    limiter.check_limit("user-1")

    limiter.reset("user-1")

    assert "user-1" not in limiter
    decision = limiter.check_limit("user-1")
    assert decision.allowed is True
    assert decision.remaining_attempts == 4
    assert limiter.get_status("user-1").backoff_level == 0


def test_reset_unknown_identifier_is_noop(limiter):
    limiter.reset("never-seen")
    limiter.reset("never-seen")
    assert len(limiter) == 0


def test_reset_all(limiter):
    exhaust(limiter, "a")
    limiter.check_limit("b")

    limiter.reset_all()

    assert len(limiter) == 0
    assert limiter.check_limit("a").remaining_attempts == 4


def test_get_status_does_not_mutate(limiter, clock):
    exhaust(limiter, "user-1", count=4)
    for _ in range(10):
        status = limiter.get_status("user-1")
        assert status.remaining_attempts == 1
        assert status.blocked_until is None

    assert limiter.check_limit("user-1").allowed is True
    assert limiter.check_limit("user-1").allowed is False


def test_get_status_does_not_clear_expired_block(limiter, clock):
    exhaust(limiter, "user-1")
    blocked_until = limiter.check_limit("user-1").blocked_until
    clock.advance(60_001)

    status = limiter.get_status("user-1")
    assert status.blocked_until == blocked_until
    assert status.attempts == ()
    assert status.remaining_attempts == 5


def test_get_status_for_unseen_identifier(limiter):
    status = limiter.get_status("fresh")
    assert status.attempts == ()
    assert status.remaining_attempts == 5
    assert status.blocked_until is None
    assert status.backoff_level == 0


def test_identifiers_are_independent(limiter):
    exhaust(limiter, "a")
    assert limiter.check_limit("a").allowed is False

    decision = limiter.check_limit("b")
    assert decision.allowed is True
    assert decision.remaining_attempts == 4


@pytest.mark.parametrize("identifier", ["", "   ", None, 42, b"bytes"])
def test_invalid_identifier_rejected(limiter, identifier):
    with pytest.raises(InvalidIdentifierError):
        limiter.check_limit(identifier)
    with pytest.raises(InvalidIdentifierError):
        limiter.get_status(identifier)
    assert len(limiter) == 0


@pytest.mark.parametrize(
    "config",
    [
        {"max_attempts": 0},
        {"window_ms": -1},
        {"block_duration_ms": 0},
        {"backoff_multiplier": 0.5},
        {"reset_period_ms": 0},
        {"block_duration_ms": 10_000, "max_block_duration_ms": 5_000},
        {"unknown_option": 1},
    ],
)
def test_invalid_config_rejected(config):
    with pytest.raises(InvalidConfigurationError):
        RateLimiter(config)


def test_update_config_applies_to_later_checks(limiter):
    config = limiter.update_config(max_attempts=2)

    assert config.max_attempts == 2
    assert config.window_ms == 60_000
    assert limiter.check_limit("user-1").remaining_attempts == 1
    assert limiter.check_limit("user-1").remaining_attempts == 0
    assert limiter.check_limit("user-1").allowed is False


def test_update_config_is_not_retroactive(limiter, clock):
    exhaust(limiter, "user-1")
    blocked_until = limiter.check_limit("user-1").blocked_until

    limiter.update_config(block_duration_ms=1_000)

    assert limiter.get_status("user-1").blocked_until == blocked_until
    clock.advance(1_000)
    assert limiter.check_limit("user-1").allowed is False


def test_invalid_update_keeps_previous_config(limiter):
    before = limiter.config
    with pytest.raises(InvalidConfigurationError):
        limiter.update_config(backoff_multiplier=0.1)
    with pytest.raises(InvalidConfigurationError):
        limiter.update_config(max_attempt=3)
    assert limiter.config == before


def test_lockout_ceiling(clock):
    limiter = RateLimiter(
        {"max_attempts": 1, "window_ms": 100_000, "block_duration_ms": 30_000, "max_block_duration_ms": 45_000},
        clock=clock,
    )
    limiter.check_limit("k")
    limiter.check_limit("k")
    clock.advance(30_000)

    decision = limiter.check_limit("k")
    assert decision.blocked_until - clock.now == 45_000


def test_lockout_overflow_is_unbounded_without_ceiling():
    config = RateLimitConfig(backoff_multiplier=2)
    assert math.isinf(config.lockout_ms(5_000))

    capped = RateLimitConfig(backoff_multiplier=2, max_block_duration_ms=3_600_000)
    assert capped.lockout_ms(5_000) == 3_600_000


def test_sweep_evicts_only_idle_records(limiter, clock):
    limiter.check_limit("idle")
    exhaust(limiter, "blocked")
    limiter.check_limit("blocked")
    clock.advance(60_001)

    assert limiter.sweep() == 1
    assert "idle" not in limiter
    # Block expired but the backoff level is still remembered.
    assert "blocked" in limiter

    clock.advance(90_000)
    assert limiter.sweep() == 1
    assert len(limiter) == 0


def test_lazy_sweep_on_check(clock):
    limiter = RateLimiter({"sweep_interval_ms": 1_000}, clock=clock)
    limiter.check_limit("a")
    clock.advance(60_000)

    limiter.check_limit("b")

    assert "a" not in limiter
    assert "b" in limiter


def test_concurrent_checks_never_exceed_limit(clock):
    limiter = RateLimiter({"max_attempts": 10, "window_ms": 60_000, "block_duration_ms": 30_000}, clock=clock)
    results = []
    results_lock = threading.Lock()

    def worker():
        for _ in range(5):
            decision = limiter.check_limit("shared")
            with results_lock:
                results.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 10
    assert limiter.get_status("shared").backoff_level == 1
