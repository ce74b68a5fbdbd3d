"""
Tests for the rotating endpoint pool.

Rotation needs both enough strikes and an elapsed cooldown; the clock is
injected so nothing here sleeps.
"""
import pytest

from models.events import Endpoint
from utils.endpoint_pool import EndpointPool, FailureKind


class TestConstruction:

    def test_empty_list_rejected(self):
        """Should refuse to build a pool with nothing in it."""
        with pytest.raises(ValueError):
            EndpointPool([])

    def test_starts_on_first_endpoint(self, pool, endpoints):
        assert pool.current() == endpoints[0]
        assert pool.strikes == 0
        assert len(pool) == 3


class TestRotation:

    def test_strikes_below_limit_never_rotate(self, pool, clock):
        """Two strikes with a limit of three should not rotate, however long we wait."""
        pool.record_failure(FailureKind.RATE_LIMIT)
        pool.record_failure(FailureKind.RATE_LIMIT)
        clock.advance(3600)

        assert pool.should_rotate() is False

    def test_limit_reached_inside_cooldown_does_not_rotate(self, pool, clock):
        """Strikes alone are not enough while the cooldown is still running."""
        clock.advance(10)
        for _ in range(5):
            pool.record_failure(FailureKind.RATE_LIMIT)

        assert pool.should_rotate() is False

    def test_limit_reached_after_cooldown_rotates(self, pool, clock, endpoints):
        clock.advance(30)
        for _ in range(3):
            pool.record_failure(FailureKind.RATE_LIMIT)

        assert pool.should_rotate() is True
        new = pool.rotate()

        assert new == endpoints[1]
        assert pool.current() == endpoints[1]
        assert pool.strikes == 0
        assert pool.rotations == 1

    def test_rotation_restarts_cooldown(self, pool, clock):
        clock.advance(30)
        for _ in range(3):
            pool.record_failure(FailureKind.CONNECTIVITY)
        pool.rotate()

        for _ in range(3):
            pool.record_failure(FailureKind.CONNECTIVITY)
        clock.advance(29)
        assert pool.should_rotate() is False
        clock.advance(1)
        assert pool.should_rotate() is True

    def test_rotation_wraps_around(self, pool, endpoints):
        """The pool never runs out; after the last endpoint comes the first again."""
        visited = [pool.rotate() for _ in range(len(endpoints))]

        assert visited == [endpoints[1], endpoints[2], endpoints[0]]
        assert pool.index == 0

    def test_single_endpoint_rotates_onto_itself(self, clock):
        only = Endpoint("https://solo.example.com", "wss://solo.example.com")
        pool = EndpointPool([only], clock=clock)

        assert pool.rotate() == only


class TestSuccess:

    def test_success_removes_one_strike(self, pool):
        pool.record_failure(FailureKind.RATE_LIMIT)
        pool.record_failure(FailureKind.RATE_LIMIT)
        pool.record_success()

        assert pool.strikes == 1

    def test_success_never_goes_negative(self, pool):
        pool.record_success()
        pool.record_success()

        assert pool.strikes == 0

    def test_isolated_rate_limit_heals(self, pool, clock):
        """An occasional 429 between good calls should never force a switch."""
        clock.advance(300)
        for _ in range(10):
            pool.record_failure(FailureKind.RATE_LIMIT)
            pool.record_success()

        assert pool.should_rotate() is False


class TestEndpointLabel:

    def test_label_hides_query_string(self, endpoints):
        """API keys in the URL must not leak into logs."""
        assert endpoints[0].label == "rpc-a.example.com"
        assert "secret" not in endpoints[0].label
