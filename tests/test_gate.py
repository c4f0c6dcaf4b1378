"""Tests for the RateLimiter facade."""

import pytest

from ratelimit_gate.rl import (
    GroupPolicyOverride,
    HostnameGrouping,
    RateLimiter,
    RatePolicy,
)


class TestAdmission:
    """Test is_allowed and related queries."""

    def test_two_per_second_global(self, clock):
        """Three immediate calls yield allow, allow, deny."""
        limiter = RateLimiter(RatePolicy(max_requests=2, window_seconds=1), clock=clock)

        results = [limiter.is_allowed("http://example.com") for _ in range(3)]

        assert results == [True, True, False]
        assert limiter.remaining("http://example.com") == 0
        assert limiter.request_count("http://example.com") == 2

    def test_hostname_grouping_isolates_hosts(self, clock):
        limiter = RateLimiter(
            RatePolicy(max_requests=1, window_seconds=1),
            grouping=HostnameGrouping(),
            clock=clock,
        )

        assert limiter.is_allowed("http://a.com") is True
        assert limiter.is_allowed("http://b.com") is True
        assert limiter.is_allowed("http://a.com") is False

    def test_capacity_returns_after_window(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=3, window_seconds=5), clock=clock)

        for _ in range(3):
            assert limiter.is_allowed("http://example.com") is True
        assert limiter.is_allowed("http://example.com") is False
        assert limiter.can_make_request("http://example.com") is False
        assert limiter.time_until_next_request("http://example.com") == 5000

        clock.advance(5)

        assert limiter.can_make_request("http://example.com") is True
        assert limiter.is_allowed("http://example.com") is True

    def test_queries_do_not_consume(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=1, window_seconds=1), clock=clock)

        assert limiter.remaining("http://example.com") == 1
        assert limiter.reset_time("http://example.com") is None
        assert limiter.can_make_request("http://example.com") is True
        assert limiter.is_allowed("http://example.com") is True

    def test_reset_time_after_first_request(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=5, window_seconds=10), clock=clock)

        limiter.is_allowed("http://example.com")

        assert limiter.reset_time("http://example.com") == int(clock.now_ms + 10_000)

    def test_grouping_by_method(self, clock):
        """Different methods to the same URL get separate buckets."""
        limiter = RateLimiter(
            RatePolicy(max_requests=1, window_seconds=1),
            grouping=lambda url, method: f"{method}:{url}",
            clock=clock,
        )

        assert limiter.is_allowed("http://example.com", "GET") is True
        assert limiter.is_allowed("http://example.com", "POST") is True
        assert limiter.is_allowed("http://example.com", "GET") is False
        assert limiter.is_allowed("http://example.com", "POST") is False
        assert limiter.group("http://example.com", "POST") == "POST:http://example.com"

    def test_group(self, clock):
        limiter = RateLimiter(grouping=lambda url: "custom", clock=clock)
        assert limiter.group("http://example.com") == "custom"

    def test_instances_do_not_share_state(self, clock):
        policy = RatePolicy(max_requests=1, window_seconds=60)
        first = RateLimiter(policy, clock=clock)
        second = RateLimiter(policy, clock=clock)

        assert first.is_allowed("http://example.com") is True
        assert second.is_allowed("http://example.com") is True


class TestPolicies:
    """Test policy configuration through the facade."""

    def test_static_override_supersedes_default(self, clock):
        limiter = RateLimiter(
            RatePolicy(max_requests=1, window_seconds=60),
            per_group={"b.com": GroupPolicyOverride(max_requests=3)},
            grouping=HostnameGrouping(),
            clock=clock,
        )

        assert [limiter.is_allowed("http://b.com") for _ in range(4)] == [True, True, True, False]
        assert limiter.get_policy("b.com") == RatePolicy(max_requests=3, window_seconds=60)
        assert limiter.get_policy("a.com") == RatePolicy(max_requests=1, window_seconds=60)

    def test_set_policy(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=1, window_seconds=60), clock=clock)

        effective = limiter.set_policy("global", max_requests=2)

        assert effective == RatePolicy(max_requests=2, window_seconds=60)
        assert [limiter.is_allowed("http://example.com") for _ in range(3)] == [True, True, False]

    def test_clear_keeps_policy(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=1, window_seconds=60), clock=clock)
        limiter.set_policy("global", max_requests=2)
        limiter.is_allowed("http://example.com")
        limiter.is_allowed("http://example.com")

        limiter.clear("global")

        assert limiter.remaining("http://example.com") == 2
        assert limiter.get_policy("global").max_requests == 2

    def test_clear_all(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=1, window_seconds=60), grouping=HostnameGrouping(), clock=clock)
        limiter.is_allowed("http://a.com")
        limiter.is_allowed("http://b.com")

        limiter.clear_all()

        assert limiter.is_allowed("http://a.com") is True
        assert limiter.is_allowed("http://b.com") is True


class TestNegotiation:
    """Test header-driven policy updates."""

    def test_update_from_standard_headers(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=5, window_seconds=1), clock=clock)

        applied = limiter.update_from_headers(
            "http://example.com",
            {"ratelimit-policy": '"p";q=100;w=60', "ratelimit": '"p";r=75;t=30'},
        )

        assert applied is True
        assert limiter.get_policy("global") == RatePolicy(max_requests=100, window_seconds=60)

    def test_update_from_legacy_headers(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=5, window_seconds=1), clock=clock)

        limiter.update_from_headers(
            "http://example.com",
            {"x-ratelimit-limit": "50", "x-ratelimit-window": "120"},
        )

        assert limiter.get_policy("global") == RatePolicy(max_requests=50, window_seconds=120)

    def test_partial_patch_keeps_other_fields(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=5, window_seconds=1), clock=clock)
        limiter.set_policy("global", window_seconds=30)

        limiter.update_from_headers("http://example.com", {"x-ratelimit-limit": "8"})

        assert limiter.get_policy("global") == RatePolicy(max_requests=8, window_seconds=30)

    def test_empty_patch_is_noop(self, clock):
        limiter = RateLimiter(RatePolicy(max_requests=5, window_seconds=1), clock=clock)

        assert limiter.update_from_headers("http://example.com", {"x-ratelimit-limit": "n/a"}) is False
        assert limiter.get_group_override("global") is None

    def test_negotiated_policy_applies_to_later_checks(self, clock):
        """History is kept; the new limit governs the next decision."""
        limiter = RateLimiter(RatePolicy(max_requests=5, window_seconds=60), clock=clock)
        limiter.is_allowed("http://example.com")
        limiter.is_allowed("http://example.com")

        limiter.update_from_headers("http://example.com", {"x-ratelimit-limit": "2"})

        assert limiter.is_allowed("http://example.com") is False
        assert limiter.remaining("http://example.com") == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
