"""Test fixed-window rate admission."""

import pytest
from prometheus_client import REGISTRY

from disaster_relay.admission.limiter import FixedWindowLimiter
from disaster_relay.core.config import AdmissionConfig, TierLimit
from disaster_relay.core.enums import Tier
from disaster_relay.core.errors import AdmissionRejected


@pytest.fixture
def limiter(sim_clock):
    return FixedWindowLimiter(AdmissionConfig(), sim_clock)


def _rejections(tier: str) -> float:
    return REGISTRY.get_sample_value("relay_admission_rejections_total", {"tier": tier}) or 0.0


class TestFixedWindow:
    def test_eleventh_strict_request_rejected(self, limiter, sim_clock):
        for _ in range(10):
            limiter.admit("10.0.0.1", Tier.STRICT)
        sim_clock.advance(20)

        with pytest.raises(AdmissionRejected) as info:
            limiter.admit("10.0.0.1", Tier.STRICT)

        assert info.value.retry_after == 40
        assert info.value.limit == 10
        assert info.value.tier == "strict"

    def test_remaining_counts_down(self, limiter):
        first = limiter.admit("a", Tier.AI)
        second = limiter.admit("a", Tier.AI)
        assert (first.limit, first.remaining) == (5, 4)
        assert second.remaining == 3
        assert first.reset_after == 60

    def test_window_resets_after_expiry(self, limiter, sim_clock):
        for _ in range(5):
            limiter.admit("a", Tier.AI)
        sim_clock.advance(60)

        assert limiter.admit("a", Tier.AI).remaining == 4

    def test_rejection_is_not_counted(self, limiter, sim_clock):
        for _ in range(5):
            limiter.admit("a", Tier.AI)
        for _ in range(3):
            with pytest.raises(AdmissionRejected):
                limiter.admit("a", Tier.AI)
        sim_clock.advance(60)
        assert limiter.admit("a", Tier.AI).remaining == 4

    def test_sources_and_tiers_are_independent(self, limiter):
        for _ in range(5):
            limiter.admit("a", Tier.AI)
        limiter.admit("b", Tier.AI)
        limiter.admit("a", Tier.STRICT)

    def test_retry_after_at_least_one_second(self, sim_clock):
        config = AdmissionConfig(tiers={Tier.STRICT: TierLimit(window_seconds=1, max_requests=1)})
        limiter = FixedWindowLimiter(config, sim_clock)
        limiter.admit("a", Tier.STRICT)
        sim_clock.advance_ms(999)

        with pytest.raises(AdmissionRejected) as info:
            limiter.admit("a", Tier.STRICT)
        assert info.value.retry_after == 1

    def test_rejection_counted_and_logged(self, limiter, caplog):
        before = _rejections("ai")
        for _ in range(5):
            limiter.admit("a", Tier.AI)

        with caplog.at_level("WARNING"), pytest.raises(AdmissionRejected):
            limiter.admit("a", Tier.AI)

        assert _rejections("ai") == before + 1
        record = next(r for r in caplog.records if getattr(r, "action", None) == "rate_limit_exceeded")
        assert record.source == "a"
        assert record.tier == "ai"

    def test_message_from_tier_config(self, limiter):
        for _ in range(5):
            limiter.admit("a", Tier.AI)
        with pytest.raises(AdmissionRejected, match="Too many AI requests"):
            limiter.admit("a", Tier.AI)


class TestCheck:
    def test_exempt_paths_never_counted(self, limiter):
        for _ in range(200):
            assert limiter.check("a", Tier.GENERAL, "/health") is None
        assert limiter.tracked_windows == 0

    def test_disabled_admits_everything(self, sim_clock):
        limiter = FixedWindowLimiter(AdmissionConfig(enabled=False), sim_clock)
        for _ in range(20):
            assert limiter.check("a", Tier.AI, "/api/disasters") is None

    def test_counted_path(self, limiter):
        assert limiter.check("a", Tier.GENERAL, "/api/disasters").remaining == 99

    def test_reset_clears_windows(self, limiter):
        limiter.admit("a", Tier.GENERAL)
        limiter.reset()
        assert limiter.tracked_windows == 0
