"""Per-source, per-tier fixed-window rate admission."""

from disaster_relay.admission.limiter import Admission, FixedWindowLimiter

__all__ = ["Admission", "FixedWindowLimiter"]
