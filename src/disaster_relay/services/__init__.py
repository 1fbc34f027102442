"""Application services: the mutation flows behind the HTTP surface."""

from disaster_relay.services.disasters import DisasterService
from disaster_relay.services.reports import ReportService

__all__ = ["DisasterService", "ReportService"]
