"""Disaster response relay: enrichment, audit trail and real-time fan-out."""

__version__ = "0.1.0"
