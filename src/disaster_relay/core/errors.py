"""Custom exception hierarchy for the disaster relay."""


class ReliefError(Exception):
    """Base exception for all relay errors."""


# --- Configuration ---
class ConfigError(ReliefError):
    """Invalid or missing configuration."""


# --- Caller-visible ---
class NotFoundError(ReliefError):
    """Referenced entity does not exist (or was soft-deleted)."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class UnauthorizedError(ReliefError):
    """Actor does not own the entity being mutated."""

    def __init__(self, actor: str, entity_id: str):
        self.actor = actor
        self.entity_id = entity_id
        super().__init__(f"Actor {actor!r} may not modify {entity_id}")


class AdmissionRejected(ReliefError):
    """Rate ceiling exceeded for a source/tier. Retryable."""

    def __init__(
        self,
        source: str,
        tier: str,
        limit: int,
        retry_after: float,
        message: str = "",
    ):
        self.source = source
        self.tier = tier
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            message or f"Rate limit exceeded for {source} on tier {tier}"
        )


# --- Absorbed locally, never cross the service boundary ---
class EnrichmentDegraded(ReliefError):
    """External enrichment failed or timed out; fallback applies."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Enrichment [{kind}] degraded: {reason}")


class CacheUnavailable(ReliefError):
    """Cache backend failed; treated as a miss."""


# --- Fatal ---
class FatalError(ReliefError):
    """Programming or infrastructure error. The operation is aborted."""


class AuditCorruptedError(FatalError):
    """A persisted audit trail does not match the audit entry schema."""
