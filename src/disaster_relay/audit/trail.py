"""Append-only audit trail with field-level diffs.

Contract:
    - diff() records a field only when its canonical serialization changed
    - set-like fields (tags) compare order- and duplicate-insensitively
    - append() returns a new entity; prior entries are never modified
    - delete is an audit entry, not a physical removal
    - a stored trail may only ever grow: ensure_extends() rejects any
      write whose trail is not the stored trail plus new entries
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.enums import AuditAction
from disaster_relay.core.errors import AuditCorruptedError
from disaster_relay.core.models import AuditEntry, FieldChange

TRACKED_FIELDS: tuple[str, ...] = ("title", "location_name", "description", "tags")
SET_LIKE_FIELDS: frozenset[str] = frozenset({"tags"})

E = TypeVar("E", bound=BaseModel)


def _field(entity: Any, name: str) -> Any:
    if isinstance(entity, BaseModel):
        return getattr(entity, name, None)
    return entity.get(name)


def canonical(field: str, value: Any) -> str:
    """Serialized form used for change detection."""
    if field in SET_LIKE_FIELDS and value is not None:
        value = sorted(set(value))
    return json.dumps(value, sort_keys=True, default=str)


def diff_fields(
    old: Any,
    new: Any,
    fields: Iterable[str] = TRACKED_FIELDS,
) -> dict[str, FieldChange]:
    changes: dict[str, FieldChange] = {}
    for name in fields:
        before, after = _field(old, name), _field(new, name)
        if canonical(name, before) != canonical(name, after):
            changes[name] = FieldChange(from_=before, to=after)
    return changes


def diff(
    old: Any,
    new: Any,
    actor: str,
    *,
    clock: IClock | None = None,
    fields: Iterable[str] = TRACKED_FIELDS,
) -> AuditEntry:
    """Build the ``update`` entry describing old -> new."""
    return AuditEntry(
        action=AuditAction.UPDATE,
        user_id=actor,
        timestamp=(clock or WallClock()).now(),
        changes=diff_fields(old, new, fields),
    )


def creation_entry(actor: str, *, clock: IClock | None = None) -> AuditEntry:
    return AuditEntry(
        action=AuditAction.CREATE,
        user_id=actor,
        timestamp=(clock or WallClock()).now(),
    )


def deletion_entry(
    actor: str,
    *,
    clock: IClock | None = None,
    reason: str = "User requested deletion",
) -> AuditEntry:
    return AuditEntry(
        action=AuditAction.DELETE,
        user_id=actor,
        timestamp=(clock or WallClock()).now(),
        reason=reason,
    )


def append(entity: E, entry: AuditEntry) -> E:
    """Return a copy of *entity* whose trail is the prior trail + *entry*."""
    trail: tuple[AuditEntry, ...] = getattr(entity, "audit_trail")
    return entity.model_copy(update={"audit_trail": (*trail, entry)})


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------


def dump_trail(trail: Sequence[AuditEntry]) -> list[dict[str, Any]]:
    return [
        e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in trail
    ]


def load_trail(raw: Any) -> tuple[AuditEntry, ...]:
    """Validate a persisted trail.

    Raises:
        AuditCorruptedError: The stored structure is not a list of audit
            entries. Callers must abort; a half-understood history must
            never be rewritten.
    """
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise AuditCorruptedError(
            f"audit trail must be a list, got {type(raw).__name__}"
        )
    try:
        return tuple(AuditEntry.model_validate(item) for item in raw)
    except ValidationError as exc:
        raise AuditCorruptedError(f"malformed audit entry: {exc}") from exc


def ensure_extends(
    stored: Sequence[AuditEntry], proposed: Sequence[AuditEntry]
) -> None:
    """Reject writes that would shorten or rewrite a stored trail."""
    if len(proposed) < len(stored) or tuple(proposed[: len(stored)]) != tuple(stored):
        raise AuditCorruptedError(
            f"audit trail would be rewritten ({len(stored)} stored, "
            f"{len(proposed)} proposed)"
        )
