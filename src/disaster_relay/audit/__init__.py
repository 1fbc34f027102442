"""Audit trail engine: field diffs, append-only trails, soft delete."""

from disaster_relay.audit.trail import (
    TRACKED_FIELDS,
    append,
    canonical,
    creation_entry,
    deletion_entry,
    diff,
    diff_fields,
    dump_trail,
    ensure_extends,
    load_trail,
)

__all__ = [
    "TRACKED_FIELDS",
    "append",
    "canonical",
    "creation_entry",
    "deletion_entry",
    "diff",
    "diff_fields",
    "dump_trail",
    "ensure_extends",
    "load_trail",
]
