"""Shared defaults for docroute."""

DEFAULT_REMINDER_ADVANCE_DAYS = 3
DEFAULT_RETENTION_DAYS = 7
DEFAULT_RETENTION_NOTIFY_DAYS_BEFORE = 2
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_CONFLICT_RETRIES = 3

PARTICIPANT_COLORS = [
    "#2563eb",
    "#16a34a",
    "#d97706",
    "#dc2626",
    "#7c3aed",
    "#0891b2",
    "#db2777",
    "#65a30d",
    "#ea580c",
    "#4f46e5",
]
