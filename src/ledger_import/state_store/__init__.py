"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Entity cache (canonical names, ledger ids, aliases)
- Learned corrections from user edits
- AI categorization usage

Enforces uniqueness on (description_pattern, match_type) for corrections.
"""

from .sqlite_store import (
    CorrectionMatchType,
    CorrectionRecord,
    EntityRecord,
    StateStore,
    normalize_description,
)

__all__ = [
    "StateStore",
    "CorrectionMatchType",
    "CorrectionRecord",
    "EntityRecord",
    "normalize_description",
]
