"""AI categorization for statement rows the lookup tables cannot resolve.

Optional: the import processor runs without it when AI is disabled.
"""

from ledger_import.categorizer.cache import AICacheEntry, AIResponseCache
from ledger_import.categorizer.prompts import CategorizePrompt
from ledger_import.categorizer.service import (
    AICategorizationError,
    AICategorizer,
    AIErrorCode,
    AIUsage,
    CategorizationOutcome,
)

__all__ = [
    "AICategorizer",
    "AICategorizationError",
    "AIErrorCode",
    "AIUsage",
    "AICacheEntry",
    "AIResponseCache",
    "CategorizationOutcome",
    "CategorizePrompt",
]
