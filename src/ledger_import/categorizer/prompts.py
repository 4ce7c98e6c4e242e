"""Prompt template for AI entity categorization.

Prompts are versioned so cached answers can be told apart when the wording
changes.
"""

from __future__ import annotations

from dataclasses import dataclass

PROMPT_VERSION = "v1.0"

CATEGORIES = (
    "Groceries",
    "Dining",
    "Transport",
    "Utilities",
    "Entertainment",
    "Shopping",
    "Health",
    "Insurance",
    "Subscriptions",
    "Income",
    "Transfer",
    "Government",
    "Education",
    "Travel",
    "Rent",
    "Other",
)


@dataclass
class CategorizePrompt:
    """Prompt asking for the merchant name and a spending category.

    Attributes:
        version: Prompt version.
        user_template: User message with a {raw_row} placeholder.
    """

    version: str = PROMPT_VERSION

    user_template: str = """Given this bank transaction data, identify the merchant/entity name and a spending category.

Transaction data: {raw_row}

Reply in JSON only: {{"entityName": "...", "category": "..."}}
Common categories: {categories}."""

    def format_user_message(self, raw_row: str) -> str:
        """Format the user message for one statement row."""
        return self.user_template.format(raw_row=raw_row, categories=", ".join(CATEGORIES))
