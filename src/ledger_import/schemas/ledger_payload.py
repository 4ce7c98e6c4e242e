"""
Ledger page payloads (Balance Sheet database).

Property schema of the Balance Sheet database:
- Description: title
- Account, Type, Location: select
- Category: multi_select
- Amount: number
- Date: date
- Online: checkbox
- Entity: relation (Entities database)
- Checksum, Raw Row: rich_text

Notion caps a rich_text run at 2000 characters, so the Raw Row audit field is
truncated before it is sent.
"""

from typing import Any

from .transactions import ConfirmedTransaction

CHECKSUM_PROPERTY = "Checksum"
RAW_ROW_PROPERTY = "Raw Row"
RAW_ROW_MAX_LENGTH = 2000
DEFAULT_CATEGORY = "Other"


def _rich_text(content: str) -> dict[str, Any]:
    return {"rich_text": [{"text": {"content": content}}]}


def truncate_raw_row(raw_row: str, max_length: int = RAW_ROW_MAX_LENGTH) -> str:
    """Truncate the audit field to the ledger's rich_text limit."""
    return raw_row[:max_length]


def build_transaction_properties(
    transaction: ConfirmedTransaction,
    raw_row_max_length: int = RAW_ROW_MAX_LENGTH,
) -> dict[str, Any]:
    """
    Build Balance Sheet page properties for a confirmed transaction.

    Entity, location and online default to "no relation", no select and
    unchecked when the confirmed transaction does not carry them.

    Args:
        transaction: Confirmed transaction to persist
        raw_row_max_length: Maximum stored length of the Raw Row field

    Returns:
        Properties dict for a page-create call
    """
    properties: dict[str, Any] = {
        "Description": {"title": [{"text": {"content": transaction.description}}]},
        "Account": {"select": {"name": transaction.account}},
        "Amount": {"number": float(transaction.amount)},
        "Date": {"date": {"start": transaction.date}},
        "Type": {"select": {"name": transaction.kind.ledger_name}},
        "Category": {"multi_select": [{"name": DEFAULT_CATEGORY}]},
        "Online": {"checkbox": bool(transaction.online)},
        CHECKSUM_PROPERTY: _rich_text(transaction.checksum),
    }

    if transaction.entity_id:
        properties["Entity"] = {"relation": [{"id": transaction.entity_id}]}
    if transaction.location:
        properties["Location"] = {"select": {"name": transaction.location}}
    if transaction.raw_row:
        properties[RAW_ROW_PROPERTY] = _rich_text(
            truncate_raw_row(transaction.raw_row, raw_row_max_length)
        )

    return properties


def build_entity_properties(name: str) -> dict[str, Any]:
    """Build Entities page properties for a new entity."""
    return {"Name": {"title": [{"text": {"content": name}}]}}


def build_checksum_filter(checksums: list[str]) -> dict[str, Any]:
    """OR-of-equals filter matching any of the given checksums."""
    return {
        "or": [
            {"property": CHECKSUM_PROPERTY, "rich_text": {"equals": checksum}}
            for checksum in checksums
        ]
    }


def extract_checksum(page: dict[str, Any]) -> str | None:
    """Return the first text run of a page's Checksum property, if any."""
    prop = page.get("properties", {}).get(CHECKSUM_PROPERTY)
    if not prop or prop.get("type") != "rich_text":
        return None
    runs = prop.get("rich_text") or []
    if not runs:
        return None
    return runs[0].get("plain_text") or None
