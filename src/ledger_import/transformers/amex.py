"""
American Express CSV statement transformer.

Amex CSV columns:
- Date: DD/MM/YYYY
- Description: Merchant text
- Amount: Positive for charges (money out)
- Town/City: Multiline ("NORTH SYDNEY\\nNSW")
- Country, Address, Postcode: Text

Ledger convention is negative = expense, so amounts are negated.
"""

from __future__ import annotations

import csv
import hashlib
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from ..schemas import ParsedTransaction

logger = logging.getLogger(__name__)

ACCOUNT_NAME = "Amex"

ONLINE_INDICATORS = (
    "HELP.UBER.COM",
    "PAYPAL",
    "AMAZON",
    "NETFLIX",
    "SPOTIFY",
    "APPLE.COM",
    ".COM.AU",
    ".CO.UK",
)


def serialize_row(row: dict[str, Any]) -> str:
    """Compact JSON serialization of a row, preserving column order."""
    return json.dumps(row, separators=(",", ":"), ensure_ascii=False)


def compute_row_checksum(row: dict[str, Any]) -> str:
    """SHA-256 hex digest of the serialized row."""
    return hashlib.sha256(serialize_row(row).encode("utf-8")).hexdigest()


def normalize_date(value: str) -> str:
    """DD/MM/YYYY → YYYY-MM-DD."""
    parts = value.strip().split("/")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid date format: {value}")
    day, month, year = parts
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def normalize_amount(value: str) -> Decimal:
    """Negate a charge amount (charges become expenses)."""
    try:
        amount = Decimal(value.strip().replace(",", ""))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value}") from e
    return -amount


def extract_location(town_city: str | None) -> str | None:
    """First line of the Town/City field, title-cased."""
    if not town_city:
        return None
    town = town_city.split("\n")[0].strip()
    if not town:
        return None
    return " ".join(word.capitalize() for word in town.lower().split(" "))


def detect_online(description: str) -> bool:
    upper = description.upper()
    return any(indicator in upper for indicator in ONLINE_INDICATORS)


def clean_description(description: str) -> str:
    return re.sub(r"\s{2,}", " ", description).strip()


def transform_amex(row: dict[str, str]) -> ParsedTransaction:
    """
    Transform one Amex CSV row into a ParsedTransaction.

    Raises:
        ValueError: Malformed date or amount
        KeyError: Missing required column
    """
    return ParsedTransaction(
        date=normalize_date(row["Date"]),
        description=clean_description(row["Description"]),
        amount=normalize_amount(row["Amount"]),
        account=ACCOUNT_NAME,
        location=extract_location(row.get("Town/City")),
        online=detect_online(row["Description"]),
        raw_row=serialize_row(row),
        checksum=compute_row_checksum(row),
    )


def read_amex_csv(path: Path | str) -> list[ParsedTransaction]:
    """
    Read an Amex CSV export.

    Rows that fail to parse are logged and skipped.
    """
    transactions: list[ParsedTransaction] = []
    with open(path, newline="", encoding="utf-8-sig") as f:
        for line_no, row in enumerate(csv.DictReader(f), start=2):
            try:
                transactions.append(transform_amex(row))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping row %d of %s: %s", line_no, path, e)
    logger.info("Parsed %d transactions from %s", len(transactions), path)
    return transactions
