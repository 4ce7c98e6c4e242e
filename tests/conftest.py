"""Test fixtures and utilities."""

from decimal import Decimal
from pathlib import Path

import pytest

from ledger_import.config import AIConfig, Config, ImportConfig, LedgerConfig
from ledger_import.schemas import ConfirmedTransaction, ParsedTransaction
from ledger_import.transformers import transform_amex

LEDGER_URL = "https://notion.test"
BALANCE_SHEET_ID = "balance-sheet-db"
ENTITIES_DB_ID = "entities-db"

# Entity lookup table used across matcher and processor tests
SAMPLE_ENTITIES = {
    "Woolworths": "woolworths-id",
    "Transport for NSW": "tfnsw-id",
    "Transport": "transport-id",
    "Coles": "coles-id",
    "McDonald's": "mcdonalds-id",
    "BP": "bp-id",
}

SAMPLE_AMEX_ROW = {
    "Date": "03/02/2025",
    "Description": "WOOLWORTHS 1234      SYDNEY",
    "Amount": "45.20",
    "Town/City": "NORTH SYDNEY\nNSW",
    "Country": "AUSTRALIA",
    "Address": "1 MILLER ST",
    "Postcode": "2060",
}


def make_parsed(
    description: str,
    checksum: str | None = None,
    amount: str = "-10.00",
    location: str | None = None,
    online: bool | None = None,
) -> ParsedTransaction:
    """Build a ParsedTransaction whose raw row mirrors the description."""
    return ParsedTransaction(
        date="2025-02-03",
        description=description,
        amount=Decimal(amount),
        account="Amex",
        raw_row=f'{{"Description":"{description}"}}',
        checksum=checksum or f"sum-{description}",
        location=location,
        online=online,
    )


def make_confirmed(description: str, **kwargs) -> ConfirmedTransaction:
    """Build a ConfirmedTransaction with sensible defaults."""
    defaults = {
        "date": "2025-02-03",
        "description": description,
        "amount": Decimal("-10.00"),
        "account": "Amex",
        "raw_row": f'{{"Description":"{description}"}}',
        "checksum": f"sum-{description}",
    }
    defaults.update(kwargs)
    return ConfirmedTransaction(**defaults)


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def config(temp_db) -> Config:
    """Config pointing at a mocked ledger, with no write delay."""
    return Config(
        ledger=LedgerConfig(
            token="secret-token",
            balance_sheet_db_id=BALANCE_SHEET_ID,
            entities_db_id=ENTITIES_DB_ID,
            base_url=LEDGER_URL,
            max_retries=0,
        ),
        ai=AIConfig(enabled=True, api_key="test-key", base_url="https://anthropic.test"),
        imports=ImportConfig(write_delay_ms=0),
        state_db_path=temp_db,
    )


@pytest.fixture
def sample_amex_row() -> dict:
    """Sample Amex CSV row."""
    return dict(SAMPLE_AMEX_ROW)


@pytest.fixture
def sample_parsed(sample_amex_row) -> ParsedTransaction:
    """Sample Amex row transformed into a ParsedTransaction."""
    return transform_amex(sample_amex_row)
