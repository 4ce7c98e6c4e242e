"""
Pipeline data model and ledger payload builders.
"""

from .ledger_payload import (
    CHECKSUM_PROPERTY,
    RAW_ROW_MAX_LENGTH,
    build_checksum_filter,
    build_entity_properties,
    build_transaction_properties,
    extract_checksum,
    truncate_raw_row,
)
from .transactions import (
    AIUsageStats,
    ConfirmedTransaction,
    EntityMatch,
    ExecuteImportResult,
    ImportResult,
    ImportWarning,
    MatchType,
    ParsedTransaction,
    ProcessedTransaction,
    ProcessImportResult,
    TransactionKind,
    TransactionStatus,
    WarningType,
)

__all__ = [
    "AIUsageStats",
    "CHECKSUM_PROPERTY",
    "ConfirmedTransaction",
    "EntityMatch",
    "ExecuteImportResult",
    "ImportResult",
    "ImportWarning",
    "MatchType",
    "ParsedTransaction",
    "ProcessImportResult",
    "ProcessedTransaction",
    "RAW_ROW_MAX_LENGTH",
    "TransactionKind",
    "TransactionStatus",
    "WarningType",
    "build_checksum_filter",
    "build_entity_properties",
    "build_transaction_properties",
    "extract_checksum",
    "truncate_raw_row",
]
