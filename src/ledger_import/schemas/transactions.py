"""
Transaction data model for the import pipeline.

Lifecycle:
    ParsedTransaction → ProcessedTransaction (exactly one bucket)
    → (human confirmation, out of scope) → ConfirmedTransaction → ImportResult

All records are immutable. Corrections never mutate a record; they produce a
new one downstream.

Wire format (to_dict/from_dict) uses the camelCase keys the review UI sends
and expects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class MatchType(str, Enum):
    """How an entity was resolved for a transaction."""

    EXACT = "exact"
    PREFIX = "prefix"
    CONTAINS = "contains"
    ALIAS = "alias"
    AI = "ai"
    LEARNED = "learned"
    NONE = "none"


class TransactionStatus(str, Enum):
    """Terminal bucket of a processed transaction."""

    MATCHED = "matched"
    UNCERTAIN = "uncertain"
    FAILED = "failed"
    SKIPPED = "skipped"


class TransactionKind(str, Enum):
    """Kind of a confirmed transaction."""

    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"

    @property
    def ledger_name(self) -> str:
        """Select option name used by the ledger's Type property."""
        return self.value.capitalize()


class WarningType(str, Enum):
    """Degraded-mode warnings surfaced on a process result."""

    AI_CATEGORIZATION_UNAVAILABLE = "AI_CATEGORIZATION_UNAVAILABLE"
    AI_API_ERROR = "AI_API_ERROR"
    NOTION_DATABASE_NOT_FOUND = "NOTION_DATABASE_NOT_FOUND"
    NOTION_API_ERROR = "NOTION_API_ERROR"
    DEDUPLICATION_DISABLED = "DEDUPLICATION_DISABLED"
    ENTITY_LOOKUP_UNAVAILABLE = "ENTITY_LOOKUP_UNAVAILABLE"


def _amount(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class ParsedTransaction:
    """One statement row after initial parsing.

    checksum is the sole deduplication key; raw_row is the original row
    serialization kept for AI context and the audit trail.
    """

    date: str  # YYYY-MM-DD
    description: str
    amount: Decimal
    account: str
    raw_row: str
    checksum: str
    location: str | None = None
    online: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return _drop_none(
            {
                "date": self.date,
                "description": self.description,
                "amount": str(self.amount),
                "account": self.account,
                "location": self.location,
                "online": self.online,
                "rawRow": self.raw_row,
                "checksum": self.checksum,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParsedTransaction:
        """Create from a dictionary (camelCase wire keys)."""
        return cls(
            date=data["date"],
            description=data["description"],
            amount=_amount(data["amount"]),
            account=data["account"],
            raw_row=data.get("rawRow", ""),
            checksum=data["checksum"],
            location=data.get("location"),
            online=data.get("online"),
        )


@dataclass(frozen=True)
class EntityMatch:
    """Resolved entity for a transaction.

    confidence is only set for non-deterministic matches (ai, learned);
    lookup-table matches carry no confidence (implicitly certain).
    """

    match_type: MatchType
    entity_id: str | None = None
    entity_name: str | None = None
    entity_url: str | None = None
    confidence: float | None = None

    @classmethod
    def none(cls) -> EntityMatch:
        return cls(match_type=MatchType.NONE)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return _drop_none(
            {
                "entityId": self.entity_id,
                "entityName": self.entity_name,
                "entityUrl": self.entity_url,
                "matchType": self.match_type.value,
                "confidence": self.confidence,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityMatch:
        return cls(
            match_type=MatchType(data.get("matchType", "none")),
            entity_id=data.get("entityId"),
            entity_name=data.get("entityName"),
            entity_url=data.get("entityUrl"),
            confidence=data.get("confidence"),
        )


@dataclass(frozen=True)
class ProcessedTransaction:
    """A parsed transaction classified into exactly one bucket."""

    transaction: ParsedTransaction
    entity: EntityMatch
    status: TransactionStatus
    skip_reason: str | None = None
    error: str | None = None

    @property
    def checksum(self) -> str:
        return self.transaction.checksum

    @property
    def description(self) -> str:
        return self.transaction.description

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (flattened)."""
        data = self.transaction.to_dict()
        data["entity"] = self.entity.to_dict()
        data["status"] = self.status.value
        if self.skip_reason is not None:
            data["skipReason"] = self.skip_reason
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessedTransaction:
        return cls(
            transaction=ParsedTransaction.from_dict(data),
            entity=EntityMatch.from_dict(data.get("entity", {})),
            status=TransactionStatus(data["status"]),
            skip_reason=data.get("skipReason"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ConfirmedTransaction:
    """A transaction confirmed for the ledger write.

    entity_* fields are absent for transfers and income.
    """

    date: str
    description: str
    amount: Decimal
    account: str
    raw_row: str
    checksum: str
    location: str | None = None
    online: bool | None = None
    transaction_kind: TransactionKind | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    entity_url: str | None = None

    @property
    def kind(self) -> TransactionKind:
        """Effective kind; unset means expense."""
        return self.transaction_kind or TransactionKind.EXPENSE

    @classmethod
    def from_processed(
        cls,
        processed: ProcessedTransaction,
        transaction_kind: TransactionKind | None = None,
    ) -> ConfirmedTransaction:
        """Confirm a processed transaction as-is."""
        tx = processed.transaction
        return cls(
            date=tx.date,
            description=tx.description,
            amount=tx.amount,
            account=tx.account,
            raw_row=tx.raw_row,
            checksum=tx.checksum,
            location=tx.location,
            online=tx.online,
            transaction_kind=transaction_kind,
            entity_id=processed.entity.entity_id,
            entity_name=processed.entity.entity_name,
            entity_url=processed.entity.entity_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return _drop_none(
            {
                "date": self.date,
                "description": self.description,
                "amount": str(self.amount),
                "account": self.account,
                "location": self.location,
                "online": self.online,
                "rawRow": self.raw_row,
                "checksum": self.checksum,
                "transactionType": (
                    self.transaction_kind.value if self.transaction_kind else None
                ),
                "entityId": self.entity_id,
                "entityName": self.entity_name,
                "entityUrl": self.entity_url,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfirmedTransaction:
        kind = data.get("transactionType")
        if kind == "purchase":
            # Older review UI payloads
            kind = TransactionKind.EXPENSE.value
        return cls(
            date=data["date"],
            description=data["description"],
            amount=_amount(data["amount"]),
            account=data["account"],
            raw_row=data.get("rawRow", ""),
            checksum=data["checksum"],
            location=data.get("location"),
            online=data.get("online"),
            transaction_kind=TransactionKind(kind) if kind else None,
            entity_id=data.get("entityId"),
            entity_name=data.get("entityName"),
            entity_url=data.get("entityUrl"),
        )


@dataclass
class ImportWarning:
    """Non-fatal issue raised while processing an import."""

    type: WarningType
    message: str
    affected_count: int | None = None
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "type": self.type.value,
                "message": self.message,
                "affectedCount": self.affected_count,
                "details": self.details,
            }
        )


@dataclass
class AIUsageStats:
    """AI usage accumulated over one import batch."""

    api_calls: int = 0
    cache_hits: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0

    @property
    def avg_cost_per_call(self) -> float:
        return self.total_cost_usd / self.api_calls if self.api_calls > 0 else 0.0

    @property
    def has_activity(self) -> bool:
        return self.api_calls > 0 or self.cache_hits > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiCalls": self.api_calls,
            "cacheHits": self.cache_hits,
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "totalCostUsd": self.total_cost_usd,
            "avgCostPerCall": self.avg_cost_per_call,
        }


@dataclass
class ProcessImportResult:
    """Output of the import processor: four buckets partitioning the input."""

    matched: list[ProcessedTransaction] = field(default_factory=list)
    uncertain: list[ProcessedTransaction] = field(default_factory=list)
    failed: list[ProcessedTransaction] = field(default_factory=list)
    skipped: list[ProcessedTransaction] = field(default_factory=list)
    warnings: list[ImportWarning] = field(default_factory=list)
    ai_usage: AIUsageStats | None = None

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.uncertain) + len(self.failed) + len(self.skipped)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "matched": [t.to_dict() for t in self.matched],
            "uncertain": [t.to_dict() for t in self.uncertain],
            "failed": [t.to_dict() for t in self.failed],
            "skipped": [t.to_dict() for t in self.skipped],
        }
        if self.warnings:
            data["warnings"] = [w.to_dict() for w in self.warnings]
        if self.ai_usage is not None:
            data["aiUsage"] = self.ai_usage.to_dict()
        return data


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a single ledger write. Never retried automatically."""

    transaction: ConfirmedTransaction
    success: bool
    page_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "transaction": self.transaction.to_dict(),
                "success": self.success,
                "notionPageId": self.page_id,
                "error": self.error,
            }
        )


@dataclass
class ExecuteImportResult:
    """Aggregate outcome of an executor run."""

    imported: int
    failed: list[ImportResult]
    skipped: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "failed": [r.to_dict() for r in self.failed],
            "skipped": self.skipped,
        }
