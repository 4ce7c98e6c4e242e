"""
Import processor: classifies parsed statement rows for review.

Per batch:
1. Deduplicate against the ledger by checksum (duplicates → skipped)
2. Load the entity lookup tables once
3. For each remaining row, sequentially:
   a. learned correction (confidence >= threshold, entity id required)
   b. deterministic matcher (exact → prefix → alias → contains)
   c. AI categorizer (when enabled)
4. Collect warnings and AI usage telemetry

Every input row lands in exactly one of matched, uncertain, failed or
skipped. Only configuration errors propagate; everything else is contained
at stage or row level.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import string
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..categorizer import AICategorizationError, AIErrorCode
from ..ledger_client import page_url
from ..schemas import (
    AIUsageStats,
    EntityMatch,
    ImportWarning,
    MatchType,
    ParsedTransaction,
    ProcessedTransaction,
    ProcessImportResult,
    TransactionStatus,
    WarningType,
)
from .dedupe import find_existing_checksums
from .matcher import EntityMatcher, EntityTables
from .progress import ImportListener, ProgressStep, notify

if TYPE_CHECKING:
    from ..categorizer import AICategorizer
    from ..config import Config
    from ..ledger_client import LedgerClient
    from ..state_store import StateStore

logger = logging.getLogger(__name__)

DUPLICATE_REASON = "Duplicate transaction (checksum match)"
NO_MATCH_ERROR = "No entity match found"
AI_UNAVAILABLE_ERROR = "AI categorization unavailable"
CANCELLED_ERROR = "Import cancelled"


def new_batch_id() -> str:
    """Batch id used to attribute AI usage: import-<epoch ms>-<random>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"import-{int(time.time() * 1000)}-{suffix}"


@dataclass
class _AITally:
    """AI outcome counters for one batch."""

    stats: AIUsageStats = field(default_factory=AIUsageStats)
    last_error: AICategorizationError | None = None
    failure_count: int = 0

    def warning(self) -> ImportWarning | None:
        if self.last_error is None or self.failure_count == 0:
            return None
        if self.last_error.code == AIErrorCode.INSUFFICIENT_CREDITS:
            warning_type = WarningType.AI_CATEGORIZATION_UNAVAILABLE
        else:
            warning_type = WarningType.AI_API_ERROR
        return ImportWarning(
            type=warning_type,
            message=self.last_error.message,
            affected_count=self.failure_count,
        )


class ImportProcessor:
    """
    Runs the resolution pipeline over a batch of parsed transactions.

    Collaborators are injected; categorizer may be None when AI is disabled.
    """

    def __init__(
        self,
        store: StateStore,
        ledger: LedgerClient,
        categorizer: AICategorizer | None,
        config: Config,
        listener: ImportListener | None = None,
        matcher: EntityMatcher | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.categorizer = categorizer
        self.config = config
        self.listener = listener
        self.matcher = matcher or EntityMatcher(page_base_url=config.ledger.page_base_url)

    @property
    def ai_enabled(self) -> bool:
        return self.categorizer is not None and self.config.ai.enabled

    def process(
        self,
        transactions: list[ParsedTransaction],
        account: str,
        cancel_event: threading.Event | None = None,
    ) -> ProcessImportResult:
        """
        Classify a batch of parsed transactions.

        Args:
            transactions: Parsed statement rows
            account: Account the statement belongs to
            cancel_event: When set, remaining rows fail with "Import cancelled"

        Returns:
            ProcessImportResult partitioning every input row

        Raises:
            ConfigValidationError: Ledger credentials are missing
        """
        self.config.require_ledger()

        batch_id = new_batch_id()
        result = ProcessImportResult()
        logger.info(
            "Processing import %s: %d transactions for account %s",
            batch_id,
            len(transactions),
            account,
        )

        # Step 1: deduplicate
        notify(self.listener, "on_step", ProgressStep.DEDUPLICATING, len(transactions))
        dedup = find_existing_checksums(
            self.ledger,
            self.config.ledger.balance_sheet_db_id,
            [t.checksum for t in transactions],
            batch_size=self.config.imports.dedup_batch_size,
        )
        new_transactions: list[ParsedTransaction] = []
        for tx in transactions:
            if tx.checksum in dedup.checksums:
                result.skipped.append(
                    ProcessedTransaction(
                        transaction=tx,
                        entity=EntityMatch.none(),
                        status=TransactionStatus.SKIPPED,
                        skip_reason=DUPLICATE_REASON,
                    )
                )
            else:
                new_transactions.append(tx)
        logger.info(
            "Deduplication complete: %d duplicates, %d new",
            len(result.skipped),
            len(new_transactions),
        )

        # Step 2: load lookup tables once
        tables, lookup_warning = self._load_tables()

        # Step 3: resolve each transaction in order
        notify(self.listener, "on_step", ProgressStep.MATCHING, len(new_transactions))
        tally = _AITally()
        for index, tx in enumerate(new_transactions):
            if cancel_event is not None and cancel_event.is_set():
                self._cancel_remaining(new_transactions[index:], result)
                break

            notify(self.listener, "on_item_started", index, tx.description)
            try:
                processed = self._resolve(tx, tables, batch_id, tally)
            except AICategorizationError as e:
                logger.warning("AI categorization failed for '%s': %s", tx.description[:50], e)
                tally.last_error = e
                tally.failure_count += 1
                processed = self._failed(tx, AI_UNAVAILABLE_ERROR)
                notify(
                    self.listener,
                    "on_item_finished",
                    index,
                    tx.description,
                    False,
                    AI_UNAVAILABLE_ERROR,
                    cause=e,
                )
            except Exception as e:
                logger.error("Failed to process '%s': %s", tx.description[:50], e)
                processed = ProcessedTransaction(
                    transaction=tx,
                    entity=EntityMatch.none(),
                    status=TransactionStatus.FAILED,
                    error=str(e) or "Unknown error",
                )
                notify(self.listener, "on_item_finished", index, tx.description, False, e)
            else:
                notify(
                    self.listener,
                    "on_item_finished",
                    index,
                    tx.description,
                    processed.status != TransactionStatus.FAILED,
                    processed.error,
                )
            self._bucket(result, processed).append(processed)

        # Step 4: warnings and telemetry
        if dedup.warning is not None:
            result.warnings.append(dedup.warning)
        if lookup_warning is not None:
            result.warnings.append(lookup_warning)
        ai_warning = tally.warning()
        if ai_warning is not None:
            result.warnings.append(ai_warning)
        if tally.stats.has_activity:
            result.ai_usage = tally.stats

        logger.info(
            "Import %s processed: %d matched, %d uncertain, %d failed, %d skipped "
            "(AI: %d calls, %d cache hits, $%.6f)",
            batch_id,
            len(result.matched),
            len(result.uncertain),
            len(result.failed),
            len(result.skipped),
            tally.stats.api_calls,
            tally.stats.cache_hits,
            tally.stats.total_cost_usd,
        )
        return result

    def _load_tables(self) -> tuple[EntityTables, ImportWarning | None]:
        """Load the entity lookup tables, falling back to empty ones."""
        try:
            return (
                EntityTables(
                    name_to_id=self.store.load_entity_lookup(),
                    alias_to_name=self.store.load_aliases(),
                ),
                None,
            )
        except Exception as e:
            logger.error("Failed to load entity lookup tables: %s", e)
            return EntityTables(name_to_id={}, alias_to_name={}), ImportWarning(
                type=WarningType.ENTITY_LOOKUP_UNAVAILABLE,
                message="Entity lookup tables could not be loaded",
                details=str(e) or type(e).__name__,
            )

    def _resolve(
        self,
        tx: ParsedTransaction,
        tables: EntityTables,
        batch_id: str,
        tally: _AITally,
    ) -> ProcessedTransaction:
        """Resolve one row.

        Raises:
            AICategorizationError: The AI tier was needed and failed
        """
        # Learned corrections take precedence over every lookup tier
        correction = self.store.find_matching_correction(
            tx.description, min_confidence=self.config.imports.correction_threshold
        )
        if correction is not None and correction.entity_id:
            logger.debug(
                "Applied learned correction to '%s': %s (%.2f)",
                tx.description[:50],
                correction.entity_name,
                correction.confidence,
            )
            overridden = dataclasses.replace(
                tx,
                location=correction.location if correction.location is not None else tx.location,
                online=correction.online if correction.online is not None else tx.online,
            )
            status = (
                TransactionStatus.MATCHED
                if correction.confidence >= self.config.imports.correction_auto_match
                else TransactionStatus.UNCERTAIN
            )
            return ProcessedTransaction(
                transaction=overridden,
                entity=EntityMatch(
                    match_type=MatchType.LEARNED,
                    entity_id=correction.entity_id,
                    entity_name=correction.entity_name or "Unknown",
                    entity_url=self._url(correction.entity_id),
                    confidence=correction.confidence,
                ),
                status=status,
            )

        match = self.matcher.match(tx.description, tables)
        if match is not None:
            return ProcessedTransaction(
                transaction=tx, entity=match, status=TransactionStatus.MATCHED
            )

        if not self.ai_enabled:
            return self._failed(tx, NO_MATCH_ERROR)

        outcome = self.categorizer.categorize(tx.raw_row, batch_id)
        if outcome.usage is not None:
            tally.stats.api_calls += 1
            tally.stats.total_input_tokens += outcome.usage.input_tokens
            tally.stats.total_output_tokens += outcome.usage.output_tokens
            tally.stats.total_cost_usd += outcome.usage.cost_usd
        else:
            tally.stats.cache_hits += 1

        suggestion = outcome.result
        if suggestion is None or not suggestion.entity_name:
            return self._failed(tx, NO_MATCH_ERROR)

        existing = tables.resolve_name(suggestion.entity_name)
        if existing is not None:
            name, entity_id = existing
            return ProcessedTransaction(
                transaction=tx,
                entity=EntityMatch(
                    match_type=MatchType.AI,
                    entity_id=entity_id,
                    entity_name=name,
                    entity_url=self._url(entity_id),
                ),
                status=TransactionStatus.MATCHED,
            )

        # Brand-new entity suggested; a human has to confirm it
        return ProcessedTransaction(
            transaction=tx,
            entity=EntityMatch(
                match_type=MatchType.AI,
                entity_name=suggestion.entity_name,
                confidence=self.config.imports.ai_new_entity_confidence,
            ),
            status=TransactionStatus.UNCERTAIN,
        )

    def _url(self, entity_id: str) -> str:
        return page_url(entity_id, self.config.ledger.page_base_url)

    @staticmethod
    def _failed(tx: ParsedTransaction, error: str) -> ProcessedTransaction:
        return ProcessedTransaction(
            transaction=tx,
            entity=EntityMatch.none(),
            status=TransactionStatus.FAILED,
            error=error,
        )

    def _cancel_remaining(
        self, remaining: list[ParsedTransaction], result: ProcessImportResult
    ) -> None:
        logger.info("Import cancelled with %d transactions unprocessed", len(remaining))
        result.failed.extend(self._failed(tx, CANCELLED_ERROR) for tx in remaining)

    @staticmethod
    def _bucket(
        result: ProcessImportResult, processed: ProcessedTransaction
    ) -> list[ProcessedTransaction]:
        return {
            TransactionStatus.MATCHED: result.matched,
            TransactionStatus.UNCERTAIN: result.uncertain,
            TransactionStatus.FAILED: result.failed,
            TransactionStatus.SKIPPED: result.skipped,
        }[processed.status]
