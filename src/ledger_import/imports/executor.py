"""
Import executor: writes confirmed transactions to the ledger.

A fixed pool of workers drains a shared work queue. Each worker claims one
item, writes it, records the outcome and then pauses for the configured
delay before claiming the next. The pause bounds the aggregate write rate to
roughly concurrency / delay.

A failed write is recorded and never retried. Earlier successful writes are
never rolled back.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from ..schemas import (
    ConfirmedTransaction,
    ExecuteImportResult,
    ImportResult,
    build_transaction_properties,
)
from .progress import ImportListener, ProgressStep, notify

if TYPE_CHECKING:
    from ..config import Config
    from ..ledger_client import LedgerClient

logger = logging.getLogger(__name__)


class ImportExecutor:
    """Bounded-concurrency ledger writer."""

    def __init__(
        self,
        ledger: LedgerClient,
        config: Config,
        listener: ImportListener | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ledger = ledger
        self.config = config
        self.listener = listener
        self._sleep = sleep

    @property
    def concurrency(self) -> int:
        return max(1, self.config.imports.concurrency)

    @property
    def delay_seconds(self) -> float:
        return self.config.imports.write_delay_ms / 1000.0

    def execute(
        self,
        transactions: list[ConfirmedTransaction],
        cancel_event: threading.Event | None = None,
    ) -> ExecuteImportResult:
        """
        Write confirmed transactions to the ledger.

        Args:
            transactions: Confirmed transactions
            cancel_event: When set, in-flight writes finish but no new item
                is claimed; unclaimed items are counted as skipped

        Returns:
            ExecuteImportResult (failed items in completion order)

        Raises:
            ConfigValidationError: Ledger credentials are missing
        """
        self.config.require_ledger()

        work: queue.Queue[tuple[int, ConfirmedTransaction]] = queue.Queue()
        for item in enumerate(transactions):
            work.put(item)

        results: list[ImportResult] = []
        lock = threading.Lock()

        logger.info(
            "Writing %d transactions with %d workers (%d ms delay)",
            len(transactions),
            self.concurrency,
            self.config.imports.write_delay_ms,
        )
        notify(self.listener, "on_step", ProgressStep.WRITING, len(transactions))

        def worker() -> None:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    return
                try:
                    index, tx = work.get_nowait()
                except queue.Empty:
                    return

                outcome = self._write(index, tx, len(transactions))
                with lock:
                    results.append(outcome)

                self._sleep(self.delay_seconds)

        workers = min(self.concurrency, len(transactions)) or 1
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ledger-write") as pool:
            futures = [pool.submit(worker) for _ in range(workers)]
            for future in futures:
                future.result()

        imported = sum(1 for r in results if r.success)
        failed = [r for r in results if not r.success]
        skipped = len(transactions) - len(results)

        logger.info(
            "Import written: %d imported, %d failed, %d skipped", imported, len(failed), skipped
        )
        return ExecuteImportResult(imported=imported, failed=failed, skipped=skipped)

    def _write(self, index: int, tx: ConfirmedTransaction, total: int) -> ImportResult:
        """Write one transaction. Never raises."""
        notify(self.listener, "on_item_started", index, tx.description)
        try:
            page = self.ledger.create_page(
                self.config.ledger.balance_sheet_db_id,
                build_transaction_properties(tx, self.config.imports.raw_row_max_length),
            )
        except Exception as e:
            logger.error(
                "Write %d/%d failed for '%s': %s", index + 1, total, tx.description[:50], e
            )
            notify(self.listener, "on_item_finished", index, tx.description, False, e)
            return ImportResult(transaction=tx, success=False, error=str(e) or "Unknown error")

        page_id = page.get("id")
        logger.debug("Wrote %d/%d '%s' as %s", index + 1, total, tx.description[:50], page_id)
        notify(self.listener, "on_item_finished", index, tx.description, True)
        return ImportResult(transaction=tx, success=True, page_id=page_id)
