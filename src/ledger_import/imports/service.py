"""
Import service: wires the pipeline stages to their collaborators.

Exposes synchronous process/execute calls and fire-and-forget variants that
run in a background thread and report through a ProgressStore.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from typing import Any

from ..categorizer import AICategorizer, AIResponseCache
from ..config import Config, ConfigValidationError
from ..ledger_client import LedgerClient
from ..schemas import (
    ConfirmedTransaction,
    ExecuteImportResult,
    ParsedTransaction,
    ProcessImportResult,
    build_entity_properties,
)
from ..state_store import StateStore
from .executor import ImportExecutor
from .processor import ImportProcessor
from .progress import ImportListener, ImportProgress, ProgressPublisher, ProgressStore

logger = logging.getLogger(__name__)


class ImportService:
    """
    Entry point for running imports.

    Collaborators default to ones built from config; pass them explicitly to
    share a cache or substitute fakes.
    """

    def __init__(
        self,
        config: Config,
        store: StateStore | None = None,
        ledger: LedgerClient | None = None,
        categorizer: AICategorizer | None = None,
        progress_store: ProgressStore | None = None,
    ):
        self.config = config
        self.store = store or StateStore(config.state_db_path)
        self._ledger = ledger
        self._owns_ledger = ledger is None
        self._owns_categorizer = categorizer is None and config.ai.enabled
        if self._owns_categorizer:
            categorizer = AICategorizer(config.ai, cache=AIResponseCache(), store=self.store)
        self.categorizer = categorizer
        self.progress_store = progress_store or ProgressStore()
        self._cancel_events: dict[str, threading.Event] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    @property
    def ledger(self) -> LedgerClient:
        """Ledger client, built lazily so a missing token fails on first use."""
        if self._ledger is None:
            self._ledger = LedgerClient.from_config(self.config.ledger)
        return self._ledger

    def close(self) -> None:
        """Close the HTTP clients this service built itself."""
        if self._owns_categorizer and self.categorizer is not None:
            self.categorizer.close()
        if self._owns_ledger and self._ledger is not None:
            self._ledger.close()

    def __enter__(self) -> ImportService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def process_import(
        self,
        transactions: list[ParsedTransaction],
        account: str,
        cancel_event: threading.Event | None = None,
        listener: ImportListener | None = None,
    ) -> ProcessImportResult:
        """Classify parsed transactions into matched/uncertain/failed/skipped."""
        processor = ImportProcessor(
            store=self.store,
            ledger=self.ledger,
            categorizer=self.categorizer,
            config=self.config,
            listener=listener,
        )
        return processor.process(transactions, account, cancel_event=cancel_event)

    def execute_import(
        self,
        transactions: list[ConfirmedTransaction],
        cancel_event: threading.Event | None = None,
        listener: ImportListener | None = None,
    ) -> ExecuteImportResult:
        """Write confirmed transactions to the ledger."""
        executor = ImportExecutor(self.ledger, self.config, listener=listener)
        return executor.execute(transactions, cancel_event=cancel_event)

    def start_process_import(
        self, transactions: list[ParsedTransaction], account: str
    ) -> str:
        """Run process_import in the background. Returns the session id."""
        return self._start(
            len(transactions),
            lambda cancel, publisher: self.process_import(
                transactions, account, cancel_event=cancel, listener=publisher
            ),
        )

    def start_execute_import(self, transactions: list[ConfirmedTransaction]) -> str:
        """Run execute_import in the background. Returns the session id."""
        return self._start(
            len(transactions),
            lambda cancel, publisher: self.execute_import(
                transactions, cancel_event=cancel, listener=publisher
            ),
        )

    def _start(
        self,
        total: int,
        run: Callable[[threading.Event, ProgressPublisher], Any],
    ) -> str:
        session_id = str(uuid.uuid4())
        publisher = ProgressPublisher(
            self.progress_store, session_id, window=self.config.imports.progress_window
        )
        publisher.start(total)
        cancel = threading.Event()

        def target() -> None:
            try:
                result = run(cancel, publisher)
            except Exception as e:
                logger.exception("Background import %s failed: %s", session_id, e)
                publisher.fail(e)
            else:
                publisher.complete(result)
            finally:
                with self._lock:
                    self._cancel_events.pop(session_id, None)
                    self._threads.pop(session_id, None)

        thread = threading.Thread(target=target, name=f"import-{session_id[:8]}", daemon=True)
        with self._lock:
            self._cancel_events[session_id] = cancel
            self._threads[session_id] = thread
        thread.start()
        logger.info("Started background import %s (%d transactions)", session_id, total)
        return session_id

    def get_progress(self, session_id: str) -> ImportProgress | None:
        return self.progress_store.get(session_id)

    def cancel(self, session_id: str) -> bool:
        """Request cancellation of a background import.

        Returns:
            True if the session was still running
        """
        with self._lock:
            event = self._cancel_events.get(session_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for import %s", session_id)
        return True

    def wait(self, session_id: str, timeout: float | None = None) -> None:
        """Block until a background import finishes."""
        with self._lock:
            thread = self._threads.get(session_id)
        if thread is not None:
            thread.join(timeout)

    def create_entity(self, name: str) -> dict[str, str]:
        """
        Create an entity page in the ledger and cache it locally.

        Returns:
            Dict with id, name and url of the new entity

        Raises:
            ConfigValidationError: No entities database is configured
            ValueError: Empty name
            LedgerError: The ledger rejected the request
        """
        name = name.strip()
        if not name:
            raise ValueError("Entity name must not be empty")
        if not self.config.ledger.entities_db_id:
            raise ConfigValidationError("ledger.entities_db_id is required to create entities")

        page = self.ledger.create_page(
            self.config.ledger.entities_db_id, build_entity_properties(name)
        )
        entity_id = page["id"]
        self.store.upsert_entity(entity_id, name, last_edited_time=page.get("last_edited_time"))
        logger.info("Created entity %s (%s)", name, entity_id)
        return {"id": entity_id, "name": name, "url": self.ledger.page_url(entity_id)}
