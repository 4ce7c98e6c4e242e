"""
Progress reporting for long-running imports.

The processor and the executor report through the ImportListener hooks.
ProgressPublisher is the listener that mirrors those hooks into an
ImportProgress record kept in a ProgressStore, where pollers read it.

Publishing is a side channel: a failure to publish is logged and never
affects the import itself.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import format_import_error

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 50
SYSTEM_ERROR_DESCRIPTION = "System"


class ProgressStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProgressStep(str, Enum):
    DEDUPLICATING = "deduplicating"
    MATCHING = "matching"
    WRITING = "writing"


class ItemStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class BatchItem:
    """An item in the in-flight window."""

    description: str
    status: ItemStatus = ItemStatus.PROCESSING
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"description": self.description, "status": self.status.value}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ProgressError:
    """A user-facing error line ("message - suggestion")."""

    description: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"description": self.description, "error": self.error}


@dataclass
class ImportProgress:
    """Queryable state of one import session."""

    session_id: str
    status: ProgressStatus = ProgressStatus.PROCESSING
    current_step: ProgressStep | None = None
    total_transactions: int = 0
    processed_count: int = 0
    current_batch: list[BatchItem] = field(default_factory=list)
    errors: list[ProgressError] = field(default_factory=list)
    result: Any = None
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = self.result.to_dict() if hasattr(self.result, "to_dict") else self.result
        return {
            "sessionId": self.session_id,
            "status": self.status.value,
            "currentStep": self.current_step.value if self.current_step else None,
            "totalTransactions": self.total_transactions,
            "processedCount": self.processed_count,
            "currentBatch": [item.to_dict() for item in self.current_batch],
            "errors": [e.to_dict() for e in self.errors],
            "result": result,
            "startedAt": self.started_at,
        }


class ProgressStore:
    """Thread-safe in-memory map of session id → progress record.

    get() returns a snapshot; mutate only through set() and update().
    """

    def __init__(self) -> None:
        self._records: dict[str, ImportProgress] = {}
        self._lock = threading.Lock()

    def set(self, progress: ImportProgress) -> None:
        with self._lock:
            self._records[progress.session_id] = progress

    def update(self, session_id: str, **changes: Any) -> ImportProgress:
        """Apply field changes to a record.

        Raises:
            KeyError: Unknown session id
        """
        with self._lock:
            record = self._records[session_id]
            for name, value in changes.items():
                if not hasattr(record, name):
                    raise AttributeError(f"ImportProgress has no field '{name}'")
                setattr(record, name, value)
            return record

    def get(self, session_id: str) -> ImportProgress | None:
        with self._lock:
            record = self._records.get(session_id)
            return copy.deepcopy(record) if record else None


class ImportListener:
    """Hooks called by the processor and the executor. All no-ops here."""

    def on_step(self, step: ProgressStep, total: int) -> None:
        pass

    def on_item_started(self, index: int, description: str) -> None:
        pass

    def on_item_finished(
        self,
        index: int,
        description: str,
        success: bool,
        error: BaseException | str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """error is shown on the item; cause, when given, is the exception behind it."""


def notify(listener: ImportListener | None, hook: str, *args: Any, **kwargs: Any) -> None:
    """Call a listener hook, logging instead of raising on failure."""
    if listener is None:
        return
    try:
        getattr(listener, hook)(*args, **kwargs)
    except Exception as e:
        logger.warning("Progress listener %s failed: %s", hook, e)


class ProgressPublisher(ImportListener):
    """
    Mirrors processor/executor activity into a ProgressStore record.

    Safe to call from several executor workers at once. Every write swallows
    and logs its own errors.
    """

    def __init__(self, store: ProgressStore, session_id: str, window: int = 5):
        self.store = store
        self.session_id = session_id
        self.window = window
        self._lock = threading.Lock()
        self._batch: deque[BatchItem] = deque(maxlen=window)
        self._items: dict[int, BatchItem] = {}
        self._errors: list[ProgressError] = []
        self._processed = 0

    def start(self, total: int) -> None:
        """Create the session record."""
        self.store.set(
            ImportProgress(session_id=self.session_id, total_transactions=total)
        )

    def _publish(self, **changes: Any) -> None:
        try:
            self.store.update(self.session_id, **changes)
        except Exception as e:
            logger.warning("Failed to publish progress for %s: %s", self.session_id, e)

    def _snapshot(self) -> list[BatchItem]:
        return [copy.copy(item) for item in self._batch]

    def on_step(self, step: ProgressStep, total: int) -> None:
        with self._lock:
            self._processed = 0
            self._batch.clear()
            self._items.clear()
            self._publish(
                current_step=step,
                total_transactions=total,
                processed_count=0,
                current_batch=[],
            )

    def on_item_started(self, index: int, description: str) -> None:
        with self._lock:
            item = BatchItem(description=description[:DESCRIPTION_LIMIT])
            self._batch.append(item)
            self._items[index] = item
            self._publish(current_batch=self._snapshot())

    def on_item_finished(
        self,
        index: int,
        description: str,
        success: bool,
        error: BaseException | str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        with self._lock:
            self._processed += 1
            item = self._items.pop(index, None)
            message = None
            if error is not None:
                message = str(error) if isinstance(error, BaseException) else error
            if item is not None:
                item.status = ItemStatus.SUCCESS if success else ItemStatus.FAILED
                item.error = None if success else message

            if not success:
                if cause is None and isinstance(error, BaseException):
                    cause = error
                if cause is not None:
                    line = format_import_error(cause, transaction=description).display()
                else:
                    line = message or "Unknown error"
                self._errors.append(
                    ProgressError(description=description[:DESCRIPTION_LIMIT], error=line)
                )

            self._publish(
                processed_count=self._processed,
                current_batch=self._snapshot(),
                errors=list(self._errors),
            )

    def complete(self, result: Any) -> None:
        """Mark the session completed with its final result."""
        with self._lock:
            self._publish(
                status=ProgressStatus.COMPLETED,
                processed_count=self._processed,
                result=result,
                errors=list(self._errors),
            )

    def fail(self, error: BaseException) -> None:
        """Mark the session failed with a single system-level error."""
        formatted = format_import_error(error)
        with self._lock:
            self._publish(
                status=ProgressStatus.FAILED,
                errors=[
                    ProgressError(description=SYSTEM_ERROR_DESCRIPTION, error=formatted.display())
                ],
            )
