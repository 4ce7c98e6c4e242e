"""
Import pipeline.

Stages:
- dedupe: checksum lookup against the ledger
- matcher: deterministic entity matching
- processor: per-row resolution into review buckets
- executor: bounded-concurrency ledger writes
- progress: queryable progress for background runs
"""

from .dedupe import DeduplicationResult, find_existing_checksums
from .errors import FormattedError, format_import_error
from .executor import ImportExecutor
from .matcher import (
    AliasStrategy,
    ContainsStrategy,
    EntityMatcher,
    EntityTables,
    ExactStrategy,
    MatchStrategy,
    PrefixStrategy,
    match_entity,
)
from .processor import ImportProcessor
from .progress import (
    BatchItem,
    ImportListener,
    ImportProgress,
    ProgressError,
    ProgressPublisher,
    ProgressStatus,
    ProgressStep,
    ProgressStore,
)
from .service import ImportService

__all__ = [
    "AliasStrategy",
    "BatchItem",
    "ContainsStrategy",
    "DeduplicationResult",
    "EntityMatcher",
    "EntityTables",
    "ExactStrategy",
    "FormattedError",
    "ImportExecutor",
    "ImportListener",
    "ImportProcessor",
    "ImportProgress",
    "ImportService",
    "MatchStrategy",
    "PrefixStrategy",
    "ProgressError",
    "ProgressPublisher",
    "ProgressStatus",
    "ProgressStep",
    "ProgressStore",
    "find_existing_checksums",
    "format_import_error",
    "match_entity",
]
