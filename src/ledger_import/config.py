"""
Configuration management (SSOT).

This module defines ALL configuration for the ledger import pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The ledger token is a hard requirement for any ledger call; a missing or
  empty token fails fast with ConfigValidationError before any request.
- Import tuning values (pool size, write delay, batch size) live in
  ImportConfig and nowhere else.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class LedgerConfig:
    """Notion ledger configuration.

    - base_url: API URL for requests
    - page_base_url: Browser URL prefix for human-facing page links
    """

    token: str
    balance_sheet_db_id: str = ""
    entities_db_id: str = ""
    base_url: str = "https://api.notion.com"
    page_base_url: str = "https://www.notion.so"
    api_version: str = "2022-06-28"
    timeout_seconds: int = 30
    max_retries: int = 3


@dataclass
class AIConfig:
    """AI categorization settings.

    Pricing defaults track the Haiku tier ($1.00/MTok in, $5.00/MTok out).
    """

    # Master enable/disable (SSOT: single enforcement point)
    enabled: bool = True
    api_key: str | None = None
    base_url: str = "https://api.anthropic.com"
    model: str = "claude-haiku-4-5-20251001"
    max_tokens: int = 200
    timeout_seconds: int = 30
    input_cost_per_mtok: float = 1.00
    output_cost_per_mtok: float = 5.00


@dataclass
class ImportConfig:
    """Import pipeline tuning (SSOT)."""

    # Executor worker pool size
    concurrency: int = 3
    # Delay applied by each worker after every write attempt
    write_delay_ms: int = 400
    # Ledger filter clause limit for checksum queries
    dedup_batch_size: int = 100
    # Minimum stored confidence for a learned correction to apply
    correction_threshold: float = 0.7
    # Corrections at or above this confidence are matched, below are uncertain
    correction_auto_match: float = 0.9
    # Confidence attached to AI suggestions naming a brand-new entity
    ai_new_entity_confidence: float = 0.7
    # Ledger rich_text limit for the Raw Row audit field
    raw_row_max_length: int = 2000
    # Number of in-flight items mirrored in the progress record
    progress_window: int = 5


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    ledger: LedgerConfig
    ai: AIConfig = field(default_factory=AIConfig)
    imports: ImportConfig = field(default_factory=ImportConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.ledger.token or not self.ledger.token.strip():
            errors.append("ledger.token is required")
        if not self.ledger.balance_sheet_db_id:
            errors.append("ledger.balance_sheet_db_id is required")

        if self.imports.concurrency < 1:
            errors.append("imports.concurrency must be >= 1")
        if self.imports.write_delay_ms < 0:
            errors.append("imports.write_delay_ms must be >= 0")
        if not 1 <= self.imports.dedup_batch_size <= 100:
            errors.append("imports.dedup_batch_size must be between 1 and 100")
        if self.imports.correction_auto_match < self.imports.correction_threshold:
            errors.append("correction_auto_match must be >= correction_threshold")

        return errors

    def require_ledger(self) -> None:
        """Fail fast when ledger credentials are unusable.

        Raises:
            ConfigValidationError: If the token or balance sheet id is missing
        """
        problems = [e for e in self.validate() if e.startswith("ledger.")]
        if problems:
            raise ConfigValidationError("; ".join(problems))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - NOTION_API_TOKEN
    - NOTION_BALANCE_SHEET_ID
    - NOTION_ENTITIES_DB_ID
    - CLAUDE_API_KEY
    - LEDGER_IMPORT_AI_ENABLED (true/false)
    - LEDGER_IMPORT_AI_MODEL
    - LEDGER_IMPORT_STATE_DB
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Ledger config
    ledger_data = data.get("ledger", {})
    ledger = LedgerConfig(
        token=os.environ.get("NOTION_API_TOKEN", ledger_data.get("token", "")),
        balance_sheet_db_id=os.environ.get(
            "NOTION_BALANCE_SHEET_ID", ledger_data.get("balance_sheet_db_id", "")
        ),
        entities_db_id=os.environ.get(
            "NOTION_ENTITIES_DB_ID", ledger_data.get("entities_db_id", "")
        ),
        base_url=ledger_data.get("base_url", "https://api.notion.com"),
        page_base_url=ledger_data.get("page_base_url", "https://www.notion.so"),
        api_version=ledger_data.get("api_version", "2022-06-28"),
        timeout_seconds=ledger_data.get("timeout_seconds", 30),
        max_retries=ledger_data.get("max_retries", 3),
    )

    # AI config
    ai_data = data.get("ai", {})
    ai = AIConfig(
        enabled=_env_bool("LEDGER_IMPORT_AI_ENABLED", ai_data.get("enabled", True)),
        api_key=os.environ.get("CLAUDE_API_KEY", ai_data.get("api_key")),
        base_url=ai_data.get("base_url", "https://api.anthropic.com"),
        model=os.environ.get(
            "LEDGER_IMPORT_AI_MODEL", ai_data.get("model", "claude-haiku-4-5-20251001")
        ),
        max_tokens=ai_data.get("max_tokens", 200),
        timeout_seconds=ai_data.get("timeout_seconds", 30),
        input_cost_per_mtok=ai_data.get("input_cost_per_mtok", 1.00),
        output_cost_per_mtok=ai_data.get("output_cost_per_mtok", 5.00),
    )

    # Import tuning
    imports_data = data.get("imports", {})
    imports = ImportConfig(
        concurrency=imports_data.get("concurrency", 3),
        write_delay_ms=imports_data.get("write_delay_ms", 400),
        dedup_batch_size=imports_data.get("dedup_batch_size", 100),
        correction_threshold=imports_data.get("correction_threshold", 0.7),
        correction_auto_match=imports_data.get("correction_auto_match", 0.9),
        ai_new_entity_confidence=imports_data.get("ai_new_entity_confidence", 0.7),
        raw_row_max_length=imports_data.get("raw_row_max_length", 2000),
        progress_window=imports_data.get("progress_window", 5),
    )

    # State DB
    state_db = os.environ.get(
        "LEDGER_IMPORT_STATE_DB", data.get("state_db_path", "data/state.db")
    )

    return Config(
        ledger=ledger,
        ai=ai,
        imports=imports,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Bank statement → Notion ledger import configuration
#
# Secrets are better supplied through the environment:
#   NOTION_API_TOKEN, NOTION_BALANCE_SHEET_ID, NOTION_ENTITIES_DB_ID, CLAUDE_API_KEY

ledger:
  token: ""                                # Notion integration token
  balance_sheet_db_id: ""                  # Database receiving transactions
  entities_db_id: ""                       # Database holding payee entities
  base_url: "https://api.notion.com"
  page_base_url: "https://www.notion.so"   # Prefix for human-facing page links
  api_version: "2022-06-28"
  timeout_seconds: 30
  max_retries: 3

# AI fallback for rows no name or alias matches
ai:
  enabled: true
  api_key: null
  model: "claude-haiku-4-5-20251001"
  max_tokens: 200
  timeout_seconds: 30
  input_cost_per_mtok: 1.00
  output_cost_per_mtok: 5.00

# Import pipeline tuning
imports:
  concurrency: 3                 # Ledger write workers
  write_delay_ms: 400            # Per-worker pause after each write
  dedup_batch_size: 100          # Checksums per ledger query (filter limit)
  correction_threshold: 0.7      # Minimum confidence for learned corrections
  correction_auto_match: 0.9     # Corrections above this are auto-matched
  ai_new_entity_confidence: 0.7  # Confidence for AI-suggested new entities
  raw_row_max_length: 2000       # Ledger rich_text limit
  progress_window: 5             # In-flight items shown in progress

# Entity cache, corrections and AI usage database
state_db_path: "data/state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
