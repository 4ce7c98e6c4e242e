"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..imports import ImportService
from ..ledger_client import LedgerError
from ..schemas import ConfirmedTransaction
from ..state_store import StateStore
from ..transformers import read_amex_csv

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-import",
        description="Import bank statements into a Notion ledger",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-config", help="Write a default config file")

    # process command
    process_parser = subparsers.add_parser(
        "process", help="Deduplicate and match a statement for review"
    )
    process_parser.add_argument("csv", type=Path, help="Amex CSV export")
    process_parser.add_argument(
        "--account",
        type=str,
        default="Amex",
        help="Account name (default: Amex)",
    )
    process_parser.add_argument(
        "--output",
        type=Path,
        help="Write the full result as JSON",
    )

    # execute command
    execute_parser = subparsers.add_parser(
        "execute", help="Write confirmed transactions to the ledger"
    )
    execute_parser.add_argument(
        "json_file",
        type=Path,
        help="JSON list of confirmed transactions",
    )

    # create-entity command
    entity_parser = subparsers.add_parser("create-entity", help="Create a ledger entity")
    entity_parser.add_argument("name", type=str, help="Entity name")

    # corrections command
    corrections_parser = subparsers.add_parser("corrections", help="List learned corrections")
    corrections_parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Only show corrections at or above this confidence",
    )
    corrections_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum corrections to show (default: 50)",
    )

    subparsers.add_parser("ai-usage", help="Show AI categorization usage and cost")

    return parser


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_process(config: Config, csv_path: Path, account: str, output: Path | None) -> int:
    """Process a statement into review buckets."""
    if not csv_path.exists():
        print(f"❌ File not found: {csv_path}")
        return 1

    transactions = read_amex_csv(csv_path)
    print(f"📄 Parsed {len(transactions)} transaction(s) from {csv_path}")

    with ImportService(config) as service:
        result = service.process_import(transactions, account)

    print("\n📊 Import Preview")
    print("=" * 40)
    print(f"  Matched:    {len(result.matched)}")
    print(f"  Uncertain:  {len(result.uncertain)}")
    print(f"  Failed:     {len(result.failed)}")
    print(f"  Skipped:    {len(result.skipped)}")

    if result.ai_usage is not None:
        usage = result.ai_usage
        print(
            f"  AI:         {usage.api_calls} call(s), {usage.cache_hits} cache hit(s), "
            f"${usage.total_cost_usd:.4f}"
        )

    for warning in result.warnings:
        print(f"\n⚠️  {warning.type.value}: {warning.message}")
        if warning.details:
            print(f"    {warning.details}")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"\n✓ Result written to {output}")

    return 0


def cmd_execute(config: Config, json_path: Path) -> int:
    """Write confirmed transactions to the ledger."""
    if not json_path.exists():
        print(f"❌ File not found: {json_path}")
        return 1

    with open(json_path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("transactions", [])
    transactions = [ConfirmedTransaction.from_dict(item) for item in data]

    print(f"📤 Writing {len(transactions)} transaction(s) to the ledger...")
    with ImportService(config) as service:
        result = service.execute_import(transactions)

    print(f"\n✓ Imported: {result.imported}")
    if result.skipped:
        print(f"  Skipped:  {result.skipped}")
    if result.failed:
        print(f"❌ Failed:   {len(result.failed)}")
        for failure in result.failed:
            print(f"  - {failure.transaction.description[:50]}: {failure.error}")
        return 1
    return 0


def cmd_create_entity(config: Config, name: str) -> int:
    """Create an entity in the ledger."""
    try:
        with ImportService(config) as service:
            entity = service.create_entity(name)
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    except LedgerError as e:
        print(f"❌ Failed to create entity: {e}")
        return 1

    print(f"✓ Created entity {entity['name']} ({entity['id']})")
    print(f"  {entity['url']}")
    return 0


def cmd_corrections(config: Config, min_confidence: float | None, limit: int) -> int:
    """List learned corrections."""
    store = StateStore(config.state_db_path)
    corrections = store.list_corrections(min_confidence=min_confidence, limit=limit)

    if not corrections:
        print("No learned corrections")
        return 0

    print(f"\n🧠 Learned Corrections ({len(corrections)})")
    print("=" * 60)
    for c in corrections:
        print(
            f"  [{c.id}] {c.description_pattern} ({c.match_type.value}) → "
            f"{c.entity_name or '-'}  conf={c.confidence:.2f} used={c.times_applied}"
        )
    print()
    return 0


def cmd_ai_usage(config: Config) -> int:
    """Show AI usage totals."""
    store = StateStore(config.state_db_path)
    stats = store.get_ai_usage_stats()

    print("\n🤖 AI Usage")
    print("=" * 40)
    print(f"  API calls:        {stats['api_calls']}")
    print(f"  Cache hits:       {stats['cache_hits']}")
    print(f"  Cache hit rate:   {stats['cache_hit_rate']:.0%}")
    print(f"  Input tokens:     {stats['input_tokens']}")
    print(f"  Output tokens:    {stats['output_tokens']}")
    print(f"  Total cost:       ${stats['total_cost_usd']:.4f}")
    print(f"  Avg cost / call:  ${stats['avg_cost_per_call']:.6f}")
    print()
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    try:
        if parsed.command == "process":
            return cmd_process(config, parsed.csv, parsed.account, parsed.output)
        elif parsed.command == "execute":
            return cmd_execute(config, parsed.json_file)
        elif parsed.command == "create-entity":
            return cmd_create_entity(config, parsed.name)
        elif parsed.command == "corrections":
            return cmd_corrections(config, parsed.min_confidence, parsed.limit)
        elif parsed.command == "ai-usage":
            return cmd_ai_usage(config)
        else:
            parser.print_help()
            return 1
    except ConfigValidationError as e:
        print(f"❌ Configuration error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
