"""
CLI runner module.

Provides commands:
- init-config: Write a default config file
- process: Deduplicate and match a statement
- execute: Write confirmed transactions
- create-entity: Create a ledger entity
- corrections: List learned corrections
- ai-usage: Show AI usage and cost
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
