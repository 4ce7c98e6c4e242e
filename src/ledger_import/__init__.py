"""
Bank statement → Entity matching → Human-in-the-loop → Notion ledger import

A deterministic, testable pipeline that deduplicates parsed statement rows
against the ledger, resolves each row to a canonical payee entity (learned
corrections, name matching, AI fallback) and writes confirmed rows under a
bounded, rate-limited worker pool.
"""

__version__ = "0.1.0"
