"""
Audit journal: append-only JSONL record of order transitions, fills and backtests.
"""

from journal.writer import JournalWriter

__all__ = ["JournalWriter"]
