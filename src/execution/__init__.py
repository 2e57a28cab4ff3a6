"""
Paper execution adapters: order repositories with compare-and-set and a
SQLite portfolio ledger. Restart-safe. No live capital.
"""

from execution.order_store import InMemoryOrderStore, SqliteOrderStore, order_from_record, order_to_record
from execution.paper_ledger import PaperLedger

__all__ = [
    "InMemoryOrderStore",
    "PaperLedger",
    "SqliteOrderStore",
    "order_from_record",
    "order_to_record",
]
