"""Ledger of created resources and its durable file format."""

from stepwise.ledger.models import Ledger, ResourceRecord
from stepwise.ledger.store import (
    LedgerFile,
    LedgerStore,
    default_ledger_path,
    load_ledger,
    read_ledger_file,
)

__all__ = [
    "Ledger",
    "LedgerFile",
    "LedgerStore",
    "ResourceRecord",
    "default_ledger_path",
    "load_ledger",
    "read_ledger_file",
]
