"""Stockage des écritures, lettrages et relevés."""

from syscohada_ledger.store.base import LedgerStore
from syscohada_ledger.store.memory import InMemoryLedgerStore

__all__ = ["InMemoryLedgerStore", "LedgerStore"]
