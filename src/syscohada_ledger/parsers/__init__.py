"""Parsers CSV : fichier d'écritures et relevés bancaires."""

from syscohada_ledger.parsers.bank_statement import BankStatementParser
from syscohada_ledger.parsers.base import BaseParser
from syscohada_ledger.parsers.journal import JournalParser

__all__ = ["BankStatementParser", "BaseParser", "JournalParser"]
