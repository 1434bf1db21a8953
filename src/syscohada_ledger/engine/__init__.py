"""Moteur comptable : classement, agrégation, états, numérotation, lettrage, rapprochement."""

from __future__ import annotations

from syscohada_ledger.engine.aggregator import LedgerAggregator
from syscohada_ledger.engine.bank_reconciliation import BankReconciler
from syscohada_ledger.engine.classifier import ChartClassifier, libelle_compte
from syscohada_ledger.engine.journal import JournalService
from syscohada_ledger.engine.lettrage import LettrageMatcher, next_lettre
from syscohada_ledger.engine.sequence import SequenceAllocator
from syscohada_ledger.engine.statements import StatementBuilder, compute_indicateurs

__all__ = [
    "BankReconciler",
    "ChartClassifier",
    "JournalService",
    "LedgerAggregator",
    "LettrageMatcher",
    "SequenceAllocator",
    "StatementBuilder",
    "compute_indicateurs",
    "libelle_compte",
    "next_lettre",
]
