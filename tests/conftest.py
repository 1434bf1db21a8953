from __future__ import annotations

import datetime
from collections.abc import Callable
from pathlib import Path

import pytest

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.engine import JournalService
from syscohada_ledger.models import STATUT_VALIDEE, JournalEntry, JournalLine, LineDraft, Period
from syscohada_ledger.store import InMemoryLedgerStore

PostEntry = Callable[..., tuple[JournalEntry, list[JournalLine]]]


@pytest.fixture
def fixtures_dir() -> Path:
    """Chemin vers le répertoire de fixtures."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_config() -> AppConfig:
    """AppConfig par défaut : journaux standard, classement SYSCOHADA, trésorerie en classe 5."""
    return AppConfig(libelles={"5211": "Banque test"})


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def journal(store: InMemoryLedgerStore, sample_config: AppConfig) -> JournalService:
    return JournalService(store, sample_config)


@pytest.fixture
def exercice_2025() -> Period:
    return Period.exercice("2025")


@pytest.fixture
def post_entry(journal: JournalService) -> PostEntry:
    """Enregistre une écriture à partir de tuples (compte, débit, crédit)."""

    def _post(
        journal_code: str,
        date: datetime.date,
        lines: list[tuple[str, float, float]],
        libelle: str = "Écriture test",
        tiers_code: str | None = None,
        status: str = STATUT_VALIDEE,
    ) -> tuple[JournalEntry, list[JournalLine]]:
        drafts = [
            LineDraft(account_numero=compte, debit=debit, credit=credit, libelle=libelle, tiers_code=tiers_code)
            for compte, debit, credit in lines
        ]
        return journal.create_entry(journal_code, date, libelle, drafts, tiers_code=tiers_code, status=status)

    return _post
