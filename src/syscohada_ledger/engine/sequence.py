"""Numérotation des pièces sans trou par journal et par mois."""

from __future__ import annotations

import datetime
import logging
import random

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import PieceNumber, UnavailableError, ValidationError
from syscohada_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


def period_key(date: datetime.date) -> str:
    """Clé de séquence mensuelle : ``YYYY-MM``."""
    return f"{date.year:04d}-{date.month:02d}"


def format_piece(journal_code: str, date: datetime.date, number: int) -> str:
    """Formate un numéro de pièce.

    Examples:
        >>> format_piece("VE", datetime.date(2025, 3, 14), 42)
        'VE-2025-03-00042'
    """
    return f"{journal_code}-{period_key(date)}-{number:05d}"


class SequenceAllocator:
    """Attribue les numéros de pièce via l'incrément atomique du stockage.

    Si le stockage est indisponible, un numéro de secours à suffixe aléatoire
    est retourné avec ``sequential=False`` : il n'est pas garanti unique.
    """

    def __init__(self, store: LedgerStore, config: AppConfig, rng: random.Random | None = None) -> None:
        self._store = store
        self._journaux = config.journaux
        self._rng = rng or random.Random()

    def next(self, journal_code: str, date: datetime.date) -> PieceNumber:
        if journal_code not in self._journaux:
            raise ValidationError(
                f"Journal inconnu '{journal_code}'. Journaux acceptés : {', '.join(sorted(self._journaux))}"
            )
        try:
            number = self._store.increment_sequence(journal_code, period_key(date))
        except UnavailableError as exc:
            suffix = self._rng.randint(0, 99999)
            value = format_piece(journal_code, date, suffix)
            logger.warning("Séquence %s indisponible (%s) : numéro de secours %s", journal_code, exc, value)
            return PieceNumber(value=value, sequential=False)
        return PieceNumber(value=format_piece(journal_code, date, number))

    def sequences(self) -> list[dict[str, object]]:
        """Compteurs courants, triés par journal puis période."""
        return [
            {"journal_code": code, "periode": key, "dernier_numero": last}
            for (code, key), last in sorted(self._store.list_sequences().items())
        ]
