"""Interface abstraite du stockage des écritures, lettrages et relevés."""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from syscohada_ledger.models import (
    Account,
    JournalEntry,
    JournalLine,
    LettrageHistory,
    LineDraft,
    Period,
    ReconciliationMatch,
    ReconciliationSession,
    StatementLine,
    StatementLineDraft,
)


class LedgerStore(ABC):
    """Dépôt injecté dans chaque composant.

    Toute méthode peut lever ``UnavailableError`` si le stockage est injoignable.
    Les écritures multi-lignes et les opérations ``*_atomic`` sont sérialisées
    par l'implémentation.
    """

    # --- Plan comptable ---

    @abstractmethod
    def upsert_account(self, account: Account) -> None:
        """Crée ou remplace un compte du plan comptable."""

    @abstractmethod
    def get_account(self, numero: str) -> Account | None:
        """Retourne le compte ou None s'il n'est pas référencé."""

    # --- Écritures ---

    @abstractmethod
    def insert_entry(
        self,
        *,
        date_piece: datetime.date,
        numero_piece: str,
        journal_code: str,
        libelle: str,
        tiers_code: str | None,
        status: str,
        total_debit: float,
        total_credit: float,
        numero_sequentiel: bool,
    ) -> JournalEntry:
        """Insère un en-tête. Lève ConflictError si le numéro existe déjà dans le journal."""

    @abstractmethod
    def insert_lines(self, entry_id: int, drafts: list[LineDraft]) -> list[JournalLine]:
        """Insère toutes les lignes d'une écriture, ou aucune."""

    @abstractmethod
    def delete_entry(self, entry_id: int) -> None:
        """Supprime l'en-tête et toutes ses lignes."""

    @abstractmethod
    def get_entry(self, entry_id: int) -> JournalEntry | None:
        """Retourne l'en-tête ou None."""

    @abstractmethod
    def update_entry_status(self, entry_id: int, status: str) -> JournalEntry:
        """Change le statut d'une écriture."""

    @abstractmethod
    def list_entries(
        self,
        *,
        journal_code: str | None = None,
        period: Period | None = None,
        status: str | None = None,
    ) -> list[JournalEntry]:
        """Liste les en-têtes triés par date puis id."""

    @abstractmethod
    def find_lines(
        self,
        *,
        line_ids: Iterable[int] | None = None,
        entry_id: int | None = None,
        account: str | None = None,
        account_prefixes: Iterable[str] | None = None,
        period: Period | None = None,
        until: datetime.date | None = None,
        tiers_code: str | None = None,
        lettered: bool | None = None,
        lettre: str | None = None,
    ) -> list[JournalLine]:
        """Recherche de lignes ; résultat trié par compte, date puis id."""

    # --- Idempotence ---

    @abstractmethod
    def reserve_idempotency_key(self, key: str) -> int | None:
        """Check-and-set : réserve la clé et retourne None, ou l'id de l'écriture déjà créée.

        Lève ConflictError si une création est en cours sous cette clé.
        """

    @abstractmethod
    def complete_idempotency_key(self, key: str, entry_id: int) -> None:
        """Associe une clé réservée à l'écriture créée."""

    @abstractmethod
    def release_idempotency_key(self, key: str) -> None:
        """Libère une clé réservée dont la création a échoué."""

    # --- Séquences ---

    @abstractmethod
    def increment_sequence(self, journal_code: str, period_key: str) -> int:
        """Incrément atomique ; retourne le nouveau dernier numéro."""

    @abstractmethod
    def list_sequences(self) -> dict[tuple[str, str], int]:
        """État courant des compteurs."""

    # --- Lettrage ---

    @abstractmethod
    def allocate_letter_atomic(self, compte: str, successor: Callable[[str | None], str]) -> str:
        """Réserve le code lettre suivant du compte ; un code réservé n'est jamais rendu."""

    @abstractmethod
    def set_lettre_atomic(self, line_ids: list[int], lettre: str, date_lettrage: datetime.date) -> list[JournalLine]:
        """Lettre les lignes. Lève ConflictError si l'une d'elles est déjà lettrée."""

    @abstractmethod
    def clear_lettre(self, compte: str, lettre: str) -> list[JournalLine]:
        """Efface la lettre sur tout le groupe ; retourne les lignes modifiées."""

    @abstractmethod
    def add_lettrage_history(
        self,
        *,
        lettre: str,
        action: str,
        line_ids: list[int],
        compte: str,
        montant: float,
        created_by: str | None,
    ) -> LettrageHistory:
        """Journalise une opération de lettrage."""

    @abstractmethod
    def list_lettrage_history(self, compte: str | None = None, limit: int = 50) -> list[LettrageHistory]:
        """Historique, le plus récent d'abord."""

    # --- Relevés et rapprochements ---

    @abstractmethod
    def insert_statement_lines(
        self,
        drafts: list[StatementLineDraft],
        compte_banque: str,
        fichier_origine: str | None,
    ) -> list[StatementLine]:
        """Importe des lignes de relevé."""

    @abstractmethod
    def get_statement_line(self, statement_line_id: int) -> StatementLine | None:
        """Retourne la ligne de relevé ou None."""

    @abstractmethod
    def list_statement_lines(
        self,
        *,
        period: Period | None = None,
        compte_banque: str | None = None,
    ) -> list[StatementLine]:
        """Lignes de relevé triées par date d'opération puis id."""

    @abstractmethod
    def insert_match_atomic(
        self,
        *,
        statement_line_id: int,
        journal_line_id: int,
        montant: float,
        method: str,
        confidence: int | None,
    ) -> ReconciliationMatch:
        """Crée un rapprochement. Lève ConflictError si un des deux côtés est déjà rapproché."""

    @abstractmethod
    def delete_match(self, match_id: int) -> ReconciliationMatch:
        """Supprime un rapprochement. Lève NotFoundError s'il n'existe pas."""

    @abstractmethod
    def list_matches(self) -> list[ReconciliationMatch]:
        """Tous les rapprochements, par id."""

    @abstractmethod
    def insert_session(
        self,
        *,
        compte_banque: str,
        date_debut: datetime.date,
        date_fin: datetime.date,
        solde_releve_debut: float,
        solde_releve_fin: float,
        solde_comptable: float,
        ecart: float,
    ) -> ReconciliationSession:
        """Enregistre une session de rapprochement."""

    @abstractmethod
    def list_sessions(self, compte_banque: str | None = None) -> list[ReconciliationSession]:
        """Sessions, la plus récente d'abord."""
