"""Cycle de vie des écritures : création atomique, validation, clôture, contre-passation."""

from __future__ import annotations

import datetime
import logging

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.engine.sequence import SequenceAllocator
from syscohada_ledger.models import (
    STATUT_BROUILLON,
    STATUT_CLOTUREE,
    STATUT_VALIDEE,
    STATUTS,
    Account,
    BalanceError,
    ConflictError,
    JournalEntry,
    JournalLine,
    LineDraft,
    NotFoundError,
    Period,
    ValidationError,
)
from syscohada_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.01

FACTURE_TO_JOURNAL: dict[str, str] = {
    "achat": "AC",
    "vente": "VE",
    "avoir_achat": "AC",
    "avoir_vente": "VE",
    "banque": "BQ",
    "caisse": "CA",
    "od": "OD",
}


def determine_journal(type_operation: str | None) -> str:
    """Journal d'un type d'opération ; OD par défaut."""
    if not type_operation:
        return "OD"
    return FACTURE_TO_JOURNAL.get(type_operation.lower().strip(), "OD")


def verify_balance(lines: list[LineDraft] | list[JournalLine]) -> None:
    """Vérifie l'équilibre débit/crédit d'un ensemble de lignes. Lève BalanceError si déséquilibre."""
    total_debit = round(sum(li.debit for li in lines), 2)
    total_credit = round(sum(li.credit for li in lines), 2)
    ecart = round(total_debit - total_credit, 2)
    if abs(ecart) >= BALANCE_TOLERANCE:
        raise BalanceError(
            f"Déséquilibre écriture: débit={total_debit}, crédit={total_credit}",
            ecart=ecart,
        )


def _validate_lines(lines: list[LineDraft]) -> None:
    if not lines:
        raise ValidationError("Une écriture doit comporter au moins une ligne")
    for index, line in enumerate(lines, start=1):
        if not line.account_numero or not line.account_numero.isdigit():
            raise ValidationError(f"Ligne {index} : numéro de compte invalide '{line.account_numero}'")
        if line.debit < 0 or line.credit < 0:
            raise ValidationError(f"Ligne {index} : montants négatifs interdits (compte {line.account_numero})")
        if line.debit == 0 and line.credit == 0:
            raise ValidationError(f"Ligne {index} : ni débit ni crédit (compte {line.account_numero})")


class JournalService:
    """Écritures persistées dans le stockage injecté, numérotées par SequenceAllocator."""

    def __init__(
        self,
        store: LedgerStore,
        config: AppConfig,
        sequence: SequenceAllocator | None = None,
    ) -> None:
        self._store = store
        self._journaux = config.journaux
        self._sequence = sequence or SequenceAllocator(store, config)

    def create_entry(
        self,
        journal_code: str,
        date_piece: datetime.date,
        libelle: str,
        lines: list[LineDraft],
        tiers_code: str | None = None,
        status: str = STATUT_BROUILLON,
        idempotency_key: str | None = None,
    ) -> tuple[JournalEntry, list[JournalLine]]:
        """Crée l'en-tête puis ses lignes ; si l'insertion des lignes échoue, l'en-tête est supprimé.

        Avec ``idempotency_key``, un second appel retourne l'écriture déjà créée ;
        un appel concurrent sous la même clé est refusé tant que le premier n'a pas abouti.

        Raises:
            ValidationError: Journal inconnu, ligne invalide, compte non utilisable, statut inconnu.
            BalanceError: Écriture déséquilibrée créée hors brouillon.
            ConflictError: Numéro de pièce déjà utilisé, clé d'idempotence en cours.
        """
        if journal_code not in self._journaux:
            raise ValidationError(f"Journal inconnu '{journal_code}'")
        if status not in (STATUT_BROUILLON, STATUT_VALIDEE):
            raise ValidationError(f"Statut de création invalide '{status}'")
        _validate_lines(lines)
        self._check_accounts(lines)
        if status != STATUT_BROUILLON:
            verify_balance(lines)

        if idempotency_key is None:
            return self._insert(journal_code, date_piece, libelle, lines, tiers_code, status)

        existing_id = self._store.reserve_idempotency_key(idempotency_key)
        if existing_id is not None:
            existing, existing_lines = self.get_entry(existing_id)
            logger.info("Écriture %s déjà créée pour la clé %s", existing.numero_piece, idempotency_key)
            return existing, existing_lines
        try:
            entry, created = self._insert(journal_code, date_piece, libelle, lines, tiers_code, status)
        except Exception:
            self._store.release_idempotency_key(idempotency_key)
            raise
        self._store.complete_idempotency_key(idempotency_key, entry.id)
        return entry, created

    def _check_accounts(self, lines: list[LineDraft]) -> None:
        for numero in sorted({li.account_numero for li in lines}):
            account = self._store.get_account(numero)
            if account is not None and not account.usable:
                raise ValidationError(f"Compte {numero} ({account.libelle}) non utilisable en saisie")

    def _insert(
        self,
        journal_code: str,
        date_piece: datetime.date,
        libelle: str,
        lines: list[LineDraft],
        tiers_code: str | None,
        status: str,
    ) -> tuple[JournalEntry, list[JournalLine]]:
        piece = self._sequence.next(journal_code, date_piece)
        entry = self._store.insert_entry(
            date_piece=date_piece,
            numero_piece=piece.value,
            journal_code=journal_code,
            libelle=libelle,
            tiers_code=tiers_code,
            status=status,
            total_debit=round(sum(li.debit for li in lines), 2),
            total_credit=round(sum(li.credit for li in lines), 2),
            numero_sequentiel=piece.sequential,
        )
        try:
            created = self._store.insert_lines(entry.id, lines)
        except Exception:
            logger.error("Échec d'insertion des lignes de %s : suppression de l'en-tête", entry.numero_piece)
            try:
                self._store.delete_entry(entry.id)
            except Exception:
                logger.exception("Suppression de l'en-tête %s impossible", entry.numero_piece)
            raise

        logger.info(
            "Écriture %s enregistrée (%d lignes, %s)", entry.numero_piece, len(created), entry.status
        )
        return entry, created

    def upsert_account(self, numero: str, libelle: str, usable: bool = True) -> Account:
        """Référence un compte du plan ; ``usable=False`` l'interdit en saisie."""
        if not numero or not numero.isdigit():
            raise ValidationError(f"Numéro de compte invalide '{numero}'")
        account = Account(numero=numero, libelle=libelle, usable=usable)
        self._store.upsert_account(account)
        logger.info("Compte %s référencé (utilisable=%s)", numero, usable)
        return account

    def get_account(self, numero: str) -> Account:
        account = self._store.get_account(numero)
        if account is None:
            raise NotFoundError(f"Compte {numero} non référencé")
        return account

    def get_entry(self, entry_id: int) -> tuple[JournalEntry, list[JournalLine]]:
        entry = self._store.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Écriture {entry_id} introuvable")
        return entry, self._store.find_lines(entry_id=entry_id)

    def list_entries(
        self,
        journal_code: str | None = None,
        period: Period | None = None,
        status: str | None = None,
    ) -> list[JournalEntry]:
        return self._store.list_entries(journal_code=journal_code, period=period, status=status)

    def _transition(self, entry_id: int, target: str) -> JournalEntry:
        entry, lines = self.get_entry(entry_id)
        if STATUTS.index(target) <= STATUTS.index(entry.status):
            raise ConflictError(f"Écriture {entry.numero_piece} : transition {entry.status} → {target} interdite")
        verify_balance(lines)
        updated = self._store.update_entry_status(entry_id, target)
        logger.info("Écriture %s : %s → %s", entry.numero_piece, entry.status, target)
        return updated

    def validate_entry(self, entry_id: int) -> JournalEntry:
        """brouillon → validee ; l'écriture doit être équilibrée."""
        return self._transition(entry_id, STATUT_VALIDEE)

    def close_entry(self, entry_id: int) -> JournalEntry:
        """→ cloturee ; un brouillon équilibré peut être clôturé directement."""
        return self._transition(entry_id, STATUT_CLOTUREE)

    def delete_entry(self, entry_id: int) -> None:
        """Supprime un brouillon et ses lignes. Le numéro de pièce n'est pas réutilisé."""
        entry, lines = self.get_entry(entry_id)
        if entry.status != STATUT_BROUILLON:
            raise ConflictError(f"Écriture {entry.numero_piece} {entry.status} : seule une écriture brouillon se supprime")
        lettrees = [line.id for line in lines if line.lettre is not None]
        if lettrees:
            raise ConflictError(f"Écriture {entry.numero_piece} : lignes lettrées {lettrees}, délettrer d'abord")
        matched = {m.journal_line_id for m in self._store.list_matches()}
        rapprochees = [line.id for line in lines if line.id in matched]
        if rapprochees:
            raise ConflictError(
                f"Écriture {entry.numero_piece} : lignes rapprochées {rapprochees}, annuler le rapprochement d'abord"
            )
        self._store.delete_entry(entry_id)
        logger.info("Écriture brouillon %s supprimée", entry.numero_piece)

    def reverse_entry(
        self,
        entry_id: int,
        date_piece: datetime.date | None = None,
        libelle: str | None = None,
    ) -> tuple[JournalEntry, list[JournalLine]]:
        """Contre-passation : nouvelle écriture validée aux sens inversés, dans le même journal."""
        entry, lines = self.get_entry(entry_id)
        if entry.status == STATUT_BROUILLON:
            raise ConflictError(f"Écriture {entry.numero_piece} brouillon : la supprimer plutôt que la contre-passer")
        drafts = [
            LineDraft(
                account_numero=line.account_numero,
                debit=line.credit,
                credit=line.debit,
                libelle=line.libelle,
                tiers_code=line.tiers_code,
            )
            for line in lines
        ]
        return self.create_entry(
            journal_code=entry.journal_code,
            date_piece=date_piece or entry.date_piece,
            libelle=libelle or f"Contre-passation {entry.numero_piece}",
            lines=drafts,
            tiers_code=entry.tiers_code,
            status=STATUT_VALIDEE,
        )
