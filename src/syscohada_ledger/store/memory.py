"""Implémentation en mémoire du stockage, thread-safe."""

from __future__ import annotations

import dataclasses
import datetime
import threading
from collections.abc import Callable, Iterable

from syscohada_ledger.models import (
    Account,
    ConflictError,
    JournalEntry,
    JournalLine,
    LettrageHistory,
    LineDraft,
    NotFoundError,
    Period,
    ReconciliationMatch,
    ReconciliationSession,
    StatementLine,
    StatementLineDraft,
    UnavailableError,
)
from syscohada_ledger.store.base import LedgerStore


class InMemoryLedgerStore(LedgerStore):
    """Stockage en mémoire du processus.

    Un verrou unique sérialise chaque opération, ce qui rend atomiques les
    incréments de séquence et les check-and-set de lettrage/rapprochement.
    ``available = False`` simule un stockage injoignable.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.available = True
        self._accounts: dict[str, Account] = {}
        self._entries: dict[int, JournalEntry] = {}
        self._lines: dict[int, JournalLine] = {}
        self._idempotency: dict[str, int | None] = {}
        self._sequences: dict[tuple[str, str], int] = {}
        self._letters: dict[str, str] = {}
        self._history: list[LettrageHistory] = []
        self._statement_lines: dict[int, StatementLine] = {}
        self._matches: dict[int, ReconciliationMatch] = {}
        self._next_entry_id = 1
        self._next_line_id = 1
        self._next_history_id = 1
        self._next_statement_id = 1
        self._sessions: dict[int, ReconciliationSession] = {}
        self._next_match_id = 1
        self._next_session_id = 1

    def _check_available(self) -> None:
        if not self.available:
            raise UnavailableError("Stockage indisponible")

    # --- Plan comptable ---

    def upsert_account(self, account: Account) -> None:
        with self._lock:
            self._check_available()
            self._accounts[account.numero] = account

    def get_account(self, numero: str) -> Account | None:
        with self._lock:
            self._check_available()
            return self._accounts.get(numero)

    # --- Écritures ---

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
        with self._lock:
            self._check_available()
            for existing in self._entries.values():
                if existing.journal_code == journal_code and existing.numero_piece == numero_piece:
                    raise ConflictError(f"Numéro de pièce {numero_piece} déjà utilisé dans le journal {journal_code}")
            entry = JournalEntry(
                id=self._next_entry_id,
                date_piece=date_piece,
                numero_piece=numero_piece,
                journal_code=journal_code,
                libelle=libelle,
                tiers_code=tiers_code,
                status=status,
                total_debit=total_debit,
                total_credit=total_credit,
                numero_sequentiel=numero_sequentiel,
            )
            self._entries[entry.id] = entry
            self._next_entry_id += 1
            return entry

    def insert_lines(self, entry_id: int, drafts: list[LineDraft]) -> list[JournalLine]:
        with self._lock:
            self._check_available()
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFoundError(f"Écriture {entry_id} introuvable")
            created: list[JournalLine] = []
            for draft in drafts:
                line = JournalLine(
                    id=self._next_line_id + len(created),
                    entry_id=entry_id,
                    account_numero=draft.account_numero,
                    debit=draft.debit,
                    credit=draft.credit,
                    date_piece=entry.date_piece,
                    journal_code=entry.journal_code,
                    numero_piece=entry.numero_piece,
                    libelle=draft.libelle,
                    tiers_code=draft.tiers_code,
                )
                created.append(line)
            for line in created:
                self._lines[line.id] = line
            self._next_line_id += len(created)
            return created

    def delete_entry(self, entry_id: int) -> None:
        with self._lock:
            self._check_available()
            if self._entries.pop(entry_id, None) is None:
                raise NotFoundError(f"Écriture {entry_id} introuvable")
            orphan_ids = [lid for lid, line in self._lines.items() if line.entry_id == entry_id]
            for lid in orphan_ids:
                del self._lines[lid]
            stale_keys = [k for k, eid in self._idempotency.items() if eid == entry_id]
            for key in stale_keys:
                del self._idempotency[key]

    def get_entry(self, entry_id: int) -> JournalEntry | None:
        with self._lock:
            self._check_available()
            return self._entries.get(entry_id)

    def update_entry_status(self, entry_id: int, status: str) -> JournalEntry:
        with self._lock:
            self._check_available()
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFoundError(f"Écriture {entry_id} introuvable")
            updated = dataclasses.replace(entry, status=status)
            self._entries[entry_id] = updated
            return updated

    def list_entries(
        self,
        *,
        journal_code: str | None = None,
        period: Period | None = None,
        status: str | None = None,
    ) -> list[JournalEntry]:
        with self._lock:
            self._check_available()
            entries = [
                e
                for e in self._entries.values()
                if (journal_code is None or e.journal_code == journal_code)
                and (period is None or period.contains(e.date_piece))
                and (status is None or e.status == status)
            ]
        return sorted(entries, key=lambda e: (e.date_piece, e.id))

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
        ids = set(line_ids) if line_ids is not None else None
        prefixes = tuple(account_prefixes) if account_prefixes is not None else None
        with self._lock:
            self._check_available()
            lines = [
                line
                for line in self._lines.values()
                if (ids is None or line.id in ids)
                and (entry_id is None or line.entry_id == entry_id)
                and (account is None or line.account_numero == account)
                and (not prefixes or line.account_numero.startswith(prefixes))
                and (period is None or period.contains(line.date_piece))
                and (until is None or line.date_piece <= until)
                and (tiers_code is None or line.tiers_code == tiers_code)
                and (lettered is None or (line.lettre is not None) == lettered)
                and (lettre is None or line.lettre == lettre)
            ]
        return sorted(lines, key=lambda li: (li.account_numero, li.date_piece, li.id))

    # --- Idempotence ---

    def reserve_idempotency_key(self, key: str) -> int | None:
        with self._lock:
            self._check_available()
            if key in self._idempotency:
                entry_id = self._idempotency[key]
                if entry_id is None:
                    raise ConflictError(f"Création déjà en cours pour la clé d'idempotence {key}")
                return entry_id
            # None = réservée, écriture pas encore créée
            self._idempotency[key] = None
            return None

    def complete_idempotency_key(self, key: str, entry_id: int) -> None:
        with self._lock:
            self._check_available()
            self._idempotency[key] = entry_id

    def release_idempotency_key(self, key: str) -> None:
        with self._lock:
            if self._idempotency.get(key, 0) is None:
                del self._idempotency[key]

    # --- Séquences ---

    def increment_sequence(self, journal_code: str, period_key: str) -> int:
        with self._lock:
            self._check_available()
            key = (journal_code, period_key)
            self._sequences[key] = self._sequences.get(key, 0) + 1
            return self._sequences[key]

    def list_sequences(self) -> dict[tuple[str, str], int]:
        with self._lock:
            self._check_available()
            return dict(self._sequences)

    # --- Lettrage ---

    def allocate_letter_atomic(self, compte: str, successor: Callable[[str | None], str]) -> str:
        with self._lock:
            self._check_available()
            lettre = successor(self._letters.get(compte))
            self._letters[compte] = lettre
            return lettre

    def set_lettre_atomic(self, line_ids: list[int], lettre: str, date_lettrage: datetime.date) -> list[JournalLine]:
        with self._lock:
            self._check_available()
            missing = [lid for lid in line_ids if lid not in self._lines]
            if missing:
                raise NotFoundError(f"Lignes introuvables : {missing}")
            already = [lid for lid in line_ids if self._lines[lid].lettre is not None]
            if already:
                raise ConflictError(f"Lignes déjà lettrées : {already}")
            updated = []
            for lid in line_ids:
                line = dataclasses.replace(self._lines[lid], lettre=lettre, date_lettrage=date_lettrage)
                self._lines[lid] = line
                updated.append(line)
            return updated

    def clear_lettre(self, compte: str, lettre: str) -> list[JournalLine]:
        with self._lock:
            self._check_available()
            cleared = []
            for lid, line in self._lines.items():
                if line.account_numero == compte and line.lettre == lettre:
                    cleared.append(dataclasses.replace(line, lettre=None, date_lettrage=None))
            for line in cleared:
                self._lines[line.id] = line
            return sorted(cleared, key=lambda li: li.id)

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
        with self._lock:
            self._check_available()
            record = LettrageHistory(
                id=self._next_history_id,
                lettre=lettre,
                action=action,
                line_ids=list(line_ids),
                compte=compte,
                montant=montant,
                created_at=datetime.datetime.now(),
                created_by=created_by,
            )
            self._history.append(record)
            self._next_history_id += 1
            return record

    def list_lettrage_history(self, compte: str | None = None, limit: int = 50) -> list[LettrageHistory]:
        with self._lock:
            self._check_available()
            records = [h for h in self._history if compte is None or h.compte == compte]
        return sorted(records, key=lambda h: h.id, reverse=True)[:limit]

    # --- Relevés et rapprochements ---

    def insert_statement_lines(
        self,
        drafts: list[StatementLineDraft],
        compte_banque: str,
        fichier_origine: str | None,
    ) -> list[StatementLine]:
        with self._lock:
            self._check_available()
            created = []
            for draft in drafts:
                line = StatementLine(
                    id=self._next_statement_id,
                    date_operation=draft.date_operation,
                    libelle=draft.libelle,
                    montant=draft.montant,
                    compte_banque=compte_banque,
                    reference=draft.reference,
                    date_valeur=draft.date_valeur or draft.date_operation,
                    solde_progressif=draft.solde_progressif,
                    fichier_origine=fichier_origine,
                )
                self._statement_lines[line.id] = line
                self._next_statement_id += 1
                created.append(line)
            return created

    def get_statement_line(self, statement_line_id: int) -> StatementLine | None:
        with self._lock:
            self._check_available()
            return self._statement_lines.get(statement_line_id)

    def list_statement_lines(
        self,
        *,
        period: Period | None = None,
        compte_banque: str | None = None,
    ) -> list[StatementLine]:
        with self._lock:
            self._check_available()
            lines = [
                s
                for s in self._statement_lines.values()
                if (period is None or period.contains(s.date_operation))
                and (compte_banque is None or s.compte_banque == compte_banque)
            ]
        return sorted(lines, key=lambda s: (s.date_operation, s.id))

    def insert_match_atomic(
        self,
        *,
        statement_line_id: int,
        journal_line_id: int,
        montant: float,
        method: str,
        confidence: int | None,
    ) -> ReconciliationMatch:
        with self._lock:
            self._check_available()
            if statement_line_id not in self._statement_lines:
                raise NotFoundError(f"Ligne de relevé {statement_line_id} introuvable")
            if journal_line_id not in self._lines:
                raise NotFoundError(f"Ligne d'écriture {journal_line_id} introuvable")
            for match in self._matches.values():
                if match.statement_line_id == statement_line_id:
                    raise ConflictError(f"Ligne de relevé {statement_line_id} déjà rapprochée")
                if match.journal_line_id == journal_line_id:
                    raise ConflictError(f"Ligne d'écriture {journal_line_id} déjà rapprochée")
            match = ReconciliationMatch(
                id=self._next_match_id,
                statement_line_id=statement_line_id,
                journal_line_id=journal_line_id,
                montant=montant,
                method=method,
                confidence=confidence,
                created_at=datetime.datetime.now(),
            )
            self._matches[match.id] = match
            self._next_match_id += 1
            return match

    def delete_match(self, match_id: int) -> ReconciliationMatch:
        with self._lock:
            self._check_available()
            match = self._matches.pop(match_id, None)
            if match is None:
                raise NotFoundError(f"Rapprochement {match_id} introuvable")
            return match

    def list_matches(self) -> list[ReconciliationMatch]:
        with self._lock:
            self._check_available()
            return sorted(self._matches.values(), key=lambda m: m.id)

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
        with self._lock:
            self._check_available()
            session = ReconciliationSession(
                id=self._next_session_id,
                compte_banque=compte_banque,
                date_debut=date_debut,
                date_fin=date_fin,
                solde_releve_debut=solde_releve_debut,
                solde_releve_fin=solde_releve_fin,
                solde_comptable=solde_comptable,
                ecart=ecart,
                created_at=datetime.datetime.now(),
            )
            self._sessions[session.id] = session
            self._next_session_id += 1
            return session

    def list_sessions(self, compte_banque: str | None = None) -> list[ReconciliationSession]:
        with self._lock:
            self._check_available()
            sessions = [s for s in self._sessions.values() if compte_banque is None or s.compte_banque == compte_banque]
        return sorted(sessions, key=lambda s: s.id, reverse=True)
