"""Rapprochement bancaire : relevés ↔ lignes de trésorerie du grand livre."""

from __future__ import annotations

import logging

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import (
    METHOD_AUTO,
    METHOD_MANUAL,
    Anomaly,
    ConflictError,
    JournalLine,
    NotFoundError,
    Period,
    ReconciliationMatch,
    ReconciliationSession,
    ReconciliationStats,
    StatementLine,
    StatementLineDraft,
    ValidationError,
)
from syscohada_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)

SCORE_BASE = 0.3
SCORE_DATE = 0.7
BONUS_REFERENCE = 0.3
BONUS_LIBELLE = 0.1


def match_confidence(statement: StatementLine, line: JournalLine, days: int, window: int) -> int:
    """Confiance heuristique d'un rapprochement automatique, de 30 à 100.

    Montant exact = 0.3, proximité de date jusqu'à 0.7, bonus si la référence du
    relevé contient le numéro de pièce (0.3) ou si les libellés se recoupent (0.1).
    """
    date_score = 1.0 if window == 0 else 1 - days / window
    bonus = 0.0
    releve_libelle = (statement.libelle or "").lower()
    ligne_libelle = (line.libelle or "").lower()
    if statement.reference and line.numero_piece and line.numero_piece in statement.reference:
        bonus = BONUS_REFERENCE
    elif releve_libelle and ligne_libelle and (
        ligne_libelle[:10] in releve_libelle or releve_libelle[:10] in ligne_libelle
    ):
        bonus = BONUS_LIBELLE
    return min(100, round(100 * (SCORE_BASE + SCORE_DATE * date_score + bonus)))


class BankReconciler:
    """Rapproche les lignes de relevé des lignes du compte de banque.

    Montant du relevé positif = encaissement = débit du compte de banque, donc
    le montant comptable comparé est ``debit − credit``.
    """

    def __init__(self, store: LedgerStore, config: AppConfig) -> None:
        self._store = store
        self._tolerance = config.tolerance
        self._tolerance_jours = config.tolerance_jours
        self._comptes_tresorerie = tuple(config.comptes_tresorerie)
        self._compte_banque = config.compte_banque

    def importer(
        self,
        lines: list[StatementLineDraft],
        compte_banque: str | None = None,
        fichier_origine: str | None = None,
    ) -> list[StatementLine]:
        compte = compte_banque or self._compte_banque
        if not compte.startswith(self._comptes_tresorerie):
            raise ValidationError(f"Compte {compte} hors comptes de trésorerie {list(self._comptes_tresorerie)}")
        imported = self._store.insert_statement_lines(lines, compte, fichier_origine)
        logger.info("%d lignes de relevé importées sur %s (%s)", len(imported), compte, fichier_origine or "-")
        return imported

    def _matched_ids(self) -> tuple[set[int], set[int]]:
        matches = self._store.list_matches()
        return {m.statement_line_id for m in matches}, {m.journal_line_id for m in matches}

    def releves(self, period: Period | None = None, non_rapproches: bool = True) -> list[StatementLine]:
        lines = self._store.list_statement_lines(period=period)
        if not non_rapproches:
            return lines
        matched, _ = self._matched_ids()
        return [s for s in lines if s.id not in matched]

    def ecritures_banque(
        self,
        period: Period | None = None,
        non_rapprochees: bool = True,
        compte_banque: str | None = None,
    ) -> list[JournalLine]:
        prefixes = [compte_banque] if compte_banque else list(self._comptes_tresorerie)
        lines = self._store.find_lines(account_prefixes=prefixes, period=period)
        if not non_rapprochees:
            return lines
        _, matched = self._matched_ids()
        return [li for li in lines if li.id not in matched]

    def auto_rapprocher(
        self, tolerance_jours: int | None = None, period: Period | None = None
    ) -> list[ReconciliationMatch]:
        """Un rapprochement par ligne de relevé non rapprochée, au montant exact.

        Départage : date la plus proche, puis le plus petit id de ligne.
        Relancé sans nouvelle donnée, ne crée aucun rapprochement.
        """
        window = self._tolerance_jours if tolerance_jours is None else tolerance_jours
        if window < 0:
            raise ValidationError(f"Fenêtre de dates négative : {window}")
        matched_releves, matched_lignes = self._matched_ids()
        releves = [s for s in self._store.list_statement_lines(period=period) if s.id not in matched_releves]

        created: list[ReconciliationMatch] = []
        for releve in releves:
            candidates = []
            for line in self._store.find_lines(account_prefixes=[releve.compte_banque]):
                if line.id in matched_lignes:
                    continue
                if round(abs(line.montant - releve.montant), 2) >= self._tolerance:
                    continue
                days = abs((line.date_piece - releve.date_operation).days)
                if days > window:
                    continue
                candidates.append((days, line.id, line))
            if not candidates:
                continue
            days, _, best = min(candidates, key=lambda c: (c[0], c[1]))
            try:
                match = self._store.insert_match_atomic(
                    statement_line_id=releve.id,
                    journal_line_id=best.id,
                    montant=releve.montant,
                    method=METHOD_AUTO,
                    confidence=match_confidence(releve, best, days, window),
                )
            except ConflictError as exc:
                logger.warning("Rapprochement automatique ignoré pour le relevé %d : %s", releve.id, exc)
                continue
            matched_lignes.add(best.id)
            created.append(match)

        logger.info("Rapprochement automatique : %d/%d lignes de relevé rapprochées", len(created), len(releves))
        return created

    def rapprocher(self, statement_line_id: int, journal_line_id: int, montant: float) -> ReconciliationMatch:
        """Rapprochement manuel ; le montant doit égaler les deux côtés à la tolérance près."""
        releve = self._store.get_statement_line(statement_line_id)
        if releve is None:
            raise NotFoundError(f"Ligne de relevé {statement_line_id} introuvable")
        found = self._store.find_lines(line_ids=[journal_line_id])
        if not found:
            raise NotFoundError(f"Ligne d'écriture {journal_line_id} introuvable")
        line = found[0]
        if not line.account_numero.startswith(self._comptes_tresorerie):
            raise ValidationError(f"Ligne {journal_line_id} sur le compte {line.account_numero} hors trésorerie")

        for label, expected in (("relevé", releve.montant), ("écriture", line.montant)):
            ecart = round(montant - expected, 2)
            if abs(ecart) >= self._tolerance:
                raise ValidationError(
                    f"Montant {montant} différent du montant {label} {expected} (écart={ecart})", ecart=ecart
                )

        match = self._store.insert_match_atomic(
            statement_line_id=statement_line_id,
            journal_line_id=journal_line_id,
            montant=round(montant, 2),
            method=METHOD_MANUAL,
            confidence=None,
        )
        logger.info("Rapprochement manuel %d : relevé %d ↔ ligne %d", match.id, statement_line_id, journal_line_id)
        return match

    def annuler(self, match_id: int) -> ReconciliationMatch:
        match = self._store.delete_match(match_id)
        logger.info("Rapprochement %d annulé", match_id)
        return match

    def statistiques(self, period: Period | None = None, compte_banque: str | None = None) -> ReconciliationStats:
        """Synthèse du rapprochement.

        Un solde progressif de relevé est un solde cumulé : il se compare au solde
        comptable cumulé à la fin de la période. Sans solde progressif, les deux
        côtés sont les mouvements de la période.
        """
        compte = compte_banque or self._compte_banque
        releves = self._store.list_statement_lines(period=period, compte_banque=compte)
        ecritures = self._store.find_lines(account_prefixes=[compte], period=period)
        matched_releves, matched_lignes = self._matched_ids()

        if releves and releves[-1].solde_progressif is not None:
            solde_releve = round(releves[-1].solde_progressif, 2)
            cumul = self._store.find_lines(
                account_prefixes=[compte], until=period.date_fin if period is not None else None
            )
            solde_comptable = round(sum(li.montant for li in cumul), 2)
        else:
            solde_releve = round(sum(s.montant for s in releves), 2)
            solde_comptable = round(sum(li.montant for li in ecritures), 2)
        ecart = round(solde_releve - solde_comptable, 2)

        rapproches = sum(1 for s in releves if s.id in matched_releves)
        anomalies = []
        if abs(ecart) >= self._tolerance:
            anomalies.append(
                Anomaly(
                    type="ecart_rapprochement",
                    severity="warning",
                    reference=compte,
                    detail=(
                        f"Écart de rapprochement sur {compte} : relevé={solde_releve}, "
                        f"comptabilité={solde_comptable}, écart={ecart}"
                    ),
                    expected_value=str(solde_releve),
                    actual_value=str(solde_comptable),
                )
            )

        return ReconciliationStats(
            releves_total=len(releves),
            releves_rapproches=rapproches,
            ecritures_total=len(ecritures),
            ecritures_rapprochees=sum(1 for li in ecritures if li.id in matched_lignes),
            solde_releve=solde_releve,
            solde_comptable=solde_comptable,
            ecart=ecart,
            taux_rapprochement=round(rapproches / len(releves) * 100) if releves else 0,
            anomalies=anomalies,
        )

    def ouvrir_session(
        self,
        period: Period,
        compte_banque: str | None = None,
        solde_releve_debut: float = 0.0,
        solde_releve_fin: float = 0.0,
    ) -> ReconciliationSession:
        """Enregistre une session : soldes d'ouverture et de clôture du relevé face au solde comptable cumulé."""
        compte = compte_banque or self._compte_banque
        if not compte.startswith(self._comptes_tresorerie):
            raise ValidationError(f"Compte {compte} hors comptes de trésorerie {list(self._comptes_tresorerie)}")
        lines = self._store.find_lines(account_prefixes=[compte], until=period.date_fin)
        solde_comptable = round(sum(li.montant for li in lines), 2)
        ecart = round(solde_releve_fin - solde_comptable, 2)
        session = self._store.insert_session(
            compte_banque=compte,
            date_debut=period.date_debut,
            date_fin=period.date_fin,
            solde_releve_debut=round(solde_releve_debut, 2),
            solde_releve_fin=round(solde_releve_fin, 2),
            solde_comptable=solde_comptable,
            ecart=ecart,
        )
        if abs(ecart) >= self._tolerance:
            logger.warning(
                "Session %d sur %s (%s) : relevé=%s, comptabilité=%s, écart=%s",
                session.id, compte, period.label, session.solde_releve_fin, solde_comptable, ecart,
            )
        else:
            logger.info("Session %d sur %s (%s) sans écart", session.id, compte, period.label)
        return session

    def sessions(self, compte_banque: str | None = None) -> list[ReconciliationSession]:
        return self._store.list_sessions(compte_banque)
