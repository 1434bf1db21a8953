"""Lettrage des comptes de tiers : codes lettre, propositions, lettrage et délettrage."""

from __future__ import annotations

import datetime
import logging
import re
from collections import defaultdict
from itertools import combinations

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import (
    ConflictError,
    JournalLine,
    LettrageGroup,
    LettrageHistory,
    LettrageProposal,
    NotFoundError,
    Period,
    ValidationError,
)
from syscohada_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)

CONFIANCE_EXACTE = 100
CONFIANCE_SOMME = 90
CONFIANCE_REFERENCE = 70
ECART_REFERENCE_MAX = 0.10

ACTION_LETTRAGE = "lettrage"
ACTION_DELETTRAGE = "delettrage"

_REFERENCE_PATTERNS = [
    re.compile(r"FA[C-]?\s*(\d{4,})", re.IGNORECASE),
    re.compile(r"FACT[URE]*\s*[N°#]*\s*(\d{4,})", re.IGNORECASE),
    re.compile(r"N°\s*(\d{4,})", re.IGNORECASE),
    re.compile(r"REF\s*[:#]?\s*(\w{4,})", re.IGNORECASE),
]


def next_lettre(current: str | None) -> str:
    """Successeur base 26 d'un code lettre.

    Examples:
        >>> next_lettre(None)
        'A'
        >>> next_lettre("Z")
        'AA'
        >>> next_lettre("AZ")
        'BA'
        >>> next_lettre("ZZ")
        'AAA'
    """
    if not current:
        return "A"
    if not current.isalpha() or not current.isupper():
        raise ValidationError(f"Code lettre invalide '{current}'")
    chars = list(current)
    i = len(chars) - 1
    while i >= 0:
        if chars[i] != "Z":
            chars[i] = chr(ord(chars[i]) + 1)
            return "".join(chars)
        chars[i] = "A"
        i -= 1
    return "A" + "".join(chars)


def extract_reference(libelle: str) -> str | None:
    """Numéro de facture ou référence repéré dans un libellé."""
    for pattern in _REFERENCE_PATTERNS:
        match = pattern.search(libelle or "")
        if match:
            return match.group(1)
    return None


def _split_sides(lines: list[JournalLine]) -> tuple[list[JournalLine], list[JournalLine]]:
    debits = [li for li in lines if li.montant > 0]
    credits = [li for li in lines if li.montant < 0]
    return debits, credits


class LettrageMatcher:
    """Lettrage d'un compte, éventuellement restreint à un tiers.

    Les codes lettre sont propres à chaque compte, réservés de façon atomique et
    jamais réattribués, même après délettrage.
    """

    def __init__(self, store: LedgerStore, config: AppConfig) -> None:
        self._store = store
        self._tolerance = config.tolerance

    def lignes(
        self,
        compte: str | None = None,
        tiers_code: str | None = None,
        period: Period | None = None,
        statut: str | None = None,
    ) -> list[JournalLine]:
        """Lignes lettrables ; ``statut`` vaut ``lettre``, ``non_lettre`` ou None (toutes)."""
        if statut not in (None, "lettre", "non_lettre"):
            raise ValidationError(f"Statut de lettrage inconnu '{statut}'")
        lettered = None if statut is None else statut == "lettre"
        return self._store.find_lines(
            account_prefixes=[compte] if compte else None,
            tiers_code=tiers_code,
            period=period,
            lettered=lettered,
        )

    def proposer(self, compte: str, tiers_code: str | None = None) -> list[LettrageProposal]:
        """Propositions triées par confiance décroissante puis identifiants de lignes."""
        lines = self._store.find_lines(account=compte, tiers_code=tiers_code, lettered=False)
        if len(lines) < 2:
            return []
        debits, credits = _split_sides(lines)
        tol = self._tolerance
        propositions: list[LettrageProposal] = []

        def proposal(d: list[JournalLine], c: list[JournalLine], montant: float, ecart: float,
                     confiance: int, raison: str, auto: bool = True) -> LettrageProposal:
            return LettrageProposal(
                compte=compte,
                tiers_code=tiers_code,
                lignes_debit=d,
                lignes_credit=c,
                montant_rapprochable=round(montant, 2),
                ecart=round(ecart, 2),
                confiance=confiance,
                raison=raison,
                auto_applicable=auto,
            )

        for debit in debits:
            for credit in credits:
                if abs(debit.montant + credit.montant) < tol:
                    propositions.append(proposal([debit], [credit], debit.montant, 0.0, CONFIANCE_EXACTE,
                                                 "Montants identiques"))

        for debit in debits:
            for c1, c2 in combinations(credits, 2):
                if abs(debit.montant + c1.montant + c2.montant) < tol:
                    propositions.append(proposal([debit], [c1, c2], debit.montant, 0.0, CONFIANCE_SOMME,
                                                 "Somme de crédits = débit"))
        for credit in credits:
            for d1, d2 in combinations(debits, 2):
                if abs(d1.montant + d2.montant + credit.montant) < tol:
                    propositions.append(proposal([d1, d2], [credit], -credit.montant, 0.0, CONFIANCE_SOMME,
                                                 "Somme de débits = crédit"))

        for debit in debits:
            ref_debit = extract_reference(debit.libelle)
            if ref_debit is None:
                continue
            for credit in credits:
                if extract_reference(credit.libelle) != ref_debit:
                    continue
                montant_debit, montant_credit = debit.montant, -credit.montant
                ecart = abs(montant_debit - montant_credit)
                if tol < ecart < max(montant_debit, montant_credit) * ECART_REFERENCE_MAX:
                    propositions.append(
                        proposal([debit], [credit], min(montant_debit, montant_credit), ecart,
                                 CONFIANCE_REFERENCE, f"Référence commune: {ref_debit}", auto=False)
                    )

        return sorted(propositions, key=lambda p: (-p.confiance, sorted(p.line_ids)))

    def lettrer(
        self,
        line_ids: list[int],
        compte: str,
        tiers_code: str | None = None,
        user: str | None = None,
    ) -> str:
        """Lettre un groupe de lignes soldé et retourne le code attribué.

        Raises:
            NotFoundError: Ligne inexistante.
            ValidationError: Ligne hors compte/tiers, ou groupe non soldé (``ecart`` renseigné).
            ConflictError: Ligne déjà lettrée, y compris par une écriture concurrente.
        """
        ids = sorted(set(line_ids))
        if len(ids) < 2:
            raise ValidationError("Un lettrage porte sur au moins deux lignes")
        lines = self._store.find_lines(line_ids=ids)
        missing = sorted(set(ids) - {li.id for li in lines})
        if missing:
            raise NotFoundError(f"Lignes introuvables : {missing}")
        for line in lines:
            if line.account_numero != compte:
                raise ValidationError(f"Ligne {line.id} sur le compte {line.account_numero}, attendu {compte}")
            if tiers_code is not None and line.tiers_code != tiers_code:
                raise ValidationError(f"Ligne {line.id} hors tiers {tiers_code}")
            if line.lettre is not None:
                raise ConflictError(f"Ligne {line.id} déjà lettrée ({line.lettre})")

        ecart = round(sum(li.montant for li in lines), 2)
        if abs(ecart) >= self._tolerance:
            raise ValidationError(f"Les lignes ne s'équilibrent pas : écart={ecart}", ecart=ecart)

        lettre = self._store.allocate_letter_atomic(compte, next_lettre)
        self._store.set_lettre_atomic(ids, lettre, datetime.date.today())
        montant = round(sum(li.debit for li in lines), 2)
        self._store.add_lettrage_history(
            lettre=lettre, action=ACTION_LETTRAGE, line_ids=ids, compte=compte, montant=montant, created_by=user
        )
        logger.info("Lettrage %s sur %s : %d lignes, %.2f", lettre, compte, len(ids), montant)
        return lettre

    def delettrer(self, lettre: str, compte: str, user: str | None = None) -> list[int]:
        """Retire la lettre de tout le groupe ; le code n'est pas recyclé."""
        cleared = self._store.clear_lettre(compte, lettre)
        if not cleared:
            raise NotFoundError(f"Aucun groupe {lettre} sur le compte {compte}")
        ids = [li.id for li in cleared]
        self._store.add_lettrage_history(
            lettre=lettre,
            action=ACTION_DELETTRAGE,
            line_ids=ids,
            compte=compte,
            montant=round(sum(li.debit for li in cleared), 2),
            created_by=user,
        )
        logger.info("Délettrage %s sur %s : %d lignes", lettre, compte, len(ids))
        return ids

    def appliquer_automatique(
        self, compte: str, tiers_code: str | None = None, user: str | None = None
    ) -> list[str]:
        """Applique les propositions automatiques (100 et 90) sans chevauchement de lignes."""
        lettres: list[str] = []
        used: set[int] = set()
        for prop in self.proposer(compte, tiers_code):
            if not prop.auto_applicable or used.intersection(prop.line_ids):
                continue
            try:
                lettres.append(self.lettrer(prop.line_ids, compte, tiers_code, user))
            except ConflictError as exc:
                logger.warning("Proposition ignorée sur %s : %s", compte, exc)
                continue
            used.update(prop.line_ids)
        return lettres

    def groupes(self, compte: str | None = None) -> list[LettrageGroup]:
        lines = self._store.find_lines(account=compte, lettered=True)
        by_key: dict[tuple[str, str], list[JournalLine]] = defaultdict(list)
        for line in lines:
            by_key[(line.account_numero, line.lettre or "")].append(line)

        groups = []
        for (account, lettre), group in sorted(by_key.items(), key=lambda kv: (kv[0][0], len(kv[0][1]), kv[0][1])):
            total_debit = round(sum(li.debit for li in group), 2)
            total_credit = round(sum(li.credit for li in group), 2)
            groups.append(
                LettrageGroup(
                    lettre=lettre,
                    compte=account,
                    tiers_code=group[0].tiers_code,
                    lines=group,
                    total_debit=total_debit,
                    total_credit=total_credit,
                    ecart=round(total_debit - total_credit, 2),
                    date_lettrage=group[0].date_lettrage,
                )
            )
        return groups

    def historique(self, compte: str | None = None, limit: int = 50) -> list[LettrageHistory]:
        return self._store.list_lettrage_history(compte, limit)

    def statistiques(self, compte: str) -> dict[str, float | int]:
        lines = self._store.find_lines(account_prefixes=[compte])
        lettrees = [li for li in lines if li.lettre]
        non_lettrees = [li for li in lines if not li.lettre]
        montant_lettre = round(sum(abs(li.montant) for li in lettrees), 2)
        montant_non_lettre = round(sum(abs(li.montant) for li in non_lettrees), 2)
        total = montant_lettre + montant_non_lettre
        return {
            "nb_lignes_total": len(lines),
            "nb_lignes_lettrees": len(lettrees),
            "nb_lignes_non_lettrees": len(non_lettrees),
            "montant_lettre": montant_lettre,
            "montant_non_lettre": montant_non_lettre,
            "taux_lettrage": round(montant_lettre / total * 100, 1) if total > 0 else 0.0,
        }
