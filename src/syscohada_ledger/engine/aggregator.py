"""Agrégation des lignes d'écritures : soldes, balance générale, grand livre."""

from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.engine.classifier import libelle_compte
from syscohada_ledger.models import AccountBalance, JournalLine, Period
from syscohada_ledger.store.base import LedgerStore

TOLERANCE = 0.01


def sens_solde(solde: float) -> str:
    """Sens d'un solde débit − crédit."""
    if solde >= TOLERANCE:
        return "debiteur"
    if solde <= -TOLERANCE:
        return "crediteur"
    return "nul"


@dataclass(frozen=True)
class BalanceLine:
    """Ligne de balance générale : mouvements et solde éclaté débit/crédit."""

    account: str
    libelle: str
    mouvement_debit: float
    mouvement_credit: float
    solde_debit: float
    solde_credit: float


@dataclass(frozen=True)
class BalanceGenerale:
    period: Period
    lignes: list[BalanceLine]
    total_mouvement_debit: float
    total_mouvement_credit: float
    total_solde_debit: float
    total_solde_credit: float

    @property
    def equilibree(self) -> bool:
        return abs(round(self.total_mouvement_debit - self.total_mouvement_credit, 2)) < TOLERANCE


@dataclass(frozen=True)
class Mouvement:
    """Mouvement du grand livre avec solde cumulé."""

    line: JournalLine
    solde_cumule: float


@dataclass(frozen=True)
class GrandLivre:
    account: str
    libelle: str
    mouvements: list[Mouvement]
    total_debit: float
    total_credit: float
    solde: float


class LedgerAggregator:
    """Calcule les soldes par compte à partir du stockage injecté.

    Une indisponibilité du stockage remonte telle quelle (``UnavailableError``),
    jamais un résultat vide.
    """

    def __init__(self, store: LedgerStore, config: AppConfig | None = None) -> None:
        self._store = store
        self._libelles = config.libelles if config is not None else {}

    def aggregate(self, period: Period, account_prefixes: list[str] | None = None) -> list[AccountBalance]:
        """Un AccountBalance par compte mouvementé sur la période, trié par numéro.

        Un compte mouvementé dont le solde net est nul est conservé.
        """
        lines = self._store.find_lines(period=period, account_prefixes=account_prefixes or None)
        return self._balances(lines)

    def _balances(self, lines: list[JournalLine]) -> list[AccountBalance]:
        debits: dict[str, float] = defaultdict(float)
        credits: dict[str, float] = defaultdict(float)
        seen: set[int] = set()
        for line in lines:
            if line.id in seen:
                continue
            seen.add(line.id)
            debits[line.account_numero] += line.debit
            credits[line.account_numero] += line.credit

        balances = []
        for account in sorted(debits):
            total_debit = round(debits[account], 2)
            total_credit = round(credits[account], 2)
            solde = round(total_debit - total_credit, 2)
            balances.append(
                AccountBalance(
                    account=account,
                    libelle=libelle_compte(account, self._libelles),
                    total_debit=total_debit,
                    total_credit=total_credit,
                    solde=solde,
                    sens=sens_solde(solde),
                )
            )
        return balances

    def balance_generale(self, period: Period, account_prefixes: list[str] | None = None) -> BalanceGenerale:
        """Balance générale : mouvements de la période et soldes débiteurs/créditeurs."""
        lignes = []
        for balance in self.aggregate(period, account_prefixes):
            lignes.append(
                BalanceLine(
                    account=balance.account,
                    libelle=balance.libelle,
                    mouvement_debit=balance.total_debit,
                    mouvement_credit=balance.total_credit,
                    solde_debit=balance.solde if balance.solde > 0 else 0.0,
                    solde_credit=-balance.solde if balance.solde < 0 else 0.0,
                )
            )
        return BalanceGenerale(
            period=period,
            lignes=lignes,
            total_mouvement_debit=round(sum(li.mouvement_debit for li in lignes), 2),
            total_mouvement_credit=round(sum(li.mouvement_credit for li in lignes), 2),
            total_solde_debit=round(sum(li.solde_debit for li in lignes), 2),
            total_solde_credit=round(sum(li.solde_credit for li in lignes), 2),
        )

    def grand_livre(self, account: str, period: Period, include_lettered: bool = True) -> GrandLivre:
        """Mouvements d'un compte (préfixe accepté) par date, avec solde cumulé."""
        lines = self._store.find_lines(
            period=period,
            account_prefixes=[account],
            lettered=None if include_lettered else False,
        )
        lines = sorted(lines, key=lambda li: (li.date_piece, li.id))

        mouvements = []
        cumul = 0.0
        for line in lines:
            cumul = round(cumul + line.debit - line.credit, 2)
            mouvements.append(Mouvement(line=line, solde_cumule=cumul))

        total_debit = round(sum(li.debit for li in lines), 2)
        total_credit = round(sum(li.credit for li in lines), 2)
        return GrandLivre(
            account=account,
            libelle=libelle_compte(account, self._libelles),
            mouvements=mouvements,
            total_debit=total_debit,
            total_credit=total_credit,
            solde=round(total_debit - total_credit, 2),
        )

    def solde_at(self, account: str, date: datetime.date) -> AccountBalance:
        """Solde cumulé d'un compte (préfixe accepté) jusqu'à une date incluse."""
        lines = self._store.find_lines(account_prefixes=[account], until=date)
        total_debit = round(sum(li.debit for li in lines), 2)
        total_credit = round(sum(li.credit for li in lines), 2)
        solde = round(total_debit - total_credit, 2)
        return AccountBalance(
            account=account,
            libelle=libelle_compte(account, self._libelles),
            total_debit=total_debit,
            total_credit=total_credit,
            solde=solde,
            sens=sens_solde(solde),
        )
