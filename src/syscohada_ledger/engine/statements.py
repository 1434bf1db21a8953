"""États financiers SYSCOHADA : bilan, compte de résultat, indicateurs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.engine.aggregator import LedgerAggregator
from syscohada_ledger.engine.classifier import ChartClassifier
from syscohada_ledger.models import (
    AccountBalance,
    Bucket,
    ClassificationError,
    IntegrityError,
    Period,
)
from syscohada_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.01
LIBELLE_RESULTAT = "Résultat net de l'exercice"


@dataclass(frozen=True)
class LigneEtat:
    compte: str
    libelle: str
    montant: float


@dataclass(frozen=True)
class SectionBilan:
    lignes: list[LigneEtat]
    total: float


@dataclass(frozen=True)
class Bilan:
    """Bilan d'une période. Montants signés : un compte à solde inhabituel réduit sa rubrique."""

    period: Period
    actif_immobilise: SectionBilan
    actif_circulant: SectionBilan
    tresorerie_actif: SectionBilan
    total_actif: float
    capitaux_propres: SectionBilan
    dettes: SectionBilan
    tresorerie_passif: SectionBilan
    total_passif: float

    @property
    def ecart(self) -> float:
        return round(self.total_actif - self.total_passif, 2)


@dataclass(frozen=True)
class CompteResultat:
    period: Period
    charges: list[LigneEtat]
    produits: list[LigneEtat]
    total_charges: float
    total_produits: float
    resultat_net: float


@dataclass(frozen=True)
class Indicateurs:
    """Ratios financiers (pourcentages à 1 décimale, liquidité à 2, montants et délais entiers)."""

    marge_brute: float
    marge_nette: float
    roe: float
    ratio_liquidite: float
    bfr: int
    tresorerie_nette: int
    taux_endettement: float
    autonomie_financiere: float
    delai_client: int
    delai_fournisseur: int
    rotation_stocks: int


def _section(lignes: list[LigneEtat]) -> SectionBilan:
    return SectionBilan(lignes=lignes, total=round(sum(li.montant for li in lignes), 2))


def _sum_prefix(lignes: list[LigneEtat], prefix: str) -> float:
    return sum(li.montant for li in lignes if li.compte.startswith(prefix))


def compute_indicateurs(bilan: Bilan, compte_resultat: CompteResultat) -> Indicateurs:
    """Indicateurs financiers, fonction pure des deux états.

    Ventes = comptes 70, achats = comptes 60 ; les délais sont ramenés à 365 jours.
    Un dénominateur nul ou négatif donne 0.
    """
    ventes = _sum_prefix(compte_resultat.produits, "70")
    achats = _sum_prefix(compte_resultat.charges, "60")
    capitaux = bilan.capitaux_propres.total
    dettes = bilan.dettes.total

    marge_brute = (ventes - achats) / ventes * 100 if ventes > 0 else 0.0
    marge_nette = (
        compte_resultat.resultat_net / compte_resultat.total_produits * 100
        if compte_resultat.total_produits > 0
        else 0.0
    )
    roe = compte_resultat.resultat_net / capitaux * 100 if capitaux > 0 else 0.0
    ratio_liquidite = bilan.actif_circulant.total / dettes if dettes > 0 else 0.0
    bfr = bilan.actif_circulant.total - dettes
    tresorerie_nette = bilan.tresorerie_actif.total - bilan.tresorerie_passif.total
    taux_endettement = dettes / capitaux * 100 if capitaux > 0 else 0.0
    autonomie = capitaux / bilan.total_passif * 100 if bilan.total_passif > 0 else 0.0

    creances_clients = _sum_prefix(bilan.actif_circulant.lignes, "41")
    dettes_fournisseurs = _sum_prefix(bilan.dettes.lignes, "40")
    stocks = _sum_prefix(bilan.actif_circulant.lignes, "3")

    return Indicateurs(
        marge_brute=round(marge_brute, 1),
        marge_nette=round(marge_nette, 1),
        roe=round(roe, 1),
        ratio_liquidite=round(ratio_liquidite, 2),
        bfr=round(bfr),
        tresorerie_nette=round(tresorerie_nette),
        taux_endettement=round(taux_endettement, 1),
        autonomie_financiere=round(autonomie, 1),
        delai_client=round(creances_clients / ventes * 365) if ventes > 0 else 0,
        delai_fournisseur=round(dettes_fournisseurs / achats * 365) if achats > 0 else 0,
        rotation_stocks=round(stocks / achats * 365) if achats > 0 else 0,
    )


class StatementBuilder:
    """Compose les états financiers à partir des soldes agrégés et du classement."""

    def __init__(
        self,
        store: LedgerStore,
        config: AppConfig,
        classifier: ChartClassifier | None = None,
    ) -> None:
        self._aggregator = LedgerAggregator(store, config)
        self._classifier = classifier or ChartClassifier.from_config(config)
        self._compte_resultat = config.compte_resultat

    def _classified(self, period: Period) -> dict[Bucket, list[AccountBalance]]:
        """Soldes de la période rangés par rubrique ; un compte non classé est une incohérence."""
        buckets: dict[Bucket, list[AccountBalance]] = {bucket: [] for bucket in Bucket}
        for balance in self._aggregator.aggregate(period):
            try:
                bucket = self._classifier.classify(balance.account, balance.solde)
            except ClassificationError as exc:
                logger.error("Compte %s mouvementé mais non classé : %s", balance.account, exc)
                raise IntegrityError(
                    f"Compte {balance.account} mouvementé sans rubrique d'état financier",
                    ecart=balance.solde,
                ) from exc
            buckets[bucket].append(balance)
        return buckets

    @staticmethod
    def _lignes(balances: list[AccountBalance], sign: int) -> list[LigneEtat]:
        return [LigneEtat(b.account, b.libelle, round(sign * b.solde, 2)) for b in balances]

    def _resultat(self, period: Period, buckets: dict[Bucket, list[AccountBalance]]) -> CompteResultat:
        charges = self._lignes(buckets[Bucket.EXPENSE], 1)
        produits = self._lignes(buckets[Bucket.REVENUE], -1)
        total_charges = round(sum(li.montant for li in charges), 2)
        total_produits = round(sum(li.montant for li in produits), 2)
        return CompteResultat(
            period=period,
            charges=charges,
            produits=produits,
            total_charges=total_charges,
            total_produits=total_produits,
            resultat_net=round(total_produits - total_charges, 2),
        )

    def compte_resultat(self, period: Period) -> CompteResultat:
        """Produits (comptes de produits, montant = −solde) et charges (montant = solde)."""
        return self._resultat(period, self._classified(period))

    def bilan(self, period: Period) -> Bilan:
        """Bilan équilibré : le résultat net est injecté dans les capitaux propres.

        Raises:
            IntegrityError: Compte non classé, ou actif ≠ passif au-delà de la tolérance.
        """
        buckets = self._classified(period)
        return self._bilan(period, buckets, self._resultat(period, buckets))

    def _bilan(
        self,
        period: Period,
        buckets: dict[Bucket, list[AccountBalance]],
        resultat: CompteResultat,
    ) -> Bilan:
        actif_immobilise = _section(self._lignes(buckets[Bucket.FIXED_ASSET], 1))
        actif_circulant = _section(self._lignes(buckets[Bucket.CURRENT_ASSET], 1))
        tresorerie_actif = _section(self._lignes(buckets[Bucket.TREASURY_ASSET], 1))

        lignes_capitaux = self._lignes(buckets[Bucket.EQUITY], -1)
        if resultat.resultat_net != 0:
            lignes_capitaux.append(LigneEtat(self._compte_resultat, LIBELLE_RESULTAT, resultat.resultat_net))
        capitaux_propres = _section(lignes_capitaux)
        dettes = _section(self._lignes(buckets[Bucket.LIABILITY], -1))
        tresorerie_passif = _section(self._lignes(buckets[Bucket.TREASURY_LIABILITY], -1))

        total_actif = round(actif_immobilise.total + actif_circulant.total + tresorerie_actif.total, 2)
        total_passif = round(capitaux_propres.total + dettes.total + tresorerie_passif.total, 2)

        bilan = Bilan(
            period=period,
            actif_immobilise=actif_immobilise,
            actif_circulant=actif_circulant,
            tresorerie_actif=tresorerie_actif,
            total_actif=total_actif,
            capitaux_propres=capitaux_propres,
            dettes=dettes,
            tresorerie_passif=tresorerie_passif,
            total_passif=total_passif,
        )

        if abs(bilan.ecart) >= BALANCE_TOLERANCE:
            logger.error(
                "Bilan %s déséquilibré : actif=%.2f, passif=%.2f, écart=%.2f",
                period.label,
                total_actif,
                total_passif,
                bilan.ecart,
            )
            raise IntegrityError(
                f"Bilan déséquilibré : actif={total_actif}, passif={total_passif}, écart={bilan.ecart}",
                ecart=bilan.ecart,
            )

        return bilan

    def indicateurs(self, period: Period) -> Indicateurs:
        buckets = self._classified(period)
        resultat = self._resultat(period, buckets)
        return compute_indicateurs(self._bilan(period, buckets, resultat), resultat)
