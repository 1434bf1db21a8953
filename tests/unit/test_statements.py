"""Tests unitaires pour le bilan, le compte de résultat et les indicateurs."""

from __future__ import annotations

import datetime

import pytest

from syscohada_ledger.engine.statements import (
    LIBELLE_RESULTAT,
    Bilan,
    CompteResultat,
    LigneEtat,
    SectionBilan,
    StatementBuilder,
    compute_indicateurs,
)
from syscohada_ledger.models import IntegrityError, LineDraft, Period

D = datetime.date


@pytest.fixture
def builder(store, sample_config) -> StatementBuilder:
    return StatementBuilder(store, sample_config)


@pytest.fixture
def exercice(post_entry) -> None:
    """Apport, achat, vente et encaissement partiel sur 2025."""
    post_entry("OD", D(2025, 1, 2), [("5211", 5000.0, 0.0), ("101", 0.0, 5000.0)])
    post_entry("AC", D(2025, 1, 10), [("601", 2000.0, 0.0), ("4011", 0.0, 2000.0)])
    post_entry("VE", D(2025, 1, 15), [("4111", 3540.0, 0.0), ("701", 0.0, 3000.0), ("4431", 0.0, 540.0)])
    post_entry("BQ", D(2025, 1, 20), [("5211", 1540.0, 0.0), ("4111", 0.0, 1540.0)])


@pytest.mark.usefixtures("exercice")
class TestCompteResultat:
    def test_totaux(self, builder: StatementBuilder, exercice_2025: Period) -> None:
        cr = builder.compte_resultat(exercice_2025)
        assert cr.total_produits == 3000.0
        assert cr.total_charges == 2000.0
        assert cr.resultat_net == 1000.0

    def test_montants_positifs(self, builder: StatementBuilder, exercice_2025: Period) -> None:
        cr = builder.compte_resultat(exercice_2025)
        assert [(li.compte, li.montant) for li in cr.produits] == [("701", 3000.0)]
        assert [(li.compte, li.montant) for li in cr.charges] == [("601", 2000.0)]


@pytest.mark.usefixtures("exercice")
class TestBilan:
    def test_equilibre(self, builder: StatementBuilder, exercice_2025: Period) -> None:
        bilan = builder.bilan(exercice_2025)
        assert bilan.total_actif == 8540.0
        assert bilan.total_passif == 8540.0
        assert bilan.ecart == 0.0

    def test_rubriques(self, builder: StatementBuilder, exercice_2025: Period) -> None:
        bilan = builder.bilan(exercice_2025)
        assert bilan.actif_circulant.total == 2000.0
        assert bilan.tresorerie_actif.total == 6540.0
        assert bilan.dettes.total == 2540.0
        assert bilan.tresorerie_passif.total == 0.0

    def test_resultat_dans_capitaux_propres(self, builder: StatementBuilder, exercice_2025: Period) -> None:
        capitaux = builder.bilan(exercice_2025).capitaux_propres
        assert LigneEtat("13", LIBELLE_RESULTAT, 1000.0) in capitaux.lignes
        assert capitaux.total == 6000.0

    def test_decouvert_en_tresorerie_passif(
        self, builder: StatementBuilder, post_entry, exercice_2025: Period
    ) -> None:
        post_entry("BQ", D(2025, 2, 1), [("2441", 9000.0, 0.0), ("5211", 0.0, 9000.0)])
        bilan = builder.bilan(exercice_2025)
        assert bilan.tresorerie_actif.total == 0.0
        assert bilan.tresorerie_passif.total == 2460.0
        assert bilan.actif_immobilise.total == 9000.0
        assert bilan.ecart == 0.0


class TestBilanSansResultat:
    def test_pas_de_ligne_resultat(self, builder: StatementBuilder, post_entry, exercice_2025: Period) -> None:
        post_entry("OD", D(2025, 1, 2), [("5211", 100.0, 0.0), ("101", 0.0, 100.0)])
        bilan = builder.bilan(exercice_2025)
        assert [li.compte for li in bilan.capitaux_propres.lignes] == ["101"]

    def test_periode_vide(self, builder: StatementBuilder) -> None:
        bilan = builder.bilan(Period.exercice("2030"))
        assert bilan.total_actif == bilan.total_passif == 0.0


class TestIntegrity:
    def test_compte_non_classe(self, builder: StatementBuilder, post_entry, exercice_2025: Period) -> None:
        post_entry("OD", D(2025, 1, 2), [("9011", 100.0, 0.0), ("101", 0.0, 100.0)])
        with pytest.raises(IntegrityError, match="9011"):
            builder.bilan(exercice_2025)

    def test_brouillon_desequilibre(self, builder: StatementBuilder, journal, exercice_2025: Period) -> None:
        """Un brouillon déséquilibré compté dans les soldes rend le bilan incohérent."""
        journal.create_entry(
            "OD",
            D(2025, 1, 2),
            "Saisie incomplète",
            [LineDraft("5211", debit=100.0), LineDraft("101", credit=90.0)],
        )
        with pytest.raises(IntegrityError) as exc_info:
            builder.bilan(exercice_2025)
        assert exc_info.value.ecart == 10.0


def _bilan(**totals: float) -> Bilan:
    def section(compte: str, montant: float) -> SectionBilan:
        return SectionBilan([LigneEtat(compte, "", montant)] if montant else [], montant)

    period = Period.exercice("2025")
    return Bilan(
        period=period,
        actif_immobilise=section("2441", totals.get("immobilise", 0.0)),
        actif_circulant=SectionBilan(
            [LigneEtat("311", "", totals.get("stocks", 0.0)), LigneEtat("4111", "", totals.get("clients", 0.0))],
            totals.get("stocks", 0.0) + totals.get("clients", 0.0),
        ),
        tresorerie_actif=section("5211", totals.get("banque", 0.0)),
        total_actif=totals.get("total", 0.0),
        capitaux_propres=section("101", totals.get("capitaux", 0.0)),
        dettes=section("4011", totals.get("fournisseurs", 0.0)),
        tresorerie_passif=section("561", totals.get("decouvert", 0.0)),
        total_passif=totals.get("total", 0.0),
    )


class TestIndicateurs:
    def test_ratios(self) -> None:
        bilan = _bilan(stocks=1000.0, clients=3000.0, banque=2000.0, capitaux=4000.0, fournisseurs=2000.0,
                       total=6000.0)
        cr = CompteResultat(
            period=bilan.period,
            charges=[LigneEtat("601", "", 6000.0)],
            produits=[LigneEtat("701", "", 10000.0)],
            total_charges=6000.0,
            total_produits=10000.0,
            resultat_net=4000.0,
        )
        ind = compute_indicateurs(bilan, cr)
        assert ind.marge_brute == 40.0
        assert ind.marge_nette == 40.0
        assert ind.roe == 100.0
        assert ind.ratio_liquidite == 2.0
        assert ind.bfr == 2000
        assert ind.tresorerie_nette == 2000
        assert ind.taux_endettement == 50.0
        assert ind.autonomie_financiere == 66.7
        assert ind.delai_client == 110
        assert ind.delai_fournisseur == 122
        assert ind.rotation_stocks == 61

    def test_denominateurs_nuls(self) -> None:
        bilan = _bilan()
        cr = CompteResultat(bilan.period, [], [], 0.0, 0.0, 0.0)
        ind = compute_indicateurs(bilan, cr)
        assert ind.marge_brute == 0.0
        assert ind.roe == 0.0
        assert ind.ratio_liquidite == 0.0
        assert ind.delai_client == 0

    @pytest.mark.usefixtures("exercice")
    def test_depuis_le_stockage(self, builder: StatementBuilder, exercice_2025: Period) -> None:
        ind = builder.indicateurs(exercice_2025)
        assert ind.marge_brute == 33.3
        assert ind.tresorerie_nette == 6540
        assert ind.delai_client == 243
