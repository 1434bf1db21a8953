"""Tests d'intégration — rapprochement bancaire."""

from __future__ import annotations

from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent.parent / "fixtures"

RELEVE = {
    "lignes": [
        {"date_operation": "2025-01-03", "libelle": "Versement", "montant": 1000, "solde_progressif": 1000},
        {"date_operation": "2025-01-21", "libelle": "Prélèvement", "montant": -200, "solde_progressif": 800},
        {"date_operation": "2025-01-31", "libelle": "Agios", "montant": -15, "solde_progressif": 785},
    ],
    "fichier_origine": "janvier.csv",
}


@pytest.fixture
def banque(create_entry) -> None:
    """Apport et achat réglé par banque, agios non comptabilisés."""
    create_entry("OD", "2025-01-02", [("5211", 1000.0, 0.0), ("101", 0.0, 1000.0)])
    create_entry("BQ", "2025-01-20", [("601", 200.0, 0.0), ("5211", 0.0, 200.0)])


def test_import_statement(client):
    response = client.post("/api/rapprochement/releves", json=RELEVE)
    assert response.status_code == 201
    data = response.json()
    assert data["importees"] == 3
    assert {li["compte_banque"] for li in data["lignes"]} == {"5211"}
    assert data["lignes"][0]["fichier_origine"] == "janvier.csv"


def test_import_statement_outside_treasury(client):
    response = client.post("/api/rapprochement/releves", json={**RELEVE, "compte_banque": "401"})
    assert response.status_code == 422


def test_import_statement_csv(client):
    """Upload du relevé CSV : lignes signées, solde progressif conservé."""
    files = {"file": ("releve.csv", (FIXTURES / "releve.csv").read_bytes(), "text/csv")}
    response = client.post("/api/rapprochement/releves/csv", files=files, data={"compte_banque": "5211"})
    assert response.status_code == 201
    data = response.json()
    assert data["importees"] == 4
    assert data["anomalies"] == []
    assert [li["montant"] for li in data["lignes"]] == [1000000.0, 500000.0, -300000.0, -5000.0]
    assert data["lignes"][-1]["solde_progressif"] == 1195000.0


def test_import_statement_csv_invalid_extension(client):
    files = {"file": ("releve.xls", b"Date;Montant\n", "application/vnd.ms-excel")}
    assert client.post("/api/rapprochement/releves/csv", files=files).status_code == 422


@pytest.mark.usefixtures("banque")
def test_auto_match_and_statistics(client):
    client.post("/api/rapprochement/releves", json=RELEVE)

    response = client.post("/api/rapprochement/auto", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["rapproches"] == 2
    assert {m["methode"] for m in data["rapprochements"]} == {"auto"}
    assert all(30 <= m["confiance"] <= 100 for m in data["rapprochements"])

    # Relancé sans nouvelle donnée : aucun nouveau rapprochement
    assert client.post("/api/rapprochement/auto").json()["rapproches"] == 0

    [restant] = client.get("/api/rapprochement/releves").json()
    assert restant["libelle"] == "Agios"
    assert client.get("/api/rapprochement/ecritures").json() == []

    stats = client.get("/api/rapprochement/statistiques").json()
    assert stats["releves"] == {"total": 3, "rapproches": 2, "non_rapproches": 1}
    assert stats["solde_releve"] == 785.0
    assert stats["solde_comptable"] == 800.0
    assert stats["ecart"] == -15.0
    assert stats["taux_rapprochement"] == 67
    assert [a["type"] for a in stats["anomalies"]] == ["ecart_rapprochement"]


@pytest.mark.usefixtures("banque")
def test_auto_match_date_window(client):
    """Fenêtre de zéro jour : aucune ligne ne tombe le même jour."""
    client.post("/api/rapprochement/releves", json=RELEVE)
    assert client.post("/api/rapprochement/auto", json={"tolerance_jours": 0}).json()["rapproches"] == 0
    assert client.post("/api/rapprochement/auto", json={"tolerance_jours": -1}).status_code == 422


@pytest.mark.usefixtures("banque")
def test_manual_match(client, create_entry):
    """Agios comptabilisés puis rapprochés à la main ; annulation."""
    releve = client.post("/api/rapprochement/releves", json=RELEVE).json()
    agios_releve = releve["lignes"][2]["id"]
    agios = create_entry("BQ", "2025-01-31", [("631", 15.0, 0.0), ("5211", 0.0, 15.0)])
    agios_ligne = next(li["id"] for li in agios["lignes"] if li["compte"] == "5211")

    payload = {"statement_line_id": agios_releve, "journal_line_id": agios_ligne, "montant": -14}
    assert client.post("/api/rapprochement", json=payload).status_code == 422

    payload["montant"] = -15
    response = client.post("/api/rapprochement", json=payload)
    assert response.status_code == 201
    match = response.json()
    assert match["methode"] == "manual"
    assert match["confiance"] is None

    assert client.post("/api/rapprochement", json=payload).status_code == 409

    assert client.delete(f"/api/rapprochement/{match['id']}").status_code == 200
    assert client.delete(f"/api/rapprochement/{match['id']}").status_code == 404


@pytest.mark.usefixtures("banque")
def test_manual_match_outside_treasury(client):
    releve = client.post("/api/rapprochement/releves", json=RELEVE).json()
    achat = client.get("/api/ecritures/2").json()
    charge = next(li["id"] for li in achat["lignes"] if li["compte"] == "601")
    payload = {"statement_line_id": releve["lignes"][1]["id"], "journal_line_id": charge, "montant": -200}
    assert client.post("/api/rapprochement", json=payload).status_code == 422


class TestSessions:
    """Sessions de rapprochement exposées par l'API."""

    @pytest.mark.usefixtures("banque")
    def test_ouvrir_et_lister(self, client):
        payload = {
            "date_debut": "2025-01-01",
            "date_fin": "2025-01-31",
            "solde_releve_debut": 0,
            "solde_releve_fin": 785,
        }
        response = client.post("/api/rapprochement/sessions", json=payload)
        assert response.status_code == 201
        session = response.json()
        assert session["compte_banque"] == "5211"
        assert session["solde_comptable"] == 800.0
        assert session["ecart"] == -15.0

        [listed] = client.get("/api/rapprochement/sessions").json()
        assert listed["id"] == session["id"]
        assert client.get("/api/rapprochement/sessions", params={"compte_banque": "5212"}).json() == []

    def test_periode_invalide(self, client):
        payload = {"date_debut": "2025-02-01", "date_fin": "2025-01-01"}
        assert client.post("/api/rapprochement/sessions", json=payload).status_code == 422

    def test_compte_hors_tresorerie(self, client):
        payload = {"date_debut": "2025-01-01", "date_fin": "2025-01-31", "compte_banque": "401"}
        assert client.post("/api/rapprochement/sessions", json=payload).status_code == 422
