"""Tests d'intégration — écritures et numérotation."""

from __future__ import annotations

VENTE = [("4111", 1180.0, 0.0), ("701", 0.0, 1000.0), ("4431", 0.0, 180.0)]


def test_create_entry(client, create_entry):
    """Création : numéro de pièce attribué par le serveur, lignes renvoyées."""
    body = create_entry("VE", "2025-03-14", VENTE, statut="brouillon")
    assert body["numero_piece"] == "VE-2025-03-00001"
    assert body["statut"] == "brouillon"
    assert body["numero_sequentiel"] is True
    assert [li["compte"] for li in body["lignes"]] == ["4111", "701", "4431"]


def test_create_unbalanced_validated_entry(client):
    """Écriture validée déséquilibrée → 422 avec l'écart."""
    payload = {
        "journal_code": "VE",
        "date_piece": "2025-03-14",
        "libelle": "Vente",
        "statut": "validee",
        "lignes": [{"compte": "4111", "debit": 100}, {"compte": "701", "credit": 90}],
    }
    response = client.post("/api/ecritures", json=payload)
    assert response.status_code == 422
    assert response.json()["detail"]["ecart"] == 10.0


def test_create_entry_schema_validation(client):
    """Compte non numérique, journal en minuscules, lignes vides → 422."""
    base = {"journal_code": "VE", "date_piece": "2025-03-14", "libelle": "Vente"}
    for payload in (
        {**base, "lignes": [{"compte": "41A", "debit": 1}]},
        {**base, "journal_code": "ve", "lignes": [{"compte": "411", "debit": 1}]},
        {**base, "lignes": []},
        {**base, "lignes": [{"compte": "411", "debit": -1}]},
    ):
        assert client.post("/api/ecritures", json=payload).status_code == 422


def test_unknown_journal(client):
    payload = {
        "journal_code": "ZZ",
        "date_piece": "2025-03-14",
        "libelle": "Vente",
        "lignes": [{"compte": "4111", "debit": 100}, {"compte": "701", "credit": 100}],
    }
    response = client.post("/api/ecritures", json=payload)
    assert response.status_code == 422
    assert "Journal inconnu" in response.json()["detail"]


def test_idempotency_key(client):
    """Même Idempotency-Key → même écriture."""
    payload = {
        "journal_code": "OD",
        "date_piece": "2025-03-14",
        "libelle": "Import",
        "lignes": [{"compte": "5211", "debit": 10}, {"compte": "101", "credit": 10}],
    }
    first = client.post("/api/ecritures", json=payload, headers={"Idempotency-Key": "imp-1"})
    second = client.post("/api/ecritures", json=payload, headers={"Idempotency-Key": "imp-1"})
    assert first.json()["id"] == second.json()["id"]
    assert len(client.get("/api/ecritures").json()) == 1


def test_get_and_list(client, create_entry):
    created = create_entry("VE", "2025-03-14", VENTE)
    create_entry("AC", "2025-04-02", [("601", 50.0, 0.0), ("4011", 0.0, 50.0)], statut="brouillon")

    response = client.get(f"/api/ecritures/{created['id']}")
    assert response.status_code == 200
    assert len(response.json()["lignes"]) == 3

    assert len(client.get("/api/ecritures").json()) == 2
    assert [e["journal_code"] for e in client.get("/api/ecritures", params={"journal": "AC"}).json()] == ["AC"]
    assert len(client.get("/api/ecritures", params={"statut": "brouillon"}).json()) == 1
    mars = client.get("/api/ecritures", params={"date_debut": "2025-03-01", "date_fin": "2025-03-31"}).json()
    assert [e["id"] for e in mars] == [created["id"]]


def test_entry_not_found(client):
    assert client.get("/api/ecritures/999").status_code == 404


def test_lifecycle(client, create_entry):
    """brouillon → validee → cloturee ; retour arrière → 409."""
    entry = create_entry("VE", "2025-03-14", VENTE, statut="brouillon")
    assert client.post(f"/api/ecritures/{entry['id']}/valider").json()["statut"] == "validee"
    assert client.post(f"/api/ecritures/{entry['id']}/valider").status_code == 409
    assert client.post(f"/api/ecritures/{entry['id']}/cloturer").json()["statut"] == "cloturee"


def test_delete_draft_only(client, create_entry):
    draft = create_entry("VE", "2025-03-14", VENTE, statut="brouillon")
    validated = create_entry("VE", "2025-03-15", VENTE)
    assert client.delete(f"/api/ecritures/{draft['id']}").status_code == 204
    assert client.get(f"/api/ecritures/{draft['id']}").status_code == 404
    assert client.delete(f"/api/ecritures/{validated['id']}").status_code == 409


def test_reverse_entry(client, create_entry):
    entry = create_entry("VE", "2025-03-14", VENTE)
    response = client.post(f"/api/ecritures/{entry['id']}/contre-passer", json={"date_piece": "2025-03-31"})
    assert response.status_code == 201
    body = response.json()
    assert body["libelle"] == f"Contre-passation {entry['numero_piece']}"
    assert body["date_piece"] == "2025-03-31"
    assert {li["compte"]: li["credit"] for li in body["lignes"]}["4111"] == 1180.0


def test_next_piece_number_and_sequences(client, create_entry):
    create_entry("VE", "2025-03-14", VENTE)
    response = client.post("/api/journaux/VE/numero", params={"date": "2025-03-20"})
    assert response.json() == {"numero_piece": "VE-2025-03-00002", "sequentiel": True}
    assert client.get("/api/journaux/sequences").json() == [
        {"journal_code": "VE", "periode": "2025-03", "dernier_numero": 2}
    ]


def test_piece_number_degraded(client):
    """Stockage indisponible : numéro de secours non séquentiel."""
    client.app.state.store.available = False
    response = client.post("/api/journaux/VE/numero", params={"date": "2025-03-20"})
    assert response.status_code == 200
    body = response.json()
    assert body["sequentiel"] is False
    assert body["numero_piece"].startswith("VE-2025-03-")


def test_storage_unavailable(client):
    """Stockage indisponible : 503 sur les lectures, health le signale."""
    client.app.state.store.available = False
    assert client.get("/api/ecritures").status_code == 503
    assert client.get("/api/soldes", params={"exercice": "2025"}).status_code == 503
    assert client.get("/api/health").json() == {"status": "ok", "stockage": "indisponible"}


class TestComptesEtJournal:
    """Plan comptable référencé et journal déduit du type d'opération."""

    def test_compte_non_utilisable_refuse(self, client):
        response = client.put("/api/comptes/701", json={"libelle": "Ventes", "usable": False})
        assert response.status_code == 200
        assert response.json() == {"numero": "701", "libelle": "Ventes", "classe": "7", "utilisable": False}
        assert client.get("/api/comptes/701").json()["utilisable"] is False

        payload = {
            "journal_code": "VE",
            "date_piece": "2025-03-14",
            "libelle": "Vente",
            "lignes": [{"compte": "4111", "debit": 100}, {"compte": "701", "credit": 100}],
        }
        response = client.post("/api/ecritures", json=payload)
        assert response.status_code == 422
        assert "non utilisable" in response.json()["detail"]

    def test_compte_inconnu(self, client):
        assert client.get("/api/comptes/999").status_code == 404

    def test_journal_deduit_du_type_operation(self, client):
        """Sans code journal, une vente part au journal VE, un type inconnu en OD."""
        payload = {
            "type_operation": "vente",
            "date_piece": "2025-03-14",
            "libelle": "Vente",
            "lignes": [{"compte": "4111", "debit": 100}, {"compte": "701", "credit": 100}],
        }
        assert client.post("/api/ecritures", json=payload).json()["journal_code"] == "VE"
        payload["type_operation"] = "inconnu"
        assert client.post("/api/ecritures", json=payload).json()["journal_code"] == "OD"

    def test_brouillon_rapproche_non_supprimable(self, client, create_entry):
        """Un brouillon rapproché d'un relevé renvoie 409 tant que le rapprochement existe."""
        draft = create_entry("BQ", "2025-03-14", [("5211", 500.0, 0.0), ("4111", 0.0, 500.0)], statut="brouillon")
        banque = next(li["id"] for li in draft["lignes"] if li["compte"] == "5211")
        releve = client.post(
            "/api/rapprochement/releves",
            json={"lignes": [{"date_operation": "2025-03-14", "libelle": "VIR", "montant": 500}]},
        ).json()
        match = client.post(
            "/api/rapprochement",
            json={"statement_line_id": releve["lignes"][0]["id"], "journal_line_id": banque, "montant": 500},
        ).json()

        assert client.delete(f"/api/ecritures/{draft['id']}").status_code == 409
        assert client.delete(f"/api/rapprochement/{match['id']}").status_code == 200
        assert client.delete(f"/api/ecritures/{draft['id']}").status_code == 204
