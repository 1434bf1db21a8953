"""Tests d'intégration — POST /api/process."""

from __future__ import annotations


def test_process_returns_statements(client, journal_files):
    """Upload écritures + relevé → 200 avec états, anomalies et rapprochement."""
    response = client.post("/api/process", files=journal_files, data={"exercice": "2025"})
    assert response.status_code == 200
    data = response.json()
    assert data["exercice"] == "2025"
    assert data["nb_ecritures"] == 5
    assert data["compte_resultat"]["resultat_net"] == 200000.0
    assert data["bilan"]["total_actif"] == data["bilan"]["total_passif"] == 1200000.0
    assert data["indicateurs"]["marge_brute"] == 40.0


def test_process_anomaly_fields(client, journal_files):
    """Chaque anomalie contient les 6 champs attendus."""
    data = client.post("/api/process", files=journal_files, data={"exercice": "2025"}).json()
    expected_keys = {"type", "severity", "reference", "detail", "expected_value", "actual_value"}
    assert data["anomalies"]
    for anomaly in data["anomalies"]:
        assert set(anomaly.keys()) == expected_keys
    assert {a["type"] for a in data["anomalies"]} == {"balance_error", "ecart_rapprochement"}


def test_process_reconciliation(client, journal_files):
    data = client.post("/api/process", files=journal_files, data={"exercice": "2025"}).json()
    rapprochement = data["rapprochement"]
    assert rapprochement["releves"] == {"total": 4, "rapproches": 3, "non_rapproches": 1}
    assert rapprochement["ecart"] == -5000.0
    assert rapprochement["taux_rapprochement"] == 75


def test_process_without_statement(client, journal_files):
    """Sans relevé, pas de bloc rapprochement."""
    response = client.post("/api/process", files=journal_files[:1], data={"exercice": "2025"})
    assert response.status_code == 200
    assert response.json()["rapprochement"] is None


def test_process_does_not_touch_server_ledger(client, journal_files):
    """Le traitement s'exécute sur un stockage éphémère."""
    client.post("/api/process", files=journal_files, data={"exercice": "2025"})
    assert client.get("/api/ecritures").json() == []


def test_process_invalid_extension(client):
    """Fichier .txt → 422."""
    files = [("journal", ("journal.txt", b"Journal;Date\n", "text/plain"))]
    response = client.post("/api/process", files=files, data={"exercice": "2025"})
    assert response.status_code == 422
    assert "Extension invalide" in response.json()["detail"]


def test_process_missing_columns(client):
    """Colonnes obligatoires absentes → 422."""
    files = [("journal", ("journal.csv", b"Foo;Bar\n1;2\n", "text/csv"))]
    response = client.post("/api/process", files=files, data={"exercice": "2025"})
    assert response.status_code == 422


def test_process_invalid_exercice(client, journal_files):
    response = client.post("/api/process", files=journal_files, data={"exercice": "25"})
    assert response.status_code == 422


def test_process_file_too_large(client, monkeypatch, journal_files):
    """Fichier au-delà de la limite → 413."""
    monkeypatch.setattr("api.app.routes.MAX_FILE_SIZE", 10)
    response = client.post("/api/process", files=journal_files, data={"exercice": "2025"})
    assert response.status_code == 413
