"""Fixtures pour les tests d'intégration API."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

FIXTURES = Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def client() -> Iterator[TestClient]:
    """TestClient FastAPI avec configuration de test et stockage vierge."""
    os.environ["CONFIG_DIR"] = str(FIXTURES / "config")

    from api.app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def create_entry(client: TestClient) -> Callable[..., dict]:
    """POST /api/ecritures à partir de tuples (compte, débit, crédit) ; retourne le JSON créé."""

    def _create(
        journal_code: str,
        date_piece: str,
        lignes: list[tuple[str, float, float]],
        libelle: str = "Écriture test",
        statut: str = "validee",
        tiers_code: str | None = None,
    ) -> dict:
        payload = {
            "journal_code": journal_code,
            "date_piece": date_piece,
            "libelle": libelle,
            "statut": statut,
            "tiers_code": tiers_code,
            "lignes": [
                {"compte": c, "debit": d, "credit": cr, "libelle": libelle, "tiers_code": tiers_code}
                for c, d, cr in lignes
            ],
        }
        response = client.post("/api/ecritures", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def journal_files() -> list[tuple[str, tuple[str, bytes, str]]]:
    """Fichier d'écritures et relevé pour upload multipart."""
    return [
        ("journal", ("journal.csv", (FIXTURES / "journal.csv").read_bytes(), "text/csv")),
        ("releve", ("releve.csv", (FIXTURES / "releve.csv").read_bytes(), "text/csv")),
    ]
