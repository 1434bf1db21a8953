"""Tests unitaires pour PipelineOrchestrator."""

from __future__ import annotations

from pathlib import Path

import pytest

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import NoResultError, ParseError, Period
from syscohada_ledger.pipeline import LedgerReport, PipelineOrchestrator
from syscohada_ledger.store import InMemoryLedgerStore


@pytest.fixture
def journal_bytes(fixtures_dir: Path) -> bytes:
    return (fixtures_dir / "journal.csv").read_bytes()


class TestProcess:
    def test_rapport(self, fixtures_dir: Path, sample_config: AppConfig, exercice_2025: Period) -> None:
        report = PipelineOrchestrator().process(fixtures_dir / "journal.csv", sample_config, exercice_2025)
        assert isinstance(report, LedgerReport)
        assert report.nb_entries == 5
        assert report.reconciliation is None
        assert report.compte_resultat.resultat_net == 200000.0
        assert report.bilan.total_actif == report.bilan.total_passif == 1200000.0
        assert report.balance.equilibree

    def test_ecriture_desequilibree_en_anomalie(
        self, fixtures_dir: Path, sample_config: AppConfig, exercice_2025: Period
    ) -> None:
        report = PipelineOrchestrator().process(fixtures_dir / "journal.csv", sample_config, exercice_2025)
        [anomaly] = [a for a in report.anomalies if a.type == "balance_error"]
        assert anomaly.reference == "AC/FA-002"
        assert anomaly.actual_value == "10000.00"

    def test_lettrage_automatique_des_tiers(
        self, fixtures_dir: Path, sample_config: AppConfig, exercice_2025: Period
    ) -> None:
        store = InMemoryLedgerStore()
        PipelineOrchestrator(store).process(fixtures_dir / "journal.csv", sample_config, exercice_2025)
        tiers = store.find_lines(account_prefixes=["40", "41"])
        assert len(tiers) == 4
        assert all(li.lettre == "A" for li in tiers)

    def test_ecritures_validees_et_numerotees(
        self, fixtures_dir: Path, sample_config: AppConfig, exercice_2025: Period
    ) -> None:
        store = InMemoryLedgerStore()
        PipelineOrchestrator(store).process(fixtures_dir / "journal.csv", sample_config, exercice_2025)
        entries = store.list_entries()
        assert {e.status for e in entries} == {"validee"}
        assert [e.numero_piece for e in entries if e.journal_code == "BQ"] == [
            "BQ-2025-01-00001",
            "BQ-2025-01-00002",
        ]

    def test_aucune_ecriture(self, sample_config: AppConfig, exercice_2025: Period) -> None:
        with pytest.raises(NoResultError):
            PipelineOrchestrator().run_from_buffers(
                "Journal;Date;Pièce;Compte;Libellé;Débit;Crédit\n".encode(), sample_config, exercice_2025
            )

    def test_colonnes_manquantes(self, sample_config: AppConfig, exercice_2025: Period) -> None:
        with pytest.raises(ParseError):
            PipelineOrchestrator().run_from_buffers(b"Date;Montant\n2025-01-01;10\n", sample_config, exercice_2025)


class TestRunFromBuffers:
    def test_avec_releve(self, journal_bytes: bytes, fixtures_dir: Path, sample_config: AppConfig,
                         exercice_2025: Period) -> None:
        report = PipelineOrchestrator().run_from_buffers(
            journal_bytes, sample_config, exercice_2025, (fixtures_dir / "releve.csv").read_bytes()
        )
        stats = report.reconciliation
        assert stats is not None
        assert stats.releves_total == 4
        assert stats.releves_rapproches == 3
        assert stats.ecart == -5000.0
        assert "ecart_rapprochement" in [a.type for a in report.anomalies]

    def test_identique_au_fichier(self, journal_bytes: bytes, fixtures_dir: Path, sample_config: AppConfig,
                                  exercice_2025: Period) -> None:
        from_file = PipelineOrchestrator().process(fixtures_dir / "journal.csv", sample_config, exercice_2025)
        from_buffer = PipelineOrchestrator().run_from_buffers(journal_bytes, sample_config, exercice_2025)
        assert from_buffer.bilan == from_file.bilan
        assert from_buffer.indicateurs == from_file.indicateurs


class TestRun:
    def test_export_et_resume(self, tmp_path: Path, fixtures_dir: Path, sample_config: AppConfig,
                              exercice_2025: Period, capsys: pytest.CaptureFixture[str]) -> None:
        output = tmp_path / "etats.xlsx"
        PipelineOrchestrator().run(fixtures_dir / "journal.csv", output, sample_config, exercice_2025)
        assert output.exists()
        out = capsys.readouterr().out
        assert "Écritures enregistrées : 5" in out
        assert "balance_error" in out
