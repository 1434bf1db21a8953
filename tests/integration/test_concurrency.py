"""Test d'intégration : saisies concurrentes sur un même stockage."""

from __future__ import annotations

import datetime
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.engine import BankReconciler, JournalService, LedgerAggregator, StatementBuilder
from syscohada_ledger.models import STATUT_VALIDEE, ConflictError, LineDraft, Period, StatementLineDraft
from syscohada_ledger.store import InMemoryLedgerStore

D = datetime.date


def _vente(service: JournalService, i: int) -> str:
    entry, _ = service.create_entry(
        "VE",
        D(2025, 5, 1 + i % 28),
        f"Vente {i}",
        [LineDraft("4111", debit=100.0 + i), LineDraft("701", credit=100.0 + i)],
        status=STATUT_VALIDEE,
    )
    return entry.numero_piece


class TestConcurrentEntries:
    def test_numeros_uniques_et_bilan_equilibre(self) -> None:
        config = AppConfig()
        store = InMemoryLedgerStore()
        service = JournalService(store, config)

        with ThreadPoolExecutor(max_workers=10) as pool:
            pieces = list(pool.map(lambda i: _vente(service, i), range(100)))

        assert len(set(pieces)) == 100
        assert all(p.startswith("VE-2025-05-") for p in pieces)
        period = Period.exercice("2025")
        assert LedgerAggregator(store, config).balance_generale(period).equilibree
        assert StatementBuilder(store, config).bilan(period).ecart == 0.0

    def test_idempotence_concurrente(self) -> None:
        """Même clé rejouée en série après une salve : une seule écriture par clé."""
        config = AppConfig()
        store = InMemoryLedgerStore()
        service = JournalService(store, config)

        def create(key: int) -> int:
            entry, _ = service.create_entry(
                "OD",
                D(2025, 6, 1),
                "Import",
                [LineDraft("5211", debit=10.0), LineDraft("101", credit=10.0)],
                idempotency_key=f"import/{key}",
            )
            return entry.id

        with ThreadPoolExecutor(max_workers=5) as pool:
            first = list(pool.map(create, range(20)))
        replay = [create(k) for k in range(20)]
        assert replay == first
        assert len(store.list_entries()) == 20

    def test_meme_cle_en_parallele(self) -> None:
        """Deux créations simultanées sous la même clé : une seule écriture, la seconde est refusée."""
        entered = threading.Event()
        release = threading.Event()

        class _SlowStore(InMemoryLedgerStore):
            def insert_entry(self, **kwargs):  # type: ignore[no-untyped-def]
                entered.set()
                release.wait(timeout=5)
                return super().insert_entry(**kwargs)

        store = _SlowStore()
        service = JournalService(store, AppConfig())
        lines = [LineDraft("5211", debit=10.0), LineDraft("101", credit=10.0)]
        results: list[int] = []

        def create() -> None:
            entry, _ = service.create_entry("OD", D(2025, 6, 1), "Import", lines, idempotency_key="import/k1")
            results.append(entry.id)

        worker = threading.Thread(target=create)
        worker.start()
        assert entered.wait(timeout=5)
        with pytest.raises(ConflictError, match="en cours"):
            service.create_entry("OD", D(2025, 6, 1), "Import", lines, idempotency_key="import/k1")
        release.set()
        worker.join(timeout=5)

        assert len(results) == 1
        assert len(store.list_entries()) == 1
        replay, _ = service.create_entry("OD", D(2025, 6, 1), "Import", lines, idempotency_key="import/k1")
        assert replay.id == results[0]


class TestConcurrentMatches:
    def test_un_seul_rapprochement_par_ligne(self) -> None:
        config = AppConfig()
        store = InMemoryLedgerStore()
        service = JournalService(store, config)
        reconciler = BankReconciler(store, config)
        _, lines = service.create_entry(
            "BQ",
            D(2025, 3, 1),
            "Encaissement",
            [LineDraft("5211", debit=500.0), LineDraft("4111", credit=500.0)],
            status=STATUT_VALIDEE,
        )
        banque = next(li for li in lines if li.account_numero == "5211")
        releves = reconciler.importer(
            [StatementLineDraft(D(2025, 3, 1), f"VIR {i}", 500.0) for i in range(6)]
        )

        def attempt(releve_id: int) -> bool:
            try:
                reconciler.rapprocher(releve_id, banque.id, 500.0)
            except ConflictError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(attempt, [r.id for r in releves]))
        assert results.count(True) == 1
        assert len(store.list_matches()) == 1
