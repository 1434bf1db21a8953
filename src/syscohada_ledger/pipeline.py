"""Orchestrateur du pipeline fichier d'écritures → états financiers → Excel."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.controls.journal_checker import JournalChecker
from syscohada_ledger.controls.lettrage_checker import LettrageChecker
from syscohada_ledger.engine import (
    BankReconciler,
    JournalService,
    LedgerAggregator,
    LettrageMatcher,
    StatementBuilder,
)
from syscohada_ledger.engine.aggregator import BalanceGenerale
from syscohada_ledger.engine.statements import Bilan, CompteResultat, Indicateurs
from syscohada_ledger.exporters.excel import export, print_summary
from syscohada_ledger.models import (
    STATUT_VALIDEE,
    Anomaly,
    JournalParseResult,
    NoResultError,
    Period,
    ReconciliationStats,
    ValidationError,
)
from syscohada_ledger.parsers import BankStatementParser, JournalParser
from syscohada_ledger.store import InMemoryLedgerStore, LedgerStore

logger = logging.getLogger(__name__)

COMPTES_LETTRABLES = ("40", "41")


@dataclass
class LedgerReport:
    """Résultat d'un traitement complet."""

    period: Period
    nb_entries: int
    balance: BalanceGenerale
    bilan: Bilan
    compte_resultat: CompteResultat
    indicateurs: Indicateurs
    anomalies: list[Anomaly] = field(default_factory=list)
    reconciliation: ReconciliationStats | None = None


class PipelineOrchestrator:
    """Orchestre le pipeline CSV → écritures → lettrage/rapprochement → états → Excel."""

    def __init__(self, store: LedgerStore | None = None) -> None:
        self.store = store or InMemoryLedgerStore()

    def run(
        self,
        journal_path: Path,
        output_path: Path,
        config: AppConfig,
        period: Period,
        releve_path: Path | None = None,
    ) -> LedgerReport:
        """Exécute le pipeline complet et écrit le classeur Excel."""
        report = self.process(journal_path, config, period, releve_path)
        export(
            report.balance,
            report.bilan,
            report.compte_resultat,
            report.indicateurs,
            report.anomalies,
            output_path,
        )
        print_summary(report.nb_entries, report.bilan, report.compte_resultat, report.anomalies, report.reconciliation)
        return report

    def run_from_buffers(
        self,
        journal: bytes,
        config: AppConfig,
        period: Period,
        releve: bytes | None = None,
    ) -> LedgerReport:
        """Exécute le pipeline à partir de fichiers en mémoire, sans export."""
        return self.process(BytesIO(journal), config, period, BytesIO(releve) if releve is not None else None)

    def process(
        self,
        journal_source: Path | BytesIO,
        config: AppConfig,
        period: Period,
        releve_source: Path | BytesIO | None = None,
    ) -> LedgerReport:
        parse_result = JournalParser().parse(journal_source, config)
        anomalies = list(parse_result.anomalies)

        nb_entries, load_anomalies = self._load_entries(parse_result, config)
        anomalies.extend(load_anomalies)
        if nb_entries == 0:
            raise NoResultError("Aucune écriture exploitable. Vérifiez le fichier d'écritures et la configuration.")

        lettrage = LettrageMatcher(self.store, config)
        comptes = sorted(
            {li.account_numero for li in self.store.find_lines(account_prefixes=COMPTES_LETTRABLES, period=period)}
        )
        nb_lettres = sum(len(lettrage.appliquer_automatique(compte)) for compte in comptes)
        logger.info("Lettrage automatique : %d groupes sur %d comptes de tiers", nb_lettres, len(comptes))

        reconciliation = None
        if releve_source is not None:
            reconciliation, releve_anomalies = self._reconcile(releve_source, config, period)
            anomalies.extend(releve_anomalies)

        journal_anomalies = JournalChecker.check(self.store.list_entries(), self.store.find_lines())
        logger.info("JournalChecker: %d anomalies détectées", len(journal_anomalies))
        lettrage_anomalies = LettrageChecker.check(self.store.find_lines(lettered=True))
        logger.info("LettrageChecker: %d anomalies détectées", len(lettrage_anomalies))
        anomalies.extend(journal_anomalies)
        anomalies.extend(lettrage_anomalies)

        builder = StatementBuilder(self.store, config)
        compte_resultat = builder.compte_resultat(period)
        bilan = builder.bilan(period)

        return LedgerReport(
            period=period,
            nb_entries=nb_entries,
            balance=LedgerAggregator(self.store, config).balance_generale(period),
            bilan=bilan,
            compte_resultat=compte_resultat,
            indicateurs=builder.indicateurs(period),
            anomalies=anomalies,
            reconciliation=reconciliation,
        )

    def _load_entries(self, parse_result: JournalParseResult, config: AppConfig) -> tuple[int, list[Anomaly]]:
        """Enregistre les écritures validées ; une écriture refusée devient une anomalie."""
        service = JournalService(self.store, config)
        anomalies: list[Anomaly] = []
        loaded = 0
        for draft in parse_result.entries:
            try:
                service.create_entry(
                    journal_code=draft.journal_code,
                    date_piece=draft.date_piece,
                    libelle=draft.libelle,
                    lines=draft.lines,
                    tiers_code=draft.tiers_code,
                    status=STATUT_VALIDEE,
                    idempotency_key=f"{draft.journal_code}/{draft.reference}",
                )
            except ValidationError as exc:
                anomalies.append(
                    Anomaly(
                        type="balance_error" if exc.ecart is not None else "entry_rejected",
                        severity="error",
                        reference=f"{draft.journal_code}/{draft.reference}",
                        detail=str(exc),
                        expected_value="0.00" if exc.ecart is not None else None,
                        actual_value=f"{exc.ecart:.2f}" if exc.ecart is not None else None,
                    )
                )
                logger.warning("Pièce %s/%s refusée : %s", draft.journal_code, draft.reference, exc)
                continue
            loaded += 1
        logger.info("%d écritures enregistrées sur %d lues", loaded, len(parse_result.entries))
        return loaded, anomalies

    def _reconcile(
        self, releve_source: Path | BytesIO, config: AppConfig, period: Period
    ) -> tuple[ReconciliationStats, list[Anomaly]]:
        parse_result = BankStatementParser().parse(releve_source, config)
        reconciler = BankReconciler(self.store, config)
        fichier = releve_source.name if isinstance(releve_source, Path) else None
        reconciler.importer(parse_result.lines, fichier_origine=fichier)
        reconciler.auto_rapprocher(period=period)
        stats = reconciler.statistiques(period=period)
        return stats, list(parse_result.anomalies) + list(stats.anomalies)
