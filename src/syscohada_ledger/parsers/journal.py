"""Parser du fichier d'écritures (une ligne CSV par ligne d'écriture)."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

import pandas as pd

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import Anomaly, EntryDraft, JournalParseResult, LineDraft
from syscohada_ledger.parsers.base import BaseParser

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["Journal", "Date", "Pièce", "Compte", "Libellé", "Débit", "Crédit"]

COLUMN_ALIASES: dict[str, list[str]] = {
    "Journal": ["journal", "Code journal", "journal_code"],
    "Date": ["date", "Date pièce", "date_piece"],
    "Pièce": ["Piece", "pièce", "piece", "N° pièce", "numero_piece"],
    "Compte": ["compte", "Numéro de compte", "numero_compte"],
    "Libellé": ["Libelle", "libellé", "libelle"],
    "Débit": ["Debit", "débit", "debit"],
    "Crédit": ["Credit", "crédit", "credit"],
    "Tiers": ["tiers", "Code tiers", "tiers_code"],
}


class JournalParser(BaseParser):
    """Regroupe les lignes par (journal, pièce) en écritures.

    Une pièce dont une ligne est illisible est écartée en entier, avec une
    anomalie : une écriture partielle serait déséquilibrée.
    """

    def parse(self, source: Path | BytesIO, config: AppConfig) -> JournalParseResult:
        df = self.read_csv(source)
        df = self.apply_column_aliases(df, COLUMN_ALIASES)
        self.validate_columns(df, REQUIRED_COLUMNS)
        if "Tiers" not in df.columns:
            df["Tiers"] = ""

        df["_date"] = self.to_date(df["Date"])
        df["_debit"] = self.to_amount(df["Débit"])
        df["_credit"] = self.to_amount(df["Crédit"])

        entries: list[EntryDraft] = []
        anomalies: list[Anomaly] = []

        for (journal_code, piece), group in df.groupby(["Journal", "Pièce"], sort=False):
            reference = f"{journal_code}/{piece}"
            problem = self._check_group(str(journal_code), group, config)
            if problem is not None:
                anomalies.append(
                    Anomaly(
                        type="parse_warning",
                        severity="warning",
                        reference=reference,
                        detail=problem,
                        expected_value=None,
                        actual_value=None,
                    )
                )
                logger.warning("Pièce %s ignorée : %s", reference, problem)
                continue

            dates = group["_date"].dt.date.unique()
            if len(dates) > 1:
                anomalies.append(
                    Anomaly(
                        type="date_mismatch",
                        severity="warning",
                        reference=reference,
                        detail=f"Dates différentes dans la pièce, première retenue : {dates[0].isoformat()}",
                        expected_value=dates[0].isoformat(),
                        actual_value=", ".join(d.isoformat() for d in dates[1:]),
                    )
                )

            lines = [
                LineDraft(
                    account_numero=row["Compte"],
                    debit=round(float(row["_debit"]), 2),
                    credit=round(float(row["_credit"]), 2),
                    libelle=row["Libellé"],
                    tiers_code=row["Tiers"] or None,
                )
                for _, row in group.iterrows()
            ]
            tiers = next((t for t in group["Tiers"] if t), None)
            entries.append(
                EntryDraft(
                    journal_code=str(journal_code),
                    date_piece=dates[0],
                    reference=str(piece),
                    libelle=group["Libellé"].iloc[0],
                    lines=lines,
                    tiers_code=tiers,
                )
            )

        skipped = sum(1 for a in anomalies if a.type == "parse_warning")
        logger.info("%d écritures lues, %d pièces écartées", len(entries), skipped)
        return JournalParseResult(entries=entries, anomalies=anomalies)

    @staticmethod
    def _check_group(journal_code: str, group: pd.DataFrame, config: AppConfig) -> str | None:
        """Motif de rejet de la pièce, ou None si elle est exploitable."""
        if journal_code not in config.journaux:
            return f"Journal inconnu '{journal_code}'"
        if group["_date"].isna().any():
            return "Date illisible"
        if group["_debit"].isna().any() or group["_credit"].isna().any():
            return "Montant non numérique"
        if (group["_debit"] < 0).any() or (group["_credit"] < 0).any():
            return "Montant négatif"
        bad_accounts = [c for c in group["Compte"] if not c.isdigit()]
        if bad_accounts:
            return f"Compte invalide : {', '.join(bad_accounts)}"
        return None
