"""Parser des relevés bancaires CSV."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

import pandas as pd

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import Anomaly, ParseError, StatementLineDraft, StatementParseResult
from syscohada_ledger.parsers.base import BaseParser

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["Date", "Libellé"]

COLUMN_ALIASES: dict[str, list[str]] = {
    "Date": ["date", "Date opération", "date_operation"],
    "Libellé": ["Libelle", "libellé", "libelle"],
    "Montant": ["montant"],
    "Débit": ["Debit", "débit", "debit"],
    "Crédit": ["Credit", "crédit", "credit"],
    "Référence": ["Reference", "référence", "reference"],
    "Date valeur": ["date_valeur", "Date de valeur"],
    "Solde": ["solde", "solde_progressif"],
}


class BankStatementParser(BaseParser):
    """Lignes de relevé, montant signé : positif = encaissement.

    Le montant vient de la colonne ``Montant`` ou, à défaut, de ``Crédit − Débit``
    (point de vue de la banque).
    """

    def parse(self, source: Path | BytesIO, config: AppConfig) -> StatementParseResult:
        df = self.read_csv(source)
        df = self.apply_column_aliases(df, COLUMN_ALIASES)
        self.validate_columns(df, REQUIRED_COLUMNS)

        if "Montant" in df.columns:
            df["_montant"] = self.to_amount(df["Montant"])
        elif "Débit" in df.columns and "Crédit" in df.columns:
            df["_montant"] = self.to_amount(df["Crédit"]) - self.to_amount(df["Débit"])
        else:
            raise ParseError("Colonnes manquantes : Montant (ou Débit et Crédit)")

        df["_date"] = self.to_date(df["Date"])
        df["_date_valeur"] = self.to_date(df["Date valeur"]) if "Date valeur" in df.columns else df["_date"]
        has_solde = "Solde" in df.columns
        if has_solde:
            df["_solde"] = self.to_amount(df["Solde"]).where(df["Solde"] != "")

        lines: list[StatementLineDraft] = []
        anomalies: list[Anomaly] = []
        for idx, row in df.iterrows():
            if pd.isna(row["_date"]) or pd.isna(row["_montant"]):
                anomalies.append(
                    Anomaly(
                        type="parse_warning",
                        severity="warning",
                        reference=f"ligne {int(idx) + 2}",
                        detail=f"Ligne de relevé ignorée (date ou montant illisible) : {row['Libellé']!r}",
                        expected_value=None,
                        actual_value=None,
                    )
                )
                logger.warning("Ligne de relevé %s ignorée", idx)
                continue
            solde = row["_solde"] if has_solde else None
            date_valeur = row["_date_valeur"]
            lines.append(
                StatementLineDraft(
                    date_operation=row["_date"].date(),
                    libelle=row["Libellé"],
                    montant=round(float(row["_montant"]), 2),
                    reference=(row["Référence"] or None) if "Référence" in df.columns else None,
                    date_valeur=date_valeur.date() if pd.notna(date_valeur) else None,
                    solde_progressif=round(float(solde), 2) if solde is not None and pd.notna(solde) else None,
                )
            )

        logger.info("%d lignes de relevé lues", len(lines))
        return StatementParseResult(lines=lines, anomalies=anomalies)
