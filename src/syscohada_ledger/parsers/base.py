"""Classe abstraite de base pour les parsers CSV."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path

import pandas as pd

from syscohada_ledger.config.loader import AppConfig
from syscohada_ledger.models import ParseError

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


class BaseParser(ABC):
    """Classe abstraite définissant l'interface commune des parsers."""

    @abstractmethod
    def parse(self, source: Path | BytesIO, config: AppConfig) -> object:
        """Parse un fichier CSV et retourne un résultat normalisé."""

    @staticmethod
    def detect_separator(
        source: Path | BytesIO,
        encoding: str = "utf-8",
        candidates: tuple[str, ...] = (";", ","),
    ) -> str:
        """Détecte le séparateur CSV en comptant les occurrences dans le header."""
        if isinstance(source, BytesIO):
            pos = source.tell()
            header = source.readline().decode(encoding)
            source.seek(pos)
        else:
            with open(source, encoding=encoding) as f:
                header = f.readline()

        best = candidates[0]
        best_count = 0
        for sep in candidates:
            count = header.count(sep)
            if count > best_count:
                best_count = count
                best = sep
        return best

    def read_csv(self, source: Path | BytesIO, encoding: str = "utf-8") -> pd.DataFrame:
        """Lit un CSV en texte brut (séparateur auto-détecté, cellules vides = chaîne vide)."""
        if isinstance(source, Path) and not source.exists():
            raise ParseError(f"Fichier introuvable : {source}")
        sep = self.detect_separator(source, encoding)
        if isinstance(source, BytesIO):
            source.seek(0)
        try:
            df = pd.read_csv(source, sep=sep, encoding=encoding, dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise ParseError(f"Fichier CSV illisible : {e}") from e
        return self.strip_whitespace(df)

    @staticmethod
    def apply_column_aliases(df: pd.DataFrame, aliases: dict[str, list[str]]) -> pd.DataFrame:
        """Renomme les colonnes du DataFrame selon les alias définis.

        Pour chaque colonne attendue, si elle est absente mais qu'un alias
        est présent, la colonne est renommée.
        """
        rename_map: dict[str, str] = {}
        for expected, alternatives in aliases.items():
            if expected not in df.columns:
                for alt in alternatives:
                    if alt in df.columns:
                        rename_map[alt] = expected
                        break
        if rename_map:
            df = df.rename(columns=rename_map)
        return df

    @staticmethod
    def strip_whitespace(df: pd.DataFrame) -> pd.DataFrame:
        """Supprime les espaces autour des noms de colonnes et des cellules."""
        df.columns = df.columns.str.strip()
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()
        return df

    @staticmethod
    def to_amount(series: pd.Series) -> pd.Series:
        """Convertit des montants texte (virgule décimale, espaces de milliers) en float ; vide = 0."""
        cleaned = (
            series.astype(str)
            .str.replace("\u00a0", "", regex=False)
            .str.replace(" ", "", regex=False)
            .str.replace(",", ".", regex=False)
        )
        amounts = pd.to_numeric(cleaned, errors="coerce")
        return amounts.where(cleaned != "", 0.0)

    @staticmethod
    def to_date(series: pd.Series) -> pd.Series:
        """Dates ISO (AAAA-MM-JJ) ou françaises (JJ/MM/AAAA) ; NaT si illisible."""
        parsed = pd.to_datetime(series, format=DATE_FORMATS[0], errors="coerce")
        for fmt in DATE_FORMATS[1:]:
            parsed = parsed.fillna(pd.to_datetime(series, format=fmt, errors="coerce"))
        return parsed

    def validate_columns(self, df: pd.DataFrame, required: list[str]) -> None:
        """Vérifie que toutes les colonnes requises sont présentes dans le DataFrame.

        Raises:
            ParseError: Si des colonnes requises sont absentes du DataFrame.
                Le message liste les colonnes manquantes.
        """
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise ParseError(f"Colonnes manquantes : {', '.join(missing)}")
