"""Chargement et validation de la configuration YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from syscohada_ledger.models import JOURNAUX, Bucket, ConfigError

logger = logging.getLogger(__name__)

DEFAULT_RULES: list[tuple[str, Bucket]] = [
    ("1", Bucket.EQUITY),
    ("2", Bucket.FIXED_ASSET),
    ("3", Bucket.CURRENT_ASSET),
    ("40", Bucket.LIABILITY),
    ("41", Bucket.CURRENT_ASSET),
    ("42", Bucket.LIABILITY),
    ("43", Bucket.LIABILITY),
    ("443", Bucket.LIABILITY),
    ("4452", Bucket.CURRENT_ASSET),
    ("4454", Bucket.CURRENT_ASSET),
    ("4456", Bucket.CURRENT_ASSET),
    ("6", Bucket.EXPENSE),
    ("7", Bucket.REVENUE),
    ("81", Bucket.EXPENSE),
    ("82", Bucket.REVENUE),
    ("83", Bucket.EXPENSE),
    ("84", Bucket.REVENUE),
    ("85", Bucket.EXPENSE),
    ("86", Bucket.REVENUE),
    ("87", Bucket.EXPENSE),
    ("88", Bucket.REVENUE),
    ("89", Bucket.EXPENSE),
]

DEFAULT_SIGN_FALLBACK: dict[str, tuple[Bucket, Bucket]] = {
    "4": (Bucket.CURRENT_ASSET, Bucket.LIABILITY),
    "5": (Bucket.TREASURY_ASSET, Bucket.TREASURY_LIABILITY),
}


@dataclass
class AppConfig:
    """Configuration complète de l'application (non frozen — dataclass technique)."""

    # Plan comptable
    journaux: dict[str, str] = field(default_factory=lambda: dict(JOURNAUX))
    libelles: dict[str, str] = field(default_factory=dict)
    classification_rules: list[tuple[str, Bucket]] = field(default_factory=lambda: list(DEFAULT_RULES))
    sign_fallback: dict[str, tuple[Bucket, Bucket]] = field(
        default_factory=lambda: dict(DEFAULT_SIGN_FALLBACK)
    )
    compte_resultat: str = "13"

    # Rapprochement / lettrage
    tolerance: float = 0.01
    tolerance_jours: int = 5
    comptes_tresorerie: list[str] = field(default_factory=lambda: ["5"])
    compte_banque: str = "5211"


def _load_yaml(filepath: Path) -> dict[str, object]:
    """Charge un fichier YAML et retourne son contenu."""
    if not filepath.exists():
        raise ConfigError(f"Fichier de configuration manquant : {filepath}")
    try:
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML malformé dans {filepath} : {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Le fichier {filepath} doit contenir un mapping YAML (reçu : {type(data).__name__})")
    return data


def _require_key(data: dict[str, object], key: str, context: str) -> object:
    """Vérifie qu'une clé existe dans un dictionnaire."""
    if key not in data:
        raise ConfigError(f"Clé obligatoire '{key}' manquante dans {context}")
    return data[key]


def _parse_bucket(value: object, context: str) -> Bucket:
    try:
        return Bucket(str(value))
    except ValueError:
        valid = ", ".join(b.value for b in Bucket)
        raise ConfigError(f"Rubrique '{value}' inconnue dans {context}. Rubriques acceptées : {valid}") from None


def _validate_chart(data: dict[str, object]) -> tuple[
    dict[str, str],
    dict[str, str],
    list[tuple[str, Bucket]],
    dict[str, tuple[Bucket, Bucket]],
    str,
]:
    """Valide et extrait le plan comptable et les règles de classement."""
    context = "chart_of_accounts.yaml"

    journaux_raw = _require_key(data, "journaux", context)
    if not isinstance(journaux_raw, dict) or len(journaux_raw) == 0:
        raise ConfigError(f"'journaux' doit être un mapping non vide dans {context}")
    journaux: dict[str, str] = {}
    for code, libelle in journaux_raw.items():
        code_str = str(code)
        if not code_str.isalpha() or not code_str.isupper() or not 2 <= len(code_str) <= 3:
            raise ConfigError(f"Code journal invalide '{code_str}' dans {context} : 2 ou 3 lettres majuscules")
        journaux[code_str] = str(libelle)

    libelles_raw = data.get("libelles", {}) or {}
    if not isinstance(libelles_raw, dict):
        raise ConfigError(f"'libelles' doit être un mapping dans {context}")
    libelles = {str(k): str(v) for k, v in libelles_raw.items()}

    rules = list(DEFAULT_RULES)
    sign_fallback = dict(DEFAULT_SIGN_FALLBACK)
    classification = data.get("classification")
    if classification is not None:
        if not isinstance(classification, dict):
            raise ConfigError(f"'classification' doit être un mapping dans {context}")
        if "rules" in classification:
            rules_raw = classification["rules"]
            if not isinstance(rules_raw, list) or len(rules_raw) == 0:
                raise ConfigError(f"'classification.rules' doit être une liste non vide dans {context}")
            rules = []
            for item in rules_raw:
                if not isinstance(item, dict) or "prefix" not in item or "bucket" not in item:
                    raise ConfigError(
                        f"Chaque règle de 'classification.rules' doit avoir 'prefix' et 'bucket' dans {context}"
                    )
                prefix = str(item["prefix"])
                if not prefix.isdigit():
                    raise ConfigError(f"Préfixe de compte non numérique '{prefix}' dans {context}")
                rules.append((prefix, _parse_bucket(item["bucket"], f"{context}/classification.rules")))
        if "sign_fallback" in classification:
            fallback_raw = classification["sign_fallback"]
            if not isinstance(fallback_raw, dict):
                raise ConfigError(f"'classification.sign_fallback' doit être un mapping dans {context}")
            sign_fallback = {}
            for classe, buckets in fallback_raw.items():
                if not isinstance(buckets, list) or len(buckets) != 2:
                    raise ConfigError(
                        f"'sign_fallback' de la classe {classe} doit lister 2 rubriques "
                        f"(solde débiteur, solde créditeur) dans {context}"
                    )
                sign_fallback[str(classe)] = (
                    _parse_bucket(buckets[0], f"{context}/classification.sign_fallback"),
                    _parse_bucket(buckets[1], f"{context}/classification.sign_fallback"),
                )

    compte_resultat = str(data.get("compte_resultat", "13"))
    if not compte_resultat.startswith("1"):
        raise ConfigError(f"'compte_resultat' doit être un compte de classe 1 dans {context} (reçu : {compte_resultat})")

    return journaux, libelles, rules, sign_fallback, compte_resultat


def _validate_reconciliation(data: dict[str, object]) -> tuple[float, int, list[str], str]:
    """Valide et extrait les paramètres de lettrage et de rapprochement."""
    context = "reconciliation.yaml"

    tolerance = data.get("tolerance", 0.01)
    if not isinstance(tolerance, (int, float)) or tolerance <= 0:
        raise ConfigError(f"'tolerance' doit être un nombre strictement positif dans {context}")

    tolerance_jours = data.get("tolerance_jours", 5)
    if not isinstance(tolerance_jours, int) or isinstance(tolerance_jours, bool) or tolerance_jours < 0:
        raise ConfigError(f"'tolerance_jours' doit être un entier positif dans {context}")

    comptes_raw = data.get("comptes_tresorerie", ["5"])
    if not isinstance(comptes_raw, list) or len(comptes_raw) == 0:
        raise ConfigError(f"'comptes_tresorerie' doit être une liste non vide dans {context}")
    comptes = [str(c) for c in comptes_raw]
    for compte in comptes:
        if not compte.startswith("5"):
            raise ConfigError(f"Compte de trésorerie '{compte}' hors classe 5 dans {context}")

    compte_banque = str(data.get("compte_banque", "5211"))
    if not any(compte_banque.startswith(p) for p in comptes):
        raise ConfigError(
            f"'compte_banque' {compte_banque} ne correspond à aucun préfixe de 'comptes_tresorerie' dans {context}"
        )

    return float(tolerance), tolerance_jours, comptes, compte_banque


def load_config(config_dir: Path) -> AppConfig:
    """Charge et valide la configuration complète depuis un répertoire.

    Args:
        config_dir: Répertoire contenant les fichiers YAML de configuration.

    Returns:
        AppConfig validée.

    Raises:
        ConfigError: Si un fichier est manquant, malformé, ou contient des valeurs invalides.
    """
    logger.info("Chargement de la configuration depuis %s", config_dir)

    chart_data = _load_yaml(config_dir / "chart_of_accounts.yaml")
    reconciliation_data = _load_yaml(config_dir / "reconciliation.yaml")

    journaux, libelles, rules, sign_fallback, compte_resultat = _validate_chart(chart_data)
    tolerance, tolerance_jours, comptes_tresorerie, compte_banque = _validate_reconciliation(reconciliation_data)

    config = AppConfig(
        journaux=journaux,
        libelles=libelles,
        classification_rules=rules,
        sign_fallback=sign_fallback,
        compte_resultat=compte_resultat,
        tolerance=tolerance,
        tolerance_jours=tolerance_jours,
        comptes_tresorerie=comptes_tresorerie,
        compte_banque=compte_banque,
    )

    logger.debug("%d règles de classement, tolérance %s", len(config.classification_rules), config.tolerance)

    return config
