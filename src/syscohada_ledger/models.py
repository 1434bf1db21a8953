"""Modèles de données métier et hiérarchie d'exceptions."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum

# --- Exceptions métier ---


class LedgerError(Exception):
    """Erreur de base pour l'application syscohada-ledger."""


class ConfigError(LedgerError):
    """YAML malformé, clé manquante, valeur invalide."""


class ParseError(LedgerError):
    """Colonne CSV manquante, fichier illisible."""


class NoResultError(LedgerError):
    """Aucune écriture exploitable dans les fichiers fournis."""


class ValidationError(LedgerError):
    """Donnée refusée, avec l'écart calculé quand il existe."""

    def __init__(self, message: str, ecart: float | None = None) -> None:
        super().__init__(message)
        self.ecart = ecart


class BalanceError(ValidationError):
    """Déséquilibre débit/crédit d'une écriture."""


class ClassificationError(ValidationError):
    """Compte sans rubrique d'état financier (classe inconnue)."""


class IntegrityError(LedgerError):
    """Incohérence des données stockées (bilan déséquilibré, compte non classé)."""

    def __init__(self, message: str, ecart: float | None = None) -> None:
        super().__init__(message)
        self.ecart = ecart


class ConflictError(LedgerError):
    """Numéro de pièce en double, ligne déjà lettrée ou rapprochée."""


class NotFoundError(LedgerError):
    """Écriture, ligne ou rapprochement introuvable."""


class UnavailableError(LedgerError):
    """Stockage injoignable."""


# --- Référentiels ---

JOURNAUX: dict[str, str] = {
    "AC": "Journal des Achats",
    "VE": "Journal des Ventes",
    "BQ": "Journal de Banque",
    "CA": "Journal de Caisse",
    "OD": "Journal des Opérations Diverses",
}

STATUT_BROUILLON = "brouillon"
STATUT_VALIDEE = "validee"
STATUT_CLOTUREE = "cloturee"
STATUTS: tuple[str, ...] = (STATUT_BROUILLON, STATUT_VALIDEE, STATUT_CLOTUREE)

METHOD_MANUAL = "manual"
METHOD_AUTO = "auto"


class Bucket(str, Enum):
    """Rubrique d'état financier attribuée à un compte."""

    FIXED_ASSET = "actif_immobilise"
    CURRENT_ASSET = "actif_circulant"
    TREASURY_ASSET = "tresorerie_actif"
    EQUITY = "capitaux_propres"
    LIABILITY = "dettes"
    TREASURY_LIABILITY = "tresorerie_passif"
    EXPENSE = "charges"
    REVENUE = "produits"


ASSET_BUCKETS = frozenset({Bucket.FIXED_ASSET, Bucket.CURRENT_ASSET, Bucket.TREASURY_ASSET})
PASSIF_BUCKETS = frozenset({Bucket.EQUITY, Bucket.LIABILITY, Bucket.TREASURY_LIABILITY})


# --- Période ---


@dataclass(frozen=True)
class Period:
    """Intervalle de dates inclusif."""

    date_debut: datetime.date
    date_fin: datetime.date

    def __post_init__(self) -> None:
        if self.date_fin < self.date_debut:
            raise ValidationError(
                f"Période invalide : {self.date_debut.isoformat()} > {self.date_fin.isoformat()}"
            )

    @classmethod
    def exercice(cls, code: str | int) -> Period:
        """Exercice civil : ``Period.exercice("2025")`` → 2025-01-01..2025-12-31."""
        year = int(code)
        return cls(datetime.date(year, 1, 1), datetime.date(year, 12, 31))

    def contains(self, day: datetime.date) -> bool:
        return self.date_debut <= day <= self.date_fin

    @property
    def label(self) -> str:
        if (
            self.date_debut.month == 1
            and self.date_debut.day == 1
            and self.date_fin == datetime.date(self.date_debut.year, 12, 31)
        ):
            return str(self.date_debut.year)
        return f"{self.date_debut.isoformat()}/{self.date_fin.isoformat()}"


# --- Dataclasses métier (frozen) ---


@dataclass(frozen=True)
class Account:
    """Compte du plan comptable (donnée de référence)."""

    numero: str
    libelle: str
    usable: bool = True

    @property
    def classe(self) -> str:
        return self.numero[:1]


@dataclass(frozen=True)
class LineDraft:
    """Ligne d'écriture avant insertion (sans identifiant)."""

    account_numero: str
    debit: float = 0.0
    credit: float = 0.0
    libelle: str = ""
    tiers_code: str | None = None


@dataclass(frozen=True)
class JournalEntry:
    """En-tête d'écriture comptable."""

    id: int
    date_piece: datetime.date
    numero_piece: str
    journal_code: str
    libelle: str
    tiers_code: str | None
    status: str
    total_debit: float
    total_credit: float
    numero_sequentiel: bool = True

    @property
    def equilibre(self) -> bool:
        return abs(round(self.total_debit - self.total_credit, 2)) < 0.01


@dataclass(frozen=True)
class JournalLine:
    """Ligne d'écriture. Les champs de l'écriture parente sont dénormalisés (immuables)."""

    id: int
    entry_id: int
    account_numero: str
    debit: float
    credit: float
    date_piece: datetime.date
    journal_code: str
    numero_piece: str
    libelle: str = ""
    tiers_code: str | None = None
    lettre: str | None = None
    date_lettrage: datetime.date | None = None

    @property
    def montant(self) -> float:
        """Montant signé : positif au débit, négatif au crédit."""
        return round(self.debit - self.credit, 2)


@dataclass(frozen=True)
class AccountBalance:
    """Solde d'un compte sur une période (calculé, jamais stocké)."""

    account: str
    libelle: str
    total_debit: float
    total_credit: float
    solde: float
    sens: str


@dataclass(frozen=True)
class PieceNumber:
    """Numéro de pièce ; ``sequential`` est faux pour un numéro de secours."""

    value: str
    sequential: bool = True


@dataclass(frozen=True)
class LettrageGroup:
    """Lignes d'un compte partageant un même code lettre."""

    lettre: str
    compte: str
    tiers_code: str | None
    lines: list[JournalLine]
    total_debit: float
    total_credit: float
    ecart: float
    date_lettrage: datetime.date | None


@dataclass(frozen=True)
class LettrageProposal:
    """Proposition de lettrage automatique."""

    compte: str
    tiers_code: str | None
    lignes_debit: list[JournalLine]
    lignes_credit: list[JournalLine]
    montant_rapprochable: float
    ecart: float
    confiance: int
    raison: str
    auto_applicable: bool = True

    @property
    def line_ids(self) -> list[int]:
        return [line.id for line in self.lignes_debit + self.lignes_credit]


@dataclass(frozen=True)
class LettrageHistory:
    """Trace d'une opération de lettrage ou de délettrage."""

    id: int
    lettre: str
    action: str
    line_ids: list[int]
    compte: str
    montant: float
    created_at: datetime.datetime
    created_by: str | None = None


@dataclass(frozen=True)
class StatementLineDraft:
    """Ligne de relevé bancaire normalisée, avant import."""

    date_operation: datetime.date
    libelle: str
    montant: float
    reference: str | None = None
    date_valeur: datetime.date | None = None
    solde_progressif: float | None = None


@dataclass(frozen=True)
class StatementLine:
    """Ligne de relevé bancaire importée."""

    id: int
    date_operation: datetime.date
    libelle: str
    montant: float
    compte_banque: str
    reference: str | None = None
    date_valeur: datetime.date | None = None
    solde_progressif: float | None = None
    fichier_origine: str | None = None


@dataclass(frozen=True)
class ReconciliationMatch:
    """Rapprochement d'une ligne de relevé et d'une ligne de trésorerie."""

    id: int
    statement_line_id: int
    journal_line_id: int
    montant: float
    method: str
    confidence: int | None
    created_at: datetime.datetime


@dataclass(frozen=True)
class ReconciliationSession:
    """Session de rapprochement d'un compte de banque sur une période.

    ``solde_comptable`` est le solde cumulé du compte à la fin de la période ;
    ``ecart = solde_releve_fin − solde_comptable``.
    """

    id: int
    compte_banque: str
    date_debut: datetime.date
    date_fin: datetime.date
    solde_releve_debut: float
    solde_releve_fin: float
    solde_comptable: float
    ecart: float
    created_at: datetime.datetime


@dataclass(frozen=True)
class Anomaly:
    """Anomalie détectée lors d'un contrôle."""

    type: str
    severity: str
    reference: str
    detail: str
    expected_value: str | None
    actual_value: str | None


@dataclass(frozen=True)
class ReconciliationStats:
    """Synthèse du rapprochement bancaire."""

    releves_total: int
    releves_rapproches: int
    ecritures_total: int
    ecritures_rapprochees: int
    solde_releve: float
    solde_comptable: float
    ecart: float
    taux_rapprochement: int
    anomalies: list[Anomaly] = field(default_factory=list)

    @property
    def releves_non_rapproches(self) -> int:
        return self.releves_total - self.releves_rapproches


@dataclass(frozen=True)
class EntryDraft:
    """Écriture lue dans un fichier, avant numérotation et enregistrement."""

    journal_code: str
    date_piece: datetime.date
    reference: str
    libelle: str
    lines: list[LineDraft]
    tiers_code: str | None = None


@dataclass(frozen=True)
class JournalParseResult:
    """Résultat du parsing d'un fichier d'écritures.

    Convention : les listes ne doivent pas être mutées après construction.
    """

    entries: list[EntryDraft]
    anomalies: list[Anomaly]


@dataclass(frozen=True)
class StatementParseResult:
    """Résultat du parsing d'un relevé bancaire."""

    lines: list[StatementLineDraft]
    anomalies: list[Anomaly]
