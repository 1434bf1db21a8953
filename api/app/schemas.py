"""Schémas Pydantic des requêtes de l'API."""

from __future__ import annotations

import datetime
import re

from pydantic import BaseModel, Field, field_validator

from syscohada_ledger.models import STATUT_BROUILLON, STATUT_VALIDEE, LineDraft, StatementLineDraft

RE_COMPTE = re.compile(r"^[0-9]{1,15}$")
RE_CODE_JOURNAL = re.compile(r"^[A-Z]{2,3}$")


def _check_compte(v: str) -> str:
    if not RE_COMPTE.match(v):
        raise ValueError(f"Numéro de compte invalide : '{v}'")
    return v


class LineIn(BaseModel):
    """Ligne d'écriture reçue."""

    compte: str
    debit: float = Field(default=0.0, ge=0)
    credit: float = Field(default=0.0, ge=0)
    libelle: str = ""
    tiers_code: str | None = None

    @field_validator("compte")
    @classmethod
    def validate_compte(cls, v: str) -> str:
        return _check_compte(v)

    def to_draft(self) -> LineDraft:
        return LineDraft(
            account_numero=self.compte,
            debit=round(self.debit, 2),
            credit=round(self.credit, 2),
            libelle=self.libelle,
            tiers_code=self.tiers_code,
        )


class EntryCreate(BaseModel):
    """Écriture à créer ; le numéro de pièce est attribué par le serveur.

    Sans ``journal_code``, le journal est déduit de ``type_operation`` (OD par défaut).
    """

    journal_code: str | None = None
    type_operation: str | None = None
    date_piece: datetime.date
    libelle: str
    lignes: list[LineIn] = Field(min_length=1)
    tiers_code: str | None = None
    statut: str = STATUT_BROUILLON

    @field_validator("journal_code")
    @classmethod
    def validate_journal(cls, v: str | None) -> str | None:
        if v is not None and not RE_CODE_JOURNAL.match(v):
            raise ValueError(f"Code journal invalide : '{v}'")
        return v

    @field_validator("statut")
    @classmethod
    def validate_statut(cls, v: str) -> str:
        if v not in (STATUT_BROUILLON, STATUT_VALIDEE):
            raise ValueError(f"Statut de création invalide : '{v}'")
        return v


class ReverseRequest(BaseModel):
    date_piece: datetime.date | None = None
    libelle: str | None = None


class LettrageRequest(BaseModel):
    line_ids: list[int] = Field(min_length=2)
    compte: str
    tiers_code: str | None = None

    @field_validator("compte")
    @classmethod
    def validate_compte(cls, v: str) -> str:
        return _check_compte(v)


class LettrageAutoRequest(BaseModel):
    compte: str
    tiers_code: str | None = None

    @field_validator("compte")
    @classmethod
    def validate_compte(cls, v: str) -> str:
        return _check_compte(v)


class StatementLineIn(BaseModel):
    date_operation: datetime.date
    libelle: str
    montant: float
    reference: str | None = None
    date_valeur: datetime.date | None = None
    solde_progressif: float | None = None

    def to_draft(self) -> StatementLineDraft:
        return StatementLineDraft(
            date_operation=self.date_operation,
            libelle=self.libelle,
            montant=round(self.montant, 2),
            reference=self.reference,
            date_valeur=self.date_valeur,
            solde_progressif=self.solde_progressif,
        )


class StatementImport(BaseModel):
    lignes: list[StatementLineIn] = Field(min_length=1)
    compte_banque: str | None = None
    fichier_origine: str | None = None


class AutoMatchRequest(BaseModel):
    tolerance_jours: int | None = Field(default=None, ge=0)


class ManualMatchRequest(BaseModel):
    statement_line_id: int
    journal_line_id: int
    montant: float


class AccountUpsert(BaseModel):
    libelle: str
    usable: bool = True


class SessionCreate(BaseModel):
    """Session de rapprochement : période et soldes du relevé."""

    date_debut: datetime.date
    date_fin: datetime.date
    compte_banque: str | None = None
    solde_releve_debut: float = 0.0
    solde_releve_fin: float = 0.0

    @field_validator("compte_banque")
    @classmethod
    def validate_compte(cls, v: str | None) -> str | None:
        return v if v is None else _check_compte(v)
