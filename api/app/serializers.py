"""Conversion des dataclasses métier vers les structures JSON de l'API."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi.encoders import jsonable_encoder

from syscohada_ledger.models import (
    Account,
    AccountBalance,
    Anomaly,
    JournalEntry,
    JournalLine,
    LettrageGroup,
    LettrageProposal,
    ReconciliationMatch,
    ReconciliationSession,
    ReconciliationStats,
    StatementLine,
)


def serialize_entry(entry: JournalEntry, lines: list[JournalLine] | None = None) -> dict[str, object]:
    """Sérialise un en-tête d'écriture, avec ses lignes si fournies."""
    result: dict[str, object] = {
        "id": entry.id,
        "date_piece": entry.date_piece.isoformat(),
        "numero_piece": entry.numero_piece,
        "journal_code": entry.journal_code,
        "libelle": entry.libelle,
        "tiers_code": entry.tiers_code,
        "statut": entry.status,
        "total_debit": entry.total_debit,
        "total_credit": entry.total_credit,
        "numero_sequentiel": entry.numero_sequentiel,
    }
    if lines is not None:
        result["lignes"] = [serialize_line(li) for li in lines]
    return result


def serialize_line(line: JournalLine) -> dict[str, object]:
    return {
        "id": line.id,
        "ecriture_id": line.entry_id,
        "compte": line.account_numero,
        "libelle": line.libelle,
        "debit": line.debit,
        "credit": line.credit,
        "montant": line.montant,
        "date_piece": line.date_piece.isoformat(),
        "journal_code": line.journal_code,
        "numero_piece": line.numero_piece,
        "tiers_code": line.tiers_code,
        "lettre": line.lettre,
        "date_lettrage": line.date_lettrage.isoformat() if line.date_lettrage else None,
    }


def serialize_balance(balance: AccountBalance) -> dict[str, object]:
    return {
        "compte": balance.account,
        "libelle": balance.libelle,
        "total_debit": balance.total_debit,
        "total_credit": balance.total_credit,
        "solde": balance.solde,
        "sens": balance.sens,
    }


def serialize_anomaly(anomaly: Anomaly) -> dict[str, object]:
    """Sérialise une Anomaly vers le format JSON de l'API."""
    return {
        "type": anomaly.type,
        "severity": anomaly.severity,
        "reference": anomaly.reference,
        "detail": anomaly.detail,
        "expected_value": anomaly.expected_value,
        "actual_value": anomaly.actual_value,
    }


def serialize_proposal(proposal: LettrageProposal) -> dict[str, object]:
    return {
        "compte": proposal.compte,
        "tiers_code": proposal.tiers_code,
        "lignes_debit": [serialize_line(li) for li in proposal.lignes_debit],
        "lignes_credit": [serialize_line(li) for li in proposal.lignes_credit],
        "montant_rapprochable": proposal.montant_rapprochable,
        "ecart": proposal.ecart,
        "confiance": proposal.confiance,
        "raison": proposal.raison,
        "auto_applicable": proposal.auto_applicable,
    }


def serialize_group(group: LettrageGroup) -> dict[str, object]:
    return {
        "lettre": group.lettre,
        "compte": group.compte,
        "tiers_code": group.tiers_code,
        "lignes": [serialize_line(li) for li in group.lines],
        "total_debit": group.total_debit,
        "total_credit": group.total_credit,
        "ecart": group.ecart,
        "date_lettrage": group.date_lettrage.isoformat() if group.date_lettrage else None,
    }


def serialize_statement_line(line: StatementLine) -> dict[str, object]:
    return {
        "id": line.id,
        "date_operation": line.date_operation.isoformat(),
        "date_valeur": line.date_valeur.isoformat() if line.date_valeur else None,
        "libelle": line.libelle,
        "montant": line.montant,
        "reference": line.reference,
        "solde_progressif": line.solde_progressif,
        "compte_banque": line.compte_banque,
        "fichier_origine": line.fichier_origine,
    }


def serialize_match(match: ReconciliationMatch) -> dict[str, object]:
    return {
        "id": match.id,
        "statement_line_id": match.statement_line_id,
        "journal_line_id": match.journal_line_id,
        "montant": match.montant,
        "methode": match.method,
        "confiance": match.confidence,
        "created_at": match.created_at.isoformat(),
    }


def serialize_session(session: ReconciliationSession) -> dict[str, object]:
    return {
        "id": session.id,
        "compte_banque": session.compte_banque,
        "date_debut": session.date_debut.isoformat(),
        "date_fin": session.date_fin.isoformat(),
        "solde_releve_debut": session.solde_releve_debut,
        "solde_releve_fin": session.solde_releve_fin,
        "solde_comptable": session.solde_comptable,
        "ecart": session.ecart,
        "created_at": session.created_at.isoformat(),
    }


def serialize_account(account: Account) -> dict[str, object]:
    return {"numero": account.numero, "libelle": account.libelle, "classe": account.classe, "utilisable": account.usable}


def serialize_reconciliation_stats(stats: ReconciliationStats) -> dict[str, object]:
    return {
        "releves": {
            "total": stats.releves_total,
            "rapproches": stats.releves_rapproches,
            "non_rapproches": stats.releves_non_rapproches,
        },
        "ecritures": {"total": stats.ecritures_total, "rapprochees": stats.ecritures_rapprochees},
        "solde_releve": stats.solde_releve,
        "solde_comptable": stats.solde_comptable,
        "ecart": stats.ecart,
        "taux_rapprochement": stats.taux_rapprochement,
        "anomalies": [serialize_anomaly(a) for a in stats.anomalies],
    }


def serialize_statement(statement: Any) -> Any:
    """États financiers (bilan, compte de résultat, indicateurs, balance) : conversion générique."""
    return jsonable_encoder(asdict(statement))
