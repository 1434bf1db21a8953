"""Export Excel multi-onglets des états financiers et résumé console."""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict
from io import BytesIO
from pathlib import Path

import pandas as pd

from syscohada_ledger.engine.aggregator import BalanceGenerale
from syscohada_ledger.engine.statements import Bilan, CompteResultat, Indicateurs, SectionBilan
from syscohada_ledger.models import Anomaly, ReconciliationStats

BALANCE_COLUMNS = [
    "compte",
    "libelle",
    "mouvement_debit",
    "mouvement_credit",
    "solde_debit",
    "solde_credit",
]

ETAT_COLUMNS = ["section", "compte", "libelle", "montant"]

INDICATEURS_COLUMNS = ["indicateur", "valeur"]

ANOMALIES_COLUMNS = [
    "type",
    "severity",
    "reference",
    "detail",
    "expected_value",
    "actual_value",
]

SECTIONS_ACTIF = [
    ("actif_immobilise", "Actif immobilisé"),
    ("actif_circulant", "Actif circulant"),
    ("tresorerie_actif", "Trésorerie actif"),
]

SECTIONS_PASSIF = [
    ("capitaux_propres", "Capitaux propres"),
    ("dettes", "Dettes"),
    ("tresorerie_passif", "Trésorerie passif"),
]


def _section_rows(titre: str, section: SectionBilan) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = [
        {"section": titre, "compte": li.compte, "libelle": li.libelle, "montant": li.montant}
        for li in section.lignes
    ]
    rows.append({"section": titre, "compte": "", "libelle": f"Total {titre.lower()}", "montant": section.total})
    return rows


def _balance_frame(balance: BalanceGenerale) -> pd.DataFrame:
    data = [
        {
            "compte": li.account,
            "libelle": li.libelle,
            "mouvement_debit": li.mouvement_debit,
            "mouvement_credit": li.mouvement_credit,
            "solde_debit": li.solde_debit,
            "solde_credit": li.solde_credit,
        }
        for li in balance.lignes
    ]
    data.append(
        {
            "compte": "",
            "libelle": "TOTAL",
            "mouvement_debit": balance.total_mouvement_debit,
            "mouvement_credit": balance.total_mouvement_credit,
            "solde_debit": balance.total_solde_debit,
            "solde_credit": balance.total_solde_credit,
        }
    )
    return pd.DataFrame(data, columns=BALANCE_COLUMNS)


def _bilan_frame(bilan: Bilan) -> pd.DataFrame:
    rows: list[dict[str, object]] = []
    for attr, titre in SECTIONS_ACTIF:
        rows.extend(_section_rows(titre, getattr(bilan, attr)))
    rows.append({"section": "ACTIF", "compte": "", "libelle": "TOTAL ACTIF", "montant": bilan.total_actif})
    for attr, titre in SECTIONS_PASSIF:
        rows.extend(_section_rows(titre, getattr(bilan, attr)))
    rows.append({"section": "PASSIF", "compte": "", "libelle": "TOTAL PASSIF", "montant": bilan.total_passif})
    return pd.DataFrame(rows, columns=ETAT_COLUMNS)


def _resultat_frame(compte_resultat: CompteResultat) -> pd.DataFrame:
    rows: list[dict[str, object]] = []
    for titre, lignes, total in (
        ("Produits", compte_resultat.produits, compte_resultat.total_produits),
        ("Charges", compte_resultat.charges, compte_resultat.total_charges),
    ):
        rows.extend({"section": titre, "compte": li.compte, "libelle": li.libelle, "montant": li.montant} for li in lignes)
        rows.append({"section": titre, "compte": "", "libelle": f"Total {titre.lower()}", "montant": total})
    rows.append(
        {"section": "Résultat", "compte": "", "libelle": "Résultat net", "montant": compte_resultat.resultat_net}
    )
    return pd.DataFrame(rows, columns=ETAT_COLUMNS)


def export(
    balance: BalanceGenerale,
    bilan: Bilan,
    compte_resultat: CompteResultat,
    indicateurs: Indicateurs,
    anomalies: list[Anomaly],
    output_path: Path | BytesIO,
) -> None:
    """Exporte balance, états financiers, indicateurs et anomalies dans un fichier Excel."""
    df_indicateurs = pd.DataFrame(
        [{"indicateur": k, "valeur": v} for k, v in asdict(indicateurs).items()],
        columns=INDICATEURS_COLUMNS,
    )
    anomalies_data = [
        {
            "type": a.type,
            "severity": a.severity,
            "reference": a.reference,
            "detail": a.detail,
            "expected_value": a.expected_value,
            "actual_value": a.actual_value,
        }
        for a in anomalies
    ]
    df_anomalies = pd.DataFrame(anomalies_data, columns=ANOMALIES_COLUMNS)

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        _balance_frame(balance).to_excel(writer, sheet_name="Balance", index=False)
        _bilan_frame(bilan).to_excel(writer, sheet_name="Bilan", index=False)
        _resultat_frame(compte_resultat).to_excel(writer, sheet_name="Compte de résultat", index=False)
        df_indicateurs.to_excel(writer, sheet_name="Indicateurs", index=False)
        df_anomalies.to_excel(writer, sheet_name="Anomalies", index=False)


def export_to_bytes(
    balance: BalanceGenerale,
    bilan: Bilan,
    compte_resultat: CompteResultat,
    indicateurs: Indicateurs,
    anomalies: list[Anomaly],
) -> BytesIO:
    """Exporte le classeur dans un buffer mémoire (téléchargement API)."""
    buffer = BytesIO()
    export(balance, bilan, compte_resultat, indicateurs, anomalies, buffer)
    buffer.seek(0)
    return buffer


def print_summary(
    nb_entries: int,
    bilan: Bilan,
    compte_resultat: CompteResultat,
    anomalies: list[Anomaly],
    reconciliation: ReconciliationStats | None = None,
) -> None:
    """Affiche un résumé en console."""
    print("=== Résumé ===")
    print(f"Exercice : {bilan.period.label}")
    print(f"Écritures enregistrées : {nb_entries}")
    print(f"Total actif : {bilan.total_actif:.2f}")
    print(f"Total passif : {bilan.total_passif:.2f}")
    print(f"Produits : {compte_resultat.total_produits:.2f}")
    print(f"Charges : {compte_resultat.total_charges:.2f}")
    print(f"Résultat net : {compte_resultat.resultat_net:.2f}")

    if reconciliation is not None:
        print(
            f"Rapprochement bancaire : {reconciliation.releves_rapproches}/{reconciliation.releves_total} "
            f"lignes ({reconciliation.taux_rapprochement} %), écart {reconciliation.ecart:.2f}"
        )

    n_serious = len([a for a in anomalies if a.severity != "info"])
    n_info = len([a for a in anomalies if a.severity == "info"])

    if not anomalies:
        print("Aucune anomalie détectée")
        return

    print(f"Anomalies : {n_serious} warning/error, {n_info} info")

    # Ventilation par type (ordre d'apparition)
    type_order: list[str] = []
    type_counts: Counter[str] = Counter()
    for a in anomalies:
        if a.type not in type_counts:
            type_order.append(a.type)
        type_counts[a.type] += 1

    print("  Par type :")
    for anom_type in type_order:
        print(f"    {anom_type:<24s}: {type_counts[anom_type]}")
