"""Contrôles de cohérence des écritures enregistrées."""

from __future__ import annotations

from collections import defaultdict

from syscohada_ledger.models import STATUT_BROUILLON, Anomaly, JournalEntry, JournalLine

BALANCE_TOLERANCE = 0.01


class JournalChecker:
    """Écritures hors brouillon déséquilibrées, écritures sans ligne, totaux d'en-tête faux."""

    @staticmethod
    def check(entries: list[JournalEntry], lines: list[JournalLine]) -> list[Anomaly]:
        by_entry: dict[int, list[JournalLine]] = defaultdict(list)
        for line in lines:
            by_entry[line.entry_id].append(line)

        anomalies: list[Anomaly] = []
        for entry in entries:
            entry_lines = by_entry.get(entry.id, [])
            if not entry_lines:
                anomalies.append(
                    Anomaly(
                        type="entry_without_lines",
                        severity="error",
                        reference=entry.numero_piece,
                        detail=f"Écriture {entry.numero_piece} sans aucune ligne",
                        expected_value=None,
                        actual_value="0",
                    )
                )
                continue

            total_debit = round(sum(li.debit for li in entry_lines), 2)
            total_credit = round(sum(li.credit for li in entry_lines), 2)

            if entry.status != STATUT_BROUILLON and abs(total_debit - total_credit) >= BALANCE_TOLERANCE:
                anomalies.append(
                    Anomaly(
                        type="entry_unbalanced",
                        severity="error",
                        reference=entry.numero_piece,
                        detail=(
                            f"Écriture {entry.numero_piece} ({entry.status}) déséquilibrée : "
                            f"débit={total_debit}, crédit={total_credit}"
                        ),
                        expected_value=str(total_debit),
                        actual_value=str(total_credit),
                    )
                )

            if (
                abs(entry.total_debit - total_debit) >= BALANCE_TOLERANCE
                or abs(entry.total_credit - total_credit) >= BALANCE_TOLERANCE
            ):
                anomalies.append(
                    Anomaly(
                        type="entry_totals_mismatch",
                        severity="warning",
                        reference=entry.numero_piece,
                        detail=(
                            f"Totaux d'en-tête de {entry.numero_piece} différents des lignes : "
                            f"en-tête {entry.total_debit}/{entry.total_credit}, "
                            f"lignes {total_debit}/{total_credit}"
                        ),
                        expected_value=f"{total_debit}/{total_credit}",
                        actual_value=f"{entry.total_debit}/{entry.total_credit}",
                    )
                )

        return anomalies
