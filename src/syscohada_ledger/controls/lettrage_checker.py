"""Contrôle des groupes de lettrage soldés."""

from __future__ import annotations

import logging
from collections import defaultdict

from syscohada_ledger.models import Anomaly, JournalLine

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.01


class LettrageChecker:
    """Vérifie que chaque groupe (compte, lettre) est soldé (∑ débits == ∑ crédits)."""

    @staticmethod
    def check(lines: list[JournalLine]) -> list[Anomaly]:
        """Groupe les lignes lettrées par compte et lettre, vérifie l'équilibre."""
        groups: dict[tuple[str, str], list[JournalLine]] = defaultdict(list)

        for line in lines:
            if line.lettre:
                groups[(line.account_numero, line.lettre)].append(line)

        anomalies: list[Anomaly] = []

        for (compte, lettre), group in sorted(groups.items()):
            total_debit = round(sum(li.debit for li in group), 2)
            total_credit = round(sum(li.credit for li in group), 2)
            diff = round(abs(total_debit - total_credit), 2)

            if diff >= BALANCE_TOLERANCE:
                anomalies.append(
                    Anomaly(
                        type="lettrage_unbalanced",
                        severity="error",
                        reference=f"{compte}/{lettre}",
                        detail=(
                            f"Groupe de lettrage {lettre} du compte {compte} déséquilibré : "
                            f"débits={total_debit}, crédits={total_credit}, "
                            f"écart={diff}"
                        ),
                        expected_value=str(total_debit),
                        actual_value=str(total_credit),
                    )
                )

        if anomalies:
            logger.warning("%d groupes de lettrage déséquilibrés", len(anomalies))
        return anomalies
