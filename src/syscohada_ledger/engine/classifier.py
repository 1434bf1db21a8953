"""Classement des comptes SYSCOHADA en rubriques d'états financiers."""

from __future__ import annotations

from syscohada_ledger.config.loader import DEFAULT_RULES, DEFAULT_SIGN_FALLBACK, AppConfig
from syscohada_ledger.models import Bucket, ClassificationError

LIBELLES_SYSCOHADA: dict[str, str] = {
    "10": "Capital social",
    "11": "Réserves",
    "12": "Report à nouveau",
    "13": "Résultat net de l'exercice",
    "16": "Emprunts et dettes",
    "20": "Charges immobilisées",
    "21": "Immobilisations incorporelles",
    "22": "Terrains",
    "23": "Bâtiments",
    "24": "Matériel et outillage",
    "25": "Avances et acomptes sur immobilisations",
    "27": "Autres immobilisations financières",
    "28": "Amortissements",
    "31": "Marchandises",
    "32": "Matières premières",
    "33": "Autres approvisionnements",
    "34": "En-cours de production",
    "35": "Produits fabriqués",
    "37": "Stocks à l'extérieur",
    "39": "Dépréciations des stocks",
    "40": "Fournisseurs",
    "41": "Clients",
    "42": "Personnel",
    "43": "Organismes sociaux",
    "44": "État",
    "443": "État, TVA facturée",
    "445": "État, TVA récupérable",
    "45": "Organismes internationaux",
    "46": "Associés et groupe",
    "47": "Débiteurs et créditeurs divers",
    "48": "Créances et dettes HAO",
    "49": "Dépréciations",
    "50": "Titres de placement",
    "51": "Valeurs à encaisser",
    "52": "Banques",
    "53": "Établissements financiers",
    "54": "Instruments de trésorerie",
    "56": "Banques, crédits de trésorerie",
    "57": "Caisse",
    "58": "Régies d'avances et accréditifs",
    "59": "Dépréciations",
    "60": "Achats",
    "61": "Transports",
    "62": "Services extérieurs A",
    "63": "Services extérieurs B",
    "64": "Impôts et taxes",
    "65": "Autres charges",
    "66": "Charges de personnel",
    "67": "Frais financiers",
    "68": "Dotations aux amortissements",
    "69": "Dotations aux provisions",
    "70": "Ventes",
    "71": "Subventions d'exploitation",
    "72": "Production immobilisée",
    "73": "Variations de stocks",
    "75": "Autres produits",
    "77": "Revenus financiers",
    "78": "Transferts de charges",
    "79": "Reprises de provisions",
    "81": "Valeurs comptables des cessions",
    "82": "Produits des cessions",
    "83": "Charges HAO",
    "84": "Produits HAO",
    "85": "Dotations HAO",
    "86": "Reprises HAO",
    "87": "Participation des travailleurs",
    "88": "Subventions d'équilibre",
    "89": "Impôts sur le résultat",
}


def libelle_compte(numero: str, overrides: dict[str, str] | None = None) -> str:
    """Retourne le libellé SYSCOHADA du préfixe le plus long (2 caractères minimum).

    Examples:
        >>> libelle_compte("4111")
        'Clients'
        >>> libelle_compte("9999")
        'Compte 9999'
    """
    table = {**LIBELLES_SYSCOHADA, **(overrides or {})}
    for i in range(len(numero), 1, -1):
        libelle = table.get(numero[:i])
        if libelle:
            return libelle
    return f"Compte {numero}"


class ChartClassifier:
    """Table ordonnée de règles (préfixe → rubrique) + repli sur le signe par classe.

    Le préfixe le plus long gagne. Sans règle de préfixe, la classe du compte
    peut avoir une règle de signe (solde >= 0, solde < 0). Sinon le compte n'a
    pas de rubrique et ``ClassificationError`` est levée.
    """

    def __init__(
        self,
        rules: list[tuple[str, Bucket]] | None = None,
        sign_fallback: dict[str, tuple[Bucket, Bucket]] | None = None,
    ) -> None:
        ordered = rules if rules is not None else DEFAULT_RULES
        # tri stable : à longueur égale, l'ordre de déclaration est conservé
        self._rules = sorted(ordered, key=lambda rule: len(rule[0]), reverse=True)
        self._sign_fallback = sign_fallback if sign_fallback is not None else DEFAULT_SIGN_FALLBACK

    @classmethod
    def from_config(cls, config: AppConfig) -> ChartClassifier:
        return cls(config.classification_rules, config.sign_fallback)

    def classify(self, account_numero: str, solde: float) -> Bucket:
        """Rubrique du compte pour un solde (débit − crédit) donné."""
        if not account_numero or not account_numero[0].isdigit() or account_numero[0] == "0":
            raise ClassificationError(f"Compte '{account_numero}' : classe inconnue")

        for prefix, bucket in self._rules:
            if account_numero.startswith(prefix):
                return bucket

        fallback = self._sign_fallback.get(account_numero[0])
        if fallback is not None:
            debiteur, crediteur = fallback
            return debiteur if solde >= 0 else crediteur

        raise ClassificationError(
            f"Compte '{account_numero}' : aucune rubrique pour la classe {account_numero[0]}"
        )
