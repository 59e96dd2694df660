# core/services/profit.py
"""
Calcul de rentabilité d'une fiche produit.

Toutes les valeurs restent en Decimal non arrondi : l'arrondi à 2 décimales
se fait à l'affichage (format_money / format_percent), jamais ici, pour ne
pas cumuler d'erreurs dans les agrégats du tableau de bord.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Mapping

from revente.core.models import ProductRecord, ProfitBreakdown, FEE_FIELDS
from revente.utils.money import ZERO, parse_money, parse_quantity, round2

_HUNDRED = Decimal(100)

# alias externes acceptés quand on reçoit un dict brut (formulaire, import)
_ALIASES = {
    "prix_achat": "prixAchat",
    "prix_vente": "prixVente",
    "frais_port": "fraisPort",
    "commission_plateforme": "commissionPlateforme",
    "frais_emballage": "fraisEmballage",
    "frais_annexes": "fraisAnnexes",
}


def _field(record, name: str):
    if isinstance(record, ProductRecord):
        return getattr(record, name)
    if isinstance(record, Mapping):
        if name in record:
            return record[name]
        return record.get(_ALIASES.get(name, name))
    return getattr(record, name, None)


def calculate(record) -> ProfitBreakdown:
    """
    record : ProductRecord ou dict (noms Python ou noms externes).
    Entrées manquantes / non numériques -> 0 (quantité -> 1).
    """
    c = parse_money(_field(record, "prix_achat"))
    p = parse_money(_field(record, "prix_vente"))
    q = parse_quantity(_field(record, "quantite"))
    fees = sum((parse_money(_field(record, f)) for f in FEE_FIELDS), ZERO)

    total_cost = c * q + fees
    total_revenue = p * q
    net_profit = total_revenue - total_cost
    roi = (net_profit / total_cost) * _HUNDRED if total_cost > 0 else ZERO
    return ProfitBreakdown(
        total_cost=total_cost,
        total_revenue=total_revenue,
        net_profit=net_profit,
        profit_per_unit=net_profit / q,
        roi_percentage=roi,
    )


def derived_fields(prix_achat: Decimal, prix_vente: Decimal, frais: Decimal, quantite: int) -> dict:
    """Bénéfices « affichage » persistés avec la fiche (frais forfaitaire unique)."""
    unit = prix_vente - prix_achat - frais
    return {
        "benefice_unitaire": round2(unit),
        "benefice_total": round2(unit * quantite),
    }
