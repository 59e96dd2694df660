# core/services/dashboard.py
"""Agrégats du tableau de bord. Sommes en Decimal non arrondi."""
from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from revente.core.models import (
    ProductRecord, Preferences, IN_STOCK_STATUSES, STATUS_SOLD, STATUS_SHIPPED,
)
from revente.core.services.profit import calculate
from revente.utils.money import ZERO

MONTHS = ["Jan", "Fév", "Mar", "Avr", "Mai", "Juin", "Juil", "Aoû", "Sep", "Oct", "Nov", "Déc"]

# (seuil, emoji, nom, description)
SALES_BADGES = [
    (1, "🎯", "Premier Vendeur", "1 produit vendu"),
    (10, "⭐", "Professionnel", "10 produits vendus"),
    (50, "👑", "Maître Vendeur", "50 produits vendus"),
    (100, "💎", "Légende", "100 produits vendus"),
]
PROFIT_BADGES = [
    (100, "💰", "Profit 100€", "Profit > 100€"),
    (500, "🚀", "Profit 500€", "Profit > 500€"),
    (1000, "🏆", "Magnate", "Profit > 1000€"),
]


def sold(records: Iterable[ProductRecord]) -> list:
    return [r for r in records if r.statut == STATUS_SOLD]


def total_profit(records: Iterable[ProductRecord]) -> Decimal:
    return sum((calculate(r).net_profit for r in sold(records)), ZERO)


def stock_value(records: Iterable[ProductRecord]) -> Decimal:
    return sum((r.prix_achat * r.quantite for r in records), ZERO)


def potential_revenue(records: Iterable[ProductRecord]) -> Decimal:
    return sum((r.prix_vente * r.quantite for r in records), ZERO)


def average_roi(records: Iterable[ProductRecord]) -> Decimal:
    s = sold(records)
    if not s:
        return ZERO
    return sum((calculate(r).roi_percentage for r in s), ZERO) / len(s)


def _month_of(r: ProductRecord) -> str:
    return (r.date_vente or "")[:7]


def month_profit(records: Iterable[ProductRecord], today: date | None = None) -> Decimal:
    ym = (today or date.today()).strftime("%Y-%m")
    return sum((calculate(r).net_profit for r in sold(records) if _month_of(r) == ym), ZERO)


def goal_progress(records: Sequence[ProductRecord], goal: Decimal, today: date | None = None) -> Decimal:
    """Pourcentage de l'objectif mensuel atteint ; objectif <= 0 -> 0."""
    if goal <= 0:
        return ZERO
    return month_profit(records, today) / goal * 100


def profit_by_month(records: Iterable[ProductRecord], year: int | None = None) -> list:
    """12 cases (janvier..décembre) pour l'année donnée (année courante par défaut)."""
    year = year or date.today().year
    buckets = [ZERO] * 12
    for r in sold(records):
        d = r.date_vente or ""
        if len(d) >= 7 and d[:4] == str(year) and d[5:7].isdigit():
            m = int(d[5:7])
            if 1 <= m <= 12:
                buckets[m - 1] += calculate(r).net_profit
    return buckets


def top_sales(records: Iterable[ProductRecord], limit: int = 5) -> list:
    return sorted(sold(records), key=lambda r: calculate(r).net_profit, reverse=True)[:limit]


def badges(records: Sequence[ProductRecord]) -> list:
    n = len(sold(records))
    profit = total_profit(records)
    out = []
    for threshold, emoji, name, desc in SALES_BADGES:
        if n >= threshold:
            out.append({"emoji": emoji, "name": name, "desc": desc})
    for threshold, emoji, name, desc in PROFIT_BADGES:
        if profit >= threshold:
            out.append({"emoji": emoji, "name": name, "desc": desc})
    return out


def expenses_total(prefs: Preferences) -> Decimal:
    return sum((e.amount for e in prefs.expenses), ZERO)


def summary(records: Sequence[ProductRecord], prefs: Preferences, today: date | None = None) -> dict:
    records = list(records)
    in_stock = [r for r in records if r.statut in IN_STOCK_STATUSES or not r.statut]
    return {
        "totalProducts": len(records),
        "inStock": len(in_stock),
        "soldCount": len(sold(records)),
        "shippedCount": sum(1 for r in records if r.statut == STATUS_SHIPPED),
        "totalProfit": total_profit(records),
        "stockValue": stock_value(records),
        "potentialRevenue": potential_revenue(records),
        "averageRoi": average_roi(records),
        "monthlyGoal": prefs.monthly_goal,
        "monthProfit": month_profit(records, today),
        "goalProgress": goal_progress(records, prefs.monthly_goal, today),
        "profitByMonth": dict(zip(MONTHS, profit_by_month(records, (today or date.today()).year))),
        "topSales": [
            {"id": r.id, "nom": r.nom, **calculate(r).to_dict()} for r in top_sales(records)
        ],
        "expensesTotal": expenses_total(prefs),
        "badges": badges(records),
    }
