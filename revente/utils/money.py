# utils/money.py
# Normalisation des montants saisis : tolérante, jamais d'exception.
from __future__ import annotations
import re
from decimal import Decimal, InvalidOperation, Overflow, ROUND_HALF_UP

ZERO = Decimal("0")
_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")

# montants acceptés : < 10^10 ; en dessous de 10^-4 on arrondit à 0
_MAX_ADJUSTED = 9
_MIN_ADJUSTED = -4

_NUM_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def _leading_number(s: str) -> str | None:
    """Préfixe numérique à la manière de parseFloat ("12.5 €" -> "12.5")."""
    m = _NUM_RE.match(s)
    return m.group(0) if m else None


def _bounded(d: Decimal) -> Decimal | None:
    """None si non fini ou hors plage ; les valeurs minuscules deviennent 0."""
    if not d.is_finite():
        return None
    if d.is_zero():
        return d
    if d.adjusted() > _MAX_ADJUSTED:
        return None
    if d.adjusted() < _MIN_ADJUSTED:
        return ZERO
    return d


def _to_decimal(value) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _bounded(value)
    if isinstance(value, int):
        return _bounded(Decimal(value))
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return _bounded(Decimal(repr(value)))
    s = str(value).strip().replace(" ", "").replace(" ", "").replace(",", ".")
    num = _leading_number(s)
    if num is None:
        return None
    try:
        return _bounded(Decimal(num))
    except (InvalidOperation, Overflow):
        return None


def parse_money(value) -> Decimal:
    """
    Montant -> Decimal ; vide / non numérique / démesuré -> 0.
    Accepte la virgule décimale ("12,50") et les espaces de milliers.
    """
    d = _to_decimal(value)
    return ZERO if d is None else d


def is_number(value) -> bool:
    """Vrai si la saisie commence par un nombre dans la plage acceptée."""
    return _to_decimal(value) is not None


def parse_quantity(value, default: int = 1) -> int:
    """Quantité entière >= 1 ; invalide ou < 1 -> default."""
    if value is None or isinstance(value, bool):
        return default
    q = int(parse_money(value))
    return q if q >= 1 else default


def round2(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    # arrondi à l'affichage uniquement
    return f"{round2(value):.2f}"


def format_percent(value: Decimal) -> str:
    return f"{value.quantize(_TENTH, rounding=ROUND_HALF_UP):.1f}"
