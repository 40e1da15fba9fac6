"""
Normalisation des montants : lecture des prix saisis ou scrapés, affichage en devise.

Règle de lecture (prix hétérogènes : "3 459,00 €", "1.234,56", "1,234.56") :
- espaces, espaces insécables et apostrophes → séparateurs de milliers (ignorés)
- si la virgule ET le point sont présents : le plus à droite est le séparateur
  décimal, l'autre un séparateur de milliers
- un même séparateur présent plusieurs fois → séparateur de milliers
- un séparateur présent une seule fois → séparateur décimal
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from babel.numbers import format_currency

PLACEHOLDER = "-"

# Convention d'affichage par devise : (locale Babel, motif sans décimales)
_DISPLAY_FORMATS = {
    "EUR": ("en_IE", "¤#,##0"),
    "CZK": ("cs_CZ", "#,##0\u00a0¤"),
}
_DEFAULT_DISPLAY = ("en_IE", "¤#,##0")

_NOT_NUMERIC = re.compile(r"[^\d,.]")

Number = Union[int, float, Decimal]


def parse_money(text: Optional[Union[str, Number]]) -> float:
    """
    Convertit un prix en texte libre en nombre. Ne lève jamais d'exception :
    une entrée vide, absente ou illisible vaut 0.
    """
    if text is None:
        return 0.0
    if isinstance(text, bool):
        return 0.0
    if isinstance(text, (int, float, Decimal)):
        value = float(text)
        return value if math.isfinite(value) else 0.0

    clean = _NOT_NUMERIC.sub("", str(text))
    if not clean:
        return 0.0

    clean = _normalize_separators(clean)
    try:
        value = float(clean)
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def _normalize_separators(clean: str) -> str:
    """Ramène une chaîne de chiffres + séparateurs à la notation float Python."""
    commas = clean.count(",")
    dots = clean.count(".")

    if commas and dots:
        decimal_sep = "," if clean.rfind(",") > clean.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        clean = clean.replace(thousands_sep, "")
        if clean.count(decimal_sep) > 1:
            # "1.234.567,8.9" : rien de raisonnable, on garde le dernier
            head, _, tail = clean.rpartition(decimal_sep)
            clean = head.replace(decimal_sep, "") + "." + tail
        return clean.replace(",", ".")

    sep = "," if commas else "." if dots else None
    if sep is None:
        return clean
    if clean.count(sep) > 1:
        return clean.replace(sep, "")
    return clean.replace(",", ".")


def round_display(amount: Number) -> Decimal:
    """Arrondi à l'unité (demi vers le haut) utilisé pour l'affichage."""
    return Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def format_money(amount: Optional[Number], currency: str = "EUR") -> str:
    """
    Formate un montant en devise, sans décimales (affichage uniquement).
    Retourne le placeholder "-" si le montant est absent.
    """
    if amount is None:
        return PLACEHOLDER
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return PLACEHOLDER
    if not math.isfinite(value):
        return PLACEHOLDER

    code = (currency or "EUR").strip().upper()
    locale, pattern = _DISPLAY_FORMATS.get(code, _DEFAULT_DISPLAY)
    return format_currency(
        round_display(value),
        code,
        format=pattern,
        locale=locale,
        currency_digits=False,
    )
