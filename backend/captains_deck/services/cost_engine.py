"""
Moteur d'agrégation des coûts : total d'une option, part par invité,
conversion EUR → CZK et répartition acompte / solde.

Toutes les fonctions sont pures. Aucun arrondi n'est appliqué ici :
l'arrondi à l'unité n'a lieu qu'à l'affichage (services.money.format_money).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple

from captains_deck.services.money import parse_money

logger = logging.getLogger(__name__)

COST_COMPONENTS = ("price", "charter_pack", "extras")
DEPOSIT_SHARE = 0.5


class GuestCountError(ValueError):
    """Nombre d'invités < 1 : la part par invité n'a pas de sens."""


def coerce_amount(value: Any) -> float:
    """Montant >= 0 ; toute valeur absente, illisible ou négative vaut 0."""
    # parse_money ignore le signe : "-200" lirait 200
    if isinstance(value, str) and value.strip().startswith("-"):
        return 0.0
    amount = parse_money(value)
    return amount if amount > 0 else 0.0


def _component(option: Any, name: str) -> Any:
    if isinstance(option, Mapping):
        # Les documents du store utilisent le camelCase
        camel = "charterPack" if name == "charter_pack" else name
        return option.get(name, option.get(camel))
    return getattr(option, name, None)


def compute_total(option: Any) -> float:
    """Prix + pack charter + extras, chaque composante ramenée à un nombre >= 0."""
    return sum(coerce_amount(_component(option, name)) for name in COST_COMPONENTS)


def per_guest(total: float, guest_count: int) -> float:
    """Part par invité. Lève GuestCountError si guest_count < 1."""
    if guest_count is None or guest_count < 1:
        raise GuestCountError(f"Nombre d'invités invalide : {guest_count!r} (minimum 1).")
    return total / guest_count


def is_valid_rate(rate: Any) -> bool:
    if isinstance(rate, bool):
        return False
    try:
        value = float(rate)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


def convert(amount_eur: float, rate: Any, fallback: float) -> float:
    """Conversion EUR → devise étrangère ; un taux invalide est remplacé par `fallback`."""
    if not is_valid_rate(rate):
        logger.warning("Taux de change invalide (%r), repli sur %s", rate, fallback)
        rate = fallback
    return amount_eur * float(rate)


class ExchangeRateGuard:
    """
    Retient le dernier taux valide observé. Un taux NaN, infini, nul ou négatif
    ne remplace jamais le précédent et n'atteint pas l'affichage.
    """

    def __init__(self, initial: float):
        if not is_valid_rate(initial):
            raise ValueError(f"Taux initial invalide : {initial!r}")
        self._rate = float(initial)

    @property
    def rate(self) -> float:
        return self._rate

    def observe(self, rate: Any) -> float:
        if is_valid_rate(rate):
            self._rate = float(rate)
        return self._rate

    def convert(self, amount_eur: float, rate: Any = None) -> float:
        if rate is None:
            return amount_eur * self._rate
        return convert(amount_eur, rate, self._rate)

    def to_eur(self, amount: float, currency: str) -> float:
        return to_eur(amount, currency, self._rate)


def is_over_capacity(guest_count: int, max_guests: Optional[int]) -> bool:
    """Vrai si une capacité est renseignée (> 0) et dépassée. Purement indicatif."""
    if not max_guests or max_guests <= 0:
        return False
    return guest_count > max_guests


def split_deposit(total: float) -> Tuple[float, float]:
    """Répartition acompte / solde à 50/50, calculée une seule fois à la confirmation."""
    deposit = total * DEPOSIT_SHARE
    return deposit, total - deposit


def to_eur(amount: float, currency: str, rate: float) -> float:
    """Ramène un paiement en EUR ; les CZK sont divisés par le taux courant."""
    if (currency or "EUR").upper() == "CZK":
        return amount / rate
    return amount


def total_paid_eur(payments: Iterable[Any], rate: float) -> float:
    """Total encaissé (estimation en EUR) sur une liste de paiements."""
    total = 0.0
    for payment in payments:
        amount = coerce_amount(_payment_field(payment, "amount"))
        currency = _payment_field(payment, "currency") or "EUR"
        total += to_eur(amount, currency, rate)
    return total


def _payment_field(payment: Any, name: str) -> Any:
    if isinstance(payment, Mapping):
        return payment.get(name)
    return getattr(payment, name, None)


@dataclass(frozen=True)
class CostBreakdown:
    total_eur: float
    per_guest_eur: float
    per_guest_czk: float


def breakdown(option: Any, guest_count: int, rate: ExchangeRateGuard) -> CostBreakdown:
    total = compute_total(option)
    share = per_guest(total, guest_count)
    return CostBreakdown(
        total_eur=total,
        per_guest_eur=share,
        per_guest_czk=rate.convert(share),
    )
