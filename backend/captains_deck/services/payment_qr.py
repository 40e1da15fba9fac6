"""
Demandes de paiement acompte / solde encodées en QR code au format SPD
(Short Payment Descriptor, standard des virements tchèques).
"""

import io
import logging
from typing import List

import qrcode

from captains_deck.schemas.payment import PaymentRequestResponse
from captains_deck.schemas.trip import TripRecord
from captains_deck.services.cost_engine import ExchangeRateGuard
from captains_deck.services.money import format_money

logger = logging.getLogger(__name__)

SPD_MESSAGE_MAX_LENGTH = 60

_KIND_LABELS = {"deposit": "Deposit", "final": "Final"}


def build_payment_payload(account: str, amount: float, currency: str, message: str) -> str:
    """
    SPD*1.0*ACC:<iban>*AM:<montant>*CC:<devise>*MSG:<message>*
    `*` est le séparateur du format : il est retiré du message et de l'IBAN.
    """
    account = (account or "").replace(" ", "").replace("*", "").upper()
    message = (message or "").replace("*", "").strip()[:SPD_MESSAGE_MAX_LENGTH]
    return f"SPD*1.0*ACC:{account}*AM:{amount:.2f}*CC:{currency}*MSG:{message}*"


def payment_requests(trip: TripRecord, currency: str, rate: ExchangeRateGuard) -> List[PaymentRequestResponse]:
    """
    Demandes disponibles pour la devise choisie : une par montant > 0, à
    condition qu'un IBAN existe pour cette devise. Les montants du voyage sont
    en EUR ; en CZK ils sont convertis au taux courant et arrondis à la couronne.
    """
    account = trip.captain_iban_czk if currency == "CZK" else trip.captain_iban_eur
    if not account:
        logger.debug("Pas d'IBAN %s pour le voyage %s", currency, trip.id)
        return []

    requests = []
    for kind, amount_eur in (("deposit", trip.deposit_amount), ("final", trip.final_payment_amount)):
        if not amount_eur or amount_eur <= 0:
            continue
        amount = float(round(rate.convert(amount_eur))) if currency == "CZK" else amount_eur
        requests.append(PaymentRequestResponse(
            kind=kind,
            amount=amount,
            currency=currency,
            account=account,
            payload=build_payment_payload(account, amount, currency, f"{_KIND_LABELS[kind]} {trip.name}"),
            display=format_money(amount, currency),
        ))
    return requests


def generate_qr_image(payload: str) -> bytes:
    """Génère une image PNG du QR code encodant la demande de paiement."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
