"""
Schémas Pydantic pour le suivi des paiements (acomptes, soldes, autres).
"""

import datetime as dt
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from captains_deck.schemas.trip import DocumentModel
from captains_deck.services.cost_engine import coerce_amount

Currency = Literal["EUR", "CZK"]
PaymentType = Literal["deposit", "final", "other"]


class PaymentRecord(DocumentModel):
    """Miroir local du document `trips/{tripId}/payments/{id}`."""

    id: str
    guest_name: str = ""
    amount: float = 0.0
    currency: Currency = "EUR"
    type: PaymentType = "other"
    date: Optional[dt.datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def non_negative_amount(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("currency", mode="before")
    @classmethod
    def known_currency(cls, v: Any) -> str:
        return v if v in ("EUR", "CZK") else "EUR"

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, v: Any) -> str:
        return v if v in ("deposit", "final", "other") else "other"

    @classmethod
    def from_snapshot(cls, snapshot) -> "PaymentRecord":
        return cls.model_validate({**snapshot.data, "id": snapshot.id})


class PaymentCreate(BaseModel):
    guest_name: str = ""
    amount: Union[float, str, None] = None
    currency: Currency = "EUR"
    type: PaymentType = "deposit"

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return {
            "guestName": self.guest_name.strip(),
            "amount": coerce_amount(self.amount),
            "currency": self.currency,
            "type": self.type,
        }


class PaymentRequestResponse(BaseModel):
    """Demande de paiement prête à être encodée en QR code (format SPD)."""

    kind: Literal["deposit", "final"]
    amount: float
    currency: Currency
    account: str
    payload: str
    display: str
