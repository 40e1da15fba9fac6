"""
Schémas Pydantic pour les voyages.

Les documents du store utilisent des noms de champs en camelCase
(selectedYachtId, confirmedGuests...) : les modèles exposent du snake_case
avec des alias camelCase.

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre les champs de date et le type `datetime.date` dans Pydantic v2.
"""

import datetime as dt
import enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from captains_deck.services.cost_engine import coerce_amount
from captains_deck.services.money import parse_money


class TripStatus(str, enum.Enum):
    PLANNING = "planning"
    CONFIRMED = "confirmed"


def parse_guest_count(value: Any) -> Optional[int]:
    """Entier >= 1 ou None (valeur vide, illisible, nulle ou négative)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        count = int(parse_money(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return count if count >= 1 else None


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TripRecord(DocumentModel):
    """Miroir local du document `trips/{id}`."""

    id: str
    name: str = ""
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    status: TripStatus = TripStatus.PLANNING
    confirmed_guests: Optional[int] = None  # une fois fixé, verrouille le nombre d'invités
    selected_yacht_id: Optional[str] = None
    captain_iban_eur: Optional[str] = None
    captain_iban_czk: Optional[str] = None
    deposit_amount: Optional[float] = None
    final_payment_amount: Optional[float] = None
    captain_id: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def date_only(cls, v: Any) -> Any:
        # Les dates peuvent avoir été écrites comme datetime ISO complets
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @field_validator("confirmed_guests", mode="before")
    @classmethod
    def valid_guest_count(cls, v: Any) -> Optional[int]:
        return parse_guest_count(v)

    @classmethod
    def from_snapshot(cls, snapshot) -> "TripRecord":
        return cls.model_validate({**snapshot.data, "id": snapshot.id})


class TripCreate(BaseModel):
    name: str
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom du voyage ne peut pas être vide.")
        return v.strip()

    @model_validator(mode="after")
    def end_after_start(self) -> "TripCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("La date de fin doit suivre la date de début.")
        return self


class TripSettingsUpdate(BaseModel):
    """Réglages du capitaine ; les valeurs illisibles sont ramenées à des défauts sûrs."""

    confirmed_guests: Union[int, str, None] = None
    captain_iban_eur: Optional[str] = None
    captain_iban_czk: Optional[str] = None
    deposit_amount: Union[float, str, None] = None
    final_payment_amount: Union[float, str, None] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return {
            "confirmedGuests": parse_guest_count(self.confirmed_guests),
            "captainIbanEur": (self.captain_iban_eur or "").strip() or None,
            "captainIbanCzk": (self.captain_iban_czk or "").strip() or None,
            "depositAmount": coerce_amount(self.deposit_amount),
            "finalPaymentAmount": coerce_amount(self.final_payment_amount),
        }


class SelectYachtRequest(BaseModel):
    yacht_id: str
    guest_count: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConfirmTripRequest(BaseModel):
    guest_count: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
