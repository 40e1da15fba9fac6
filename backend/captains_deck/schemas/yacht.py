"""
Schémas Pydantic pour les options de bateau (une option = une proposition de charter).
"""

import datetime as dt
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from captains_deck.schemas.trip import DocumentModel, parse_guest_count
from captains_deck.services.cost_engine import coerce_amount


class YachtOption(DocumentModel):
    """Miroir local du document `trips/{tripId}/yachts/{id}`."""

    id: str
    name: str = ""
    link: Optional[str] = None
    details_link: Optional[str] = None
    image_url: Optional[str] = None
    price: float = 0.0
    charter_pack: float = 0.0
    extras: float = 0.0
    marina: str = ""
    max_guests: Optional[int] = None
    recommended: bool = False
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("price", "charter_pack", "extras", mode="before")
    @classmethod
    def non_negative_amount(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("max_guests", mode="before")
    @classmethod
    def positive_capacity(cls, v: Any) -> Optional[int]:
        return parse_guest_count(v)

    @field_validator("marina", mode="before")
    @classmethod
    def marina_text(cls, v: Any) -> str:
        return v or ""

    @field_validator("recommended", mode="before")
    @classmethod
    def recommended_flag(cls, v: Any) -> bool:
        return bool(v)

    @classmethod
    def from_snapshot(cls, snapshot) -> "YachtOption":
        return cls.model_validate({**snapshot.data, "id": snapshot.id})


class YachtForm(BaseModel):
    """
    Saisie du capitaine (formulaire ou import magique). Les montants peuvent
    arriver en texte libre ("3 459,00") et sont normalisés à l'écriture.
    """

    name: str = ""
    link: Optional[str] = None
    details_link: Optional[str] = None
    image_url: Optional[str] = None
    price: Union[float, str, None] = None
    charter_pack: Union[float, str, None] = None
    extras: Union[float, str, None] = None
    marina: Optional[str] = None
    max_guests: Union[int, str, None] = None
    recommended: bool = False

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return {
            "name": self.name.strip(),
            "link": self.link or None,
            "detailsLink": self.details_link or None,
            "imageUrl": self.image_url or None,
            "price": coerce_amount(self.price),
            "charterPack": coerce_amount(self.charter_pack),
            "extras": coerce_amount(self.extras),
            "marina": (self.marina or "").strip(),
            "maxGuests": parse_guest_count(self.max_guests),
            "recommended": bool(self.recommended),
        }
