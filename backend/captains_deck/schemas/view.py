"""
Schémas Pydantic de la vue « voyage » calculée à partir des miroirs locaux.
Ce sont les objets poussés sur le websocket live et retournés par GET /view.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from captains_deck.schemas.payment import PaymentRecord
from captains_deck.schemas.trip import TripRecord
from captains_deck.schemas.yacht import YachtOption


class YachtRow(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    yacht: YachtOption
    total_eur: float
    per_guest_eur: float
    per_guest_czk: float
    total_display: str
    per_guest_eur_display: str
    per_guest_czk_display: str
    is_selected: bool
    over_capacity: bool
    can_select: bool      # faux pour un invité, ou si capacité dépassée sur une option non sélectionnée


class TripViewSnapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    trip: Optional[TripRecord] = None
    yachts: List[YachtRow] = []
    payments: List[PaymentRecord] = []
    selected_yacht_id: Optional[str] = None
    exchange_rate: float
    guest_count: int
    guest_count_locked: bool
    total_paid_eur: float
    total_paid_display: str
    role: str
    loading: bool
    version: int
