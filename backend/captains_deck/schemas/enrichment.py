"""
Schémas Pydantic pour l'import magique d'une fiche bateau depuis une URL.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from captains_deck.schemas.yacht import YachtForm


class EnrichmentRequest(BaseModel):
    url: str
    current: YachtForm = Field(default_factory=YachtForm)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnrichmentResult(BaseModel):
    ok: bool
    fields: YachtForm
    source: Optional[str] = None          # stratégie de récupération qui a réussi
    unavailable: bool = False             # toutes les stratégies ont échoué
    busy: bool = False                    # un import est déjà en cours
    error_display_seconds: Optional[int] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
