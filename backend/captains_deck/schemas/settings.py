"""
Schémas Pydantic pour les réglages globaux (taux de change EUR → CZK partagé).
"""

from pydantic import BaseModel, Field


class ExchangeRateResponse(BaseModel):
    rate: float


class ExchangeRateUpdate(BaseModel):
    rate: float = Field(gt=0, allow_inf_nan=False)
