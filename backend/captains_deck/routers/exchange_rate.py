"""
Router du taux de change global EUR → CZK (partagé par tous les voyages).
"""

from fastapi import APIRouter, Depends

from captains_deck.config import Settings
from captains_deck.dependencies import get_actions, get_rate_service, get_settings, get_store
from captains_deck.schemas.mutation import MutationResult
from captains_deck.schemas.settings import ExchangeRateResponse, ExchangeRateUpdate
from captains_deck.services.exchange_rate import ExchangeRateService, read_exchange_rate
from captains_deck.services.store import DocumentStore
from captains_deck.services.trip_actions import TripActions

router = APIRouter(prefix="/api/v1/settings/exchange-rate", tags=["Taux de change"])


@router.get("", response_model=ExchangeRateResponse, summary="Taux courant")
async def get_exchange_rate(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Taux enregistré, ou le taux par défaut s'il n'a jamais été fixé."""
    return ExchangeRateResponse(rate=await read_exchange_rate(store, settings.DEFAULT_EXCHANGE_RATE))


@router.put("", response_model=MutationResult, summary="Fixer le taux manuellement")
async def set_exchange_rate(data: ExchangeRateUpdate, actions: TripActions = Depends(get_actions)):
    return await actions.set_exchange_rate(data.rate)


@router.post("/refresh", response_model=MutationResult, summary="Rafraîchir le taux depuis l'API publique")
async def refresh_exchange_rate(
    actions: TripActions = Depends(get_actions),
    service: ExchangeRateService = Depends(get_rate_service),
):
    """En cas d'échec réseau, le dernier taux connu est conservé (ok=false)."""
    return await actions.refresh_exchange_rate(service)
