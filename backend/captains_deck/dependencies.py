"""
Dépendances FastAPI : accès aux services construits au démarrage (app.state).
"""

from fastapi import Depends, Request

from captains_deck.config import Settings
from captains_deck.security import Principal, get_principal
from captains_deck.services.enrichment import EnrichmentService
from captains_deck.services.exchange_rate import ExchangeRateService
from captains_deck.services.identity import CaptainDirectory
from captains_deck.services.store import DocumentStore
from captains_deck.services.trip_actions import TripActions


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_directory(request: Request) -> CaptainDirectory:
    return request.app.state.directory


def get_rate_service(request: Request) -> ExchangeRateService:
    return request.app.state.rate_service


def get_enrichment_service(request: Request) -> EnrichmentService:
    return request.app.state.enrichment


def get_actions(request: Request, principal: Principal = Depends(get_principal)) -> TripActions:
    """Mutations hors voyage (création de voyage, taux de change)."""
    return TripActions(
        request.app.state.store,
        principal.role,
        actor_id=principal.uid,
        in_flight=request.app.state.in_flight,
    )


def get_trip_actions(
    trip_id: str,
    request: Request,
    principal: Principal = Depends(get_principal),
) -> TripActions:
    return TripActions(
        request.app.state.store,
        principal.role,
        trip_id,
        actor_id=principal.uid,
        in_flight=request.app.state.in_flight,
    )
