"""
Router pour les voyages : tableau de bord, vue calculée, réglages, sélection
d'une option, confirmation et demandes de paiement (QR SPD).
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from captains_deck.config import Settings
from captains_deck.dependencies import get_actions, get_settings, get_store, get_trip_actions
from captains_deck.schemas.mutation import MutationResult
from captains_deck.schemas.payment import Currency, PaymentRequestResponse
from captains_deck.schemas.trip import (
    ConfirmTripRequest,
    SelectYachtRequest,
    TripCreate,
    TripRecord,
    TripSettingsUpdate,
)
from captains_deck.schemas.view import TripViewSnapshot
from captains_deck.security import Principal, get_principal
from captains_deck.services import payment_qr
from captains_deck.services.cost_engine import ExchangeRateGuard
from captains_deck.services.exchange_rate import read_exchange_rate
from captains_deck.services.store import DocumentStore, read_once, trip_path
from captains_deck.services.trip_actions import TripActions
from captains_deck.services.trip_sync import TripView, list_trips

router = APIRouter(prefix="/api/v1/trips", tags=["Voyages"])


@router.get("", response_model=List[TripRecord], summary="Lister les voyages")
async def get_trips(store: DocumentStore = Depends(get_store)):
    """Retourne tous les voyages, du plus récent au plus ancien."""
    return await list_trips(store)


@router.post("", response_model=MutationResult, summary="Créer un voyage")
async def create_trip(data: TripCreate, actions: TripActions = Depends(get_actions)):
    """Crée un voyage au statut planning (capitaine uniquement)."""
    return await actions.create_trip(data)


@router.get("/{trip_id}/view", response_model=TripViewSnapshot, summary="Vue calculée d'un voyage")
async def get_trip_view(
    trip_id: str,
    guest_count: Optional[int] = None,
    search: str = "",
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(get_principal),
):
    """
    Photographie de la vue voyage : options avec coût total et part par invité
    (EUR et CZK), sélection, paiements et total encaissé.
    `guest_count` est ignoré si le nombre d'invités est verrouillé.
    """
    async with TripView(store, trip_id, settings.DEFAULT_GUEST_COUNT, settings.DEFAULT_EXCHANGE_RATE) as view:
        await view.wait_for(lambda v: v.ready)
        if view.trip is None:
            raise HTTPException(status_code=404, detail="Voyage introuvable.")
        if guest_count is not None:
            view.set_guest_count(guest_count)
        return view.snapshot(principal.role, search)


@router.put("/{trip_id}/settings", response_model=MutationResult, summary="Réglages du voyage")
async def update_trip_settings(data: TripSettingsUpdate, actions: TripActions = Depends(get_trip_actions)):
    """Nombre d'invités confirmé, IBAN EUR / CZK, montants d'acompte et de solde."""
    return await actions.update_trip_settings(data)


@router.post("/{trip_id}/select", response_model=MutationResult, summary="Sélectionner une option")
async def select_yacht(data: SelectYachtRequest, actions: TripActions = Depends(get_trip_actions)):
    """
    Bascule la sélection : re-sélectionner l'option courante la désélectionne.
    Refusé si la capacité de l'option est dépassée.
    """
    return await actions.select_yacht(data.yacht_id, data.guest_count)


@router.post("/{trip_id}/confirm", response_model=MutationResult, summary="Confirmer le voyage")
async def confirm_trip(data: ConfirmTripRequest, actions: TripActions = Depends(get_trip_actions)):
    """Fige l'option sélectionnée : acompte / solde à 50/50, nombre d'invités verrouillé."""
    return await actions.confirm_trip(data.guest_count)


async def _payment_requests(
    trip_id: str, currency: str, store: DocumentStore, settings: Settings
) -> List[PaymentRequestResponse]:
    snapshot = await read_once(store, trip_path(trip_id))
    if not snapshot.exists:
        raise HTTPException(status_code=404, detail="Voyage introuvable.")
    rate = await read_exchange_rate(store, settings.DEFAULT_EXCHANGE_RATE)
    return payment_qr.payment_requests(TripRecord.from_snapshot(snapshot), currency, ExchangeRateGuard(rate))


@router.get(
    "/{trip_id}/payment-requests",
    response_model=List[PaymentRequestResponse],
    summary="Demandes de paiement du voyage",
)
async def get_payment_requests(
    trip_id: str,
    currency: Currency = "EUR",
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Acompte et solde à régler dans la devise choisie (liste vide sans IBAN)."""
    return await _payment_requests(trip_id, currency, store, settings)


@router.get(
    "/{trip_id}/payment-requests/{kind}.png",
    response_class=Response,
    summary="QR code d'une demande de paiement",
)
async def get_payment_qr(
    trip_id: str,
    kind: Literal["deposit", "final"],
    currency: Currency = "EUR",
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Image PNG du QR code SPD, scannable par une application bancaire."""
    requests = await _payment_requests(trip_id, currency, store, settings)
    match = next((r for r in requests if r.kind == kind), None)
    if match is None:
        raise HTTPException(status_code=404, detail=f"Aucune demande de paiement {kind} en {currency}.")
    return Response(content=payment_qr.generate_qr_image(match.payload), media_type="image/png")
