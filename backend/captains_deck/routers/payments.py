"""
Router pour le suivi des paiements reçus (acomptes, soldes, autres).
"""

from fastapi import APIRouter, Depends

from captains_deck.dependencies import get_trip_actions
from captains_deck.schemas.mutation import MutationResult
from captains_deck.schemas.payment import PaymentCreate
from captains_deck.services.trip_actions import TripActions

router = APIRouter(prefix="/api/v1/trips/{trip_id}/payments", tags=["Paiements"])


@router.post("", response_model=MutationResult, summary="Enregistrer un paiement")
async def add_payment(data: PaymentCreate, actions: TripActions = Depends(get_trip_actions)):
    """Nom de l'invité et montant positif obligatoires ; devise EUR ou CZK."""
    return await actions.add_payment(data)


@router.delete("/{payment_id}", response_model=MutationResult, summary="Supprimer un paiement")
async def delete_payment(payment_id: str, actions: TripActions = Depends(get_trip_actions)):
    return await actions.delete_payment(payment_id)
