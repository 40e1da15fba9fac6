"""
Router pour les options de bateau d'un voyage.
"""

from fastapi import APIRouter, Depends

from captains_deck.dependencies import get_trip_actions
from captains_deck.schemas.mutation import MutationResult
from captains_deck.schemas.yacht import YachtForm
from captains_deck.services.trip_actions import TripActions

router = APIRouter(prefix="/api/v1/trips/{trip_id}/yachts", tags=["Options de bateau"])


@router.post("", response_model=MutationResult, summary="Ajouter une option")
async def create_yacht(form: YachtForm, actions: TripActions = Depends(get_trip_actions)):
    """
    Ajoute une option de charter. Le nom est obligatoire ; les montants
    illisibles valent 0 et la capacité reste vide si elle n'est pas un entier positif.
    """
    return await actions.save_yacht(form)


@router.put("/{yacht_id}", response_model=MutationResult, summary="Modifier une option")
async def update_yacht(yacht_id: str, form: YachtForm, actions: TripActions = Depends(get_trip_actions)):
    return await actions.save_yacht(form, editing_id=yacht_id)


@router.delete("/{yacht_id}", response_model=MutationResult, summary="Supprimer une option")
async def delete_yacht(yacht_id: str, actions: TripActions = Depends(get_trip_actions)):
    """Supprime l'option ; une sélection qui la désignait devient simplement pendante."""
    return await actions.delete_yacht(yacht_id)
