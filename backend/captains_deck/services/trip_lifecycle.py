"""
Cycle de vie d'un voyage : planning → confirmed (état terminal).

La confirmation fige l'option choisie : total calculé une seule fois,
acompte / solde à 50/50, nombre d'invités verrouillé. Elle produit un unique
dictionnaire de champs, écrit en une seule mise à jour du document voyage pour
qu'aucun invité ne puisse observer un état à moitié appliqué.
"""

import logging
from typing import Iterable, Optional

from captains_deck.schemas.trip import TripRecord, TripStatus
from captains_deck.schemas.yacht import YachtOption
from captains_deck.services.cost_engine import compute_total, is_over_capacity, split_deposit

logger = logging.getLogger(__name__)


class TransitionError(ValueError):
    """Transition de statut impossible dans l'état courant."""


def toggle_selection(current_selected_id: Optional[str], yacht_id: str) -> Optional[str]:
    """Sélectionner l'option déjà sélectionnée la désélectionne ; sinon elle la remplace."""
    return None if yacht_id == current_selected_id else yacht_id


def is_guest_count_locked(trip: Optional[TripRecord]) -> bool:
    return trip is not None and trip.confirmed_guests is not None


def can_select(is_selected: bool, guest_count: int, max_guests: Optional[int]) -> bool:
    """
    Une option déjà sélectionnée reste toujours désélectionnable ; une autre ne
    peut être choisie si le nombre d'invités dépasse sa capacité.
    """
    return is_selected or not is_over_capacity(guest_count, max_guests)


def find_yacht(yachts: Iterable[YachtOption], yacht_id: Optional[str]) -> Optional[YachtOption]:
    """Résout selectedYachtId ; une référence pendante (option supprimée) donne None."""
    if not yacht_id:
        return None
    return next((y for y in yachts if y.id == yacht_id), None)


def build_confirmation(trip: TripRecord, selected: Optional[YachtOption], guest_count: int) -> dict:
    """
    Calcule la mise à jour de confirmation. Lève TransitionError si :
    - le voyage est déjà confirmé
    - aucune option n'est sélectionnée, ou elle n'existe plus
    - le nombre d'invités est < 1
    """
    if trip.status == TripStatus.CONFIRMED:
        raise TransitionError("Le voyage est déjà confirmé.")
    if not trip.selected_yacht_id:
        raise TransitionError("Aucune option sélectionnée.")
    if selected is None or selected.id != trip.selected_yacht_id:
        raise TransitionError("L'option sélectionnée est introuvable.")
    if guest_count is None or guest_count < 1:
        raise TransitionError(f"Nombre d'invités invalide : {guest_count!r}.")

    total = compute_total(selected)
    deposit, final = split_deposit(total)
    logger.debug(
        "Confirmation calculée pour le voyage %s, option %s : total %.2f, %d invités",
        trip.id, selected.id, total, guest_count,
    )
    return {
        "status": TripStatus.CONFIRMED.value,
        "depositAmount": deposit,
        "finalPaymentAmount": final,
        "confirmedGuests": int(guest_count),
    }
