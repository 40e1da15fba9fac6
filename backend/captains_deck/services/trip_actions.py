"""
Mutations d'un voyage : options de bateau, sélection, confirmation, réglages,
paiements et taux de change.

Règles communes :
- toute mutation est réservée au capitaine ; un invité obtient un refus
  silencieux et aucun appel au store n'est effectué
- les erreurs de store / réseau sont interceptées ici et converties en
  MutationResult(ok=False, message=...) : rien ne remonte à l'appelant
- une mutation déjà en cours pour le même voyage et la même session est refusée
- les miroirs locaux ne sont jamais modifiés : seul l'écho de l'abonnement
  rend l'écriture visible
"""

import functools
import logging
from typing import Hashable, Optional, Set

from captains_deck.schemas.mutation import MutationResult
from captains_deck.schemas.payment import PaymentCreate
from captains_deck.schemas.trip import TripCreate, TripRecord, TripSettingsUpdate, TripStatus
from captains_deck.schemas.yacht import YachtForm, YachtOption
from captains_deck.services.cost_engine import is_valid_rate
from captains_deck.services.exchange_rate import ExchangeRateService
from captains_deck.services.roles import Role, captain_only
from captains_deck.services.store import (
    SERVER_TIMESTAMP,
    SETTINGS_DOC,
    TRIPS,
    SharedStore,
    payment_path,
    payments_path,
    read_once,
    trip_path,
    yacht_path,
    yachts_path,
)
from captains_deck.services.trip_lifecycle import (
    TransitionError,
    build_confirmation,
    can_select,
    is_guest_count_locked,
    toggle_selection,
)

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Opération déjà en cours."


class InFlightRegistry:
    """Clés des mutations en cours ; partagé entre les requêtes d'une même application."""

    def __init__(self):
        self._keys: Set[Hashable] = set()

    def acquire(self, key: Hashable) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._keys.discard(key)

    def is_busy(self, key: Hashable) -> bool:
        return key in self._keys


def mutation(operation: str, failure_message: str):
    """
    Frontière d'erreur + anti-double-soumission pour une méthode de TripActions.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            key = (self.actor_id, self.trip_id, operation)
            if not self.in_flight.acquire(key):
                logger.info("Mutation %s refusée : déjà en cours (voyage %s)", operation, self.trip_id)
                return MutationResult.failure(BUSY_MESSAGE)
            try:
                return await func(self, *args, **kwargs)
            except Exception as exc:
                logger.error("Échec de la mutation %s (voyage %s) : %s", operation, self.trip_id, exc)
                return MutationResult.failure(failure_message)
            finally:
                self.in_flight.release(key)

        return wrapper

    return decorator


class TripActions:
    def __init__(
        self,
        store: SharedStore,
        role: Role,
        trip_id: Optional[str] = None,
        *,
        actor_id: Optional[str] = None,
        in_flight: Optional[InFlightRegistry] = None,
    ):
        self.store = store
        self.role = role
        self.trip_id = trip_id
        self.actor_id = actor_id
        self.in_flight = in_flight if in_flight is not None else InFlightRegistry()

    # --- Voyages ---

    @captain_only
    @mutation("create_trip", "Impossible de créer le voyage.")
    async def create_trip(self, data: TripCreate) -> MutationResult:
        fields = {
            "name": data.name,
            "status": TripStatus.PLANNING.value,
            "captainId": self.actor_id,
            "createdAt": SERVER_TIMESTAMP,
        }
        if data.start_date:
            fields["startDate"] = data.start_date.isoformat()
        if data.end_date:
            fields["endDate"] = data.end_date.isoformat()

        trip_id = await self.store.create(TRIPS, fields)
        logger.info("Voyage créé : %s (%s)", data.name, trip_id)
        return MutationResult.success(trip_id)

    @captain_only
    @mutation("update_trip_settings", "Impossible d'enregistrer les réglages.")
    async def update_trip_settings(self, data: TripSettingsUpdate) -> MutationResult:
        await self.store.update(trip_path(self.trip_id), data.to_document())
        logger.info("Réglages mis à jour — voyage %s", self.trip_id)
        return MutationResult.success(self.trip_id)

    # --- Options de bateau ---

    @captain_only
    @mutation("save_yacht", "Impossible d'enregistrer l'option.")
    async def save_yacht(self, form: YachtForm, editing_id: Optional[str] = None) -> MutationResult:
        """Crée (editing_id absent) ou met à jour une option. Un nom vide bloque l'écriture."""
        if not form.name.strip():
            return MutationResult.failure("Le nom du bateau est obligatoire.")

        payload = form.to_document()
        payload["updatedAt"] = SERVER_TIMESTAMP

        if editing_id:
            await self.store.update(yacht_path(self.trip_id, editing_id), payload)
            logger.info("Option %s mise à jour — voyage %s", editing_id, self.trip_id)
            return MutationResult.success(editing_id)

        payload["createdAt"] = SERVER_TIMESTAMP
        yacht_id = await self.store.create(yachts_path(self.trip_id), payload)
        logger.info("Option créée : %s (%s) — voyage %s", payload["name"], yacht_id, self.trip_id)
        return MutationResult.success(yacht_id)

    @captain_only
    @mutation("delete_yacht", "Impossible de supprimer l'option.")
    async def delete_yacht(self, yacht_id: str) -> MutationResult:
        # selectedYachtId peut rester pendant : les lecteurs tolèrent la référence
        await self.store.delete(yacht_path(self.trip_id, yacht_id))
        logger.info("Option %s supprimée — voyage %s", yacht_id, self.trip_id)
        return MutationResult.success(yacht_id)

    @captain_only
    @mutation("select_yacht", "Impossible de sélectionner l'option.")
    async def select_yacht(self, yacht_id: str, guest_count: int) -> MutationResult:
        """
        Bascule la sélection. Choisir une option non sélectionnée dont la capacité
        est dépassée est refusé ; la désélection reste toujours possible.
        """
        trip = await self._load_trip()
        if trip is None:
            return MutationResult.failure("Voyage introuvable.")

        new_selection = toggle_selection(trip.selected_yacht_id, yacht_id)
        if new_selection is not None:
            snapshot = await read_once(self.store, yacht_path(self.trip_id, yacht_id))
            if not snapshot.exists:
                return MutationResult.failure("Option introuvable.")
            yacht = YachtOption.from_snapshot(snapshot)
            if not can_select(False, self._effective_guest_count(trip, guest_count), yacht.max_guests):
                return MutationResult.failure(
                    f"Capacité dépassée : {yacht.max_guests} invités maximum."
                )

        await self.store.update(trip_path(self.trip_id), {"selectedYachtId": new_selection})
        logger.info("Sélection — voyage %s : %s", self.trip_id, new_selection or "aucune")
        return MutationResult.success(new_selection)

    @captain_only
    @mutation("confirm_trip", "Impossible de confirmer le voyage.")
    async def confirm_trip(self, guest_count: int) -> MutationResult:
        """Transition planning → confirmed, appliquée en une seule mise à jour."""
        trip = await self._load_trip()
        if trip is None:
            return MutationResult.failure("Voyage introuvable.")

        selected = None
        if trip.selected_yacht_id:
            snapshot = await read_once(self.store, yacht_path(self.trip_id, trip.selected_yacht_id))
            if snapshot.exists:
                selected = YachtOption.from_snapshot(snapshot)

        try:
            update = build_confirmation(trip, selected, self._effective_guest_count(trip, guest_count))
        except TransitionError as exc:
            return MutationResult.failure(str(exc))

        await self.store.update(trip_path(self.trip_id), update)
        logger.info(
            "Voyage %s confirmé : option %s, %d invités, acompte %.2f EUR",
            self.trip_id, trip.selected_yacht_id, update["confirmedGuests"], update["depositAmount"],
        )
        return MutationResult.success(self.trip_id)

    # --- Paiements ---

    @captain_only
    @mutation("add_payment", "Impossible d'enregistrer le paiement.")
    async def add_payment(self, data: PaymentCreate) -> MutationResult:
        payload = data.to_document()
        if not payload["guestName"] or payload["amount"] <= 0:
            return MutationResult.failure("Nom de l'invité et montant positif requis.")

        payload["date"] = SERVER_TIMESTAMP
        payment_id = await self.store.create(payments_path(self.trip_id), payload)
        logger.info(
            "Paiement enregistré — voyage %s : %s %.2f %s (%s)",
            self.trip_id, payload["guestName"], payload["amount"], payload["currency"], payload["type"],
        )
        return MutationResult.success(payment_id)

    @captain_only
    @mutation("delete_payment", "Impossible de supprimer le paiement.")
    async def delete_payment(self, payment_id: str) -> MutationResult:
        await self.store.delete(payment_path(self.trip_id, payment_id))
        logger.info("Paiement %s supprimé — voyage %s", payment_id, self.trip_id)
        return MutationResult.success(payment_id)

    # --- Taux de change global ---

    @captain_only
    @mutation("set_exchange_rate", "Impossible d'enregistrer le taux.")
    async def set_exchange_rate(self, rate: float) -> MutationResult:
        if not is_valid_rate(rate):
            return MutationResult.failure("Le taux doit être un nombre positif.")
        await self.store.set(SETTINGS_DOC, {"rate": float(rate)}, merge=True)
        logger.info("Taux EUR→CZK fixé manuellement à %s", rate)
        return MutationResult.success()

    @captain_only
    @mutation("refresh_exchange_rate", "Impossible d'enregistrer le taux.")
    async def refresh_exchange_rate(self, service: ExchangeRateService) -> MutationResult:
        rate = await service.fetch(self.actor_id)
        if rate is None:
            return MutationResult.failure("Taux indisponible, le dernier taux connu est conservé.")
        await self.store.set(SETTINGS_DOC, {"rate": rate}, merge=True)
        logger.info("Taux EUR→CZK rafraîchi : %s", rate)
        return MutationResult.success()

    # --- interne ---

    async def _load_trip(self) -> Optional[TripRecord]:
        snapshot = await read_once(self.store, trip_path(self.trip_id))
        if not snapshot.exists:
            return None
        return TripRecord.from_snapshot(snapshot)

    @staticmethod
    def _effective_guest_count(trip: TripRecord, guest_count: Optional[int]) -> int:
        """Nombre d'invités verrouillé s'il est fixé, sinon la saisie ramenée à >= 1."""
        if is_guest_count_locked(trip):
            return trip.confirmed_guests
        return max(1, guest_count or 1)
