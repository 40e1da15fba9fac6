"""
Vue synchronisée d'un voyage.

TripView ouvre quatre abonnements sur le store (voyage, options de bateau,
paiements, réglages globaux) et reflète chaque snapshot dans des miroirs locaux.
Les miroirs ne changent que par l'écho des abonnements : une mutation n'est
visible qu'une fois que le store l'a rediffusée.

Toutes les valeurs affichées (coûts, parts par invité, total encaissé) sont
recalculées à la demande à partir des miroirs, jamais stockées.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, List, Optional

from pydantic import ValidationError

from captains_deck.schemas.payment import PaymentRecord
from captains_deck.schemas.trip import TripRecord, parse_guest_count
from captains_deck.schemas.view import TripViewSnapshot, YachtRow
from captains_deck.schemas.yacht import YachtOption
from captains_deck.services.cost_engine import (
    ExchangeRateGuard,
    breakdown,
    is_over_capacity,
    is_valid_rate,
    total_paid_eur,
)
from captains_deck.services.money import format_money
from captains_deck.services.roles import Role
from captains_deck.services.store import (
    SETTINGS_DOC,
    TRIPS,
    SharedStore,
    Subscription,
    payments_path,
    read_once,
    trip_path,
    yachts_path,
)
from captains_deck.services.trip_lifecycle import can_select, find_yacht, is_guest_count_locked

logger = logging.getLogger(__name__)


def filter_yachts(yachts: Iterable[YachtOption], search: Optional[str]) -> List[YachtOption]:
    """Filtre par nom, sous-chaîne insensible à la casse ; recherche vide = tout."""
    needle = (search or "").strip().lower()
    if not needle:
        return list(yachts)
    return [y for y in yachts if needle in (y.name or "").lower()]


def _parse_docs(model, docs) -> list:
    records = []
    for doc in docs:
        try:
            records.append(model.from_snapshot(doc))
        except ValidationError as exc:
            logger.warning("Document ignoré %s : %s", doc.path, exc.errors()[:1])
    return records


async def list_trips(store: SharedStore) -> List[TripRecord]:
    """Tableau de bord : tous les voyages, du plus récent au plus ancien."""
    snapshot = await read_once(store, TRIPS, order_by="createdAt", descending=True)
    return _parse_docs(TripRecord, snapshot.docs)


class TripView:
    def __init__(
        self,
        store: SharedStore,
        trip_id: str,
        default_guest_count: int = 8,
        default_rate: float = 25.0,
    ):
        self.store = store
        self.trip_id = trip_id
        self.trip: Optional[TripRecord] = None
        self.yachts: List[YachtOption] = []
        self.payments: List[PaymentRecord] = []
        self._rate = ExchangeRateGuard(default_rate)
        self._guest_count = max(1, int(default_guest_count))
        self._loading = True
        self._version = 0
        self._changed = asyncio.Condition()
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []
        self._received = set()
        self._closed = False

    # --- cycle de vie ---

    async def open(self) -> "TripView":
        channels = [
            (trip_path(self.trip_id), {}, self._apply_trip),
            (yachts_path(self.trip_id), {"order_by": "createdAt", "descending": True}, self._apply_yachts),
            (payments_path(self.trip_id), {"order_by": "date", "descending": True}, self._apply_payments),
            (SETTINGS_DOC, {}, self._apply_settings),
        ]
        for path, options, apply in channels:
            sub = self.store.subscribe(path, **options)
            self._subscriptions.append(sub)
            self._tasks.append(asyncio.create_task(self._pump(sub, apply)))
        logger.debug("Vue ouverte — voyage %s", self.trip_id)
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sub in self._subscriptions:
            sub.close()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._subscriptions.clear()
        self._tasks.clear()
        async with self._changed:
            self._changed.notify_all()
        logger.debug("Vue fermée — voyage %s", self.trip_id)

    async def __aenter__(self) -> "TripView":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # --- réception des snapshots ---

    async def _pump(self, sub: Subscription, apply: Callable[[Any], None]) -> None:
        async for snapshot in sub:
            if self._closed:
                break
            try:
                apply(snapshot)
            except ValidationError as exc:
                logger.warning("Snapshot illisible sur %s : %s", sub.path, exc.errors()[:1])
            self._received.add(sub.path)
            async with self._changed:
                self._version += 1
                self._changed.notify_all()

    def _apply_trip(self, snapshot) -> None:
        self.trip = TripRecord.from_snapshot(snapshot) if snapshot.exists else None

    def _apply_yachts(self, snapshot) -> None:
        self.yachts = _parse_docs(YachtOption, snapshot.docs)
        self._loading = False

    def _apply_payments(self, snapshot) -> None:
        self.payments = _parse_docs(PaymentRecord, snapshot.docs)

    def _apply_settings(self, snapshot) -> None:
        rate = snapshot.data.get("rate") if snapshot.exists else None
        if rate is None:
            return
        if not is_valid_rate(rate):
            logger.warning("Taux de change ignoré (%r), conservation de %s", rate, self._rate.rate)
            return
        self._rate.observe(rate)

    async def wait_for(self, predicate: Callable[["TripView"], bool], timeout: float = 5.0) -> bool:
        """Attend que `predicate(view)` soit vrai ; False à l'expiration du délai."""

        async def _wait() -> None:
            async with self._changed:
                await self._changed.wait_for(lambda: predicate(self))

        try:
            await asyncio.wait_for(_wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_for_change(self, after_version: int, timeout: Optional[float] = None) -> int:
        """Attend une version strictement supérieure à `after_version` et la retourne."""
        await self.wait_for(lambda view: view.version > after_version or view.closed, timeout)
        return self._version

    # --- état dérivé ---

    @property
    def version(self) -> int:
        return self._version

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def ready(self) -> bool:
        """Chaque abonnement a livré au moins un snapshot."""
        return bool(self._subscriptions) and len(self._received) == len(self._subscriptions)

    @property
    def exchange_rate(self) -> float:
        return self._rate.rate

    @property
    def guest_count_locked(self) -> bool:
        return is_guest_count_locked(self.trip)

    @property
    def guest_count(self) -> int:
        if self.guest_count_locked:
            return self.trip.confirmed_guests
        return self._guest_count

    def set_guest_count(self, value: Any) -> int:
        """Nombre d'invités local (minimum 1) ; sans effet une fois verrouillé."""
        if self.guest_count_locked:
            logger.debug("Nombre d'invités verrouillé à %s — voyage %s", self.guest_count, self.trip_id)
            return self.guest_count
        self._guest_count = parse_guest_count(value) or 1
        return self._guest_count

    @property
    def selected_yacht_id(self) -> Optional[str]:
        return self.trip.selected_yacht_id if self.trip else None

    @property
    def selected_yacht(self) -> Optional[YachtOption]:
        return find_yacht(self.yachts, self.selected_yacht_id)

    @property
    def total_paid_eur(self) -> float:
        return total_paid_eur(self.payments, self._rate.rate)

    def rows(self, search: str = "", role: Role = Role.GUEST) -> List[YachtRow]:
        guests = self.guest_count
        rows = []
        for yacht in filter_yachts(self.yachts, search):
            costs = breakdown(yacht, guests, self._rate)
            is_selected = yacht.id == self.selected_yacht_id
            rows.append(YachtRow(
                yacht=yacht,
                total_eur=costs.total_eur,
                per_guest_eur=costs.per_guest_eur,
                per_guest_czk=costs.per_guest_czk,
                total_display=format_money(costs.total_eur, "EUR"),
                per_guest_eur_display=format_money(costs.per_guest_eur, "EUR"),
                per_guest_czk_display=format_money(costs.per_guest_czk, "CZK"),
                is_selected=is_selected,
                over_capacity=is_over_capacity(guests, yacht.max_guests),
                can_select=role is Role.CAPTAIN and can_select(is_selected, guests, yacht.max_guests),
            ))
        return rows

    def snapshot(self, role: Role = Role.GUEST, search: str = "") -> TripViewSnapshot:
        paid = self.total_paid_eur
        return TripViewSnapshot(
            trip=self.trip,
            yachts=self.rows(search, role),
            payments=list(self.payments),
            selected_yacht_id=self.selected_yacht_id,
            exchange_rate=self.exchange_rate,
            guest_count=self.guest_count,
            guest_count_locked=self.guest_count_locked,
            total_paid_eur=paid,
            total_paid_display=format_money(paid, "EUR"),
            role=role.value,
            loading=self._loading,
            version=self._version,
        )
