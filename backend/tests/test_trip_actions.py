"""
Tests des mutations d'un voyage : contrôle de rôle, frontière d'erreur,
anti-double-soumission et effets sur le store.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from captains_deck.schemas.payment import PaymentCreate
from captains_deck.schemas.trip import TripCreate, TripSettingsUpdate
from captains_deck.schemas.yacht import YachtForm
from captains_deck.services.roles import Role, role_for
from captains_deck.services.identity import Identity
from captains_deck.services.store import SETTINGS_DOC, StoreError, read_once, trip_path, yacht_path, yachts_path
from captains_deck.services.trip_actions import BUSY_MESSAGE, InFlightRegistry, TripActions

pytestmark = pytest.mark.anyio


# --- Helpers ---

async def make_trip(store, **fields) -> str:
    data = {"name": "Croatie 2024", "status": "planning"}
    data.update(fields)
    return await store.create("trips", data)


async def make_yacht(store, trip_id, **fields) -> str:
    data = {"name": "Lagoon 42", "price": 1000, "charterPack": 200, "extras": 50, "maxGuests": 8}
    data.update(fields)
    return await store.create(yachts_path(trip_id), data)


async def trip_data(store, trip_id) -> dict:
    return (await read_once(store, trip_path(trip_id))).data


def make_mock_store():
    store = MagicMock()
    for method in ("create", "update", "set", "delete"):
        setattr(store, method, AsyncMock())
    return store


# ============================================================
# Rôles
# ============================================================

def test_role_for():
    assert role_for(None) is Role.GUEST
    assert role_for(Identity(uid="anon-1", is_anonymous=True)) is Role.GUEST
    assert role_for(Identity(uid="u1", email="c@example.com", is_anonymous=False)) is Role.CAPTAIN


@pytest.mark.parametrize("call", [
    lambda a: a.create_trip(TripCreate(name="Croatie")),
    lambda a: a.save_yacht(YachtForm(name="Lagoon")),
    lambda a: a.delete_yacht("y1"),
    lambda a: a.select_yacht("y1", 4),
    lambda a: a.confirm_trip(4),
    lambda a: a.update_trip_settings(TripSettingsUpdate(confirmed_guests=4)),
    lambda a: a.add_payment(PaymentCreate(guest_name="Anna", amount=100)),
    lambda a: a.delete_payment("p1"),
    lambda a: a.set_exchange_rate(24.0),
    lambda a: a.refresh_exchange_rate(MagicMock()),
])
async def test_invite_aucun_appel_au_store(call):
    """Un invité est refusé silencieusement : aucune écriture, aucun message."""
    store = make_mock_store()
    actions = TripActions(store, Role.GUEST, "t1")

    result = await call(actions)

    assert result.ok is False
    assert result.message is None
    store.create.assert_not_called()
    store.update.assert_not_called()
    store.set.assert_not_called()
    store.delete.assert_not_called()
    store.subscribe.assert_not_called()


# ============================================================
# Voyages
# ============================================================

async def test_create_trip(store):
    actions = TripActions(store, Role.CAPTAIN, actor_id="captain-1")
    result = await actions.create_trip(TripCreate(name="Croatie", start_date="2024-07-01"))

    assert result.ok
    data = await trip_data(store, result.id)
    assert data["name"] == "Croatie"
    assert data["status"] == "planning"
    assert data["captainId"] == "captain-1"
    assert data["startDate"] == "2024-07-01"
    assert "createdAt" in data


async def test_update_trip_settings_valeurs_illisibles(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.update_trip_settings(TripSettingsUpdate(
        confirmed_guests="abc", captain_iban_eur=" IE29AIBK93115212345678 ",
        deposit_amount="1 000,50", final_payment_amount="n/a",
    ))

    assert result.ok
    data = await trip_data(store, trip_id)
    assert data["confirmedGuests"] is None
    assert data["captainIbanEur"] == "IE29AIBK93115212345678"
    assert data["captainIbanCzk"] is None
    assert data["depositAmount"] == 1000.5
    assert data["finalPaymentAmount"] == 0.0


# ============================================================
# Options de bateau
# ============================================================

async def test_save_yacht_creation(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.save_yacht(YachtForm(name=" Bavaria 46 ", price="3 459,00", charter_pack="abc", max_guests="x"))

    assert result.ok
    data = (await read_once(store, yacht_path(trip_id, result.id))).data
    assert data["name"] == "Bavaria 46"
    assert data["price"] == 3459.0
    assert data["charterPack"] == 0.0
    assert data["extras"] == 0.0
    assert data["maxGuests"] is None
    assert "createdAt" in data and "updatedAt" in data


async def test_save_yacht_montant_negatif_en_texte_vaut_zero(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    from_text = await actions.save_yacht(YachtForm(name="a", price=1000, extras="-200"))
    from_number = await actions.save_yacht(YachtForm(name="b", price=1000, extras=-200))

    assert (await read_once(store, yacht_path(trip_id, from_text.id))).data["extras"] == 0.0
    assert (await read_once(store, yacht_path(trip_id, from_number.id))).data["extras"] == 0.0


async def test_save_yacht_nom_vide_bloque(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.save_yacht(YachtForm(name="   ", price=1000))

    assert not result.ok
    assert "nom" in result.message.lower()
    assert (await read_once(store, yachts_path(trip_id))).docs == []


async def test_save_yacht_modification(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id, createdAt="2024-01-01T00:00:00+00:00")
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.save_yacht(YachtForm(name="Lagoon 46", price=2000), editing_id=yacht_id)

    assert result.ok and result.id == yacht_id
    data = (await read_once(store, yacht_path(trip_id, yacht_id))).data
    assert data["name"] == "Lagoon 46"
    assert data["price"] == 2000.0
    assert data["createdAt"] == "2024-01-01T00:00:00+00:00"


async def test_delete_yacht_laisse_la_selection_pendante(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.delete_yacht(yacht_id)

    assert result.ok
    assert (await trip_data(store, trip_id))["selectedYachtId"] == yacht_id


# ============================================================
# Sélection
# ============================================================

async def test_select_puis_deselect(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    assert (await actions.select_yacht(yacht_id, 4)).ok
    assert (await trip_data(store, trip_id))["selectedYachtId"] == yacht_id

    assert (await actions.select_yacht(yacht_id, 4)).ok
    assert (await trip_data(store, trip_id))["selectedYachtId"] is None


async def test_select_capacite_depassee_refusee(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id, maxGuests=4)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.select_yacht(yacht_id, 6)

    assert not result.ok
    assert "capacité" in result.message.lower()
    assert "selectedYachtId" not in await trip_data(store, trip_id)


async def test_deselect_toujours_possible_meme_si_capacite_depassee(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id, maxGuests=4)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.select_yacht(yacht_id, 10)

    assert result.ok
    assert (await trip_data(store, trip_id))["selectedYachtId"] is None


async def test_select_utilise_le_nombre_invites_verrouille(store):
    """Nombre d'invités fixé : la capacité est vérifiée contre lui, pas contre la saisie."""
    trip_id = await make_trip(store, confirmedGuests=10)
    yacht_id = await make_yacht(store, trip_id, maxGuests=6)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.select_yacht(yacht_id, 1)

    assert not result.ok
    assert "selectedYachtId" not in await trip_data(store, trip_id)


async def test_select_option_inconnue(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)
    result = await actions.select_yacht("inconnue", 4)
    assert not result.ok


async def test_select_voyage_inconnu(store):
    actions = TripActions(store, Role.CAPTAIN, "inconnu")
    result = await actions.select_yacht("y1", 4)
    assert not result.ok
    assert result.message == "Voyage introuvable."


# ============================================================
# Confirmation
# ============================================================

async def test_confirm_trip(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.confirm_trip(5)

    assert result.ok
    data = await trip_data(store, trip_id)
    assert data["status"] == "confirmed"
    assert data["depositAmount"] == 625.0
    assert data["finalPaymentAmount"] == 625.0
    assert data["confirmedGuests"] == 5


async def test_confirm_trip_une_seule_ecriture(store):
    """Les quatre champs de confirmation sont écrits en un seul update."""
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    spy = MagicMock(wraps=store)
    spy.update = AsyncMock(side_effect=store.update)
    actions = TripActions(spy, Role.CAPTAIN, trip_id)

    await actions.confirm_trip(5)

    spy.update.assert_awaited_once()
    _, fields = spy.update.await_args.args
    assert set(fields) == {"status", "depositAmount", "finalPaymentAmount", "confirmedGuests"}


async def test_confirm_sans_selection(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.confirm_trip(5)

    assert not result.ok
    assert (await trip_data(store, trip_id))["status"] == "planning"


async def test_confirm_option_supprimee(store):
    trip_id = await make_trip(store, selectedYachtId="supprimee")
    actions = TripActions(store, Role.CAPTAIN, trip_id)
    result = await actions.confirm_trip(5)
    assert not result.ok


async def test_confirm_nombre_invites_ramene_a_un(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.confirm_trip(0)

    assert result.ok
    assert (await trip_data(store, trip_id))["confirmedGuests"] == 1


async def test_confirm_utilise_le_nombre_invites_verrouille(store):
    trip_id = await make_trip(store, confirmedGuests=10)
    yacht_id = await make_yacht(store, trip_id, maxGuests=12)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.confirm_trip(3)

    assert result.ok
    assert (await trip_data(store, trip_id))["confirmedGuests"] == 10


async def test_confirm_deux_fois(store):
    trip_id = await make_trip(store)
    yacht_id = await make_yacht(store, trip_id)
    await store.update(trip_path(trip_id), {"selectedYachtId": yacht_id})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    assert (await actions.confirm_trip(5)).ok
    second = await actions.confirm_trip(6)

    assert not second.ok
    assert (await trip_data(store, trip_id))["confirmedGuests"] == 5


# ============================================================
# Paiements
# ============================================================

async def test_add_payment(store):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.add_payment(PaymentCreate(guest_name="Anna", amount="2 500", currency="CZK"))

    assert result.ok
    docs = (await read_once(store, f"trips/{trip_id}/payments")).docs
    assert len(docs) == 1
    assert docs[0].data["guestName"] == "Anna"
    assert docs[0].data["amount"] == 2500.0
    assert docs[0].data["currency"] == "CZK"
    assert "date" in docs[0].data


@pytest.mark.parametrize("data", [
    PaymentCreate(guest_name="", amount=100),
    PaymentCreate(guest_name="Anna", amount=None),
    PaymentCreate(guest_name="Anna", amount="abc"),
])
async def test_add_payment_champs_obligatoires(store, data):
    trip_id = await make_trip(store)
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    result = await actions.add_payment(data)

    assert not result.ok
    assert (await read_once(store, f"trips/{trip_id}/payments")).docs == []


async def test_delete_payment(store):
    trip_id = await make_trip(store)
    payment_id = await store.create(f"trips/{trip_id}/payments", {"guestName": "Anna", "amount": 100})
    actions = TripActions(store, Role.CAPTAIN, trip_id)

    assert (await actions.delete_payment(payment_id)).ok
    assert (await read_once(store, f"trips/{trip_id}/payments")).docs == []


# ============================================================
# Taux de change
# ============================================================

async def test_set_exchange_rate(store):
    actions = TripActions(store, Role.CAPTAIN)
    assert (await actions.set_exchange_rate(24.35)).ok
    assert (await read_once(store, SETTINGS_DOC)).data["rate"] == 24.35


@pytest.mark.parametrize("rate", [0, -3, float("nan"), float("inf")])
async def test_set_exchange_rate_invalide(store, rate):
    actions = TripActions(store, Role.CAPTAIN)
    result = await actions.set_exchange_rate(rate)
    assert not result.ok
    assert not (await read_once(store, SETTINGS_DOC)).exists


async def test_refresh_exchange_rate(store):
    service = MagicMock()
    service.fetch = AsyncMock(return_value=24.1)
    actions = TripActions(store, Role.CAPTAIN)

    assert (await actions.refresh_exchange_rate(service)).ok
    assert (await read_once(store, SETTINGS_DOC)).data["rate"] == 24.1


async def test_refresh_exchange_rate_echec_conserve_le_taux(store):
    await store.set(SETTINGS_DOC, {"rate": 25.0})
    service = MagicMock()
    service.fetch = AsyncMock(return_value=None)
    actions = TripActions(store, Role.CAPTAIN)

    result = await actions.refresh_exchange_rate(service)

    assert not result.ok
    assert (await read_once(store, SETTINGS_DOC)).data["rate"] == 25.0


# ============================================================
# Frontière d'erreur et double soumission
# ============================================================

async def test_erreur_de_store_convertie_en_resultat():
    store = make_mock_store()
    store.create.side_effect = StoreError("permission refusée")
    actions = TripActions(store, Role.CAPTAIN, "t1")

    result = await actions.save_yacht(YachtForm(name="Lagoon"))

    assert not result.ok
    assert result.message == "Impossible d'enregistrer l'option."


async def test_erreur_inattendue_convertie_en_resultat():
    store = make_mock_store()
    store.delete.side_effect = RuntimeError("réseau coupé")
    actions = TripActions(store, Role.CAPTAIN, "t1")

    result = await actions.delete_payment("p1")

    assert not result.ok


async def test_double_soumission_refusee():
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_create(*args, **kwargs):
        started.set()
        await release.wait()
        return "y1"

    store = make_mock_store()
    store.create.side_effect = slow_create
    registry = InFlightRegistry()
    actions = TripActions(store, Role.CAPTAIN, "t1", actor_id="c1", in_flight=registry)

    first = asyncio.create_task(actions.save_yacht(YachtForm(name="Lagoon")))
    await started.wait()
    second = await actions.save_yacht(YachtForm(name="Lagoon"))
    release.set()

    assert second.ok is False
    assert second.message == BUSY_MESSAGE
    assert (await first).ok
    assert store.create.await_count == 1
    assert not registry.is_busy(("c1", "t1", "save_yacht"))
