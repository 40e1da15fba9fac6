"""
Tests du websocket de la vue voyage en direct.
"""

import pytest
from starlette.websockets import WebSocketDisconnect


def _setup_trip(client, headers) -> str:
    trip_id = client.post("/api/v1/trips", json={"name": "Croatie"}, headers=headers).json()["id"]
    client.post(
        f"/api/v1/trips/{trip_id}/yachts",
        json={"name": "Lagoon 42", "price": 1000, "charterPack": 200, "extras": 50, "maxGuests": 8},
        headers=headers,
    )
    return trip_id


def test_live_envoie_la_vue(client, captain_headers):
    trip_id = _setup_trip(client, captain_headers)

    with client.websocket_connect(f"/api/v1/trips/{trip_id}/live?guest_count=5") as ws:
        snapshot = ws.receive_json()

    assert snapshot["trip"]["name"] == "Croatie"
    assert snapshot["guestCount"] == 5
    assert snapshot["role"] == "guest"
    assert snapshot["yachts"][0]["perGuestEur"] == 250.0


def test_live_recalcul_sur_message(client, captain_headers):
    trip_id = _setup_trip(client, captain_headers)

    with client.websocket_connect(f"/api/v1/trips/{trip_id}/live") as ws:
        first = ws.receive_json()
        ws.send_json({"guestCount": 10})
        second = ws.receive_json()

    assert first["guestCount"] == 8
    assert second["guestCount"] == 10
    assert second["yachts"][0]["perGuestEur"] == 125.0


def test_live_recherche(client, captain_headers):
    trip_id = _setup_trip(client, captain_headers)

    with client.websocket_connect(f"/api/v1/trips/{trip_id}/live") as ws:
        ws.receive_json()
        ws.send_json({"search": "bavaria"})
        snapshot = ws.receive_json()

    assert snapshot["yachts"] == []


def test_live_capitaine_peut_selectionner(client, captain_headers):
    trip_id = _setup_trip(client, captain_headers)
    token = captain_headers["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/api/v1/trips/{trip_id}/live?token={token}") as ws:
        snapshot = ws.receive_json()

    assert snapshot["role"] == "captain"
    assert snapshot["yachts"][0]["canSelect"] is True


def test_live_jeton_invalide_ferme_la_connexion(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/trips/t1/live?token=pas-un-jwt") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008
