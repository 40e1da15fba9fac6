"""
Tests d'intégration API pour le taux de change global EUR → CZK.
"""

import httpx

from captains_deck.services import exchange_rate


class _DummyResponse:
    def __init__(self, status_code: int, json_data=None):
        self.status_code = status_code
        self._json = json_data
        self.text = "dummy"

    def json(self):
        return self._json


def dummy_client(response=None, error=None):
    class _DummyAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, **kwargs):
            if error is not None:
                raise error
            return response

    return _DummyAsyncClient


# ============================================================
# GET / PUT /api/v1/settings/exchange-rate
# ============================================================

def test_taux_par_defaut(client):
    response = client.get("/api/v1/settings/exchange-rate")
    assert response.status_code == 200
    assert response.json() == {"rate": 25.0}


def test_capitaine_fixe_le_taux(client, captain_headers):
    response = client.put("/api/v1/settings/exchange-rate", json={"rate": 24.35}, headers=captain_headers)
    assert response.json()["ok"] is True
    assert client.get("/api/v1/settings/exchange-rate").json() == {"rate": 24.35}


def test_invite_ne_peut_pas_fixer_le_taux(client, guest_headers):
    response = client.put("/api/v1/settings/exchange-rate", json={"rate": 30}, headers=guest_headers)
    assert response.json() == {"ok": False, "id": None, "message": None}
    assert client.get("/api/v1/settings/exchange-rate").json() == {"rate": 25.0}


def test_taux_invalide_rejete(client, captain_headers):
    for rate in (0, -4, "abc"):
        response = client.put("/api/v1/settings/exchange-rate", json={"rate": rate}, headers=captain_headers)
        assert response.status_code == 422


def test_taux_utilise_par_la_vue(client, captain_headers):
    trip_id = client.post("/api/v1/trips", json={"name": "Croatie"}, headers=captain_headers).json()["id"]
    client.post(
        f"/api/v1/trips/{trip_id}/yachts",
        json={"name": "Lagoon 42", "price": 1000, "charterPack": 200, "extras": 50},
        headers=captain_headers,
    )
    client.put("/api/v1/settings/exchange-rate", json={"rate": 20}, headers=captain_headers)

    view = client.get(f"/api/v1/trips/{trip_id}/view", params={"guest_count": 5}).json()
    assert view["exchangeRate"] == 20.0
    assert view["yachts"][0]["perGuestCzk"] == 5000.0


# ============================================================
# POST /api/v1/settings/exchange-rate/refresh
# ============================================================

def test_rafraichissement_ecrit_le_taux(client, captain_headers, monkeypatch):
    monkeypatch.setattr(
        exchange_rate.httpx, "AsyncClient",
        dummy_client(_DummyResponse(200, {"base": "EUR", "rates": {"CZK": 24.81}})),
    )

    response = client.post("/api/v1/settings/exchange-rate/refresh", headers=captain_headers)

    assert response.json()["ok"] is True
    assert client.get("/api/v1/settings/exchange-rate").json() == {"rate": 24.81}


def test_rafraichissement_echec_conserve_le_taux(client, captain_headers, monkeypatch):
    client.put("/api/v1/settings/exchange-rate", json={"rate": 24.0}, headers=captain_headers)
    monkeypatch.setattr(exchange_rate.httpx, "AsyncClient", dummy_client(error=httpx.ConnectError("hors ligne")))

    response = client.post("/api/v1/settings/exchange-rate/refresh", headers=captain_headers)

    assert response.json()["ok"] is False
    assert "dernier taux" in response.json()["message"]
    assert client.get("/api/v1/settings/exchange-rate").json() == {"rate": 24.0}


def test_rafraichissement_invite_ignore(client, guest_headers, monkeypatch):
    calls = []

    class _FailingClient:
        def __init__(self, *args, **kwargs):
            calls.append("appel")

    monkeypatch.setattr(exchange_rate.httpx, "AsyncClient", _FailingClient)

    response = client.post("/api/v1/settings/exchange-rate/refresh", headers=guest_headers)

    assert response.json()["ok"] is False
    assert calls == []
