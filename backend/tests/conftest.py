"""
Configuration partagée pour tous les tests.
Chaque test dispose de sa propre base SQLite en mémoire : aucun fichier, aucun réseau.
"""

import pytest
from fastapi.testclient import TestClient

from captains_deck.config import Settings
from captains_deck.database import create_db_engine, create_session_factory
from captains_deck.main import create_app
from captains_deck.services.identity import CaptainDirectory
from captains_deck.services.store import DocumentStore

CAPTAIN_EMAIL = "captain@example.com"
CAPTAIN_PASSWORD = "bon-vent-2024"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    """Store documentaire réel sur SQLite en mémoire."""
    return DocumentStore(session_factory)


@pytest.fixture
def directory(session_factory):
    """Annuaire avec un compte capitaine (itérations PBKDF2 réduites pour les tests)."""
    directory = CaptainDirectory(session_factory, iterations=1_000)
    directory.ensure_captain(CAPTAIN_EMAIL, CAPTAIN_PASSWORD)
    return directory


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret",
        CAPTAIN_EMAIL=CAPTAIN_EMAIL,
        CAPTAIN_PASSWORD=CAPTAIN_PASSWORD,
        RATE_REFRESH_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def client(test_settings):
    """Client HTTP de test ; le lifespan crée la base en mémoire et le compte capitaine."""
    with TestClient(create_app(test_settings)) as c:
        yield c


@pytest.fixture
def captain_headers(client):
    response = client.post("/api/v1/auth/login", json={"email": CAPTAIN_EMAIL, "password": CAPTAIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def guest_headers(client):
    response = client.post("/api/v1/auth/anonymous")
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
