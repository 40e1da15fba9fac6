"""
Router d'authentification : session invitée anonyme ou connexion capitaine.
Le jeton retourné porte le caractère anonyme de l'identité, d'où dérive le rôle.
"""

from fastapi import APIRouter, Depends, HTTPException

from captains_deck.config import Settings
from captains_deck.dependencies import get_directory, get_settings
from captains_deck.schemas.auth import IdentityResponse, LoginRequest, TokenResponse
from captains_deck.security import Principal, get_principal, issue_token
from captains_deck.services.identity import (
    METHOD_NOT_ENABLED_MESSAGE,
    AuthSession,
    CaptainDirectory,
    LocalIdentityService,
)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentification"])


async def _open_session(directory: CaptainDirectory, settings: Settings) -> AuthSession:
    return await AuthSession(LocalIdentityService(directory, settings.PASSWORD_LOGIN_ENABLED)).start()


def _token_response(session: AuthSession, settings: Settings) -> TokenResponse:
    return TokenResponse(
        access_token=issue_token(session.identity, settings),
        role=session.role.value,
        uid=session.identity.uid,
    )


@router.post("/anonymous", response_model=TokenResponse, summary="Ouvrir une session invitée")
async def sign_in_anonymous(
    directory: CaptainDirectory = Depends(get_directory),
    settings: Settings = Depends(get_settings),
):
    """Identité anonyme : lecture seule sur tous les voyages."""
    session = await _open_session(directory, settings)
    try:
        return _token_response(session, settings)
    finally:
        session.close()


@router.post("/login", response_model=TokenResponse, summary="Connexion capitaine")
async def login(
    data: LoginRequest,
    directory: CaptainDirectory = Depends(get_directory),
    settings: Settings = Depends(get_settings),
):
    """
    Connexion email / mot de passe.
    - 401 : identifiants invalides (message générique)
    - 503 : méthode de connexion désactivée (message destiné à l'opérateur)
    """
    session = await _open_session(directory, settings)
    try:
        if not await session.login(data.email, data.password):
            status_code = 503 if session.error_message == METHOD_NOT_ENABLED_MESSAGE else 401
            raise HTTPException(status_code=status_code, detail=session.error_message)
        return _token_response(session, settings)
    finally:
        session.close()


@router.get("/me", response_model=IdentityResponse, summary="Identité courante")
def me(principal: Principal = Depends(get_principal)):
    return IdentityResponse(
        uid=principal.uid,
        email=principal.email,
        role=principal.role.value,
        is_anonymous=principal.is_anonymous,
    )
