"""
Jetons d'accès (JWT HS256) et résolution du rôle de l'appelant.

Sans jeton, l'appelant est un invité : la lecture ne tombe jamais à
« aucune identité ». Un jeton invalide ou expiré est refusé (401).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from captains_deck.config import Settings
from captains_deck.services.identity import Identity
from captains_deck.services.roles import Role, role_for

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    uid: Optional[str]
    email: Optional[str]
    is_anonymous: bool
    role: Role


GUEST = Principal(uid=None, email=None, is_anonymous=True, role=Role.GUEST)


def issue_token(identity: Identity, settings: Settings) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": identity.uid,
        "email": identity.email,
        "anon": identity.is_anonymous,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=401, detail=f"Jeton invalide : {e}")


def principal_from_token(token: Optional[str], settings: Settings) -> Principal:
    if not token:
        return GUEST
    claims = decode_token(token, settings)
    identity = Identity(
        uid=claims.get("sub") or "",
        email=claims.get("email"),
        is_anonymous=bool(claims.get("anon", True)),
    )
    return Principal(
        uid=identity.uid or None,
        email=identity.email,
        is_anonymous=identity.is_anonymous,
        role=role_for(identity),
    )


def get_principal(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Principal:
    return principal_from_token(creds.credentials if creds else None, request.app.state.settings)
