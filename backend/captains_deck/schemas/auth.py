"""
Schémas Pydantic pour l'authentification (invité anonyme ou capitaine).
"""

from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    uid: str


class IdentityResponse(BaseModel):
    uid: Optional[str] = None
    email: Optional[str] = None
    role: str
    is_anonymous: bool
