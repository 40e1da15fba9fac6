"""
Identité : session anonyme (invité) ou connexion email / mot de passe (capitaine).

- CaptainDirectory : comptes capitaine persistés (table users), hash PBKDF2
- LocalIdentityService : état d'authentification d'un client, avec abonnement
  aux changements d'identité
- AuthSession : garde toujours une identité (anonyme par défaut) et le rôle dérivé
"""

import asyncio
import base64
import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from captains_deck.models.user import User
from captains_deck.services.roles import Role, role_for

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 210_000

METHOD_NOT_ENABLED_MESSAGE = (
    "La connexion email / mot de passe n'est pas activée : "
    "activez PASSWORD_LOGIN_ENABLED dans la configuration."
)
INVALID_CREDENTIAL_MESSAGE = "Identifiants invalides. Seuls les capitaines autorisés peuvent entrer."


@dataclass(frozen=True)
class Identity:
    uid: str
    email: Optional[str] = None
    is_anonymous: bool = True


class AuthError(Exception):
    """Échec d'authentification."""


class MethodNotEnabledError(AuthError):
    """La méthode email / mot de passe est désactivée (problème de configuration)."""


class InvalidCredentialError(AuthError):
    """Email inconnu ou mot de passe incorrect."""


AuthCallback = Callable[[Optional[Identity]], None]


class IdentityService(Protocol):
    def subscribe_auth_state(self, callback: AuthCallback) -> Callable[[], None]:
        ...

    async def sign_in_anonymous(self) -> Identity:
        ...

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        ...

    async def sign_out(self) -> None:
        ...


# --- Mots de passe ---

def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """
    Hash PBKDF2-HMAC-SHA256 au format texte portable :
    pbkdf2_sha256$<iterations>$<salt_b64>$<hash_b64>
    """
    salt = secrets.token_bytes(16)
    dk = hashlib.pbkdf2_hmac("sha256", (password or "").encode("utf-8"), salt, iterations, dklen=32)
    return "pbkdf2_sha256$%d$%s$%s" % (
        iterations,
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(dk).decode("ascii"),
    )


def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, iters_s, salt_b64, hash_b64 = (encoded or "").split("$", 3)
        if scheme != "pbkdf2_sha256":
            return False
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected = base64.b64decode(hash_b64.encode("ascii"))
        dk = hashlib.pbkdf2_hmac(
            "sha256", (password or "").encode("utf-8"), salt, int(iters_s), dklen=len(expected)
        )
        return hmac.compare_digest(dk, expected)
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").lower().strip()


# --- Comptes capitaine ---

class CaptainDirectory:
    def __init__(self, session_factory: sessionmaker, iterations: int = PBKDF2_ITERATIONS):
        self._session_factory = session_factory
        self._iterations = iterations

    def authenticate(self, email: str, password: str) -> Identity:
        """Vérifie les identifiants. Lève InvalidCredentialError sinon."""
        db = self._session_factory()
        try:
            user = db.execute(select(User).where(User.email == normalize_email(email))).scalar()
            if user is None or not verify_password(password, user.password_hash):
                raise InvalidCredentialError(INVALID_CREDENTIAL_MESSAGE)
            user.last_login = datetime.now(timezone.utc)
            db.commit()
            return Identity(uid=user.id, email=user.email, is_anonymous=False)
        finally:
            db.close()

    def ensure_captain(self, email: str, password: str, display_name: Optional[str] = None) -> str:
        """
        Crée le compte capitaine s'il n'existe pas encore (amorçage au démarrage).
        Un compte existant n'est pas modifié. Retourne l'id du compte.
        """
        email = normalize_email(email)
        db = self._session_factory()
        try:
            user = db.execute(select(User).where(User.email == email)).scalar()
            if user is not None:
                return user.id
            user = User(
                email=email,
                password_hash=hash_password(password, self._iterations),
                display_name=display_name,
            )
            db.add(user)
            db.commit()
            logger.info("Compte capitaine créé : %s", email)
            return user.id
        finally:
            db.close()


# --- Service d'identité local ---

class LocalIdentityService:
    """
    État d'authentification d'un client. Chaque changement d'identité est
    notifié aux abonnés, immédiatement à l'abonnement puis à chaque transition.
    """

    def __init__(self, directory: CaptainDirectory, password_login_enabled: bool = True):
        self._directory = directory
        self._password_login_enabled = password_login_enabled
        self._current: Optional[Identity] = None
        self._listeners: List[AuthCallback] = []

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    def subscribe_auth_state(self, callback: AuthCallback) -> Callable[[], None]:
        self._listeners.append(callback)
        callback(self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def sign_in_anonymous(self) -> Identity:
        identity = Identity(uid=f"anon-{uuid.uuid4().hex[:16]}", is_anonymous=True)
        self._emit(identity)
        return identity

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        if not self._password_login_enabled:
            raise MethodNotEnabledError(METHOD_NOT_ENABLED_MESSAGE)
        identity = self._directory.authenticate(email, password)
        self._emit(identity)
        return identity

    async def sign_out(self) -> None:
        self._emit(None)

    def _emit(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for callback in list(self._listeners):
            callback(identity)


# --- Session ---

class AuthSession:
    """
    Session client : une identité est toujours présente (anonyme à défaut) et
    le rôle est recalculé une fois par changement d'identité.
    Un échec de connexion laisse la session invitée intacte.
    """

    def __init__(self, service: IdentityService):
        self.service = service
        self.identity: Optional[Identity] = None
        self.role: Role = Role.GUEST
        self.error_message: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: Optional[asyncio.Task] = None

    async def start(self) -> "AuthSession":
        self._unsubscribe = self.service.subscribe_auth_state(self._on_auth_state)
        await self._ensure_identity()
        return self

    async def login(self, email: str, password: str) -> bool:
        self.error_message = None
        try:
            await self.service.sign_in_with_password(email, password)
        except MethodNotEnabledError as exc:
            logger.error("Connexion capitaine impossible : %s", exc)
            self.error_message = METHOD_NOT_ENABLED_MESSAGE
            return False
        except InvalidCredentialError:
            logger.warning("Connexion capitaine refusée pour %s", normalize_email(email))
            self.error_message = INVALID_CREDENTIAL_MESSAGE
            return False
        logger.info("Capitaine connecté : %s", normalize_email(email))
        return True

    async def logout(self) -> None:
        await self.service.sign_out()
        await self._ensure_identity()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()

    def _on_auth_state(self, identity: Optional[Identity]) -> None:
        self.identity = identity
        self.role = role_for(identity)
        if identity is None and self._unsubscribe is not None:
            # Identité perdue hors logout() : retour en invité dès que possible
            self._pending = asyncio.get_running_loop().create_task(self._ensure_identity())

    async def _ensure_identity(self) -> None:
        if self.identity is None:
            await self.service.sign_in_anonymous()
