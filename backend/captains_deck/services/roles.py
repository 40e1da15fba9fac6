"""
Modèle de rôles : Invité (lecture seule) ou Capitaine (lecture/écriture).

Le rôle est dérivé une seule fois par changement d'identité, uniquement à partir
du caractère anonyme ou nominatif de celle-ci. Ce contrôle côté client est une
commodité d'interface : il ne remplace pas le contrôle d'accès du store.
"""

import enum
import functools
import logging
from typing import Any, Optional

from captains_deck.schemas.mutation import MutationResult

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    GUEST = "guest"
    CAPTAIN = "captain"


def role_for(identity: Optional[Any]) -> Role:
    """Capitaine si l'identité existe et n'est pas anonyme, invité sinon."""
    if identity is None or getattr(identity, "is_anonymous", True):
        return Role.GUEST
    return Role.CAPTAIN


def captain_only(func):
    """
    Décorateur pour les mutations asynchrones d'un objet possédant `self.role`.
    Un appelant non capitaine ne déclenche aucun appel au store : la méthode
    n'est pas exécutée et un MutationResult refusé (sans message) est retourné.
    """
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        if self.role is not Role.CAPTAIN:
            logger.debug("Mutation %s ignorée pour le rôle %s", func.__name__, self.role.value)
            return MutationResult.denied()
        return await func(self, *args, **kwargs)

    return wrapper
