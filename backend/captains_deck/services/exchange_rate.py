"""
Taux de change global EUR → CZK.

Le taux est une ressource unique partagée par tous les voyages (document
settings/global_settings, champ `rate`) : la dernière écriture gagne.
La récupération automatique est best-effort : en cas d'échec réseau le
dernier taux connu reste en vigueur.
"""

import logging
from typing import Optional, Set

import httpx

from captains_deck.services.cost_engine import is_valid_rate
from captains_deck.services.store import SETTINGS_DOC, SharedStore, read_once

logger = logging.getLogger(__name__)


class ExchangeRateService:
    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout
        self._loading: Set[Optional[str]] = set()

    def is_loading(self, actor_id: Optional[str] = None) -> bool:
        return actor_id in self._loading

    async def fetch(self, actor_id: Optional[str] = None) -> Optional[float]:
        """
        Interroge l'API publique de taux. Retourne None si une récupération est
        déjà en cours pour ce même acteur, en cas d'erreur réseau ou de réponse
        inexploitable.
        """
        if actor_id in self._loading:
            logger.debug("Récupération du taux déjà en cours pour %s, appel ignoré", actor_id)
            return None

        self._loading.add(actor_id)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
            if response.status_code >= 400:
                logger.warning("API de taux indisponible (HTTP %s)", response.status_code)
                return None
            rate = ((response.json() or {}).get("rates") or {}).get("CZK")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Récupération automatique du taux impossible : %s", exc)
            return None
        finally:
            self._loading.discard(actor_id)

        if not is_valid_rate(rate):
            logger.warning("Taux CZK absent ou invalide dans la réponse : %r", rate)
            return None
        return float(rate)


async def read_exchange_rate(store: SharedStore, default: float) -> float:
    """Lecture ponctuelle du taux global ; `default` si absent ou invalide."""
    snapshot = await read_once(store, SETTINGS_DOC)
    rate = snapshot.data.get("rate") if snapshot.exists else None
    return float(rate) if is_valid_rate(rate) else default
