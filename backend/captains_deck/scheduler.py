"""
Planificateur APScheduler : rafraîchissement périodique du taux EUR → CZK.

Le job agit comme un compte de service capitaine. En cas d'échec réseau, le
dernier taux connu reste en vigueur jusqu'au passage suivant.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from captains_deck.services.exchange_rate import ExchangeRateService
from captains_deck.services.roles import Role
from captains_deck.services.store import SharedStore
from captains_deck.services.trip_actions import InFlightRegistry, TripActions

logger = logging.getLogger(__name__)

SCHEDULER_ACTOR = "scheduler"


async def refresh_exchange_rate_job(
    store: SharedStore,
    service: ExchangeRateService,
    in_flight: InFlightRegistry,
) -> None:
    """Tâche planifiée : récupère le taux et l'écrit dans les réglages globaux."""
    actions = TripActions(store, Role.CAPTAIN, actor_id=SCHEDULER_ACTOR, in_flight=in_flight)
    result = await actions.refresh_exchange_rate(service)
    if result.ok:
        logger.info("Rafraîchissement automatique du taux effectué.")
    else:
        logger.warning("Rafraîchissement automatique du taux ignoré : %s", result.message)


def create_scheduler(
    store: SharedStore,
    service: ExchangeRateService,
    in_flight: InFlightRegistry,
    interval_minutes: int,
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        refresh_exchange_rate_job,
        trigger="interval",
        minutes=interval_minutes,
        args=[store, service, in_flight],
        id="exchange_rate_refresh",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Démarre le planificateur sur la boucle asyncio de l'API (appelé au démarrage)."""
    scheduler.start()
    logger.info("Scheduler démarré — rafraîchissement du taux de change planifié.")


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
