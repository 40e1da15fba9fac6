"""
Point d'entrée principal de l'API Captain's Deck.
Démarrage : uvicorn captains_deck.main:app --reload (depuis backend/)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from captains_deck.config import Settings, settings
from captains_deck.database import create_db_engine, create_session_factory
from captains_deck.routers import auth, enrichment, exchange_rate, live, payments, trips, yachts
from captains_deck.scheduler import create_scheduler, start_scheduler, stop_scheduler
from captains_deck.services.enrichment import EnrichmentService
from captains_deck.services.exchange_rate import ExchangeRateService
from captains_deck.services.identity import CaptainDirectory
from captains_deck.services.store import DocumentStore
from captains_deck.services.trip_actions import InFlightRegistry

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(app_settings: Settings = settings) -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Cycle de vie : base + store partagé, services externes, compte capitaine
        initial, et planificateur du taux de change s'il est activé.
        """
        engine = create_db_engine(app_settings.DATABASE_URL)
        session_factory = create_session_factory(engine)

        app.state.settings = app_settings
        app.state.store = DocumentStore(session_factory)
        app.state.directory = CaptainDirectory(session_factory)
        app.state.rate_service = ExchangeRateService(
            app_settings.EXCHANGE_RATE_URL, timeout=app_settings.HTTP_TIMEOUT_SECONDS
        )
        app.state.enrichment = EnrichmentService(
            app_settings.ENRICHMENT_STRATEGIES,
            timeout=app_settings.HTTP_TIMEOUT_SECONDS,
            error_display_seconds=app_settings.ENRICHMENT_ERROR_DISPLAY_SECONDS,
        )
        app.state.in_flight = InFlightRegistry()

        if app_settings.CAPTAIN_EMAIL and app_settings.CAPTAIN_PASSWORD:
            app.state.directory.ensure_captain(app_settings.CAPTAIN_EMAIL, app_settings.CAPTAIN_PASSWORD)

        scheduler = None
        if app_settings.RATE_REFRESH_ENABLED:
            scheduler = create_scheduler(
                app.state.store,
                app.state.rate_service,
                app.state.in_flight,
                app_settings.EXCHANGE_RATE_REFRESH_MINUTES,
            )
            start_scheduler(scheduler)

        logger.info("API démarrée (%s) — base %s", app_settings.ENV, engine.url.render_as_string())
        yield

        if scheduler is not None:
            stop_scheduler(scheduler)
        engine.dispose()

    app = FastAPI(
        title="Captain's Deck API",
        description="Comparaison d'options de charter, répartition des coûts et suivi des paiements",
        version=VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # CORS : front local uniquement (localhost, tout port)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    app.include_router(auth.router)
    app.include_router(trips.router)
    app.include_router(yachts.router)
    app.include_router(payments.router)
    app.include_router(exchange_rate.router)
    app.include_router(enrichment.router)
    app.include_router(live.router)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Intercepte toutes les exceptions non gérées pour que la réponse 500
        passe bien par CORSMiddleware (qui injecte les headers CORS).
        """
        logger.error("Exception non gérée : %s", exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Une erreur interne est survenue."},
        )

    @app.get("/api/health", tags=["Santé"])
    def health_check():
        """Vérifie que l'API est opérationnelle."""
        return {"status": "ok", "service": "Captain's Deck API", "version": VERSION}

    return app


app = create_app()
