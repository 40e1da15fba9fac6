"""
Connexion à la base de données qui porte le store documentaire partagé.

Le moteur n'est plus un singleton de module : il est construit au démarrage
de l'application (lifespan) puis injecté dans les services qui en ont besoin.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Crée le moteur SQLAlchemy. SQLite en mémoire partage une seule connexion."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.endswith("sqlite://"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Fabrique de sessions ; crée les tables manquantes au passage."""
    import captains_deck.models  # noqa: F401  (enregistre les modèles dans Base.metadata)

    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
