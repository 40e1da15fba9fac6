"""
Configuration centrale de l'application via variables d'environnement.
Charger depuis un fichier .env en développement.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Base de données (store documentaire partagé)
    DATABASE_URL: str = "sqlite:///./captains_deck.db"

    # JWT
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Identité : connexion capitaine par email/mot de passe
    PASSWORD_LOGIN_ENABLED: bool = True
    CAPTAIN_EMAIL: Optional[str] = None
    CAPTAIN_PASSWORD: Optional[str] = None

    # Coûts et devises
    DEFAULT_EXCHANGE_RATE: float = 25.0
    DEFAULT_GUEST_COUNT: int = 8

    # Taux de change EUR → CZK (rafraîchissement automatique)
    EXCHANGE_RATE_URL: str = "https://api.exchangerate-api.com/v4/latest/EUR"
    EXCHANGE_RATE_REFRESH_MINUTES: int = 60
    RATE_REFRESH_ENABLED: bool = False

    # Import magique des fiches bateau
    HTTP_TIMEOUT_SECONDS: float = 10.0
    ENRICHMENT_STRATEGIES: List[str] = ["direct", "allorigins", "corsproxy"]
    ENRICHMENT_ERROR_DISPLAY_SECONDS: int = 3

    # Environnement
    LOG_LEVEL: str = "INFO"
    ENV: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
