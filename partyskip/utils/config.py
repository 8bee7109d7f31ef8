"""
Configuration module for PartySkip.
Reads the environment (and a local .env file) into the Flask app config.
"""

import os
from dotenv import load_dotenv
from partyskip.core.coordinator import DEFAULT_DOWNVOTE_THRESHOLD
from partyskip.models.database_config import DEFAULT_DATABASE_URL, normalize_database_url

# Load environment variables from .env file
load_dotenv()

DEFAULT_POLL_INTERVAL_SECONDS = 5
DEFAULT_TOKEN_REFRESH_MINUTES = 50
DEFAULT_REQUEST_TIMEOUT_SECONDS = 5

INTEGER_SETTINGS = {
    "DOWNVOTE_THRESHOLD": 1,
    "POLL_INTERVAL_SECONDS": 1,
    "TOKEN_REFRESH_INTERVAL_MINUTES": 1,
    "SPOTIFY_REQUEST_TIMEOUT": 1,
}


def env_flag(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings():
    """Settings read from the environment, unvalidated"""
    return {
        "SECRET_KEY": os.getenv("SECRET_KEY", "partyskip-dev-secret"),
        "PARTY_ID": os.getenv("PARTY_ID"),
        "DOWNVOTE_THRESHOLD": os.getenv("DOWNVOTE_THRESHOLD", DEFAULT_DOWNVOTE_THRESHOLD),
        "POLL_INTERVAL_SECONDS": os.getenv("POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
        "TOKEN_REFRESH_INTERVAL_MINUTES": os.getenv("TOKEN_REFRESH_INTERVAL_MINUTES", DEFAULT_TOKEN_REFRESH_MINUTES),
        "SPOTIFY_CLIENT_ID": os.getenv("SPOTIFY_CLIENT_ID"),
        "SPOTIFY_CLIENT_SECRET": os.getenv("SPOTIFY_CLIENT_SECRET"),
        "SPOTIFY_REDIRECT_URI": os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:3000/callback"),
        "SPOTIFY_ACCESS_TOKEN": os.getenv("SPOTIFY_ACCESS_TOKEN"),
        "SPOTIFY_REFRESH_TOKEN": os.getenv("SPOTIFY_REFRESH_TOKEN"),
        "SPOTIFY_REQUEST_TIMEOUT": os.getenv("SPOTIFY_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS),
        "DATABASE_URL": os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        "START_SCHEDULER": env_flag("START_SCHEDULER", default=True),
    }


def validate_settings(settings):
    """Coerce numeric settings and fail fast on bad values"""
    if not settings.get("PARTY_ID"):
        raise ValueError("PARTY_ID is required")

    for key, minimum in INTEGER_SETTINGS.items():
        try:
            value = int(settings[key])
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer, got {settings[key]!r}") from None
        if value < minimum:
            raise ValueError(f"{key} must be at least {minimum}, got {value}")
        settings[key] = value

    settings["DATABASE_URL"] = normalize_database_url(settings.get("DATABASE_URL"))
    return settings


def init_app(app, overrides=None):
    """Load configuration into the Flask app"""
    settings = load_settings()
    if overrides:
        settings.update(overrides)
    app.config.update(validate_settings(settings))
    return app.config
