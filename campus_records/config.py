"""Application configuration helpers."""

import os

from dotenv import load_dotenv

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_DOTENV_PATH = os.path.join(_BASE_DIR, ".env")

if os.path.exists(_DOTENV_PATH):
    load_dotenv(_DOTENV_PATH)


class ConfigError(RuntimeError):
    """Raised when configuration values are missing or invalid."""


def get_mongo_uri():
    """Return the MongoDB connection string from the environment."""

    uri = os.getenv("MONGODB_URI")
    if not uri:
        raise ConfigError("MONGODB_URI is not set. Define it in .env.")
    return uri


def get_db_name():
    """Return the database name from MONGODB_DB or the path of the URI."""

    db_name = os.getenv("MONGODB_DB")
    if db_name:
        return db_name

    uri = get_mongo_uri()
    main = uri.split("?", 1)[0].rstrip("/")
    after_scheme = main.split("://", 1)[1] if "://" in main else main

    if "/" not in after_scheme or not after_scheme.split("/", 1)[1]:
        raise ConfigError(
            "Database name not found. Provide it via MONGODB_URI or MONGODB_DB."
        )

    return after_scheme.split("/", 1)[1]


def _get_int(name, default):
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer.") from None


def get_server_selection_timeout_ms():
    return _get_int("MONGODB_TIMEOUT_MS", 5000)


def get_port():
    return _get_int("PORT", 5000)


def get_log_level():
    return os.getenv("LOG_LEVEL", "INFO").upper()


__all__ = [
    "ConfigError",
    "get_mongo_uri",
    "get_db_name",
    "get_server_selection_timeout_ms",
    "get_port",
    "get_log_level",
]
