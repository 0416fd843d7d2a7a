"""Centralized service configuration.

Settings are read from the environment. A `.env` file at the repo root is
auto-loaded on import; variables already present in the environment win:

    GOOGLE_CLIENT_ID       - OAuth client ID from Google Cloud Console
    GOOGLE_CLIENT_SECRET   - OAuth client secret
    GOOGLE_REDIRECT_URI    - Callback URL registered for the client
    DATABASE_URL           - SQLAlchemy URL for users, tags and cache entries
    CACHE_BACKEND          - "memory" or "sql"
    HEALTH_CACHE_TTL       - Seconds to cache health responses (0 disables)
    HEALTH_MAX_RESULTS     - maxResults for spam-folder health queries
    SEARCH_MAX_RESULTS     - maxResults for mailbox search queries
    COOKIE_SECURE          - Mark session cookies Secure ("false" for local http)
    ADMIN_TAG              - Tag name that excludes a user from mailbox stats
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Repository root (where this package is installed from)
# __file__ is src/inbox_health/config.py, so 3 levels up
REPO_ROOT = Path(__file__).parent.parent.parent

ENV_FILE = REPO_ROOT / ".env"
DEFAULT_DATABASE_URL = f"sqlite:///{REPO_ROOT / 'inbox_health.db'}"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        number = int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e
    if number < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {number}")
    return number


@dataclass
class Settings:
    """Runtime settings for the dashboard service."""

    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_redirect_uri: str | None = None
    database_url: str = DEFAULT_DATABASE_URL
    cache_backend: str = "memory"
    health_cache_ttl: int = 60
    health_max_results: int = 100
    search_max_results: int = 200
    cookie_secure: bool = True
    admin_tag: str = "admin"


def get_settings() -> Settings:
    """Build settings from the current environment.

    Returns:
        Settings populated from environment variables, with defaults.

    Raises:
        ValueError: If a numeric or enum setting has an invalid value.
    """
    cache_backend = os.environ.get("CACHE_BACKEND", "memory").strip().lower()
    if cache_backend not in ("memory", "sql"):
        raise ValueError(f"CACHE_BACKEND must be 'memory' or 'sql', got {cache_backend!r}")

    return Settings(
        google_client_id=os.environ.get("GOOGLE_CLIENT_ID"),
        google_client_secret=os.environ.get("GOOGLE_CLIENT_SECRET"),
        google_redirect_uri=os.environ.get("GOOGLE_REDIRECT_URI"),
        database_url=os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
        cache_backend=cache_backend,
        health_cache_ttl=_env_int("HEALTH_CACHE_TTL", 60),
        health_max_results=_env_int("HEALTH_MAX_RESULTS", 100, minimum=1),
        search_max_results=_env_int("SEARCH_MAX_RESULTS", 200, minimum=1),
        cookie_secure=_env_bool("COOKIE_SECURE", True),
        admin_tag=os.environ.get("ADMIN_TAG") or "admin",
    )


def get_credential_status() -> dict:
    """Get status of all configured settings.

    Returns:
        Dictionary with configuration status.
    """
    settings = get_settings()
    return {
        "repo_root": str(REPO_ROOT),
        "env_file": ENV_FILE.exists(),
        "google": {
            "client_id": bool(settings.google_client_id),
            "client_secret": bool(settings.google_client_secret),
            "redirect_uri": bool(settings.google_redirect_uri),
        },
        "database_url": settings.database_url,
        "cache_backend": settings.cache_backend,
    }


# Auto-load .env from repo root on import
_loaded = _load_env_file(ENV_FILE)
