"""
SECURITY CONFIG
===============
Login guard and back-office settings loaded from environment.
"""

# FLOW:
# - Pick the active env file, load it once and expose SECURITY_SETTINGS.
# HOW:
# - .env.production / .env.localhost chosen by APP_ENV or their ENV_ACTIVE flag.
# - Values already present in the process environment win over the file.

from __future__ import annotations

import logging
import os
import secrets

import dotenv

logger = logging.getLogger("security.env")

LOCKOUT_SCOPES = ("identity", "identity_ip", "ip")


def get_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {"1", "true", "yes", "on"}


def get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def get_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def get_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_name() -> str:
    env = os.getenv("APP_ENV", "").strip().lower()
    if env in {"prod", "production"}:
        return ".env.production"
    if env in {"local", "localhost", "dev", "development"}:
        return ".env.localhost"

    root = os.path.dirname(os.path.dirname(__file__))
    prod_path = os.path.join(root, ".env.production")

    def _is_active(path: str) -> bool:
        if not os.path.exists(path):
            return False
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip().startswith("ENV_ACTIVE="):
                    return line.split("=", 1)[1].strip().strip('"').lower() == "true"
        return False

    if _is_active(prod_path):
        return ".env.production"
    return ".env.localhost"


def _env_path() -> str:
    root = os.path.dirname(os.path.dirname(__file__))
    return os.path.join(root, _env_name())


def load_settings() -> dict:
    """Read every setting from the environment into a plain dict."""
    scope = get_str("LOGIN_LOCKOUT_SCOPE", "identity").lower()
    if scope not in LOCKOUT_SCOPES:
        logger.warning("Unknown LOGIN_LOCKOUT_SCOPE %r, falling back to 'identity'", scope)
        scope = "identity"

    store = get_str("LOCKOUT_STORE", "database").lower()
    if store not in {"database", "memory"}:
        logger.warning("Unknown LOCKOUT_STORE %r, falling back to 'database'", store)
        store = "database"

    return {
        "LOGIN_MAX_ATTEMPTS": get_int("LOGIN_MAX_ATTEMPTS", 3),
        "LOGIN_LOCK_BASE_SECONDS": get_int("LOGIN_LOCK_BASE_SECONDS", 60),
        "LOGIN_BACKOFF_CAP": get_int("LOGIN_BACKOFF_CAP", 0),
        "LOGIN_LOCKOUT_SCOPE": scope,
        "LOCKOUT_STORE": store,
        "DATABASE_URL": get_str("DATABASE_URL", "sqlite:///./backoffice.db"),
        "SESSION_MAX_AGE": get_int("SESSION_MAX_AGE", 600),
        "LOG_DIR": get_str("LOG_DIR", "logs"),
        "TRUSTED_PROXIES": get_list("TRUSTED_PROXIES"),
        "AUDIT_TRAIL_ENABLED": get_bool("AUDIT_TRAIL_ENABLED", True),
        "SECRETS_REDACTION_ENABLED": get_bool("SECRETS_REDACTION_ENABLED", True),
        "PROMETHEUS_ENABLED": get_bool("PROMETHEUS_ENABLED", True),
    }


dotenv.load_dotenv(_env_path())

if get_bool("APP_ENV_LOG", False):
    logger.info("Active env file: %s", _env_path())

SECURITY_SETTINGS = load_settings()

_FEATURE_FLAGS = {
    "audit-trail": "AUDIT_TRAIL_ENABLED",
    "secrets-redaction": "SECRETS_REDACTION_ENABLED",
    "prometheus": "PROMETHEUS_ENABLED",
}


def feature_enabled(feature: str, default: bool = True) -> bool:
    """Runtime toggle lookup; the environment is re-read so tests can flip flags."""
    env_name = _FEATURE_FLAGS.get(feature)
    if env_name is None:
        return default
    return get_bool(env_name, bool(SECURITY_SETTINGS.get(env_name, default)))


def session_secret(env_name: str = "SESSION_SECRET_KEY") -> str:
    """Return the session signing key, generating a process-local one if unset."""
    placeholders = {"", "change-this-secret", "REPLACE_WITH_SECURE_RANDOM_SECRET", "AUTO_GENERATE"}
    primary = os.getenv(env_name) or os.getenv("SECRET_KEY")
    if primary and primary not in placeholders:
        return primary

    secret = secrets.token_urlsafe(64)
    os.environ[env_name] = secret
    logger.warning("%s not configured; generated a process-local secret (sessions reset on restart)", env_name)
    return secret
