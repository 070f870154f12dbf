# security.py
import secrets
from typing import Optional

from fastapi import WebSocket
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

class SecuritySettings(BaseSettings):
    # Unset means the service is open (local desktop use)
    API_KEY: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

security_settings = SecuritySettings()

API_KEY_NAME = "X-API-Key"


# ─────────────────────────────────────────────────────────────────────────────
# Utilities
# ─────────────────────────────────────────────────────────────────────────────

def api_key_required() -> bool:
    return bool(security_settings.API_KEY)


def api_key_matches(candidate: Optional[str]) -> bool:
    """Constant-time comparison against the configured key."""
    expected = security_settings.API_KEY
    if not expected or candidate is None:
        return False
    return secrets.compare_digest(candidate.encode(), expected.encode())


def websocket_authorized(websocket: WebSocket) -> bool:
    """
    WebSocket handshakes can't carry custom headers from browsers, so the key
    is read from the X-API-Key query parameter (falling back to the header).
    """
    if not api_key_required():
        return True
    candidate = websocket.query_params.get(API_KEY_NAME) or websocket.headers.get(API_KEY_NAME)
    return api_key_matches(candidate)
