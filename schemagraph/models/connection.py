# connection.py
from enum import Enum
from typing import Literal, Optional
from urllib.parse import parse_qsl, unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field

SslMode = Literal["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]


# ─────────────────────────────────────────────────────────────────────────────
# Connection Descriptor
# ─────────────────────────────────────────────────────────────────────────────

class ConnectionDescriptor(BaseModel):
    """
    Parameters for opening one catalog session.
    Immutable: a descriptor is consumed as-is by a single connect attempt.
    """
    host: str = Field("localhost", min_length=1, description="Database host name or IP address")
    port: int = Field(5432, ge=1, le=65535, description="Database port")
    username: str = Field(..., min_length=1, description="Login role")
    password: str = Field("", description="Login password")
    database: str = Field(..., min_length=1, description="Database to introspect")
    name: Optional[str] = Field(None, max_length=100, description="Optional display name")
    ssl_mode: Optional[SslMode] = Field(
        None,
        description="Transport security mode; left unset the client decides based on the host"
    )

    model_config = ConfigDict(
        frozen=True,
        extra='ignore',
        json_schema_extra={
            "examples": [{
                "host": "localhost",
                "port": 5432,
                "username": "postgres",
                "password": "postgres",
                "database": "shop"
            }]
        }
    )

    @classmethod
    def from_url(cls, url: str) -> "ConnectionDescriptor":
        """Build a descriptor from a postgresql:// connection string."""
        parts = urlsplit(url)
        if parts.scheme not in ("postgres", "postgresql"):
            raise ValueError(f"Unsupported connection string scheme: {parts.scheme or '(none)'}")

        query = dict(parse_qsl(parts.query))

        # postgresql://user@/db?host=/var/run/postgresql names a socket directory
        return cls(
            host=query.get("host") or parts.hostname or "localhost",
            port=int(query.get("port") or parts.port or 5432),
            username=unquote(parts.username or ""),
            password=unquote(parts.password or ""),
            database=unquote(parts.path.lstrip("/")),
            ssl_mode=query.get("sslmode"),
        )


class ConnectRequest(BaseModel):
    """Connect either with explicit fields or with a connection string."""
    descriptor: Optional[ConnectionDescriptor] = None
    url: Optional[str] = Field(None, description="postgresql:// connection string")

    model_config = ConfigDict(extra='ignore')

    def resolve(self) -> ConnectionDescriptor:
        if self.descriptor is not None:
            return self.descriptor
        if self.url:
            return ConnectionDescriptor.from_url(self.url)
        raise ValueError("Either 'descriptor' or 'url' is required")


# ─────────────────────────────────────────────────────────────────────────────
# Session State
# ─────────────────────────────────────────────────────────────────────────────

class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionStatus(BaseModel):
    """Payload pushed to connection-status observers."""
    connected: bool
    error: Optional[str] = None


class ConnectResult(BaseModel):
    success: bool
    engine_version: Optional[str] = Field(None, description="Full version() string reported by the server")
    server_version: Optional[str] = Field(None, description="Version number parsed from engine_version")
    connection_id: Optional[str] = None
    display_name: Optional[str] = None
    error: Optional[str] = None


class DisconnectResult(BaseModel):
    success: bool


class ClientStatus(BaseModel):
    connected: bool
    state: SessionState
    error: Optional[str] = None
    engine_version: Optional[str] = None
    display_name: Optional[str] = None
    reconnect_attempts: int = 0
    max_reconnect_attempts: int
