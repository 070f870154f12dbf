# naming.py
"""Display names and stable ids for saved connections."""

import hashlib
import ipaddress
from urllib.parse import urlsplit

from schemagraph.models.connection import ConnectionDescriptor


def connection_id(descriptor: ConnectionDescriptor) -> str:
    """
    Return a short id that is identical for identical connection details.

    Fields are joined in sorted key order so the id does not depend on how the
    descriptor was built.
    """
    fields = {
        "name": descriptor.name or "",
        "host": descriptor.host,
        "port": str(descriptor.port),
        "username": descriptor.username,
        "password": descriptor.password,
        "database": descriptor.database,
    }
    payload = "|".join(f"{key}:{fields[key]}" for key in sorted(fields))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:8]


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def display_name(descriptor: ConnectionDescriptor) -> str:
    """Name to show for a connection: the explicit name, else one derived from host and database."""
    if descriptor.name:
        return descriptor.name

    database = _capitalize(descriptor.database)
    host = descriptor.host

    if host == "localhost":
        return f"Local {database}"

    # Hosts pasted as URLs, e.g. https://db.example.com
    if "://" in host:
        hostname = urlsplit(host).hostname
        if hostname:
            return f"{_capitalize(hostname)} {database}"

    labels = host.split(".")
    if len(labels) > 3 and not _is_ip_literal(host):
        return f"{_capitalize(labels[-2])} {database}"

    return f"{_capitalize(host)} {database}"
