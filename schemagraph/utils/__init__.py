# utils/__init__.py
"""Shared utilities for the schemagraph API."""

from schemagraph.utils.naming import connection_id, display_name
from schemagraph.utils.validation import validate_identifier

__all__ = ["connection_id", "display_name", "validate_identifier"]
