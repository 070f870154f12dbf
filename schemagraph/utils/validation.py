# validation.py
"""Shared validation utilities for API endpoints."""

import re
from fastapi import HTTPException, status

# Identifier pattern: printable characters only, no control characters or null bytes.
# PostgreSQL truncates identifiers at 63 bytes (NAMEDATALEN - 1).
IDENTIFIER_PATTERN = re.compile(r'[^\x00-\x1F\x7F]{1,63}')


def validate_identifier(value: str, kind: str = "identifier") -> str:
    """
    Validate a schema or table name received as a path parameter.

    The value is only ever passed to the engine as a bound parameter, so the
    check guards against inputs the catalog can never match (control
    characters, null bytes, overlong names) rather than against injection.

    Raises:
        HTTPException: 400 Bad Request if the name is not acceptable
    """
    if not IDENTIFIER_PATTERN.fullmatch(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {kind} name. Use 1 to 63 printable characters."
        )
    return value
