import pytest
from fastapi import HTTPException

from schemagraph.models.connection import ConnectionDescriptor
from schemagraph.utils import connection_id, display_name, validate_identifier


def make(host="localhost", database="shop", **kwargs):
    return ConnectionDescriptor(host=host, username="postgres", database=database, **kwargs)


@pytest.mark.parametrize("host, expected", [
    ("localhost", "Local Shop"),
    ("db.example.com", "Db.example.com Shop"),
    ("mydb.c9akciq32.eu-west-1.rds.amazonaws.com", "Amazonaws Shop"),
    ("https://pg.example.com", "Pg.example.com Shop"),
    ("10.0.0.5", "10.0.0.5 Shop"),
])
def test_display_name_from_host(host, expected):
    assert display_name(make(host=host)) == expected


def test_explicit_name_wins():
    assert display_name(make(name="Production")) == "Production"


def test_connection_id_is_stable():
    assert connection_id(make()) == connection_id(make())
    assert len(connection_id(make())) == 8
    assert connection_id(make()) != connection_id(make(password="other"))


@pytest.mark.parametrize("value", ["public", "Order Items", "ünïcode"])
def test_valid_identifiers(value):
    assert validate_identifier(value) == value


@pytest.mark.parametrize("value", ["", "a" * 64, "bad\x00name", "tab\there", "orders\n"])
def test_invalid_identifiers(value):
    with pytest.raises(HTTPException) as excinfo:
        validate_identifier(value, "table")
    assert excinfo.value.status_code == 400
