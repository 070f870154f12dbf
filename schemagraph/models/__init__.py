"""Pydantic models shared by the catalog client, the services and the API."""
