"""Live PostgreSQL schema introspection and entity-relationship graph layout."""

__version__ = "1.0.0"
