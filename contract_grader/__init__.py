"""Grade OpenAPI contracts against organization design standards."""

__version__ = "0.1.0"
