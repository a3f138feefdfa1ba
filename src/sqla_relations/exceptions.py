from __future__ import annotations

from typing import Any


class RelationError(Exception):
    """Base class for every error raised by the relation engine."""


class UndefinedRelationshipError(RelationError, LookupError):
    """A relationship name is not declared on the owning model."""

    def __init__(self, name: str, model: type[Any]) -> None:
        self.name = name
        self.model = model
        super().__init__(f"Relationship {name!r} is not defined on {model.__qualname__}")


class LazyLoadingDisabledError(RelationError):
    """A ``lazy=False`` relationship was accessed without eager loading it first."""

    def __init__(self, name: str, model: type[Any]) -> None:
        self.name = name
        self.model = model
        super().__init__(
            f"Lazy loading is disabled for relationship {name!r} on {model.__qualname__}; "
            "load it eagerly with `with_relations` or `load_relations`"
        )


class InvalidRelationError(RelationError, ValueError):
    """Relationship configuration is malformed (unknown kind, missing pivot table, ...)."""
