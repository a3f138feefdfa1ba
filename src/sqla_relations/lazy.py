from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import LazyLoadingDisabledError, UndefinedRelationshipError
from .resolver import RelationResolver


if TYPE_CHECKING:
    from .datastructures import RelationValue
    from .entity import Entity


@dataclass(slots=True)
class LazyAccessor:
    """On-demand, memoized resolution of one relationship on one entity.

    Each ``(entity, name)`` pair moves from unresolved to resolved on first
    access (or when eager loading reaches it) and is never queried again
    until the entity's cache entry is cleared with ``Entity.forget``.
    """

    resolver: RelationResolver = field(default_factory=RelationResolver)

    def get(self, entity: Entity, name: str) -> RelationValue:
        """Return relation *name* of *entity*, resolving it as a batch of one if needed.

        Raises:
            UndefinedRelationshipError: *name* is not declared on the entity's model.
            LazyLoadingDisabledError: The relationship is declared with ``lazy=False``.
        """
        model = type(entity)
        if (config := model.__relations__.get(name)) is None:
            raise UndefinedRelationshipError(name, model)

        # Eager-loaded values stay readable even when lazy loading is off.
        if name in entity.relations:
            return entity.relations[name]

        if not config.lazy:
            raise LazyLoadingDisabledError(name, model)

        self.resolver.resolve([entity], config, name)

        return entity.relations[name]
