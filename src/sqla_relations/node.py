from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, ClassVar, final

from .datastructures import frozendict
from .exceptions import InvalidRelationError


if TYPE_CHECKING:
    from .config import RelatedModel, RelationConfig
    from .entity import Entity

NodeMapping = Mapping["type[Entity]", Mapping[str, "RelationConfig"]]


@final
class Node:
    """Singleton registry of entity models and their relation tables.

    Relations may name their target model by string; the resolver turns
    those names into classes through this registry. Initialize it once at
    startup with :func:`init_node`.
    """

    __instance: ClassVar[Node | None] = None
    _node: NodeMapping
    _by_name: dict[str, type[Entity]]

    def __new__(cls, node: NodeMapping | None = None) -> Node:
        if cls.__instance is None:
            instance = super().__new__(cls)
            if node is not None:
                instance.set_node(node)

            cls.__instance = instance

        if not getattr(cls.__instance, "_node", None):
            raise RuntimeError("Node is not initialized or empty")

        return cls.__instance

    def get(self, model: type[Entity]) -> Mapping[str, RelationConfig]:
        """Relation table for *model*, empty if the model is unknown."""
        return self.node.get(model, frozendict())

    def __getitem__(self, model: type[Entity]) -> Mapping[str, RelationConfig]:
        return self.node[model]

    def __contains__(self, model: object) -> bool:
        return model in self.node

    @property
    def node(self) -> NodeMapping:
        """The underlying model-to-relations mapping (read-only)."""
        return self._node

    def set_node(self, node: NodeMapping) -> None:
        """Replace the registry contents and re-index models by name.

        Raises:
            InvalidRelationError: If two models share a class or table name,
                or a relation targets a model that is not registered.
        """
        by_name: dict[str, type[Entity]] = {}
        for model in node:
            for key in {model.__name__, model.__tablename__}:
                if (other := by_name.get(key)) is not None and other is not model:
                    raise InvalidRelationError(
                        f"Model name {key!r} is ambiguous: {other.__qualname__} "
                        f"and {model.__qualname__}"
                    )
                by_name[key] = model

        for model, relations in node.items():
            for name, config in relations.items():
                if isinstance(config.related_model, str) and config.related_model not in by_name:
                    raise InvalidRelationError(
                        f"Relationship {name!r} on {model.__qualname__} targets unknown "
                        f"model {config.related_model!r}"
                    )

        self._node = node
        self._by_name = by_name

    def resolve_model(self, related: RelatedModel) -> type[Entity]:
        """Turn a class or registered class/table name into an entity class."""
        if not isinstance(related, str):
            return related

        try:
            return self._by_name[related]
        except KeyError:
            raise InvalidRelationError(f"Unknown related model {related!r}") from None

    @classmethod
    def reset(cls) -> None:
        """Destroy the singleton, allowing re-initialization (primarily for tests)."""
        cls._node = {}
        cls.__instance = None


def get_node(base: type[Entity]) -> frozendict[type[Entity], Mapping[str, RelationConfig]]:
    """Collect every concrete subclass of *base* with its relation table.

    Classes flagged ``__abstract__ = True`` are traversed but not registered.

    Example:
        >>> from myapp.models import Entity
        >>> init_node(get_node(Entity))
    """
    models: dict[type[Entity], Mapping[str, RelationConfig]] = {}
    stack = list(reversed(base.__subclasses__()))
    while stack:
        model = stack.pop()
        if not model.__dict__.get("__abstract__", False):
            models.setdefault(model, model.__relations__)
        stack.extend(reversed(model.__subclasses__()))

    return frozendict(models)


def init_node(node: NodeMapping) -> None:
    """Initialize the global Node singleton; call once during startup."""
    Node(node)
