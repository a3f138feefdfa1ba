from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any, ClassVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

from .config import RelationConfig, freeze_relations
from .datastructures import RelationCache, RelationValue, frozendict
from .inflection import default_table_name
from .lazy import LazyAccessor


if TYPE_CHECKING:
    from .core import RelationNames
    from .query import Query, QueryAdapter


class Entity:
    """Base class of records whose relationships the engine resolves.

    Subclasses declare their table, primary key and relation table::

        class User(Entity):
            __tablename__ = "users"
            __relations__ = {
                "posts": has_many("Post"),
                "roles": belongs_to_many("Role", "user_roles"),
            }

    Column values live in an attribute mapping and read as attributes
    (``user.name``) or items (``user["name"]``). Relationships read as
    attributes too: ``user.posts`` forwards to ``user.relation("posts")``,
    which resolves it on first access and memoizes the result.

    Subclasses flagged ``__abstract__ = True`` get no default table name and
    are skipped by :func:`~sqla_relations.node.get_node`.
    """

    __tablename__: ClassVar[str]
    __primary_key__: ClassVar[str] = "id"
    __relations__: ClassVar[Mapping[str, RelationConfig]] = frozendict()

    _attributes: dict[str, Any]
    _relations: RelationCache
    _adapter: QueryAdapter | None
    _pivot: Mapping[str, Any]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        if "__tablename__" not in cls.__dict__ and not cls.__dict__.get("__abstract__", False):
            cls.__tablename__ = default_table_name(cls.__name__)

        if (own := cls.__dict__.get("__relations__")) is not None:
            cls.__relations__ = freeze_relations(cls.__qualname__, own)

    def __init__(self, /, **attributes: Any) -> None:
        object.__setattr__(self, "_attributes", dict(attributes))
        object.__setattr__(self, "_relations", RelationCache())
        object.__setattr__(self, "_adapter", None)
        object.__setattr__(self, "_pivot", frozendict())

    @classmethod
    def hydrate(cls, record: Mapping[str, Any], adapter: QueryAdapter | None = None) -> Self:
        """Build an entity from a storage record, with an empty relation cache."""
        return cls(**record).bind(adapter)

    @classmethod
    def query(cls, adapter: QueryAdapter) -> Query:
        """Query over this model's table; ``Query.all()`` returns entities."""
        return adapter.new_query(cls.__tablename__, model=cls)

    @classmethod
    def with_relations(
        cls,
        names: RelationNames,
        adapter: QueryAdapter,
        query: Query | None = None,
    ) -> Query:
        """Shortcut for :func:`~sqla_relations.core.with_relations` on this model."""
        from .core import with_relations

        return with_relations(
            names,
            query if query is not None else cls.query(adapter),
            stacklevel=3,
        )

    def bind(self, adapter: QueryAdapter | None) -> Self:
        """Attach the adapter used for lazy loading."""
        object.__setattr__(self, "_adapter", adapter)
        return self

    @property
    def adapter(self) -> QueryAdapter:
        if self._adapter is None:
            raise RuntimeError(
                f"{type(self).__qualname__} is not bound to a query adapter; "
                "hydrate it from a query or call bind()"
            )

        return self._adapter

    @property
    def primary_value(self) -> Any:
        return self._attributes.get(type(self).__primary_key__)

    @property
    def attributes(self) -> Mapping[str, Any]:
        return self._attributes

    @property
    def relations(self) -> RelationCache:
        """Resolved relationships of this instance (read-only)."""
        return self._relations

    @property
    def pivot(self) -> Mapping[str, Any]:
        """Pivot key columns of the row, when reached through a ``many-x`` relation."""
        return self._pivot

    def get(self, key: str, default: Any = None) -> Any:
        return self._attributes.get(key, default)

    def relation(self, name: str) -> RelationValue:
        """Resolved value of relationship *name*, loading it on first access."""
        return LazyAccessor().get(self, name)

    def relation_exists(self, name: str) -> bool:
        """Whether relationship *name* resolves to a related entity or a non-empty list."""
        return bool(self.relation(name))

    def is_loaded(self, name: str) -> bool:
        return name in self._relations

    def forget(self, name: str | None = None) -> None:
        """Drop one cached relationship, or all of them, so the next access re-queries."""
        if name is None:
            self._relations.clear()
        else:
            self._relations.discard(name)

    def reload(self) -> None:
        """Re-query every relationship loaded so far, replacing the cached values.

        Costs one query per loaded relationship. Relationships cached on the
        previously loaded related entities go away with them. Does nothing
        when no relationship is loaded.
        """
        if not (names := tuple(self._relations)):
            return

        from .core import load_relations

        load_relations(names, [self])

    def to_dict(self) -> dict[str, Any]:
        """Column values plus every relationship resolved so far, recursively."""
        data = dict(self._attributes)
        for name, value in self._relations.items():
            if isinstance(value, list):
                data[name] = [item.to_dict() for item in value]
            else:
                data[name] = value.to_dict() if value is not None else None

        return data

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        if name in self._attributes:
            return self._attributes[name]

        if name in type(self).__relations__:
            return self.relation(name)

        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or hasattr(type(self), name):
            object.__setattr__(self, name, value)
        elif name in type(self).__relations__:
            raise AttributeError(f"Relationship {name!r} is read-only")
        else:
            self._attributes[name] = value

    def __delattr__(self, name: str) -> None:
        if name in type(self).__relations__:
            self.forget(name)
        elif name in self._attributes:
            del self._attributes[name]
        else:
            object.__delattr__(self, name)

    def __getitem__(self, key: str) -> Any:
        return self._attributes[key]

    def __contains__(self, key: object) -> bool:
        return key in self._attributes

    def __iter__(self) -> Iterator[str]:
        return iter(self._attributes)

    def __repr__(self) -> str:
        pk = type(self).__primary_key__
        return f"<{type(self).__name__} {pk}={self.primary_value!r}>"
