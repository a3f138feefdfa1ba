from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa


if TYPE_CHECKING:
    from .entity import Entity
    from .query import Query


@lru_cache
def _get_table_name(model: type[Entity]) -> str:
    """Return the table name for *model* (cached)."""
    result = getattr(model, "__tablename__", None)
    if not result:
        raise ValueError(f"Cannot determine tablename for {model}")

    return result


@lru_cache
def _get_primary_key(model: type[Entity]) -> str:
    """Return the primary-key column name for *model* (cached)."""
    result = getattr(model, "__primary_key__", None)
    if not result:
        raise ValueError(f"Cannot determine primary key for {model}")

    return result


def get_table_name(model: type[Entity]) -> str:
    """Get the table name of an entity model.

    Raises:
        ValueError: If the table name cannot be determined.
    """
    return _get_table_name(model)


def get_primary_key(model: type[Entity]) -> str:
    """Get the primary-key column name of an entity model.

    Raises:
        ValueError: If the primary key cannot be determined.
    """
    return _get_primary_key(model)


def distinct_values(entities: Iterable[Entity], key: str) -> list[Any]:
    """Distinct, non-null values of attribute *key* across *entities*, first-seen order."""
    seen: set[Hashable] = set()
    out: list[Any] = []
    for entity in entities:
        value = entity.get(key)
        if value is None or value in seen:
            continue
        seen.add(value)
        out.append(value)

    return out


def add_conditions(
    *conditions: sa.ColumnExpressionArgument[bool],
) -> Callable[[Query], Query]:
    """Create a relation customizer that adds WHERE conditions.

    Example:
        >>> posts = sa.table("posts", sa.column("published"))
        >>> relations = {
        ...     "published_posts": has_many(
        ...         "Post", customizer=add_conditions(posts.c.published.is_(True))
        ...     ),
        ... }
    """

    def _add(query: Query) -> Query:
        return query.where(*conditions)

    return _add


def order_by(*columns: str | sa.ColumnElement[Any]) -> Callable[[Query], Query]:
    """Create a relation customizer that orders related rows.

    String columns may be prefixed with ``-`` for descending order.
    """

    def _order(query: Query) -> Query:
        return query.order_by(*columns)

    return _order


def chain(*customizers: Callable[[Query], Query]) -> Callable[[Query], Query]:
    """Compose several customizers, applied left to right."""

    def _chain(query: Query) -> Query:
        for customizer in customizers:
            query = query.apply(customizer)

        return query

    return _chain


def flatten(values: Sequence[Entity | None | list[Entity]]) -> list[Entity]:
    """Flatten resolved relation values into one list of distinct instances.

    Absent (``None``) values are dropped; an instance shared by several
    owners appears once.
    """
    seen: set[int] = set()
    out: list[Entity] = []
    for value in values:
        if value is None:
            continue
        for entity in value if isinstance(value, list) else (value,):
            if id(entity) not in seen:
                seen.add(id(entity))
                out.append(entity)

    return out
