from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from .config import Customizer, RelationConfig, RelationKind, validate_pivot
from .datastructures import RelationValue, frozendict
from .exceptions import InvalidRelationError
from .inflection import infer_foreign_key
from .node import Node
from .tools import distinct_values, get_primary_key, get_table_name


if TYPE_CHECKING:
    from .entity import Entity
    from .query import Query, QueryAdapter, Record

logger = logging.getLogger(__name__)

PIVOT_PREFIX: Final[str] = "pivot__"

Batch = Sequence["Entity"]


@dataclass(slots=True, frozen=True)
class _Plan:
    """Everything needed to resolve one relationship on one batch."""

    name: str
    config: RelationConfig
    owner: type[Entity]
    related: type[Entity]
    adapter: QueryAdapter
    customizer: Customizer | None = None


@dataclass(slots=True)
class RelationResolver:
    """Resolve a declared relationship for a whole batch with one query.

    The three strategies share the same shape: collect the identifiers the
    batch refers to, fetch every related row for them in a single
    ``WHERE ... IN`` query, then distribute the hydrated rows back onto
    the owning entities' relation caches.

    Nothing is written to any cache until the query has run and every row
    has been hydrated and grouped, so a storage error leaves the batch
    untouched. An empty batch never reaches storage.
    """

    node: Node | None = field(default=None)

    def resolve(
        self,
        batch: Batch,
        config: RelationConfig,
        name: str,
        customizer: Customizer | None = None,
    ) -> None:
        """Populate relation *name* on every entity of *batch*.

        Args:
            batch: Entities of one owning model.
            config: Relation definition from the owning model.
            name: Relation name, used as the cache key.
            customizer: Extra query customizer for this call only, applied
                after the one configured on the relation.

        Raises:
            InvalidRelationError: Unknown kind, or ``many-x`` without a pivot table.
            ValueError: A customizer dropped the pivot key column of a ``many-x`` query.
        """
        if not batch:
            return

        plan = self._plan(batch, config, name, customizer)

        match config.kind:
            case RelationKind.ONE:
                values = self._resolve_one(batch, plan)
            case RelationKind.MANY:
                values = self._resolve_many(batch, plan)
            case RelationKind.MANY_THROUGH:
                validate_pivot(config.kind, config.pivot_table)
                values = self._resolve_many_through(batch, plan)
            case _:
                raise InvalidRelationError(f"Invalid relation kind: {config.kind!r}")

        for entity, value in zip(batch, values):
            entity.relations._store(name, value)  # noqa: SLF001

    def _plan(
        self,
        batch: Batch,
        config: RelationConfig,
        name: str,
        customizer: Customizer | None,
    ) -> _Plan:
        owner = type(batch[0])
        if isinstance(config.related_model, str):
            related = (self.node if self.node is not None else Node()).resolve_model(
                config.related_model
            )
        else:
            related = config.related_model

        return _Plan(
            name=name,
            config=config,
            owner=owner,
            related=related,
            adapter=batch[0].adapter,
            customizer=customizer,
        )

    def _fetch(
        self,
        plan: _Plan,
        column: str,
        ids: list[Any],
        query: Query | None = None,
    ) -> list[Record]:
        """Run the single round-trip of a resolution: ``column IN ids``, then the customizers."""
        if query is None:
            query = plan.adapter.new_query(get_table_name(plan.related), model=plan.related)

        records = (
            query.where_in(column, ids)
            .apply(plan.config.customizer)
            .apply(plan.customizer)
            .execute()
        )
        logger.debug(
            "Resolved %s.%s (%s) for %d ids: %d rows",
            plan.owner.__qualname__,
            plan.name,
            plan.config.kind.value,
            len(ids),
            len(records),
        )

        return records

    def _resolve_one(self, batch: Batch, plan: _Plan) -> list[RelationValue]:
        config = plan.config
        foreign_key = config.foreign_key or infer_foreign_key(get_table_name(plan.related))
        match_key = config.local_key or get_primary_key(plan.related)

        ids = distinct_values(batch, foreign_key)
        if not ids:
            return [None] * len(batch)

        # First row per key wins.
        by_key: dict[Any, Entity] = {}
        for record in self._fetch(plan, match_key, ids):
            if (key := record.get(match_key)) not in by_key:
                by_key[key] = plan.related.hydrate(record, plan.adapter)

        return [
            by_key.get(value) if (value := entity.get(foreign_key)) is not None else None
            for entity in batch
        ]

    def _resolve_many(self, batch: Batch, plan: _Plan) -> list[RelationValue]:
        local_key = plan.config.local_key or infer_foreign_key(get_table_name(plan.owner))
        primary_key = get_primary_key(plan.owner)

        ids = distinct_values(batch, primary_key)
        if not ids:
            return [[] for _ in batch]

        grouped: dict[Any, list[Entity]] = {}
        for record in self._fetch(plan, local_key, ids):
            grouped.setdefault(record.get(local_key), []).append(
                plan.related.hydrate(record, plan.adapter)
            )

        return [list(grouped.get(entity.get(primary_key), ())) for entity in batch]

    def _resolve_many_through(self, batch: Batch, plan: _Plan) -> list[RelationValue]:
        config = plan.config
        pivot = config.pivot_table
        assert pivot
        related_table = get_table_name(plan.related)
        foreign_key = config.foreign_key or infer_foreign_key(related_table)
        local_key = config.local_key or infer_foreign_key(get_table_name(plan.owner))
        primary_key = get_primary_key(plan.owner)

        ids = distinct_values(batch, primary_key)
        if not ids:
            return [[] for _ in batch]

        query = plan.adapter.new_query(related_table, model=plan.related).join(
            pivot,
            f"{pivot}.{foreign_key}",
            f"{related_table}.{get_primary_key(plan.related)}",
        )
        query = query.select([
            f"{related_table}.*",
            query.column(f"{pivot}.{foreign_key}").label(f"{PIVOT_PREFIX}{foreign_key}"),
            query.column(f"{pivot}.{local_key}").label(f"{PIVOT_PREFIX}{local_key}"),
        ])

        grouped: dict[Any, list[Entity]] = {}
        for record in self._fetch(plan, f"{pivot}.{local_key}", ids, query):
            pivot_values = {
                key[len(PIVOT_PREFIX) :]: record.pop(key)
                for key in list(record)
                if key.startswith(PIVOT_PREFIX)
            }
            if local_key not in pivot_values:
                raise ValueError(
                    f"Pivot column {PIVOT_PREFIX}{local_key} missing from the rows of "
                    f"{plan.owner.__qualname__}.{plan.name}; a customizer must keep the "
                    "pivot columns when it changes the selected columns"
                )
            entity = plan.related.hydrate(record, plan.adapter)
            object.__setattr__(entity, "_pivot", frozendict(pivot_values))
            grouped.setdefault(pivot_values[local_key], []).append(entity)

        return [list(grouped.get(entity.get(primary_key), ())) for entity in batch]


def resolve(
    batch: Batch,
    config: RelationConfig,
    name: str,
    customizer: Customizer | None = None,
) -> None:
    """Resolve relation *name* on *batch* using the global :class:`Node` registry."""
    RelationResolver().resolve(batch, config, name, customizer)
