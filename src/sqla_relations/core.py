from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache, partial
from typing import TYPE_CHECKING, Any, Literal, Optional, Union

from .config import Customizer, RelationConfig
from .exceptions import UndefinedRelationshipError
from .node import Node
from .resolver import RelationResolver
from .tools import flatten


if TYPE_CHECKING:
    from .entity import Entity
    from .query import Query

logger = logging.getLogger(__name__)

RelationNames = Union[
    Literal["*"],
    str,
    Sequence[str],
    Mapping[str, Optional[Customizer]],
]
_Hop = tuple["type[Entity]", str, RelationConfig]
_Step = tuple[str, RelationConfig, Optional[Customizer], bool]


@dataclass(slots=True)
class EagerLoadPlanner:
    """Validate requested relationships of a model and schedule their resolution.

    Relationship names are plain (``"posts"``) or dotted paths
    (``"posts.comments"``); ``"*"`` expands to every relationship declared
    on the model, in declaration order. A mapping of names to customizers
    constrains single loads (``{"posts": order_by("-id")}``); a ``None``
    value means no constraint. All names are validated before anything is
    scheduled, so an undefined name fails before any query runs.
    """

    model: type[Entity]
    resolver: RelationResolver = field(default_factory=RelationResolver)

    def plan(self, names: RelationNames, *, stacklevel: int = 2) -> tuple[tuple[_Step, ...], ...]:
        """Expand and validate *names* into resolution paths.

        A path that is a leading part of another requested path
        (``"posts"`` next to ``"posts.comments"``) is loaded as part of the
        longer one, where its relationship is still queried rather than
        taken from an earlier cache. Other intermediate relationships already
        cached for a whole level are reused. A customizer given for a path
        applies to the last relationship of that path, wherever that
        relationship is loaded.

        Raises:
            UndefinedRelationshipError: A name (or path segment) is not declared.
        """
        constraints: Mapping[str, Customizer | None] = {}
        if isinstance(names, Mapping):
            constraints = names
            requested: Sequence[str] = tuple(names)
        elif names == "*":
            requested = tuple(self.model.__relations__)
        elif isinstance(names, str):
            requested = (names,)
        else:
            requested = names

        seen: set[str] = set()
        resolved: list[tuple[_Hop, ...]] = []
        for name in requested:
            if name in seen:
                warnings.warn(
                    f"Relationship {name!r} requested more than once for "
                    f"{self.model.__qualname__}; loading it once",
                    stacklevel=stacklevel,
                )
                continue
            seen.add(name)
            resolved.append(_resolve_path(self.model, name, self.resolver.node))

        segments = [tuple(name for _, name, _ in hops) for hops in resolved]
        covered = [
            any(len(other) > len(names_) and other[: len(names_)] == names_ for other in segments)
            for names_ in segments
        ]
        # requested prefixes are resolved once, in the first path that contains them
        pending = {names_ for names_, is_covered in zip(segments, covered) if is_covered}

        paths: list[tuple[_Step, ...]] = []
        for hops, path_names, is_covered in zip(resolved, segments, covered):
            if is_covered:
                continue

            steps: list[_Step] = []
            for depth, (_, name, config) in enumerate(hops):
                prefix = path_names[: depth + 1]
                always = depth == len(hops) - 1 or prefix in pending
                pending.discard(prefix)
                steps.append((name, config, constraints.get(".".join(prefix)), always))
            paths.append(tuple(steps))

        return tuple(paths)

    def with_relations(self, names: RelationNames, query: Query, *, stacklevel: int = 2) -> Query:
        """Register one deferred resolution per relationship path on *query*.

        The callbacks run, in request order, when ``query.all()`` has
        hydrated its rows and before the batch is returned.
        """
        for path in self.plan(names, stacklevel=stacklevel + 1):
            logger.debug(
                "Scheduling eager load of %s on %s",
                ".".join(name for name, _, _, _ in path),
                self.model.__qualname__,
            )
            query = query.add_mapper(partial(self._load_path, path=path))

        return query

    def load(self, names: RelationNames, batch: Sequence[Entity], *, stacklevel: int = 2) -> None:
        """Resolve relationships on an already loaded *batch*; no-op when empty."""
        paths = self.plan(names, stacklevel=stacklevel + 1)
        if not batch:
            return

        for path in paths:
            self._load_path(batch, path=path)

    def _load_path(self, batch: Sequence[Entity], *, path: tuple[_Step, ...]) -> None:
        current = batch
        for name, config, customizer, always in path:
            if not current:
                return

            if always or not all(name in entity.relations for entity in current):
                self.resolver.resolve(current, config, name, customizer)

            current = flatten([entity.relations[name] for entity in current])


@lru_cache(maxsize=1024)
def _resolve_path(model: type[Entity], dotted: str, node: Node | None) -> tuple[_Hop, ...]:
    """Turn ``"posts.comments"`` into ``((User, "posts", cfg), (Post, "comments", cfg))``.

    Each segment must be a relationship declared on the model reached so
    far; string targets of intermediate segments go through the registry.
    """
    hops: list[_Hop] = []
    current: type[Entity] = model
    segments = dotted.split(".")
    for depth, segment in enumerate(segments):
        if (config := current.__relations__.get(segment)) is None:
            raise UndefinedRelationshipError(segment, current)

        hops.append((current, segment, config))
        if depth < len(segments) - 1:
            current = (node if node is not None else Node()).resolve_model(config.related_model)

    return tuple(hops)


def with_relations(names: RelationNames, query: Query, *, stacklevel: int = 2) -> Query:
    """Eager-load relationships of ``query.model`` once the query runs.

    Args:
        names: ``"*"`` for every declared relationship, a name, a dotted
            path, a sequence of those, or a mapping of those to per-call
            customizers (``None`` for none), applied after the configured one.
        query: Query bound to the owning entity model.
        stacklevel: Frame a duplicate-name warning points at, as in
            :func:`warnings.warn`; wrappers pass one more per extra frame.

    Returns:
        A new query; ``.all()`` returns entities with the relations resolved,
        each relationship costing exactly one extra query per batch.

    Raises:
        UndefinedRelationshipError: Before any query runs, if a name is unknown.
        TypeError: If *query* is not bound to an entity model.

    Example::

        users = with_relations(("posts", "roles"), User.query(adapter)).all()
        users = User.with_relations("*", adapter).all()
        users = with_relations("posts.comments", User.query(adapter)).all()
        users = with_relations({"posts": order_by("-id")}, User.query(adapter)).all()
    """
    if query.model is None:
        raise TypeError("with_relations needs a query bound to an entity model")

    return EagerLoadPlanner(query.model).with_relations(names, query, stacklevel=stacklevel + 1)


def load_relations(
    names: RelationNames,
    entities: Sequence[Entity],
    *,
    stacklevel: int = 2,
) -> None:
    """Eager-load relationships onto entities that are already in memory.

    Accepts the same *names* as :func:`with_relations`. All entities must
    be of the same model. Does nothing for an empty sequence.
    """
    if not entities:
        return

    EagerLoadPlanner(type(entities[0])).load(names, entities, stacklevel=stacklevel + 1)


def relations_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    from .inflection import _infer_foreign_key
    from .tools import _get_primary_key, _get_table_name

    return {
        fn.__name__: fn.cache_info()
        for fn in (_resolve_path, _infer_foreign_key, _get_primary_key, _get_table_name)
    }


def relations_cache_clear() -> None:
    """Clear all internal LRU caches."""
    from .inflection import _infer_foreign_key
    from .tools import _get_primary_key, _get_table_name

    for fn in (_resolve_path, _infer_foreign_key, _get_primary_key, _get_table_name):
        fn.cache_clear()
