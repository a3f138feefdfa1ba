"""Batched relationship loading for SQLAlchemy Core records.

sqla_relations resolves relationships declared on lightweight ``Entity``
classes (one, many, and many-to-many through a pivot table). Eager loading
with ``with_relations`` costs one query per relationship for a whole result
set; attribute access (``user.posts``) loads lazily for a single entity and
memoizes the result. Foreign and local keys are inferred from table names
(``users`` -> ``user_id``) unless configured. Initialize the ``Node``
registry once at startup with ``init_node(get_node(Base))``.
"""

from ._version import __version__, __version_tuple__
from .config import RelationConfig, RelationKind, belongs_to_many, has_many, has_one
from .core import (
    EagerLoadPlanner,
    load_relations,
    relations_cache_clear,
    relations_cache_info,
    with_relations,
)
from .datastructures import RelationCache, frozendict
from .entity import Entity
from .exceptions import (
    InvalidRelationError,
    LazyLoadingDisabledError,
    RelationError,
    UndefinedRelationshipError,
)
from .inflection import infer_foreign_key
from .lazy import LazyAccessor
from .node import Node, get_node, init_node
from .query import Query, QueryAdapter, SQLAdapter
from .resolver import RelationResolver
from .tools import add_conditions, chain, get_primary_key, get_table_name, order_by


__all__ = (
    "EagerLoadPlanner",
    "Entity",
    "InvalidRelationError",
    "LazyAccessor",
    "LazyLoadingDisabledError",
    "Node",
    "Query",
    "QueryAdapter",
    "RelationCache",
    "RelationConfig",
    "RelationError",
    "RelationKind",
    "RelationResolver",
    "SQLAdapter",
    "UndefinedRelationshipError",
    "__version__",
    "__version_tuple__",
    "add_conditions",
    "belongs_to_many",
    "chain",
    "frozendict",
    "get_node",
    "get_primary_key",
    "get_table_name",
    "has_many",
    "has_one",
    "infer_foreign_key",
    "init_node",
    "load_relations",
    "order_by",
    "relations_cache_clear",
    "relations_cache_info",
    "with_relations",
)
