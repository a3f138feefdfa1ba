from __future__ import annotations

import enum
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union


if sys.version_info >= (3, 11):
    from typing import TypedDict, Unpack
else:
    from typing_extensions import TypedDict, Unpack

from .datastructures import frozendict
from .exceptions import InvalidRelationError


if TYPE_CHECKING:
    from .entity import Entity
    from .query import Query

Customizer = Callable[["Query"], "Query"]
RelatedModel = Union[str, "type[Entity]"]


class RelationKind(str, enum.Enum):
    ONE = "one"
    MANY = "many"
    MANY_THROUGH = "many-x"


@dataclass(slots=True, frozen=True)
class RelationConfig:
    """Declarative definition of one relationship on an owning model.

    Instances are immutable and validated on construction, so a malformed
    table of relations fails when the model class is defined instead of
    deep inside a batch resolution.

    Attributes:
        kind: One of :class:`RelationKind`. Plain strings (``"one"``,
            ``"many"``, ``"many-x"``) are accepted and coerced.
        related_model: Target entity class, or its class/table name as
            registered in the :class:`~sqla_relations.node.Node`.
        foreign_key: Column referencing the related row. Inferred from the
            related table name when omitted.
        local_key: Column matched against the owning primary key (``many``
            and ``many-x``), or the related column matched by the foreign
            key (``one``, defaults to the related primary key).
        pivot_table: Intermediate table; required for ``many-x`` only.
        lazy: Whether on-demand loading through attribute access is allowed.
        customizer: ``Query -> Query`` hook applied right before execution.
    """

    kind: RelationKind
    related_model: RelatedModel
    foreign_key: str | None = None
    local_key: str | None = None
    pivot_table: str | None = None
    lazy: bool = True
    customizer: Customizer | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        try:
            kind = RelationKind(self.kind)
        except ValueError:
            raise InvalidRelationError(f"Invalid relation kind: {self.kind!r}") from None

        object.__setattr__(self, "kind", kind)
        validate_pivot(kind, self.pivot_table)

        if self.customizer is not None and not callable(self.customizer):
            raise InvalidRelationError(f"customizer must be callable, got {self.customizer!r}")

    @property
    def is_many(self) -> bool:
        return self.kind is not RelationKind.ONE


def validate_pivot(kind: RelationKind, pivot_table: str | None) -> None:
    """Enforce that ``pivot_table`` is set if and only if *kind* is ``many-x``."""
    if kind is RelationKind.MANY_THROUGH and not pivot_table:
        raise InvalidRelationError("A pivot_table is required for many-x relations")

    if kind is not RelationKind.MANY_THROUGH and pivot_table:
        raise InvalidRelationError(
            f"pivot_table is only valid for many-x relations, got kind {kind.value!r}"
        )


class _RelationOptions(TypedDict, total=False):
    foreign_key: str
    local_key: str
    lazy: bool
    customizer: Customizer


def has_one(related: RelatedModel, **options: Unpack[_RelationOptions]) -> RelationConfig:
    """Owning row references a single related row (``posts.user_id -> users.id``)."""
    return RelationConfig(RelationKind.ONE, related, **options)


def has_many(related: RelatedModel, **options: Unpack[_RelationOptions]) -> RelationConfig:
    """Related rows reference the owning row (``users.id <- posts.user_id``)."""
    return RelationConfig(RelationKind.MANY, related, **options)


def belongs_to_many(
    related: RelatedModel,
    pivot_table: str,
    **options: Unpack[_RelationOptions],
) -> RelationConfig:
    """Many-to-many through *pivot_table*.

    Example:
        >>> roles = belongs_to_many("Role", "user_roles")
        >>> roles.kind
        <RelationKind.MANY_THROUGH: 'many-x'>
    """
    return RelationConfig(RelationKind.MANY_THROUGH, related, pivot_table=pivot_table, **options)


def freeze_relations(owner: str, relations: Mapping[str, Any]) -> frozendict[str, RelationConfig]:
    """Validate a raw ``__relations__`` table and freeze it, keeping declaration order."""
    for name, config in relations.items():
        if not isinstance(config, RelationConfig):
            raise InvalidRelationError(
                f"Relationship {name!r} on {owner} must be a RelationConfig, "
                f"got {type(config).__name__}"
            )

    return frozendict(relations)
