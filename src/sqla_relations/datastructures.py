from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any, TypeVar, Union


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


if TYPE_CHECKING:
    from .entity import Entity

K = TypeVar("K")
V = TypeVar("V")

RelationValue = Union["Entity", None, "list[Entity]"]


class frozendict(Mapping[K, V]):  # noqa: N801
    """Immutable, insertion-ordered mapping.

    Used for the per-model relation tables (declaration order matters for
    ``with_relations("*")``) and for the model registry. The hash is
    computed on first use, so values only need to be hashable when the
    mapping itself is hashed.

    Example:
        >>> fd = frozendict({"posts": 1, "roles": 2})
        >>> list(fd)
        ['posts', 'roles']
        >>> fd.copy(profile=3)
        <frozendict {'posts': 1, 'roles': 2, 'profile': 3}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def copy(self, **add_or_replace: Any) -> Self:
        """Return a new frozendict with *add_or_replace* merged in."""
        return type(self)(self, **add_or_replace)

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash


class RelationCache(Mapping[str, RelationValue]):
    """Per-entity store of resolved relationships.

    Read access is a plain mapping. A name present in the cache is
    resolved, even when its value is ``None`` (no related row) or an empty
    list. Only the resolver writes entries; callers may drop them with
    :meth:`discard` or :meth:`clear` to force a re-fetch.
    """

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: dict[str, RelationValue] = {}

    def __getitem__(self, name: str) -> RelationValue:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {sorted(self._values)!r}>"

    def _store(self, name: str, value: RelationValue) -> None:
        self._values[name] = value

    def discard(self, name: str) -> None:
        """Forget *name*; the next access resolves it again."""
        self._values.pop(name, None)

    def clear(self) -> None:
        self._values.clear()
