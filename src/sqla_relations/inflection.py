from __future__ import annotations

import re
from functools import lru_cache
from typing import Final


_ID_SUFFIX: Final[str] = "_id"
_VOWELS: Final[frozenset[str]] = frozenset("aeiou")
_UNCOUNTABLE: Final[frozenset[str]] = frozenset({
    "data",
    "equipment",
    "information",
    "media",
    "metadata",
    "news",
    "series",
    "species",
})
_IRREGULAR: Final[dict[str, str]] = {
    "child": "children",
    "man": "men",
    "mouse": "mice",
    "person": "people",
    "woman": "women",
}
_IRREGULAR_PLURALS: Final[dict[str, str]] = {v: k for k, v in _IRREGULAR.items()}
# singulars ending in "s"; the plural adds "es"
_S_SINGULARS: Final[frozenset[str]] = frozenset({
    "alias",
    "atlas",
    "bias",
    "bus",
    "canvas",
    "focus",
    "gas",
    "lens",
})
# singulars ending in "ie"; "-ies" does not go back to "-y" for these
_IE_SINGULARS: Final[frozenset[str]] = frozenset({
    "brownie",
    "cookie",
    "die",
    "hoodie",
    "lie",
    "movie",
    "pie",
    "rookie",
    "selfie",
    "tie",
    "zombie",
})
_US_ENDINGS: Final[tuple[str, ...]] = ("lus", "nus", "pus", "rus", "sus", "tus")
_CAMEL_BOUNDARY: Final[re.Pattern[str]] = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """Convert ``CamelCase`` / ``camelCase`` to ``snake_case``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _split_last(word: str) -> tuple[str, str]:
    head, sep, last = word.rpartition("_")
    return head + sep, last


def singularize(word: str) -> str:
    """Return the singular form of the last ``_``-separated word in *word*.

    Only the common English suffix rules are handled; that is enough for
    table names such as ``users``, ``categories``, ``addresses``,
    ``statuses``, ``movies`` or ``boxes``. It reverses :func:`pluralize`.
    """
    head, last = _split_last(word)
    lower = last.lower()

    if not lower or lower in _UNCOUNTABLE or lower in _S_SINGULARS:
        return word
    if lower in _IRREGULAR_PLURALS:
        return head + _IRREGULAR_PLURALS[lower]
    if lower.endswith("ies"):
        if lower[:-1] in _IE_SINGULARS:
            return head + last[:-1]
        if len(lower) > 4:  # noqa: PLR2004
            return head + last[:-3] + "y"
    if lower.endswith(("sses", "shes", "ches", "xes", "zes")):
        return head + last[:-2]
    if lower.endswith("ses") and len(lower) > 4:  # noqa: PLR2004
        stem = lower[:-2]
        # statuses -> status, but houses -> house
        if stem in _S_SINGULARS or (len(stem) > 3 and stem.endswith(_US_ENDINGS)):  # noqa: PLR2004
            return head + last[:-2]
        # addresses -> address, but cases -> case
        return head + (last[:-2] if lower[-4] == "s" else last[:-1])
    if lower.endswith("s") and not lower.endswith(("ss", "us", "is")):
        return head + last[:-1]

    return word


def pluralize(word: str) -> str:
    """Return the plural form of the last ``_``-separated word in *word*."""
    head, last = _split_last(word)
    lower = last.lower()

    if not lower or lower in _UNCOUNTABLE or lower in _IRREGULAR_PLURALS:
        return word
    if lower in _IRREGULAR:
        return head + _IRREGULAR[lower]
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in _VOWELS:
        return head + last[:-1] + "ies"
    if lower.endswith(("s", "sh", "ch", "x", "z")):
        return head + last + "es"

    return word + "s"


@lru_cache(maxsize=512)
def _infer_foreign_key(table_or_column: str) -> str:
    base = table_or_column
    if base.lower().endswith(_ID_SUFFIX) and len(base) > len(_ID_SUFFIX):
        base = base[: -len(_ID_SUFFIX)]

    return f"{singularize(base).lower()}{_ID_SUFFIX}"


def infer_foreign_key(table_or_column: str) -> str:
    """Derive the conventional foreign-key column name for a table.

    A trailing ``_id`` is stripped first, so the function is idempotent on
    its own output.

    Args:
        table_or_column: Table name (``users``) or key column (``user_id``).

    Returns:
        The key column name, e.g. ``user_id``.

    Example:
        >>> infer_foreign_key("users")
        'user_id'
        >>> infer_foreign_key("user_id")
        'user_id'
        >>> infer_foreign_key("categories")
        'category_id'
    """
    return _infer_foreign_key(table_or_column)


def default_table_name(class_name: str) -> str:
    """Default table name for an entity class: ``BlogPost`` -> ``blog_posts``."""
    return pluralize(snake_case(class_name))
