from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, Union, runtime_checkable

import sqlalchemy as sa

from .tools import get_table_name


if TYPE_CHECKING:
    from .entity import Entity

logger = logging.getLogger(__name__)

Record = dict[str, Any]
ColumnRef = Union[str, sa.ColumnElement[Any]]
Mapper = Callable[[list["Entity"]], None]


@runtime_checkable
class QueryAdapter(Protocol):
    """Storage capability consumed by the relation engine."""

    def new_query(self, table: str, *, model: type[Entity] | None = None) -> Query: ...

    def table(self, name: str) -> sa.Table: ...

    def execute(self, statement: sa.Select[Any]) -> list[Record]: ...


class Query:
    """Generative SELECT over one base table.

    Every builder method returns a new ``Query``; the receiver is left
    untouched, like ``sa.Select``. Column references are either SQLAlchemy
    column elements or strings: ``"name"`` for a column of the base table,
    ``"table.name"`` for a column of a joined table and ``"table.*"`` for
    all of its columns.

    When the query is bound to an entity ``model``, :meth:`all` hydrates
    rows into entities and then runs the registered mappers (deferred
    eager-load callbacks) over the resulting batch.
    """

    __slots__ = ("_mappers", "_statement", "_tables", "adapter", "model", "table")

    def __init__(
        self,
        adapter: QueryAdapter,
        table: sa.Table,
        *,
        model: type[Entity] | None = None,
    ) -> None:
        self.adapter = adapter
        self.table = table
        self.model = model
        self._tables: dict[str, sa.FromClause] = {table.name: table}
        self._statement: sa.Select[Any] = sa.select(table)
        self._mappers: tuple[Mapper, ...] = ()

    def _clone(self, **changes: Any) -> Query:
        new = object.__new__(type(self))
        for slot in self.__slots__:
            setattr(new, slot, changes.get(slot, getattr(self, slot)))

        return new

    @property
    def statement(self) -> sa.Select[Any]:
        """The underlying SQLAlchemy ``Select``."""
        return self._statement

    @property
    def mappers(self) -> tuple[Mapper, ...]:
        return self._mappers

    def column(self, ref: ColumnRef) -> sa.ColumnElement[Any]:
        """Resolve a column reference against the tables of this query.

        Raises:
            ValueError: If the table or column is not part of the query.
        """
        if not isinstance(ref, str):
            return ref

        source, name = self._source(ref)
        try:
            return source.c[name]
        except KeyError:
            raise ValueError(
                f"Column {name!r} not found in {source.name!r}. "
                f"Available: {[c.key for c in source.c]}"
            ) from None

    def _source(self, ref: str) -> tuple[sa.FromClause, str]:
        table_name, sep, name = ref.rpartition(".")
        if not sep:
            return self.table, name

        source = self._tables.get(table_name)
        if source is None:
            raise ValueError(
                f"Table {table_name!r} is not part of this query. Available: {list(self._tables)}"
            )

        return source, name

    def _columns(self, ref: ColumnRef) -> list[sa.ColumnElement[Any]]:
        if isinstance(ref, str) and (ref == "*" or ref.endswith(".*")):
            source, _ = self._source(ref)
            return list(source.c)

        return [self.column(ref)]

    def select(self, columns: Sequence[ColumnRef]) -> Query:
        """Replace the selected columns."""
        selected = [col for ref in columns for col in self._columns(ref)]
        return self._clone(_statement=self._statement.with_only_columns(*selected))

    def where(self, *clauses: sa.ColumnExpressionArgument[bool]) -> Query:
        return self._clone(_statement=self._statement.where(*clauses))

    def where_in(self, column: ColumnRef, values: Iterable[Any]) -> Query:
        """Filter *column* to *values*."""
        return self.where(self.column(column).in_(list(values)))

    def join(self, table: str | sa.Table, on_left: ColumnRef, on_right: ColumnRef) -> Query:
        """Inner join *table* on ``on_left = on_right``.

        The joined table becomes addressable as ``"<table>.<column>"``.
        """
        joined = table if isinstance(table, sa.Table) else self.adapter.table(table)
        tables = {**self._tables, joined.name: joined}
        new = self._clone(_tables=tables)
        onclause = new.column(on_left) == new.column(on_right)
        new._statement = self._statement.join(joined, onclause)

        return new

    def order_by(self, *columns: ColumnRef) -> Query:
        """Order rows; string columns prefixed with ``-`` sort descending."""
        clauses: list[sa.ColumnElement[Any]] = []
        for ref in columns:
            if isinstance(ref, str) and ref.startswith("-"):
                clauses.append(self.column(ref[1:]).desc())
            else:
                clauses.append(self.column(ref))

        return self._clone(_statement=self._statement.order_by(*clauses))

    def limit(self, limit: int | None) -> Query:
        return self._clone(_statement=self._statement.limit(limit))

    def apply(self, customizer: Callable[[Query], Query] | None) -> Query:
        """Run a ``Query -> Query`` customizer, if any.

        Raises:
            TypeError: If the customizer does not return a ``Query``.
        """
        if customizer is None:
            return self

        result = customizer(self)
        if not isinstance(result, Query):
            raise TypeError(
                f"Query customizer {customizer!r} must return a Query, got {type(result).__name__}"
            )

        return result

    def add_mapper(self, mapper: Mapper) -> Query:
        """Register a callback run over the hydrated batch by :meth:`all`."""
        return self._clone(_mappers=(*self._mappers, mapper))

    def execute(self) -> list[Record]:
        """Run the statement and return rows as plain dicts, in storage order."""
        return self.adapter.execute(self._statement)

    def all(self) -> list[Entity]:
        """Execute, hydrate rows into ``model`` and run the registered mappers.

        Raises:
            TypeError: If the query is not bound to an entity model.
        """
        if self.model is None:
            raise TypeError("Query is not bound to an entity model; use execute() for records")

        batch = [self.model.hydrate(record, self.adapter) for record in self.execute()]
        for mapper in self._mappers:
            mapper(batch)

        return batch

    def first(self) -> Entity | None:
        batch = self.limit(1).all()
        return batch[0] if batch else None

    def __str__(self) -> str:
        return str(self._statement)

    def __repr__(self) -> str:
        model = self.model.__qualname__ if self.model is not None else None
        return f"<{type(self).__name__} table={self.table.name!r} model={model}>"


class SQLAdapter:
    """:class:`QueryAdapter` over a SQLAlchemy ``Engine`` or ``Connection``.

    With an ``Engine`` a connection is checked out for every statement and
    returned right after; with a ``Connection`` statements run on it
    directly and the caller owns the transaction.

    Tables are looked up in *metadata* and reflected from the database on
    first use when missing.
    """

    __slots__ = ("bind", "metadata")

    def __init__(
        self,
        bind: sa.Engine | sa.Connection,
        metadata: sa.MetaData | None = None,
    ) -> None:
        self.bind = bind
        self.metadata = metadata if metadata is not None else sa.MetaData()

    def table(self, name: str) -> sa.Table:
        if (table := self.metadata.tables.get(name)) is not None:
            return table

        logger.debug("Reflecting table %r", name)
        return sa.Table(name, self.metadata, autoload_with=self.bind)

    def new_query(self, table: str | sa.Table, *, model: type[Entity] | None = None) -> Query:
        return Query(
            self,
            table if isinstance(table, sa.Table) else self.table(table),
            model=model,
        )

    def query(self, model: type[Entity]) -> Query:
        """Query bound to *model*'s table; :meth:`Query.all` returns entities."""
        return self.new_query(get_table_name(model), model=model)

    def execute(self, statement: sa.Select[Any]) -> list[Record]:
        logger.debug("Executing %s", statement)
        if isinstance(self.bind, sa.Engine):
            with self.bind.connect() as connection:
                return [dict(row) for row in connection.execute(statement).mappings()]

        return [dict(row) for row in self.bind.execute(statement).mappings()]
