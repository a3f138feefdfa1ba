from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_relations import Query, QueryAdapter, SQLAdapter

from ..models import Role, User, metadata, roles


class TestQueryBuilder:
    def test_generative(self, adapter: SQLAdapter) -> None:
        base = adapter.new_query("roles")
        filtered = base.where_in("id", [1, 2])

        assert "WHERE" not in str(base)
        assert "WHERE" in str(filtered)

    def test_string_columns(self, adapter: SQLAdapter) -> None:
        query = adapter.new_query("roles")

        assert query.column("name") is roles.c.name
        assert query.column(roles.c.level) is roles.c.level

    def test_unknown_column(self, adapter: SQLAdapter) -> None:
        with pytest.raises(ValueError, match="Column 'nope' not found in 'roles'"):
            adapter.new_query("roles").column("nope")

    def test_unjoined_table(self, adapter: SQLAdapter) -> None:
        with pytest.raises(ValueError, match="not part of this query"):
            adapter.new_query("roles").column("user_roles.user_id")

    def test_join_and_select(self, adapter: SQLAdapter) -> None:
        query = (
            adapter.new_query("roles")
            .join("user_roles", "user_roles.role_id", "roles.id")
            .select(["roles.*", "user_roles.user_id"])
        )
        compiled = str(query)

        assert "JOIN user_roles ON user_roles.role_id = roles.id" in compiled
        assert "user_roles.user_id" in compiled
        assert "roles.level" in compiled

    def test_apply_requires_query(self, adapter: SQLAdapter) -> None:
        with pytest.raises(TypeError, match="must return a Query"):
            adapter.new_query("roles").apply(lambda q: None)  # type: ignore[arg-type,return-value]

    def test_apply_none_is_identity(self, adapter: SQLAdapter) -> None:
        query = adapter.new_query("roles")

        assert query.apply(None) is query

    def test_adapter_protocol(self, adapter: SQLAdapter) -> None:
        assert isinstance(adapter, QueryAdapter)


class TestQueryExecution:
    def test_execute_returns_records(self, adapter: SQLAdapter, queries: list[str]) -> None:
        records = adapter.new_query("roles").order_by("id").execute()

        assert records[0] == {"id": 1, "name": "admin", "level": 10}
        assert all(isinstance(r, dict) for r in records)

    def test_all_hydrates_entities(self, adapter: SQLAdapter, queries: list[str]) -> None:
        roles_ = Role.query(adapter).order_by("id").all()

        assert [r.name for r in roles_] == ["admin", "editor", "viewer"]
        assert all(isinstance(r, Role) and r.adapter is adapter for r in roles_)

    def test_all_without_model(self, adapter: SQLAdapter) -> None:
        with pytest.raises(TypeError, match="not bound to an entity model"):
            adapter.new_query("roles").all()

    def test_first(self, adapter: SQLAdapter, queries: list[str]) -> None:
        assert Role.query(adapter).order_by("-level").first().name == "admin"  # type: ignore[union-attr]
        assert Role.query(adapter).where_in("id", [99]).first() is None

    def test_mappers_run_on_batch(self, adapter: SQLAdapter, queries: list[str]) -> None:
        seen: list[int] = []
        query = User.query(adapter).add_mapper(lambda batch: seen.append(len(batch)))

        query.all()

        assert seen == [3]

    def test_engine_bind(self, engine: sa.Engine, _create_tables: None) -> None:
        # a connection is checked out per statement
        records = SQLAdapter(engine, metadata).new_query("roles").execute()

        assert isinstance(records, list)

    def test_reflects_unknown_table(self, adapter: SQLAdapter, queries: list[str]) -> None:
        reflecting = SQLAdapter(adapter.bind, sa.MetaData())
        table = reflecting.table("roles")

        assert {c.name for c in table.c} == {"id", "name", "level"}
        assert isinstance(reflecting.new_query("roles"), Query)
