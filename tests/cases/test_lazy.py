from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_relations import (
    LazyAccessor,
    LazyLoadingDisabledError,
    SQLAdapter,
    UndefinedRelationshipError,
)

from ..models import Post, User, posts


def _alice(adapter: SQLAdapter) -> User:
    alice = User.query(adapter).where_in("id", [1]).first()
    assert isinstance(alice, User)

    return alice


class TestLazyAccessor:
    def test_attribute_access_loads(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)
        queries.clear()

        assert len(alice.posts) == 3
        assert len(queries) == 1

    def test_memoized(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)
        queries.clear()

        first = LazyAccessor().get(alice, "roles")
        second = LazyAccessor().get(alice, "roles")

        assert first is second
        assert len(queries) == 1

    def test_forget_refetches(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)
        queries.clear()

        before = alice.posts
        alice.forget("posts")
        assert not alice.is_loaded("posts")
        after = alice.posts

        assert before is not after
        assert len(queries) == 2

    def test_forget_all(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)
        alice.relation("posts")
        alice.relation("roles")

        alice.forget()

        assert len(alice.relations) == 0

    def test_del_attribute_clears_relation(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)
        alice.relation("posts")

        del alice.posts

        assert not alice.is_loaded("posts")

    def test_undefined_relationship(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)

        with pytest.raises(UndefinedRelationshipError, match="followers"):
            alice.relation("followers")

    def test_unknown_attribute_is_attribute_error(self, adapter: SQLAdapter) -> None:
        alice = User.hydrate({"id": 1, "name": "alice"}, adapter)

        assert not hasattr(alice, "followers")

    def test_lazy_disabled(self, adapter: SQLAdapter, queries: list[str]) -> None:
        post = Post.query(adapter).where_in("id", [1]).first()
        assert post is not None
        queries.clear()

        with pytest.raises(LazyLoadingDisabledError, match="tags"):
            _ = post.tags

        assert queries == []
        assert not post.is_loaded("tags")

    def test_relation_exists(self, adapter: SQLAdapter, queries: list[str]) -> None:
        users = User.query(adapter).order_by("id").all()

        assert users[0].relation_exists("posts")
        assert not users[2].relation_exists("posts")

    def test_eager_result_reused(self, adapter: SQLAdapter, queries: list[str]) -> None:
        users = User.with_relations("posts", adapter).all()
        queries.clear()

        for user in users:
            _ = user.posts

        assert queries == []

    def test_unbound_entity(self) -> None:
        detached = User(id=1, name="alice")

        with pytest.raises(RuntimeError, match="not bound"):
            _ = detached.posts

    def test_relations_are_read_only(self, adapter: SQLAdapter) -> None:
        alice = User.hydrate({"id": 1, "name": "alice"}, adapter)

        with pytest.raises(AttributeError, match="read-only"):
            alice.posts = []


class TestReload:
    def test_refreshes_loaded_relations(
        self, adapter: SQLAdapter, connection: sa.Connection, queries: list[str]
    ) -> None:
        alice = _alice(adapter)
        _ = alice.posts, alice.roles
        connection.execute(posts.insert().values(id=10, title="Alice Post 4", user_id=1))
        queries.clear()

        alice.reload()

        assert len(queries) == 2
        assert "Alice Post 4" in {p.title for p in alice.posts}
        assert {r.name for r in alice.roles} == {"admin", "editor"}
        assert not alice.is_loaded("profiles")

    def test_nothing_loaded_is_noop(self, adapter: SQLAdapter, queries: list[str]) -> None:
        alice = _alice(adapter)
        queries.clear()

        alice.reload()

        assert queries == []
        assert dict(alice.relations) == {}

    def test_eager_only_relation_is_reloaded(
        self, adapter: SQLAdapter, queries: list[str]
    ) -> None:
        post = Post.with_relations("tags", adapter).where_in("id", [1]).first()
        assert post is not None
        before = post.tags
        queries.clear()

        post.reload()

        assert len(queries) == 1
        assert post.tags is not before
        assert {t.name for t in post.tags} == {"python", "sqlalchemy"}
