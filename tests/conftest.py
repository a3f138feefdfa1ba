from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any

import pytest
import sqlalchemy as sa

from sqla_relations import SQLAdapter, relations_cache_clear
from sqla_relations.node import Node, get_node, init_node

from .models import (
    Base,
    categories,
    comments,
    metadata,
    post_tags,
    posts,
    profiles,
    roles,
    tags,
    user_roles,
    users,
)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["sqlite", "postgres"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session", autouse=True)
def _init_node() -> None:
    """Initialize the Node registry with the test models.

    No DB needed -- safe to run for all tests including unit tests.
    """
    try:
        Node()
    except RuntimeError:
        Node.reset()
        init_node(get_node(Base))


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:latest")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+psycopg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> Iterator[sa.Engine]:
    engine = sa.create_engine(db_config, echo=False)
    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def _create_tables(engine: sa.Engine) -> Iterator[None]:
    metadata.create_all(engine)
    yield
    metadata.drop_all(engine)


@pytest.fixture
def connection(engine: sa.Engine, _create_tables: None) -> Iterator[sa.Connection]:
    with engine.connect() as conn:
        trans = conn.begin()
        yield conn
        trans.rollback()


@pytest.fixture
def adapter(connection: sa.Connection) -> SQLAdapter:
    return SQLAdapter(connection, metadata)


@pytest.fixture
def seed_data(connection: sa.Connection) -> None:
    connection.execute(users.insert(), [
        {"id": 1, "name": "alice", "active": True},
        {"id": 2, "name": "bob", "active": True},
        {"id": 3, "name": "charlie", "active": False},
    ])
    connection.execute(profiles.insert(), [
        {"id": 1, "bio": "Alice bio", "user_id": 1},
        {"id": 2, "bio": "Bob bio", "user_id": 2},
        {"id": 3, "bio": "Orphan bio", "user_id": None},
    ])
    connection.execute(posts.insert(), [
        {"id": 1, "title": "Alice Post 1", "user_id": 1},
        {"id": 2, "title": "Alice Post 2", "user_id": 1},
        {"id": 3, "title": "Alice Post 3", "user_id": 1},
        {"id": 4, "title": "Bob Post 1", "user_id": 2},
    ])
    connection.execute(comments.insert(), [
        {"id": 1, "text": "Great post!", "post_id": 1},
        {"id": 2, "text": "Nice work", "post_id": 1},
        {"id": 3, "text": "Meh", "post_id": 4},
    ])
    connection.execute(roles.insert(), [
        {"id": 1, "name": "admin", "level": 10},
        {"id": 2, "name": "editor", "level": 5},
        {"id": 3, "name": "viewer", "level": 1},
    ])
    connection.execute(user_roles.insert(), [
        {"user_id": 1, "role_id": 1},
        {"user_id": 1, "role_id": 2},
        {"user_id": 2, "role_id": 2},
        {"user_id": 2, "role_id": 3},
    ])
    connection.execute(tags.insert(), [
        {"id": 1, "name": "python"},
        {"id": 2, "name": "sqlalchemy"},
        {"id": 3, "name": "testing"},
    ])
    connection.execute(post_tags.insert(), [
        {"post_id": 1, "tag_id": 1},
        {"post_id": 1, "tag_id": 2},
        {"post_id": 2, "tag_id": 1},
        {"post_id": 4, "tag_id": 3},
    ])
    connection.execute(categories.insert(), [
        {"id": 1, "name": "root", "parent_id": None},
        {"id": 2, "name": "child_1", "parent_id": 1},
        {"id": 3, "name": "child_2", "parent_id": 1},
        {"id": 4, "name": "grandchild", "parent_id": 2},
    ])


@pytest.fixture
def queries(connection: sa.Connection, seed_data: None) -> Iterator[list[str]]:
    """SELECT statements issued on the test connection after seeding."""
    statements: list[str] = []

    def _record(
        conn: sa.Connection,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append(statement)

    sa.event.listen(connection, "before_cursor_execute", _record)
    yield statements
    sa.event.remove(connection, "before_cursor_execute", _record)


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    relations_cache_clear()


@pytest.fixture
def reset_node_singleton() -> Iterator[None]:
    saved = Node._Node__instance  # type: ignore[attr-defined]
    yield
    Node._Node__instance = saved  # type: ignore[attr-defined]
