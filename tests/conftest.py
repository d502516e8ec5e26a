from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from sqla_preloads import Registry, get_registry, query_cache_clear

from .models import (
    Author,
    Base,
    Category,
    Comment,
    Permalink,
    Post,
    Summary,
)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["postgres", "mysql", "mariadb", "sqlite"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session")
def registry() -> Registry:
    """Relation registry of the test models.

    Sync, no DB needed -- safe to use from unit tests.
    """
    return get_registry(Base)


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
                    f"postgresql+asyncpg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "mysql":
            from testcontainers.mysql import MySqlContainer

            my = MySqlContainer(image="mysql:8.0")
            if os.name == "nt":
                my.get_container_host_ip = lambda: "127.0.0.1"
            with my:
                host = my.get_container_host_ip()
                port = my.get_exposed_port(my.port)
                dsn = (
                    f"mysql+asyncmy://{my.username}:{my.password}"
                    f"@{host}:{port}/{my.dbname}"
                )
                yield dsn

        case "mariadb":
            from testcontainers.mysql import MySqlContainer as MariaDBContainer

            ma = MariaDBContainer(image="mariadb:latest")
            if os.name == "nt":
                ma.get_container_host_ip = lambda: "127.0.0.1"
            with ma:
                host = ma.get_container_host_ip()
                port = ma.get_exposed_port(ma.port)
                dsn = (
                    f"mysql+asyncmy://{ma.username}:{ma.password}"
                    f"@{host}:{port}/{ma.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite+aiosqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()


@pytest.fixture
async def session(connection: AsyncConnection) -> AsyncIterator[AsyncSession]:
    sess = AsyncSession(bind=connection, expire_on_commit=False)
    yield sess
    await sess.close()


@pytest.fixture
async def seed_data(session: AsyncSession) -> dict[str, list[Base]]:
    alice = Author(id=1, name="alice")
    bob = Author(id=2, name="bob")
    charlie = Author(id=3, name="charlie")
    session.add_all([alice, bob, charlie])

    summary1 = Summary(id=1)
    summary2 = Summary(id=2)
    session.add_all([summary1, summary2])
    await session.flush()

    post1 = Post(id=1, title="Alice Post 1", author_id=1, summary_id=1)
    post2 = Post(id=2, title="Alice Post 2", author_id=1)
    post3 = Post(id=3, title="Bob Post 1", author_id=2, summary_id=2)
    session.add_all([post1, post2, post3])
    await session.flush()

    comment1 = Comment(id=1, text="Great post!", post_id=1)
    comment2 = Comment(id=2, text="Nice work", post_id=1)
    comment3 = Comment(id=3, text="Meh", post_id=2)
    comment4 = Comment(id=4, text="Orphan", post_id=None)
    session.add_all([comment1, comment2, comment3, comment4])

    link1 = Permalink(id=1, url="/alice/1", post_id=1)
    link3 = Permalink(id=3, url="/bob/1", post_id=3)
    session.add_all([link1, link3])

    root = Category(id=1, name="root", parent_id=None)
    child1 = Category(id=2, name="child_1", parent_id=1)
    child2 = Category(id=3, name="child_2", parent_id=1)
    grandchild = Category(id=4, name="grandchild", parent_id=2)
    session.add(root)
    await session.flush()
    session.add_all([child1, child2])
    await session.flush()
    session.add(grandchild)
    await session.flush()

    session.expunge_all()

    return {
        "authors": [alice, bob, charlie],
        "summaries": [summary1, summary2],
        "posts": [post1, post2, post3],
        "comments": [comment1, comment2, comment3, comment4],
        "permalinks": [link1, link3],
        "categories": [root, child1, child2, grandchild],
    }


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    query_cache_clear()
