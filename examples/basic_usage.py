"""Basic sqla-preloads usage examples.

Demonstrates building the registry, preloading nested and through
relations, and the query fragments behind them.

NOTE: This file is illustrative and won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from sqla_preloads import (
    assoc,
    build,
    get_registry,
    is_loaded,
    join_fragment,
    preload,
    unique_scalars,
)

from .models import Base, Category, Comment, Post, User


# ── 1. Build the registry once at startup ───────────────────────────

engine = create_async_engine("sqlite+aiosqlite:///:memory:")
registry = get_registry(Base)


async def setup() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── 2. Simple preloads ──────────────────────────────────────────────


async def get_users_with_posts(session: AsyncSession) -> list[User]:
    users = unique_scalars(await session.execute(sa.select(User)))
    await preload(session, users, "posts", registry=registry)
    return list(users)


async def get_posts_with_author_and_comments(session: AsyncSession) -> list[Post]:
    posts = unique_scalars(await session.execute(sa.select(Post)))
    # one query per relation, whatever the number of posts
    await preload(session, posts, ["author", "comments"], registry=registry)
    return list(posts)


# ── 3. Nested preloads ──────────────────────────────────────────────


async def get_users_deep(session: AsyncSession) -> list[User]:
    users = unique_scalars(await session.execute(sa.select(User)))
    await preload(session, users, {"posts": {"comments": "post"}}, registry=registry)
    return list(users)


# ── 4. Through relations ────────────────────────────────────────────


async def get_users_with_all_comments(session: AsyncSession) -> list[User]:
    users = unique_scalars(await session.execute(sa.select(User)))
    # loads users.posts and posts.comments, then fills users.posts_comments
    await preload(session, users, "posts_comments", registry=registry)
    return list(users)


async def get_comment_authors(session: AsyncSession) -> list[Comment]:
    comments = unique_scalars(await session.execute(sa.select(Comment)))
    await preload(session, comments, "post_author", registry=registry)
    return [c for c in comments if is_loaded(c, "post_author")]


# ── 5. Self-referential ─────────────────────────────────────────────


async def get_category_tree(session: AsyncSession) -> list[Category]:
    categories = unique_scalars(await session.execute(sa.select(Category)))
    await preload(session, categories, ["parent", "grandchildren"], registry=registry)
    return list(categories)


# ── 6. Query fragments ──────────────────────────────────────────────


async def get_comments_of(session: AsyncSession, users: list[User]) -> list[Comment]:
    # SELECT DISTINCT comments.* FROM comments JOIN posts ... WHERE posts.author_id IN (...)
    query = assoc(users, "posts_comments", registry=registry)
    return list(unique_scalars(await session.execute(query)))


async def get_users_having_posts(session: AsyncSession) -> list[User]:
    query = join_fragment(registry.relation(User, "posts")).distinct()
    return list(unique_scalars(await session.execute(query)))


def new_comment(post: Post, text: str) -> Comment:
    comment = build(post, "comments", registry=registry)
    assert isinstance(comment, Comment)
    comment.text = text
    return comment
