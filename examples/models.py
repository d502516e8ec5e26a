"""Minimal models for sqla-preloads examples."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import orm

from sqla_preloads import through


class Base(orm.DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))

    posts: orm.Mapped[list[Post]] = orm.relationship(back_populates="author", lazy="raise")
    # rows live in a table shared with other apps
    avatar: orm.Mapped[Avatar | None] = orm.relationship(
        uselist=False, info={"source": "legacy_avatars"}, lazy="raise"
    )

    posts_comments = through("posts", "comments")


class Post(Base):
    __tablename__ = "posts"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    title: orm.Mapped[str] = orm.mapped_column(sa.String(200))
    author_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("users.id"))

    author: orm.Mapped[User] = orm.relationship(back_populates="posts", lazy="raise")
    comments: orm.Mapped[list[Comment]] = orm.relationship(back_populates="post", lazy="raise")


class Comment(Base):
    __tablename__ = "comments"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    text: orm.Mapped[str] = orm.mapped_column(sa.Text)
    post_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("posts.id"))

    post: orm.Mapped[Post] = orm.relationship(back_populates="comments", lazy="raise")

    post_author = through("post", "author")


class Avatar(Base):
    __tablename__ = "avatars"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    url: orm.Mapped[str] = orm.mapped_column(sa.String(500))
    user_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("users.id"))


class Category(Base):
    __tablename__ = "categories"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    parent_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("categories.id"))

    parent: orm.Mapped[Category | None] = orm.relationship(
        back_populates="children", remote_side=[id], lazy="raise"
    )
    children: orm.Mapped[list[Category]] = orm.relationship(back_populates="parent", lazy="raise")

    grandchildren = through("children", "children")
