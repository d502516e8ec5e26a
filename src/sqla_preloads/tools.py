from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from typing import Any, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm


T = TypeVar("T", bound=orm.DeclarativeBase)
_R = TypeVar("_R")


def unique_scalars(result: sa.Result[tuple[_R]]) -> Sequence[_R]:
    """Shorthand for ``result.unique().scalars().all()``.

    Example (async)::

        comments = unique_scalars(await session.execute(assoc(post, "comments", registry=registry)))
    """
    return result.unique().scalars().all()


@lru_cache
def _get_primary_key(model: type[T]) -> sa.ColumnElement[Any]:
    """Return the first primary-key column element for *model* (cached)."""
    return next(iter(model.__table__.primary_key))


@lru_cache
def _get_table_name(model: type[T]) -> str:
    """Return the table name for *model*, preferring ``__tablename__`` (cached)."""
    result = getattr(
        model,
        "__tablename__",
        model.__table__.description,
    )
    if not result:
        raise ValueError(f"Cannot determine tablename for {model}")

    return result


def get_table_name(model: type[T]) -> str:
    """Get the table name for a SQLAlchemy model.

    Args:
        model: SQLAlchemy model class.

    Returns:
        The table name as a string.

    Raises:
        ValueError: If the table name cannot be determined.
    """
    return _get_table_name(model)


def get_primary_key(model: type[T]) -> sa.ColumnElement[Any]:
    """Get the primary key column for a SQLAlchemy model."""
    return _get_primary_key(model)


def get_table_names(query: sa.Select[Any]) -> Sequence[str]:
    """Extract all table names from a SQLAlchemy select query.

    Traverses the query's FROM clause, joins and aliases included, left to
    right. Aliases contribute their own name followed by the aliased table's;
    source-table overrides show up under the source name.

    Args:
        query: SQLAlchemy select query.

    Returns:
        Sequence of table names found in the query.
    """
    seen: set[str] = set()
    out: list[str] = []

    def add(name: str | None) -> None:
        if name and name not in seen:
            seen.add(name)
            out.append(name)

    for root in query.get_final_froms():
        stack: list[Any] = [root]
        while stack:
            node = stack.pop()

            if isinstance(node, sa.Table):
                add(node.name)
                continue

            if isinstance(node, sa.Join):
                stack.extend([node.right, node.left])
                continue

            add(getattr(node, "name", None))
            if hasattr(node, "element"):
                stack.append(node.element)

    return out
