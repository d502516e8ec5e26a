from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import Any

import sqlalchemy as sa
from sqlalchemy import orm

from .exceptions import EmptyInput, HeterogeneousInput, NotBuildable, RelationNotFound
from .query import ids_filter_fragment
from .registry import Registry
from .relations import BelongsTo, Has, HasThrough, NotLoaded, Through


if sys.version_info >= (3, 11):
    from typing import assert_never
else:
    from typing_extensions import assert_never


def build(record: orm.DeclarativeBase, name: str, *, registry: Registry) -> orm.DeclarativeBase:
    """Build a new, unsaved record of relation *name* for *record*.

    For ``Has`` the new record's foreign key is set to *record*'s key. For
    ``BelongsTo`` the key lives on *record* itself, so the new record comes
    back empty.

    Raises:
        RelationNotFound: If *name* is not a relation of *record*'s model.
        NotBuildable: If *name* is a through relation.

    Example:
        >>> build(Post(id=1), "comments", registry=registry).post_id
        1
    """
    relation = registry.relation(type(record), name)
    match relation:
        case Has():
            return relation.related(**{relation.related_key: getattr(record, relation.owner_key)})
        case BelongsTo():
            return relation.related()
        case HasThrough():
            raise NotBuildable(relation.owner, name)
        case _:
            assert_never(relation)


def assoc(
    records: orm.DeclarativeBase | Sequence[orm.DeclarativeBase],
    name: str,
    *,
    registry: Registry,
) -> sa.Select[Any]:
    """Query for the rows of relation *name* across *records*.

    *records* is one record or a non-empty list of records of one model.
    The owner key values of the relation, ``None`` and duplicates dropped,
    feed :func:`~sqla_preloads.query.ids_filter_fragment`.

    Raises:
        EmptyInput: If *records* is an empty list.
        RelationNotFound: If *name* is not a relation of the records' model.
        HeterogeneousInput: If *records* mixes models.

    Example:
        >>> query = assoc([Post(id=1), Post(id=2), Post()], "comments", registry=registry)
        >>> query.whereclause.right.value
        [1, 2]
    """
    items = list(records) if isinstance(records, Sequence) else [records]
    if not items:
        raise EmptyInput(name)

    model = type(items[0])
    relation = registry.relation(model, name)

    ids: dict[Any, None] = {}
    for item in items:
        if type(item) is not model:
            raise HeterogeneousInput(model, type(item))
        if (value := getattr(item, relation.owner_key)) is not None:
            ids.setdefault(value, None)

    return ids_filter_fragment(relation, list(ids))


def is_loaded(record: orm.DeclarativeBase, name: str) -> bool:
    """Whether relation *name* of *record* holds fetched data.

    Through slots are loaded once assigned, anything but :class:`NotLoaded`.
    Direct relations follow SQLAlchemy's own bookkeeping: an attribute that
    was never populated nor assigned is unloaded.

    Raises:
        RelationNotFound: If *name* is neither a relationship nor a through
            relation of *record*'s model.
    """
    model = type(record)
    if isinstance(getattr(model, name, None), Through):
        return not isinstance(getattr(record, name), NotLoaded)

    state = sa.inspect(record)
    if name not in state.mapper.relationships:
        raise RelationNotFound(model, name)

    return name not in state.unloaded
