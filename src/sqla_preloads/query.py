from __future__ import annotations

import sys
from collections.abc import Iterable
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final, Union

import sqlalchemy as sa
from sqlalchemy import orm

from .relations import BelongsTo, Has, HasThrough, Relation
from .tools import _get_table_name, get_table_name


if sys.version_info >= (3, 11):
    from typing import assert_never
else:
    from typing_extensions import assert_never


if TYPE_CHECKING:
    from sqlalchemy.orm.util import AliasedClass

    Entity = Union[type[orm.DeclarativeBase], AliasedClass[Any]]

DirectRelation = Union[Has, BelongsTo]

QUERY_CACHE_SIZE: Final[int] = 1028


@lru_cache(maxsize=128)
def source_table(model: type[orm.DeclarativeBase], source: str) -> sa.Table:
    """Copy of *model*'s table under the name *source* (cached).

    The copy lives in its own ``MetaData`` so it never clashes with the
    declarative one.
    """
    return model.__table__.to_metadata(sa.MetaData(), name=source)


def related_entity(relation: Relation, *, name: str | None = None) -> Entity:
    """Entity to select or join the related rows of *relation* with.

    Honors the relation's source-table override. When *name* is given the
    entity is aliased under it, which is how repeated models in one query are
    kept apart.
    """
    model = relation.related
    if relation.source is not None:
        table = source_table(model, relation.source)
        return orm.aliased(
            model,
            table.alias(name) if name else table,
            name=name,
            adapt_on_names=True,
        )

    return orm.aliased(model, name=name) if name else model


class _Aliases:
    """Hand out entities for a query, aliasing models that already appear in it."""

    __slots__ = ("_names", "_seen")

    def __init__(self, *seen: type[orm.DeclarativeBase]) -> None:
        self._seen: set[Any] = {_from_key(model, None) for model in seen}
        self._names: set[str] = set()

    def entity(self, relation: Relation) -> Entity:
        key = _from_key(relation.related, relation.source)
        if key not in self._seen:
            self._seen.add(key)
            return related_entity(relation)

        name = base = f"{get_table_name(relation.related)}_{relation.name}"
        counter = 1
        while name in self._names:
            counter += 1
            name = f"{base}_{counter}"
        self._names.add(name)

        return related_entity(relation, name=name)


def _from_key(model: type[orm.DeclarativeBase], source: str | None) -> str:
    return source or get_table_name(model)


def _on(relation: DirectRelation, owner: Entity, related: Entity) -> sa.ColumnElement[bool]:
    """Join condition of a direct hop: related key equals owner key."""
    return getattr(related, relation.related_key) == getattr(owner, relation.owner_key)


@lru_cache(maxsize=QUERY_CACHE_SIZE)
def join_fragment(relation: Relation) -> sa.Select[Any]:
    """Owner model joined to the related model of *relation*.

    ``Has`` and ``BelongsTo`` both join from the owner, on
    ``related.related_key == owner.owner_key``; for ``BelongsTo`` that is the
    related primary key against the owner's foreign key. A through relation
    chains one such join per hop, owner first.

    Example:
        >>> print(join_fragment(registry.relation(Post, "comments")))
        SELECT posts.id, ... FROM posts JOIN comments ON comments.post_id = posts.id
    """
    match relation:
        case Has() | BelongsTo():
            hops: tuple[DirectRelation, ...] = (relation,)
        case HasThrough():
            hops = relation.direct_hops()
        case _:
            assert_never(relation)

    aliases = _Aliases(relation.owner)
    query = sa.select(relation.owner)
    current: Entity = relation.owner
    for hop in hops:
        target = aliases.entity(hop)
        query = query.join(target, _on(hop, current, target))
        current = target

    return query


def ids_filter_fragment(relation: Relation, ids: Iterable[Any]) -> sa.Select[Any]:
    """Related rows of *relation* for the owner key values in *ids*.

    ``None`` values are dropped; an empty *ids* still produces an ``IN``
    filter, one matching nothing.

    For direct relations this is the related model filtered on its related
    key. For a through relation it is the final model of the chain, joined
    back hop by hop to the first hop's related model and filtered on that
    hop's related key. Fan-out through intermediate rows may repeat final
    rows, so the query is ``DISTINCT`` and selects the final entity only.
    """
    values = [value for value in ids if value is not None]

    match relation:
        case Has() | BelongsTo():
            target = related_entity(relation)
            return sa.select(target).where(getattr(target, relation.related_key).in_(values))
        case HasThrough():
            return _through_ids_filter(relation, values)
        case _:
            assert_never(relation)


def _through_ids_filter(relation: HasThrough, values: list[Any]) -> sa.Select[Any]:
    hops = relation.direct_hops()
    aliases = _Aliases()

    final = aliases.entity(hops[-1])
    query = sa.select(final)
    current = final
    for previous, hop in zip(reversed(hops[:-1]), reversed(hops[1:])):
        owner = aliases.entity(previous)
        query = query.join(owner, _on(hop, owner, current))
        current = owner

    first = hops[0]
    return query.where(getattr(current, first.related_key).in_(values)).distinct()


def query_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for the query caches."""
    return {fn.__name__: fn.cache_info() for fn in (join_fragment, source_table, _get_table_name)}


def query_cache_clear() -> None:
    """Clear the query caches."""
    for fn in (join_fragment, source_table, _get_table_name):
        fn.cache_clear()
