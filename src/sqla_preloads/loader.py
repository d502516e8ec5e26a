from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from .exceptions import HeterogeneousInput
from .preloader import DirectLoad, PlanEntry, ThroughLoad, expand, normalize
from .query import ids_filter_fragment
from .registry import Registry
from .tools import unique_scalars


T = TypeVar("T", bound=orm.DeclarativeBase)

_logger = logging.getLogger("sqla_preloads")


async def preload(
    session: AsyncSession,
    records: Sequence[T],
    preloads: Any,
    *,
    registry: Registry,
) -> Sequence[T]:
    """Eagerly load *preloads* into *records*, one query per direct relation.

    The request is normalized and expanded against the records' model. Each
    direct relation runs a single ids-filter query for all records of its
    level and its rows are matched back on the relation's key: ``many``
    relations get a list, ``one`` relations the first match or ``None``.
    Through relations are assembled afterwards from their loaded hops.

    Example (async)::

        authors = unique_scalars(await session.execute(sa.select(Author)))
        await preload(session, authors, ["posts", {"posts_comments": "post"}], registry=registry)

    Raises:
        HeterogeneousInput: If *records* mixes models.
        PreloadConflict, InvalidPreload, RelationNotFound: On a bad request.
    """
    if not records:
        return records

    model = type(records[0])
    for record in records:
        if type(record) is not model:
            raise HeterogeneousInput(model, type(record))

    plan = expand(model, normalize(preloads, original=preloads), registry=registry)
    await _run(session, records, plan)

    return records


async def _run(session: AsyncSession, records: Sequence[Any], plan: list[PlanEntry]) -> None:
    # Through entries read the attributes filled by the direct ones.
    for entry in plan:
        if isinstance(entry.load, DirectLoad):
            await _load_direct(session, records, entry.load, entry.nested)

    for entry in plan:
        if isinstance(entry.load, ThroughLoad):
            _load_through(records, entry.load)


async def _load_direct(
    session: AsyncSession,
    records: Sequence[Any],
    load: DirectLoad,
    nested: list[PlanEntry],
) -> None:
    relation = load.relation
    ids: dict[Any, None] = {}
    for record in records:
        if (value := getattr(record, relation.owner_key)) is not None:
            ids.setdefault(value, None)

    rows: Sequence[Any] = ()
    if ids:
        query = ids_filter_fragment(relation, list(ids))
        _logger.debug("preloading %s.%s for %d key(s)", relation.owner.__name__, relation.name, len(ids))
        rows = unique_scalars(await session.execute(query))

    if rows and nested:
        await _run(session, rows, nested)

    grouped: dict[Any, list[Any]] = {}
    for row in rows:
        grouped.setdefault(getattr(row, load.related_key), []).append(row)

    for record in records:
        matches = grouped.get(getattr(record, relation.owner_key), [])
        if relation.cardinality == "many":
            set_committed_value(record, relation.name, list(matches))
        else:
            set_committed_value(record, relation.name, matches[0] if matches else None)


def _load_through(records: Sequence[Any], load: ThroughLoad) -> None:
    relation = load.relation
    for record in records:
        values: list[Any] = [record]
        for name in load.chain:
            reached: list[Any] = []
            for value in values:
                found = getattr(value, name)
                if found is None:
                    continue
                if isinstance(found, list):
                    reached.extend(found)
                else:
                    reached.append(found)
            values = reached

        unique = list({id(value): value for value in values}.values())
        if relation.cardinality == "many":
            setattr(record, relation.name, unique)
        else:
            setattr(record, relation.name, unique[0] if unique else None)
