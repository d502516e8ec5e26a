from __future__ import annotations

import warnings
from collections.abc import Mapping
from typing import final

import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.orm import RelationshipDirection
from sqlalchemy.sql.elements import BinaryExpression

from .datastructures import frozendict
from .exceptions import RelationNotFound
from .relations import BelongsTo, Has, HasThrough, Relation, Through, chain_cardinality
from .tools import get_primary_key


Model = type[orm.DeclarativeBase]


@final
class Registry:
    """Read-only lookup of the relations declared on every mapped model.

    Built once at start-up with :func:`get_registry` and passed to every call
    that resolves relations. It is never mutated afterwards, so it can be
    shared freely between concurrent callers.
    """

    __slots__ = ("_relations",)

    def __init__(self, relations: Mapping[Model, Mapping[str, Relation]]) -> None:
        self._relations: frozendict[Model, frozendict[str, Relation]] = frozendict({
            model: frozendict(rels) for model, rels in relations.items()
        })

    def __repr__(self) -> str:
        return f"<Registry models={[m.__name__ for m in self._relations]}>"

    def __contains__(self, model: object) -> bool:
        return model in self._relations

    @property
    def models(self) -> tuple[Model, ...]:
        return tuple(self._relations)

    def get(self, model: Model) -> Mapping[str, Relation]:
        """Relations of *model*, or an empty mapping when the model is unknown."""
        return self._relations.get(model, frozendict())

    def relations(self, model: Model) -> Mapping[str, Relation]:
        """Relations of *model*, raising ``KeyError`` for unknown models."""
        return self._relations[model]

    def relation(self, model: Model, name: str) -> Relation:
        """Return the relation *name* declared on *model*.

        Raises:
            RelationNotFound: If *model* declares no relation called *name*.
        """
        try:
            return self._relations[model][name]
        except KeyError:
            raise RelationNotFound(model, name) from None

    def primary_key(self, model: Model) -> str:
        """Attribute name of the first primary-key column of *model*."""
        return sa.inspect(model).get_property_by_column(get_primary_key(model)).key

    def fields(self, model: Model) -> frozenset[str]:
        """Attribute names of the mapped columns of *model*."""
        return frozenset(prop.key for prop in sa.inspect(model).column_attrs)


def get_registry(base: type[orm.DeclarativeBase]) -> Registry:
    """Build the relation registry of every model mapped on *base*.

    Direct relations come from each mapper's ``orm.relationship()``
    properties: ``MANYTOONE`` becomes :class:`BelongsTo`, ``ONETOMANY``
    becomes :class:`Has` (``uselist`` decides the cardinality). A
    relationship's ``info={"source": "table"}`` names the table its related
    rows are read from. Relationships that do not join on exactly one
    column pair (``secondary`` tables, composite or custom joins) are skipped
    with a warning.

    Through relations come from :func:`~sqla_preloads.relations.through`
    markers and are resolved here, once, against the relations declared on
    the model reached by each hop.

    Raises:
        AssertionError: If base is not a subclass of orm.DeclarativeBase.
        RelationNotFound: If a through chain names an undeclared relation.
        ValueError: On duplicate relation names or cyclic through chains.

    Example:
        >>> from myapp.models import Base
        >>> registry = get_registry(Base)
        >>> registry.relation(Author, "posts_comments").cardinality
        'many'
    """
    assert orm.DeclarativeBase in getattr(base, "__bases__", ()), (
        "base must be a subclass of orm.DeclarativeBase"
    )
    base.registry.configure()

    direct: dict[Model, dict[str, Relation]] = {}
    markers: dict[Model, dict[str, Through]] = {}
    for mapper in base.registry.mappers:
        model = mapper.class_
        direct[model] = {}
        for prop in mapper.relationships:
            if (relation := _direct_relation(prop)) is not None:
                direct[model][relation.name] = relation

        markers[model] = _through_markers(model)
        if clash := direct[model].keys() & markers[model].keys():
            raise ValueError(f"relation {sorted(clash)[0]!r} declared twice on {model.__name__}")

    resolver = _ThroughResolver(direct, markers)

    return Registry({
        model: {
            **direct[model],
            **{name: resolver.resolve(model, name) for name in markers[model]},
        }
        for model in direct
    })


def _direct_relation(prop: orm.RelationshipProperty[orm.DeclarativeBase]) -> Has | BelongsTo | None:
    owner = prop.parent.class_
    if prop.secondary is not None or prop.direction is RelationshipDirection.MANYTOMANY:
        warnings.warn(
            f"Skipping {owner.__name__}.{prop.key}: secondary tables are not supported, "
            "declare the association model and a through relation instead.",
            stacklevel=3,
        )
        return None

    pairs = prop.local_remote_pairs or []
    if len(pairs) != 1 or not isinstance(prop.primaryjoin, BinaryExpression):
        warnings.warn(
            f"Skipping {owner.__name__}.{prop.key}: only single-column key joins are supported.",
            stacklevel=3,
        )
        return None

    local, remote = pairs[0]
    related = prop.mapper.class_
    owner_key = prop.parent.get_property_by_column(local).key
    related_key = prop.mapper.get_property_by_column(remote).key
    source = prop.info.get("source")

    if prop.direction is RelationshipDirection.MANYTOONE:
        return BelongsTo(
            name=prop.key,
            owner=owner,
            owner_key=owner_key,
            related=related,
            related_key=related_key,
            source=source,
        )

    return Has(
        name=prop.key,
        owner=owner,
        owner_key=owner_key,
        related=related,
        related_key=related_key,
        cardinality="many" if prop.uselist else "one",
        source=source,
    )


def _through_markers(model: Model) -> dict[str, Through]:
    """Collect ``through`` markers from *model* and its bases, nearest first."""
    found: dict[str, Through] = {}
    for klass in model.__mro__:
        for name, value in vars(klass).items():
            if isinstance(value, Through):
                found.setdefault(name, value)

    return found


class _ThroughResolver:
    """Resolve through chains hop by hop, memoizing every resolved relation."""

    __slots__ = ("_direct", "_markers", "_pending", "_resolved")

    def __init__(
        self,
        direct: Mapping[Model, Mapping[str, Relation]],
        markers: Mapping[Model, Mapping[str, Through]],
    ) -> None:
        self._direct = direct
        self._markers = markers
        self._resolved: dict[tuple[Model, str], HasThrough] = {}
        self._pending: set[tuple[Model, str]] = set()

    def lookup(self, model: Model, name: str) -> Relation:
        if (relation := self._direct.get(model, {}).get(name)) is not None:
            return relation

        if name in self._markers.get(model, {}):
            return self.resolve(model, name)

        raise RelationNotFound(model, name)

    def resolve(self, model: Model, name: str) -> HasThrough:
        key = (model, name)
        if (done := self._resolved.get(key)) is not None:
            return done

        if key in self._pending:
            raise ValueError(f"through relation {name!r} on {model.__name__} is cyclic")

        self._pending.add(key)
        chain = self._markers[model][name].chain
        hops: list[Relation] = []
        current = model
        for hop_name in chain:
            hop = self.lookup(current, hop_name)
            hops.append(hop)
            current = hop.related
        self._pending.discard(key)

        relation = HasThrough(
            name=name,
            owner=model,
            chain=chain,
            hops=tuple(hops),
            related=current,
            cardinality=chain_cardinality(hops),
        )
        self._resolved[key] = relation

        return relation
