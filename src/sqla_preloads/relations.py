from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Union, overload

from sqlalchemy import orm


Cardinality = Literal["one", "many"]


@dataclass(frozen=True, slots=True)
class Has:
    """Relation whose related model holds the foreign key back to the owner.

    ``owner_key`` is the owner's primary key attribute, ``related_key`` the
    foreign key attribute on the related model. Covers has-one and has-many,
    distinguished by ``cardinality``.
    """

    name: str
    owner: type[orm.DeclarativeBase]
    owner_key: str
    related: type[orm.DeclarativeBase]
    related_key: str
    cardinality: Cardinality = "many"
    source: str | None = None


@dataclass(frozen=True, slots=True)
class BelongsTo:
    """Relation whose owner holds the foreign key to the related model.

    ``owner_key`` is the foreign key attribute on the owner, ``related_key``
    the related model's primary key attribute.
    """

    name: str
    owner: type[orm.DeclarativeBase]
    owner_key: str
    related: type[orm.DeclarativeBase]
    related_key: str
    cardinality: Cardinality = "one"
    source: str | None = None


@dataclass(frozen=True, slots=True)
class HasThrough:
    """Derived relation walking ``chain`` from the owner.

    ``hops`` holds the relation resolved for each name of ``chain``, each one
    declared on the model reached by the previous hop. Keys, target model and
    cardinality all come from the hops.
    """

    name: str
    owner: type[orm.DeclarativeBase]
    chain: tuple[str, ...]
    hops: tuple[Relation, ...] = field(repr=False)
    related: type[orm.DeclarativeBase]
    cardinality: Cardinality

    @property
    def owner_key(self) -> str:
        return self.hops[0].owner_key

    @property
    def source(self) -> str | None:
        return self.hops[-1].source

    def direct_hops(self) -> tuple[Has | BelongsTo, ...]:
        """Hops with nested through relations flattened into direct ones."""
        out: list[Has | BelongsTo] = []
        for hop in self.hops:
            if isinstance(hop, HasThrough):
                out.extend(hop.direct_hops())
            else:
                out.append(hop)

        return tuple(out)


Relation = Union[Has, BelongsTo, HasThrough]


def chain_cardinality(hops: Sequence[Relation]) -> Cardinality:
    """``many`` as soon as one hop may yield several rows, ``one`` otherwise."""
    return "many" if any(hop.cardinality == "many" for hop in hops) else "one"


@dataclass(frozen=True, slots=True)
class NotLoaded:
    """Placeholder held by a through slot until its rows are fetched."""

    owner: type[Any]
    name: str

    def __repr__(self) -> str:
        return f"<association {self.name!r} of {self.owner.__name__} is not loaded>"


class Through:
    """Class-body marker declaring a through relation.

    Declared on a mapped class next to its ``orm.relationship()`` attributes::

        class Author(Base):
            posts = orm.relationship(back_populates="author")
            posts_comments = through("posts", "comments")

    ``get_registry`` resolves the chain. On instances the marker behaves as a
    plain slot: it reads ``NotLoaded`` until a value is assigned.
    """

    __slots__ = ("chain", "name")

    def __init__(self, *chain: str) -> None:
        if len(chain) < 2:  # noqa: PLR2004
            raise ValueError(
                f"through relation expects a chain of at least 2 relations, got {chain!r}"
            )

        self.chain: tuple[str, ...] = chain
        self.name = ""

    def __set_name__(self, owner: type[Any], name: str) -> None:
        self.name = name

    @overload
    def __get__(self, instance: None, owner: type[Any]) -> Through: ...

    @overload
    def __get__(self, instance: object, owner: type[Any]) -> Any: ...

    def __get__(self, instance: object | None, owner: type[Any]) -> Any:
        if instance is None:
            return self

        try:
            return instance.__dict__[self.name]
        except KeyError:
            return NotLoaded(type(instance), self.name)

    def __set__(self, instance: object, value: Any) -> None:
        instance.__dict__[self.name] = value

    def __repr__(self) -> str:
        return f"through({', '.join(map(repr, self.chain))})"


def through(*chain: str) -> Any:
    """Declare a through relation over *chain* (at least two relation names).

    Typed as ``Any`` so it can sit in a declarative class body next to
    ``Mapped[...]`` attributes.
    """
    return Through(*chain)
