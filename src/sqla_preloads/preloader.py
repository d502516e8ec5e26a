"""Preload planning: normalize nested requests, expand them per model.

A preload request is a relation name, a mapping of names to nested
requests, or a list mixing both::

    "comments"
    {"post": "author"}
    ["posts", {"posts_comments": "post"}, {"posts": {"comments": "post"}}]

``normalize`` turns any of those into a :class:`PreloadTree`; ``expand``
resolves the tree against a model into a list of :class:`PlanEntry`, the
shape the loader executes.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping, Sequence
from typing import Any, NamedTuple, Union

from sqlalchemy import orm

from .datastructures import PreloadTree
from .exceptions import InvalidPreload
from .registry import Registry
from .relations import BelongsTo, Has, HasThrough


if sys.version_info >= (3, 11):
    from typing import assert_never
else:
    from typing_extensions import assert_never


class DirectLoad(NamedTuple):
    """Fetch related rows of a direct relation, matching them on ``related_key``."""

    relation: Has | BelongsTo
    related_key: str


class ThroughLoad(NamedTuple):
    """Assemble a through relation from the already-loaded hops of ``chain``."""

    relation: HasThrough
    chain: tuple[str, ...]


class PlanEntry(NamedTuple):
    name: str
    load: Union[DirectLoad, ThroughLoad]
    nested: list[PlanEntry]


def normalize(
    preload: Any,
    acc: PreloadTree | Mapping[str, Any] | None = None,
    original: Any = None,
) -> PreloadTree:
    """Normalize a preload request into a :class:`PreloadTree`.

    Names repeated within *preload* are merged. Names already present in
    *acc*, a tree accumulated by the caller for the same level, conflict.

    Args:
        preload: The request to normalize.
        acc: Entries already requested at this level.
        original: The full request, echoed in error messages. Defaults to
            *preload*.

    Returns:
        ``acc`` followed by the entries of *preload*.

    Raises:
        PreloadConflict: If a name of *preload* is already in *acc*.
        InvalidPreload: If *preload* holds anything but names, mappings
            and lists.

    Example:
        >>> normalize(["foo", {"foo": ["bar", {"baz": "bat"}]}]).to_dict()
        {'foo': {'bar': {}, 'baz': {'bat': {}}}}
    """
    if original is None:
        original = preload

    tree = acc if isinstance(acc, PreloadTree) else _freeze(acc or {}, original)
    for name, subtree in _normalize_level(preload, PreloadTree(), original).items():
        tree = tree.insert(name, subtree)

    return tree


def _normalize_level(preload: Any, tree: PreloadTree, original: Any) -> PreloadTree:
    if isinstance(preload, str):
        return tree.merge(preload, PreloadTree())

    if isinstance(preload, Mapping):
        for name, nested in preload.items():
            if not isinstance(name, str):
                raise InvalidPreload(name, original)
            tree = tree.merge(name, _normalize_level(nested, PreloadTree(), original))
        return tree

    if isinstance(preload, Sequence) and not isinstance(preload, (bytes, bytearray)):
        for item in preload:
            tree = _normalize_level(item, tree, original)
        return tree

    raise InvalidPreload(preload, original)


def _freeze(value: Mapping[str, Any], original: Any) -> PreloadTree:
    return _normalize_level(value, PreloadTree(), original)


def expand(
    model: type[orm.DeclarativeBase],
    tree: PreloadTree,
    *,
    registry: Registry,
) -> list[PlanEntry]:
    """Resolve a normalized tree against *model* into an execution plan.

    Every top-level name yields one entry, in request order:

    * a direct relation yields ``DirectLoad(relation, related_key)`` and the
      plan of its subtree, expanded against the related model;
    * a through relation yields ``ThroughLoad(relation, chain)`` with an
      empty nested plan. Its chain, ending in its subtree, is requested
      on this level in its place, so the hops it is built from get loaded
      first and carry its nested preloads.

    A name requested from several sources on one level (explicitly and as a
    through hop) gets a single entry whose nested plan concatenates the plans
    of each subtree, so a relation may appear more than once one level down.

    Raises:
        RelationNotFound: If a name is not a relation of the model it is
            resolved against.
    """
    collected: dict[str, tuple[DirectLoad | ThroughLoad, list[PreloadTree]]] = {}
    _collect(model, tree, collected, registry)

    plan: list[PlanEntry] = []
    for name, (load, subtrees) in collected.items():
        nested: list[PlanEntry] = []
        if isinstance(load, DirectLoad):
            for subtree in subtrees:
                nested.extend(expand(load.relation.related, subtree, registry=registry))
        plan.append(PlanEntry(name, load, nested))

    return plan


def _collect(
    model: type[orm.DeclarativeBase],
    tree: PreloadTree,
    collected: dict[str, tuple[DirectLoad | ThroughLoad, list[PreloadTree]]],
    registry: Registry,
) -> None:
    for name, subtree in tree.items():
        relation = registry.relation(model, name)
        match relation:
            case Has() | BelongsTo():
                entry = collected.setdefault(name, (DirectLoad(relation, relation.related_key), []))
                entry[1].append(subtree)
            case HasThrough():
                _collect(model, _nest(relation.chain, subtree), collected, registry)
                collected.setdefault(name, (ThroughLoad(relation, relation.chain), []))
            case _:
                assert_never(relation)


def _nest(chain: Sequence[str], leaf: PreloadTree) -> PreloadTree:
    """``("a", "b")`` and *leaf* become ``{"a": {"b": leaf}}``."""
    tree = leaf
    for name in reversed(chain):
        tree = PreloadTree({name: tree})

    return tree
