from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from typing import Any, TypeVar

from .exceptions import PreloadConflict


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Immutable dictionary implementation with hash support.

    Backs the relation registry, which is built once at start-up and shared
    read-only afterwards, and the preload trees produced per request.
    Insertion order is preserved and it compares equal to a plain ``dict``
    with the same items.

    Example:
        >>> fd = frozendict({"a": 1, "b": 2})
        >>> fd["a"]
        1
        >>> fd2 = fd.copy(c=3)
        >>> fd2
        <frozendict {'a': 1, 'b': 2, 'c': 3}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash = hash(frozenset(self._dict.items()))

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def copy(self, **add_or_replace: Any) -> Self:
        """Create a new frozendict with additional or replaced items.

        Args:
            **add_or_replace: Keyword arguments for items to add or replace.

        Returns:
            New instance of the same type with the merged items.
        """
        return type(self)(self, **add_or_replace)

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        return self._hash


class PreloadTree(frozendict[str, "PreloadTree"]):
    """Canonical preload request: relation name to nested request.

    Every level holds a relation name at most once. ``insert`` adds a new
    name and refuses duplicates, ``merge`` folds a subtree into an existing
    entry. Both return new trees.

    Example:
        >>> tree = PreloadTree().insert("post", PreloadTree())
        >>> tree.merge("post", PreloadTree(author=PreloadTree()))
        <PreloadTree {'post': <PreloadTree {'author': <PreloadTree {}>}>}>
    """

    __slots__ = ()

    def insert(self, name: str, subtree: PreloadTree) -> PreloadTree:
        """Add *name* with *subtree*, raising ``PreloadConflict`` if already present."""
        if name in self:
            raise PreloadConflict(name)

        return type(self)({**self._dict, name: subtree})

    def merge(self, name: str, subtree: PreloadTree) -> PreloadTree:
        """Add *name* or merge *subtree* recursively into its existing entry."""
        current = self._dict.get(name)
        if current is None:
            return type(self)({**self._dict, name: subtree})

        for key, value in subtree.items():
            current = current.merge(key, value)

        return type(self)({**self._dict, name: current})

    def to_dict(self) -> dict[str, Any]:
        """Plain nested ``dict`` view, handy for debugging and assertions."""
        return {name: subtree.to_dict() for name, subtree in self.items()}
