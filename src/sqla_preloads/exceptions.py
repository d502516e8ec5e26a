"""sqla-preloads exception hierarchy.

Every error is a usage or configuration error detected eagerly at the
offending call. All of them derive from ``ValueError`` so callers treating
bad arguments generically keep working.
"""

from __future__ import annotations

from typing import Any


class PreloadsError(ValueError):
    """Base exception for all sqla-preloads errors."""


class RelationNotFound(PreloadsError):
    """Raised when a relation name is not declared on a model."""

    def __init__(self, model: type[Any], name: str) -> None:
        self.model = model
        self.name = name
        super().__init__(f"model {model.__name__} does not have association {name!r}")


# --- Preload requests ---


class PreloadConflict(PreloadsError):
    """Raised when a relation is requested twice at the same preload level."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"cannot preload association {name!r} because it was already "
            "requested at the same level"
        )


class InvalidPreload(PreloadsError):
    """Raised for preload values that are not a name, a mapping or a sequence."""

    def __init__(self, value: Any, original: Any) -> None:
        self.value = value
        self.original = original
        super().__init__(
            f"invalid preload `{value!r}` in `{original!r}`. preload expects a "
            "relation name, a (nested) mapping or a (nested) list of names"
        )


# --- Facade ---


class EmptyInput(PreloadsError):
    """Raised when ``assoc`` is given an empty record list."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"cannot retrieve association {name!r} for empty list")


class HeterogeneousInput(PreloadsError):
    """Raised when records of more than one model are mixed in one call."""

    def __init__(self, expected: type[Any], got: type[Any]) -> None:
        self.expected = expected
        self.got = got
        super().__init__(
            "expected a homogeneous list containing the same model, "
            f"got: {expected.__name__} and {got.__name__}"
        )


class NotBuildable(PreloadsError):
    """Raised when building a record through a derived through relation."""

    def __init__(self, model: type[Any], name: str) -> None:
        self.model = model
        self.name = name
        super().__init__(f"cannot build through association {name!r} on {model.__name__}")
