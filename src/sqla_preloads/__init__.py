"""Relation resolution and preload planning for SQLAlchemy.

sqla_preloads compiles the relations of your declarative models, direct
``orm.relationship()`` ones and multi-hop ``through(...)`` ones, into
``SELECT`` fragments, and plans nested preload requests into one query per
relation. Build a ``Registry`` once at startup with ``get_registry(Base)``
and pass it to ``assoc``, ``build``, ``expand`` or ``preload``.
"""

from ._version import __version__, __version_tuple__
from .datastructures import PreloadTree, frozendict
from .exceptions import (
    EmptyInput,
    HeterogeneousInput,
    InvalidPreload,
    NotBuildable,
    PreloadConflict,
    PreloadsError,
    RelationNotFound,
)
from .loader import preload
from .model import assoc, build, is_loaded
from .preloader import DirectLoad, PlanEntry, ThroughLoad, expand, normalize
from .query import (
    ids_filter_fragment,
    join_fragment,
    query_cache_clear,
    query_cache_info,
    related_entity,
)
from .registry import Registry, get_registry
from .relations import BelongsTo, Cardinality, Has, HasThrough, NotLoaded, Relation, through
from .tools import get_primary_key, get_table_name, get_table_names, unique_scalars


__all__ = (
    "BelongsTo",
    "Cardinality",
    "DirectLoad",
    "EmptyInput",
    "Has",
    "HasThrough",
    "HeterogeneousInput",
    "InvalidPreload",
    "NotBuildable",
    "NotLoaded",
    "PlanEntry",
    "PreloadConflict",
    "PreloadTree",
    "PreloadsError",
    "Registry",
    "Relation",
    "RelationNotFound",
    "ThroughLoad",
    "__version__",
    "__version_tuple__",
    "assoc",
    "build",
    "expand",
    "frozendict",
    "get_primary_key",
    "get_registry",
    "get_table_name",
    "get_table_names",
    "ids_filter_fragment",
    "is_loaded",
    "join_fragment",
    "normalize",
    "preload",
    "query_cache_clear",
    "query_cache_info",
    "related_entity",
    "through",
    "unique_scalars",
)
