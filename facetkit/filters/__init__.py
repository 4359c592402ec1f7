"""Filter definition and query-translation engine."""

from .choices import Choice, ChoiceCache, Range, get_choices  # noqa: F401
from .codec import decode_selection, encode_selection, filter_url  # noqa: F401
from .definition import FilterDefinition, FilterKind, create_filter  # noqa: F401
from .predicate import Comparator, Group, Leaf, Query, Relation, ValueType  # noqa: F401
from .registry import FilterRegistry  # noqa: F401
from .translate import build_query  # noqa: F401

__all__ = [
    "Choice",
    "ChoiceCache",
    "Range",
    "get_choices",
    "decode_selection",
    "encode_selection",
    "filter_url",
    "FilterDefinition",
    "FilterKind",
    "create_filter",
    "Comparator",
    "Group",
    "Leaf",
    "Query",
    "Relation",
    "ValueType",
    "FilterRegistry",
    "build_query",
]
