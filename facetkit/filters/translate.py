"""Translate a selection map into a composed ``Query``."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from facetkit.errors import (
    AmbiguousRangeSelection,
    CatalogLookupFailure,
    MalformedSelectionValue,
)
from facetkit.filters.definition import FilterDefinition, FilterKind
from facetkit.filters.predicate import (
    IMPOSSIBLE_ID_SET,
    Comparator,
    Group,
    Leaf,
    Node,
    Query,
    Relation,
    ValueType,
)

logger = logging.getLogger("facetkit.translate")

_SLUG_SPACE_RE = re.compile(r"\s+")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9_\-]")
_INT_RE = re.compile(r"^\s*\d+\s*$")


def slugify(value: Any) -> str:
    text = _SLUG_SPACE_RE.sub("-", str(value).strip().lower())
    return _SLUG_STRIP_RE.sub("", text)


def is_empty_value(values: Any) -> bool:
    if values is None:
        return True
    if isinstance(values, str):
        return not values.strip()
    if isinstance(values, Mapping):
        return all(is_empty_value(v) for v in values.values())
    if isinstance(values, (list, tuple, set, frozenset)):
        return all(is_empty_value(v) for v in values)
    return False


def _as_list(values: Any) -> List[Any]:
    """Normalize scalar or sequence input to a de-duplicated list."""
    if isinstance(values, (list, tuple, set, frozenset)):
        items = list(values)
    else:
        items = [values]
    out: List[Any] = []
    for item in items:
        if item is None or (isinstance(item, str) and not item.strip()):
            continue
        if isinstance(item, str):
            item = item.strip()
        if item not in out:
            out.append(item)
    return out


def _scalar_list(filter_id: str, values: Any) -> List[Any]:
    if isinstance(values, Mapping):
        raise MalformedSelectionValue(filter_id, values, "expected a value or a list of values")
    items = _as_list(values)
    for item in items:
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            raise MalformedSelectionValue(filter_id, item, "expected a scalar value")
    return items


def _to_number(filter_id: str, value: Any) -> float:
    if isinstance(value, bool):
        raise MalformedSelectionValue(filter_id, value, "expected a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedSelectionValue(filter_id, value, "expected a number") from None
    if number != number:  # NaN
        raise MalformedSelectionValue(filter_id, value, "expected a number")
    return int(number) if number.is_integer() else number


def _to_id(filter_id: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and _INT_RE.match(value):
        return int(value)
    raise MalformedSelectionValue(filter_id, value, "expected a numeric id")


class PredicateBuilder:
    """Accumulates filter contributions on top of a base query."""

    def __init__(self, base_query: Optional[Query] = None, catalog=None):
        self.base = base_query or Query()
        self.catalog = catalog
        self.classification: Group = self.base.classification
        self.metadata: Group = self.base.metadata
        self.id_in = self.base.id_in

    def add_classification(self, node: Node) -> None:
        self.classification = self.classification.append(node)

    def add_metadata(self, node: Node) -> None:
        self.metadata = self.metadata.append(node)

    def constrain_ids(self, ids: Iterable[int]) -> None:
        """Intersect the explicit id list; an empty result matches nothing."""
        wanted = sorted({int(i) for i in ids})
        if self.id_in is not None:
            existing = set(self.id_in)
            wanted = [i for i in wanted if i in existing]
        self.id_in = tuple(wanted) if wanted else IMPOSSIBLE_ID_SET

    def build(self) -> Query:
        return replace(
            self.base,
            classification=self.classification.with_default_relation(),
            metadata=self.metadata.with_default_relation(),
            id_in=self.id_in,
        )


# ---------- per-kind contributions ----------

def _apply_classification(definition: FilterDefinition, builder: PredicateBuilder, values: Any) -> None:
    ids = list(dict.fromkeys(_to_id(definition.id, v) for v in _as_list(values)))
    builder.add_classification(
        Leaf(
            field=definition.scheme,
            comparator=Comparator.IN,
            values=tuple(ids),
            value_type=ValueType.NUMERIC,
            match_on="id",
        )
    )


def _apply_attribute(definition: FilterDefinition, builder: PredicateBuilder, values: Any) -> None:
    items = _scalar_list(definition.id, values)
    first = items[0]
    by_id = (isinstance(first, int) and not isinstance(first, bool)) or (
        isinstance(first, str) and bool(_INT_RE.match(first))
    )
    if by_id:
        terms = tuple(dict.fromkeys(_to_id(definition.id, v) for v in items))
        leaf = Leaf(definition.scheme, Comparator.IN, terms, ValueType.NUMERIC, match_on="id")
    else:
        slugs = []
        for value in items:
            slug = slugify(value)
            if not slug:
                raise MalformedSelectionValue(definition.id, value, "empty slug")
            if slug not in slugs:
                slugs.append(slug)
        leaf = Leaf(definition.scheme, Comparator.IN, tuple(slugs), ValueType.STRING, match_on="slug")
    builder.add_classification(leaf)


def _range_bound(selection: Mapping[str, Any], name: str) -> Any:
    value = selection.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value


def _apply_metadata(definition: FilterDefinition, builder: PredicateBuilder, values: Any) -> None:
    options = definition.options
    key = definition.meta_key

    if options.is_range:
        if not isinstance(values, Mapping):
            raise MalformedSelectionValue(definition.id, values, "range filters take {min, max}")
        lo, hi = _range_bound(values, "min"), _range_bound(values, "max")
        if lo is None or hi is None:
            raise AmbiguousRangeSelection(definition.id, dict(values))
        bounds = (_to_number(definition.id, lo), _to_number(definition.id, hi))
        builder.add_metadata(Leaf(key, Comparator.BETWEEN, bounds, ValueType.NUMERIC))
        return

    raw = _scalar_list(definition.id, values)
    if options.data_type == "numeric":
        value_type = ValueType.NUMERIC
        items = list(dict.fromkeys(_to_number(definition.id, v) for v in raw))
    else:
        value_type = ValueType.STRING
        items = list(dict.fromkeys(str(v) for v in raw))

    comparator = Comparator(options.comparator)
    if comparator in (Comparator.IN, Comparator.NOT_IN):
        node: Node = Leaf(key, comparator, tuple(items), value_type)
    elif len(items) > 1:
        # One meta row per key per item: "any of" needs OR over EQ, not IN.
        node = Group(
            relation=Relation.OR,
            children=tuple(Leaf(key, Comparator.EQ, (v,), value_type) for v in items),
        )
    else:
        node = Leaf(key, Comparator.EQ, tuple(items), value_type)
    builder.add_metadata(node)


def _apply_variation(definition: FilterDefinition, builder: PredicateBuilder, values: Any) -> None:
    if builder.catalog is None:
        raise CatalogLookupFailure(
            f"Variation filter '{definition.id}' needs a catalog to resolve parent items"
        )
    items = [str(v) for v in _scalar_list(definition.id, values)]
    parent_ids = builder.catalog.variation_parent_ids(definition.source, items)
    builder.constrain_ids(parent_ids)


QUERY_APPLIERS: Dict[FilterKind, Callable[[FilterDefinition, PredicateBuilder, Any], None]] = {
    FilterKind.CLASSIFICATION: _apply_classification,
    FilterKind.METADATA: _apply_metadata,
    FilterKind.ATTRIBUTE: _apply_attribute,
    FilterKind.VARIATION_ATTRIBUTE: _apply_variation,
}


def apply_filter(definition: FilterDefinition, builder: PredicateBuilder, values: Any) -> None:
    if is_empty_value(values):
        return
    QUERY_APPLIERS[definition.kind](definition, builder, values)


def build_query(registry, selection: Optional[Mapping[str, Any]], base_query: Optional[Query] = None) -> Query:
    """Compose ``base_query`` with every active filter in ``selection``.

    Filters are applied in registry order. Ids missing from the registry are
    ignored; a filter whose values cannot be coerced, or a range with only
    one bound, contributes nothing and is logged.
    """
    builder = PredicateBuilder(base_query, catalog=getattr(registry, "catalog", None))
    selection = selection or {}

    for definition in registry:
        if definition.id not in selection:
            continue
        values = selection[definition.id]
        if is_empty_value(values):
            continue
        try:
            apply_filter(definition, builder, values)
        except AmbiguousRangeSelection as exc:
            logger.warning("Dropping partial range: %s", exc)
        except MalformedSelectionValue as exc:
            logger.warning("Dropping filter contribution: %s", exc)

    unknown = [key for key in selection if key not in registry]
    if unknown:
        logger.debug("Ignoring unknown filter ids: %s", ", ".join(sorted(map(str, unknown))))

    return builder.build()


def selection_without(selection: Optional[Mapping[str, Any]], filter_id: str) -> Dict[str, Any]:
    return {k: v for k, v in (selection or {}).items() if k != filter_id}


def scope_for(registry, selection: Optional[Mapping[str, Any]], filter_id: str, base_query: Optional[Query] = None) -> Query:
    """Query matching every active filter except ``filter_id``, used for choice counts."""
    return build_query(registry, selection_without(selection, filter_id), base_query)


__all__ = [
    "PredicateBuilder",
    "QUERY_APPLIERS",
    "apply_filter",
    "build_query",
    "scope_for",
    "selection_without",
    "slugify",
    "is_empty_value",
]
