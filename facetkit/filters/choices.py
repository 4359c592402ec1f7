"""Choice enumeration: the legal values of each filter, with counts."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from facetkit.filters.definition import (
    ATTRIBUTE_SCHEME_PREFIX,
    FilterDefinition,
    FilterKind,
)

logger = logging.getLogger("facetkit.choices")

# Fallback bounds when a range filter's key has no numeric values.
DEFAULT_RANGE_MIN = 0
DEFAULT_RANGE_MAX = 100


@dataclass(frozen=True)
class Choice:
    value: Union[int, str]
    display_label: str
    count: int = 0
    slug: Optional[str] = None
    parent: Optional[int] = None
    color: Optional[str] = None
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "value": self.value,
            "label": self.display_label,
            "count": self.count,
        }
        for name in ("slug", "parent", "color", "image"):
            attr = getattr(self, name)
            if attr is not None:
                out[name] = attr
        return out


@dataclass(frozen=True)
class Range:
    min: float
    max: float
    step: float = 1

    def to_dict(self) -> Dict[str, Any]:
        return {"min": self.min, "max": self.max, "step": self.step}


ChoiceResult = Union[List[Choice], Range]


# ---------- post-processing ----------

def _numeric_or_none(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _sort_key(orderby: str, numeric: bool) -> Callable[[Choice], Tuple]:
    if orderby == "count":
        return lambda c: (c.count, c.display_label.lower())
    if orderby == "slug":
        return lambda c: ((c.slug or "").lower(), c.display_label.lower())
    if orderby == "id":
        return lambda c: (_numeric_or_none(c.value) or 0, c.display_label.lower())
    if numeric:
        # Non-numeric stragglers sort after every number.
        def key(c: Choice) -> Tuple:
            number = _numeric_or_none(c.value)
            return (number is None, number or 0, c.display_label.lower())

        return key
    return lambda c: (c.display_label.lower(), str(c.value))


def refine_choices(choices: Iterable[Choice], options, numeric: bool = False) -> List[Choice]:
    """Apply include/exclude, hide_empty, ordering and limit, in that order."""
    out = list(choices)

    include = {str(v).lower() for v in options.include}
    if include:
        out = [c for c in out if str(c.value).lower() in include or (c.slug or "").lower() in include]
    exclude = {str(v).lower() for v in options.exclude}
    if exclude:
        out = [
            c for c in out
            if str(c.value).lower() not in exclude and (c.slug or "").lower() not in exclude
        ]

    if options.hide_empty:
        out = [c for c in out if c.count > 0]

    out.sort(key=_sort_key(options.orderby, numeric), reverse=options.order == "DESC")

    if options.limit and len(out) > options.limit:
        out = out[: options.limit]
    return out


# ---------- per-kind enumerators ----------

def _term_choices(rows: Iterable[Mapping[str, Any]], with_swatch: Optional[str] = None) -> List[Choice]:
    choices = []
    for row in rows:
        choices.append(
            Choice(
                value=int(row["id"]),
                display_label=str(row["name"]),
                count=int(row.get("count") or 0),
                slug=row.get("slug"),
                parent=int(row.get("parent") or 0),
                color=(row.get("color") or "") if with_swatch == "color" else None,
                image=(row.get("image") or "") if with_swatch == "image" else None,
            )
        )
    return choices


def _classification_choices(definition: FilterDefinition, catalog, scope) -> ChoiceResult:
    options = definition.options
    if not catalog.has_scheme(definition.scheme):
        return []
    rows = catalog.list_entries(
        definition.scheme,
        include=options.include,
        exclude=options.exclude,
        hide_empty=options.hide_empty,
        orderby=options.orderby,
        order=options.order,
        scope=scope,
    )
    return refine_choices(_term_choices(rows), options)


def _attribute_choices(definition: FilterDefinition, catalog, scope) -> ChoiceResult:
    options = definition.options
    if not catalog.has_scheme(definition.scheme):
        return []
    rows = catalog.list_entries(
        definition.scheme,
        include=options.include,
        exclude=options.exclude,
        hide_empty=options.hide_empty,
        orderby=options.orderby,
        order=options.order,
        scope=scope,
    )
    swatch = options.display_type if options.display_type in ("color", "image") else None
    return refine_choices(_term_choices(rows, with_swatch=swatch), options)


def _metadata_choices(definition: FilterDefinition, catalog, scope) -> ChoiceResult:
    options = definition.options

    if options.choices:
        return [Choice(value=value, display_label=label) for value, label in options.choices]

    if options.is_range:
        lo, hi = options.range_min, options.range_max
        if lo is None or hi is None:
            # bounds span the whole catalog, not the current scope
            bounds = catalog.min_max(definition.meta_key)
            if lo is None:
                lo = bounds.get("min")
                lo = DEFAULT_RANGE_MIN if lo is None else lo
            if hi is None:
                hi = bounds.get("max")
                hi = DEFAULT_RANGE_MAX if hi is None else hi
        return Range(min=lo, max=hi, step=options.range_step)

    rows = catalog.distinct_values(
        definition.meta_key, orderby=options.orderby, order=options.order, scope=scope
    )
    choices = [
        Choice(value=str(row["value"]), display_label=str(row["value"]), count=int(row["count"]))
        for row in rows
        if row["value"] not in (None, "")
    ]
    return refine_choices(choices, options, numeric=options.data_type == "numeric")


def _variation_choices(definition: FilterDefinition, catalog, scope) -> ChoiceResult:
    options = definition.options
    if not (
        catalog.has_scheme(ATTRIBUTE_SCHEME_PREFIX + definition.source)
        or catalog.has_meta_key(definition.meta_key)
    ):
        return []
    rows = catalog.variation_values(definition.source, scope=scope)
    choices = [
        Choice(value=str(row["value"]), display_label=str(row["value"]), count=int(row["count"]))
        for row in rows
        if row["value"] not in (None, "")
    ]
    return refine_choices(choices, options)


CHOICE_ENUMERATORS: Dict[FilterKind, Callable[[FilterDefinition, Any, Any], ChoiceResult]] = {
    FilterKind.CLASSIFICATION: _classification_choices,
    FilterKind.METADATA: _metadata_choices,
    FilterKind.ATTRIBUTE: _attribute_choices,
    FilterKind.VARIATION_ATTRIBUTE: _variation_choices,
}


def get_choices(definition: FilterDefinition, catalog, scope=None) -> ChoiceResult:
    """Return the selectable values of ``definition``, or a ``Range`` for range filters.

    ``scope`` is an optional ``Query``; when given, counts only cover the items
    it matches. Callers build it from every active filter except this one.
    """
    return CHOICE_ENUMERATORS[definition.kind](definition, catalog, scope)


class ChoiceCache:
    """Read-through TTL cache in front of ``get_choices``.

    Entries are keyed on the filter's identity, kind, source and full options,
    the catalog version and the scope, so two filters on the same key with
    different options never share an entry.
    """

    MAX_ENTRIES = 512

    def __init__(self, ttl: float = 300):
        self.ttl = float(ttl)
        self._entries: Dict[Tuple, Tuple[ChoiceResult, float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(definition: FilterDefinition, catalog, scope=None) -> Tuple:
        return (
            definition.id,
            definition.kind,
            definition.source,
            definition.options,
            getattr(catalog, "version", None),
            scope,
        )

    def get_choices(self, definition: FilterDefinition, catalog, scope=None) -> ChoiceResult:
        if self.ttl <= 0:
            return get_choices(definition, catalog, scope=scope)

        key = self.key(definition, catalog, scope)
        now = time.time()
        with self._lock:
            hit = self._entries.get(key)
        if hit is not None and now - hit[1] < self.ttl:
            return _copy(hit[0])

        result = get_choices(definition, catalog, scope=scope)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (result, now)
            if len(self._entries) > self.MAX_ENTRIES:
                expired = [k for k, (_, ts) in self._entries.items() if now - ts >= self.ttl]
                for k in expired:
                    del self._entries[k]
                # oldest first, dicts keep insertion order
                while len(self._entries) > self.MAX_ENTRIES:
                    del self._entries[next(iter(self._entries))]
        return _copy(result)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Choice cache cleared")

    def __len__(self) -> int:
        return len(self._entries)


def _copy(result: ChoiceResult) -> ChoiceResult:
    return list(result) if isinstance(result, list) else result


__all__ = [
    "Choice",
    "Range",
    "ChoiceResult",
    "CHOICE_ENUMERATORS",
    "refine_choices",
    "get_choices",
    "ChoiceCache",
]
