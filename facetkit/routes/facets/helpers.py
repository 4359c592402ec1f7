"""Shared helper functions for facet routes."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from flask import current_app

from facetkit.filters.choices import Range
from facetkit.filters.codec import decode_selection
from facetkit.filters.definition import is_filter_id
from facetkit.filters.predicate import Query
from facetkit.filters.registry import FilterRegistry, build_registry
from facetkit.filters.translate import scope_for

from . import get_catalog, get_choice_cache

ORDERBY = ("date", "title", "id", "parent")


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _split_list(values: List[str]) -> List[str]:
    out: List[str] = []
    for value in values:
        for part in str(value).split(","):
            part = part.strip()
            if part and part not in out:
                out.append(part)
    return out


def _get_list(args, key: str) -> List[str]:
    if hasattr(args, "getlist"):
        return _split_list(args.getlist(key))
    value = args.get(key)
    if value is None:
        return []
    return _split_list(value if isinstance(value, (list, tuple)) else [value])


def build_base_query(args) -> Query:
    """Build the base ``Query`` from request args (or an AJAX payload)."""
    item_type = tuple(_get_list(args, "post_type")) or tuple(current_app.config["DEFAULT_ITEM_TYPE"])

    default_per_page = int(current_app.config["DEFAULT_PER_PAGE"])
    max_per_page = int(current_app.config["MAX_PER_PAGE"])
    per_page = _to_int(args.get("per_page"), default_per_page)
    if per_page <= 0:
        per_page = default_per_page
    per_page = min(per_page, max_per_page)

    page = max(_to_int(args.get("paged") or args.get("page"), 1), 1)

    orderby = str(args.get("orderby") or "date")
    if orderby not in ORDERBY:
        orderby = "date"
    order = str(args.get("order") or "DESC").upper()
    if order not in ("ASC", "DESC"):
        order = "DESC"

    return Query(item_type=item_type, page=page, per_page=per_page, orderby=orderby, order=order)


def build_filter_registry(args=None) -> FilterRegistry:
    """Registry for this request, narrowed by ``filters=a,b`` when given."""
    registry = build_registry(current_app.extensions["filter_records"], get_catalog())
    if args is None:
        return registry
    wanted = _get_list(args, "filters")
    if wanted:
        registry = registry.subset(include_ids=wanted)
    return registry


def selection_from_args(args) -> Dict[str, Any]:
    return decode_selection(args, prefix=current_app.config["FILTER_PARAM_PREFIX"])


def selection_from_payload(registry: FilterRegistry, raw: Any) -> Dict[str, Any]:
    """Clean the ``filters`` object of an AJAX body: known ids, string values."""
    selection: Dict[str, Any] = {}
    if not isinstance(raw, Mapping):
        return selection
    for filter_id, values in raw.items():
        filter_id = str(filter_id).strip().lower()
        if not is_filter_id(filter_id) or filter_id not in registry:
            continue
        if isinstance(values, Mapping):
            bounds = {k: str(values[k]).strip() for k in ("min", "max") if values.get(k) not in (None, "")}
            if bounds:
                selection[filter_id] = bounds
            continue
        if not isinstance(values, (list, tuple)):
            values = [values]
        cleaned = [str(v).strip() for v in values if v is not None and str(v).strip()]
        if cleaned:
            selection[filter_id] = cleaned
    return selection


def preserved_params() -> Optional[Tuple[str, ...]]:
    preserved = tuple(current_app.config.get("PRESERVED_PARAMS") or ())
    return preserved or None


def build_choices(
    registry: FilterRegistry,
    selection: Mapping[str, Any],
    base_query: Query,
) -> List[Dict[str, Any]]:
    """Every filter with its choices, counted against the other active filters."""
    catalog = get_catalog()
    cache = get_choice_cache()
    base_query = replace(base_query, page=1)
    out: List[Dict[str, Any]] = []
    for definition in registry:
        scope = scope_for(registry, selection, definition.id, base_query)
        result = cache.get_choices(definition, catalog, scope=scope)
        entry = definition.to_dict()
        if isinstance(result, Range):
            entry["range"] = result.to_dict()
        else:
            entry["choices"] = [choice.to_dict() for choice in result]
        entry["selected"] = selection.get(definition.id)
        out.append(entry)
    return out


__all__ = [
    "ORDERBY",
    "build_base_query",
    "build_filter_registry",
    "selection_from_args",
    "selection_from_payload",
    "preserved_params",
    "build_choices",
]
