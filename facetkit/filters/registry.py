"""Ordered set of active filter definitions for one catalog context."""

from __future__ import annotations

import json
import logging
import os
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from facetkit.errors import InvalidFilterDefinition
from facetkit.filters.definition import (
    ATTRIBUTE_SCHEME_PREFIX,
    FilterDefinition,
    FilterKind,
    create_filter,
)

logger = logging.getLogger("facetkit.registry")

# Keys persisted configuration uses for the source reference, per kind.
_SOURCE_KEYS: Dict[FilterKind, Tuple[str, ...]] = {
    FilterKind.CLASSIFICATION: ("source", "classification_name", "taxonomy"),
    FilterKind.METADATA: ("source", "metadata_key", "meta_key"),
    FilterKind.ATTRIBUTE: ("source", "attribute_name", "attribute"),
    FilterKind.VARIATION_ATTRIBUTE: ("source", "attribute_name", "variation_key", "attribute"),
}

# Bootstrapped when no filters are configured: (scheme, label, options).
DEFAULT_CLASSIFICATIONS: Tuple[Tuple[str, str, Dict[str, Any]], ...] = (
    ("category", "Categories", {}),
    ("post_tag", "Tags", {}),
    ("product_cat", "Product Categories", {"hierarchical": True}),
)


def definition_from_record(record: Mapping[str, Any], catalog=None) -> FilterDefinition:
    """Build a definition from one persisted configuration record."""
    if not isinstance(record, Mapping):
        raise InvalidFilterDefinition(f"Filter record must be a mapping, got {type(record).__name__}")

    kind = FilterKind.coerce(record.get("kind") or record.get("type"))
    source = next((record[key] for key in _SOURCE_KEYS[kind] if record.get(key)), None)
    if source is None:
        raise InvalidFilterDefinition(f"{kind.value} record has no source reference: {dict(record)!r}")

    return create_filter(
        kind,
        source,
        label=record.get("label") or None,
        options=record.get("options") or None,
        filter_id=record.get("id") or None,
        catalog=catalog,
    )


class FilterRegistry:
    """Read-only ``filter_id -> FilterDefinition`` mapping, in display order."""

    def __init__(
        self,
        definitions: Iterable[FilterDefinition] = (),
        catalog=None,
        skipped: int = 0,
    ):
        filters: Dict[str, FilterDefinition] = {}
        for definition in definitions:
            if definition.id in filters:
                raise InvalidFilterDefinition(f"Duplicate filter id '{definition.id}'")
            filters[definition.id] = definition
        self._filters = MappingProxyType(filters)
        self.catalog = catalog
        self.skipped = skipped

    # -------- mapping protocol --------

    def __iter__(self) -> Iterator[FilterDefinition]:
        return iter(self._filters.values())

    def __len__(self) -> int:
        return len(self._filters)

    def __contains__(self, filter_id: object) -> bool:
        return filter_id in self._filters

    def __getitem__(self, filter_id: str) -> FilterDefinition:
        return self._filters[filter_id]

    def get(self, filter_id: str) -> Optional[FilterDefinition]:
        return self._filters.get(filter_id)

    @property
    def ids(self) -> List[str]:
        return list(self._filters)

    def __repr__(self) -> str:
        return f"FilterRegistry({', '.join(self._filters)})"

    # -------- derivation --------

    def subset(
        self,
        include_ids: Optional[Iterable[str]] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> "FilterRegistry":
        """Keep ``include_ids`` (all when ``None``), then drop ``exclude_ids``."""
        definitions = list(self)
        if include_ids is not None:
            wanted = set(include_ids)
            definitions = [d for d in definitions if d.id in wanted]
        if exclude_ids:
            unwanted = set(exclude_ids)
            definitions = [d for d in definitions if d.id not in unwanted]
        return FilterRegistry(definitions, catalog=self.catalog, skipped=self.skipped)

    @classmethod
    def from_config(cls, records: Iterable[Mapping[str, Any]], catalog=None) -> "FilterRegistry":
        """Build from persisted records, skipping the ones that do not resolve.

        The number of skipped records is kept on ``registry.skipped``.
        """
        definitions: List[FilterDefinition] = []
        seen = set()
        skipped = 0
        for record in records or ():
            try:
                definition = definition_from_record(record, catalog=catalog)
            except InvalidFilterDefinition as exc:
                skipped += 1
                logger.warning("Skipping filter definition: %s", exc)
                continue
            if definition.id in seen:
                skipped += 1
                logger.warning("Skipping duplicate filter id '%s'", definition.id)
                continue
            seen.add(definition.id)
            definitions.append(definition)

        if skipped:
            logger.warning("%d filter definition(s) skipped", skipped)
        return cls(definitions, catalog=catalog, skipped=skipped)

    @classmethod
    def default_filters(cls, catalog) -> "FilterRegistry":
        """Category, tag and product category filters plus one per attribute scheme."""
        records: List[Dict[str, Any]] = [
            {"kind": "classification", "source": scheme, "label": label, "options": options}
            for scheme, label, options in DEFAULT_CLASSIFICATIONS
            if catalog.has_scheme(scheme)
        ]
        for scheme in catalog.attribute_schemes():
            records.append(
                {"kind": "attribute", "source": scheme[len(ATTRIBUTE_SCHEME_PREFIX):]}
            )
        return cls.from_config(records, catalog=catalog)

    def to_list(self) -> List[Dict[str, Any]]:
        return [definition.to_dict() for definition in self]


def load_config_file(path: Optional[str]) -> List[Dict[str, Any]]:
    """Read persisted filter records (a JSON list) from ``path``."""
    if not path or not os.path.exists(path):
        logger.info("No filter configuration at %s", path)
        return []
    with open(path, encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            logger.error("Filter configuration %s is not valid JSON: %s", path, exc)
            return []
    if isinstance(data, Mapping):
        data = data.get("filters", [])
    if not isinstance(data, list):
        logger.error("Filter configuration %s must hold a list of filters", path)
        return []
    return data


def build_registry(records: Iterable[Mapping[str, Any]], catalog) -> FilterRegistry:
    """Registry from ``records``, or the default filters when nothing is configured."""
    records = list(records or ())
    if not records:
        return FilterRegistry.default_filters(catalog)
    return FilterRegistry.from_config(records, catalog=catalog)


__all__ = [
    "DEFAULT_CLASSIFICATIONS",
    "FilterRegistry",
    "definition_from_record",
    "load_config_file",
    "build_registry",
]
