"""Filter definitions: one tagged value type for every filter kind."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type

from facetkit.errors import InvalidFilterDefinition
from facetkit.filters.options import (
    AttributeOptions,
    ClassificationOptions,
    MetadataOptions,
    OptionsRecord,
    VariationAttributeOptions,
    merge_options,
)

ATTRIBUTE_SCHEME_PREFIX = "pa_"
VARIATION_META_PREFIX = "attribute_"

_TOKEN_RE = re.compile(r"^[a-z0-9_]+$")
_NON_TOKEN_RE = re.compile(r"[^a-z0-9_]+")
_META_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class FilterKind(str, Enum):
    CLASSIFICATION = "classification"
    METADATA = "metadata"
    ATTRIBUTE = "attribute"
    VARIATION_ATTRIBUTE = "variation_attribute"

    @classmethod
    def coerce(cls, value: Any) -> "FilterKind":
        if isinstance(value, cls):
            return value
        kind = _KIND_ALIASES.get(str(value or "").strip().lower())
        if kind is None:
            raise InvalidFilterDefinition(f"Unknown filter kind {value!r}")
        return kind


# Persisted configuration still uses the older kind names.
_KIND_ALIASES: Dict[str, FilterKind] = {
    "classification": FilterKind.CLASSIFICATION,
    "taxonomy": FilterKind.CLASSIFICATION,
    "metadata": FilterKind.METADATA,
    "meta": FilterKind.METADATA,
    "attribute": FilterKind.ATTRIBUTE,
    "variation_attribute": FilterKind.VARIATION_ATTRIBUTE,
    "variation": FilterKind.VARIATION_ATTRIBUTE,
}

OPTIONS_BY_KIND: Dict[FilterKind, Type[OptionsRecord]] = {
    FilterKind.CLASSIFICATION: ClassificationOptions,
    FilterKind.METADATA: MetadataOptions,
    FilterKind.ATTRIBUTE: AttributeOptions,
    FilterKind.VARIATION_ATTRIBUTE: VariationAttributeOptions,
}


def default_options(kind: Any) -> OptionsRecord:
    return OPTIONS_BY_KIND[FilterKind.coerce(kind)]()


def make_filter_id(source: str) -> str:
    """Derive the bare ``[a-z0-9_]+`` token used as form field and URL key."""
    token = _NON_TOKEN_RE.sub("_", str(source or "").strip().lower()).strip("_")
    if not token:
        raise InvalidFilterDefinition(f"Cannot derive a filter id from {source!r}")
    return token


def is_filter_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_TOKEN_RE.match(value))


@dataclass(frozen=True)
class FilterDefinition:
    id: str
    kind: FilterKind
    label: str
    source: str
    options: OptionsRecord

    @property
    def scheme(self) -> str:
        """Catalog classification scheme (or metadata key) backing the filter."""
        if self.kind is FilterKind.ATTRIBUTE:
            return ATTRIBUTE_SCHEME_PREFIX + self.source
        return self.source

    @property
    def meta_key(self) -> str:
        if self.kind is FilterKind.VARIATION_ATTRIBUTE:
            return VARIATION_META_PREFIX + self.source
        return self.source

    @property
    def is_range(self) -> bool:
        return self.kind is FilterKind.METADATA and self.options.is_range

    def default_options(self) -> OptionsRecord:
        return default_options(self.kind)

    def choices(self, catalog, scope=None):
        from facetkit.filters.choices import get_choices

        return get_choices(self, catalog, scope=scope)

    def apply(self, builder, values) -> None:
        from facetkit.filters.translate import apply_filter

        apply_filter(self, builder, values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "source": self.source,
        }


def _clean_source(kind: FilterKind, source: Any) -> str:
    text = str(source or "").strip()
    if not text:
        raise InvalidFilterDefinition(f"A {kind.value} filter needs a source reference")
    if kind in (FilterKind.ATTRIBUTE, FilterKind.VARIATION_ATTRIBUTE):
        text = text.lower()
        if text.startswith(ATTRIBUTE_SCHEME_PREFIX):
            text = text[len(ATTRIBUTE_SCHEME_PREFIX):]
        elif text.startswith(VARIATION_META_PREFIX):
            text = text[len(VARIATION_META_PREFIX):]
    elif kind is FilterKind.METADATA and not _META_KEY_RE.match(text):
        raise InvalidFilterDefinition(f"Metadata key {text!r} must be a bare token")
    return text


def _resolves(kind: FilterKind, source: str, catalog) -> bool:
    if kind is FilterKind.CLASSIFICATION:
        return catalog.has_scheme(source)
    if kind is FilterKind.ATTRIBUTE:
        return catalog.has_scheme(ATTRIBUTE_SCHEME_PREFIX + source)
    if kind is FilterKind.VARIATION_ATTRIBUTE:
        return catalog.has_scheme(ATTRIBUTE_SCHEME_PREFIX + source) or catalog.has_meta_key(
            VARIATION_META_PREFIX + source
        )
    return True


def create_filter(
    kind: Any,
    source: Any,
    label: Optional[str] = None,
    options: Optional[Mapping[str, Any]] = None,
    filter_id: Optional[str] = None,
    catalog=None,
) -> FilterDefinition:
    """Build a ``FilterDefinition``, resolving ``source`` against ``catalog`` when given.

    Raises ``InvalidFilterDefinition`` when the source does not resolve, the id
    is not a bare token, or the options do not fit the kind.
    """
    kind = FilterKind.coerce(kind)
    source = _clean_source(kind, source)

    if filter_id:
        if not is_filter_id(filter_id):
            raise InvalidFilterDefinition(f"Filter id {filter_id!r} must match [a-z0-9_]+")
        fid = filter_id
    else:
        fid = make_filter_id(source)

    merged = merge_options(OPTIONS_BY_KIND[kind], options)

    if catalog is not None:
        if not _resolves(kind, source, catalog):
            raise InvalidFilterDefinition(f"Unknown {kind.value} source '{source}'")
        if not label and kind is not FilterKind.METADATA:
            scheme = source if kind is FilterKind.CLASSIFICATION else ATTRIBUTE_SCHEME_PREFIX + source
            label = catalog.scheme_label(scheme)

    if not label:
        label = source.replace("_", " ").strip().capitalize()

    return FilterDefinition(id=fid, kind=kind, label=str(label).strip(), source=source, options=merged)


__all__ = [
    "ATTRIBUTE_SCHEME_PREFIX",
    "VARIATION_META_PREFIX",
    "FilterKind",
    "OPTIONS_BY_KIND",
    "FilterDefinition",
    "default_options",
    "make_filter_id",
    "is_filter_id",
    "create_filter",
]
