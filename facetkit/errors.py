"""Error taxonomy for the filter engine."""

from __future__ import annotations


class FacetError(Exception):
    """Base class for every error raised by facetkit."""


class InvalidFilterDefinition(FacetError):
    """A filter definition cannot be built (unknown source, bad id or options)."""


class MalformedSelectionValue(FacetError, ValueError):
    """A selected value fails the coercion its filter kind requires."""

    def __init__(self, filter_id: str, value, reason: str = ""):
        self.filter_id = filter_id
        self.value = value
        message = f"Malformed value {value!r} for filter '{filter_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AmbiguousRangeSelection(FacetError):
    """A range selection carries only one of its bounds."""

    def __init__(self, filter_id: str, selection):
        self.filter_id = filter_id
        self.selection = selection
        super().__init__(
            f"Range filter '{filter_id}' needs both min and max, got {selection!r}"
        )


class CatalogLookupFailure(FacetError):
    """The catalog collaborator failed while enumerating or executing."""


__all__ = [
    "FacetError",
    "InvalidFilterDefinition",
    "MalformedSelectionValue",
    "AmbiguousRangeSelection",
    "CatalogLookupFailure",
]
