"""Selection <-> URL query string codec."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from facetkit.errors import MalformedSelectionValue
from facetkit.filters.translate import is_empty_value

FILTER_PREFIX = "filter_"
MULTI_DELIMITER = ","
RANGE_DELIMITER = ".."

Selection = Dict[str, Any]
QueryInput = Union[str, Mapping[str, Any], Iterable[Tuple[str, str]], None]


# -------- encoding --------

def _format(value: Any) -> str:
    return str(value).strip()


def _encode_scalar(filter_id: str, value: Any) -> str:
    text = _format(value)
    if MULTI_DELIMITER in text:
        raise MalformedSelectionValue(filter_id, value, f"values must not contain '{MULTI_DELIMITER}'")
    if RANGE_DELIMITER in text:
        raise MalformedSelectionValue(filter_id, value, f"values must not contain '{RANGE_DELIMITER}'")
    return text


def encode_value(filter_id: str, values: Any) -> Optional[str]:
    """Encode one filter's values, or ``None`` when the filter is inactive."""
    if is_empty_value(values):
        return None
    if isinstance(values, Mapping):
        bounds = []
        for name in ("min", "max"):
            bound = values.get(name)
            text = "" if is_empty_value(bound) else _encode_scalar(filter_id, bound)
            if text.startswith(".") or text.endswith("."):
                raise MalformedSelectionValue(filter_id, bound, "range bounds must not start or end with '.'")
            bounds.append(text)
        return RANGE_DELIMITER.join(bounds)
    if isinstance(values, (set, frozenset)):
        values = sorted(values, key=_format)
    if isinstance(values, (list, tuple)):
        parts = [_encode_scalar(filter_id, v) for v in values if not is_empty_value(v)]
        return MULTI_DELIMITER.join(parts)
    return _encode_scalar(filter_id, values)


def selection_params(selection: Optional[Mapping[str, Any]], prefix: str = FILTER_PREFIX) -> List[Tuple[str, str]]:
    params = []
    for filter_id, values in (selection or {}).items():
        encoded = encode_value(filter_id, values)
        if encoded is not None:
            params.append((f"{prefix}{filter_id}", encoded))
    return params


def _urlencode(pairs: Sequence[Tuple[str, str]]) -> str:
    # Keep the delimiters readable in bookmarked URLs.
    return urlencode(list(pairs), safe=MULTI_DELIMITER, quote_via=quote)


def encode_selection(selection: Optional[Mapping[str, Any]], prefix: str = FILTER_PREFIX) -> str:
    """``{"category": [1, 2]}`` -> ``"filter_category=1,2"``; inactive filters are omitted."""
    return _urlencode(selection_params(selection, prefix))


# -------- decoding --------

def _pairs(query: QueryInput) -> List[Tuple[str, str]]:
    if query is None:
        return []
    if isinstance(query, str):
        return parse_qsl(query.lstrip("?"), keep_blank_values=True)
    if hasattr(query, "getlist"):
        # werkzeug MultiDict (request.args): keep repeated keys
        return [(k, v) for k in query.keys() for v in query.getlist(k)]
    if isinstance(query, Mapping):
        out = []
        for key, value in query.items():
            if isinstance(value, (list, tuple)):
                out.extend((key, str(v)) for v in value)
            else:
                out.append((key, str(value)))
        return out
    return [(str(k), str(v)) for k, v in query]


def decode_value(raw: str) -> Any:
    text = (raw or "").strip()
    if not text:
        return None
    if MULTI_DELIMITER in text:
        parts = [part.strip() for part in text.split(MULTI_DELIMITER)]
        parts = [part for part in parts if part]
        return parts or None
    if RANGE_DELIMITER in text:
        lo, _, hi = text.partition(RANGE_DELIMITER)
        bounds = {}
        if lo.strip():
            bounds["min"] = lo.strip()
        if hi.strip():
            bounds["max"] = hi.strip()
        return bounds or None
    return text


def decode_selection(query: QueryInput, prefix: str = FILTER_PREFIX) -> Selection:
    """Inverse of ``encode_selection``: capture every ``filter_<id>`` parameter."""
    selection: Selection = {}
    for key, raw in _pairs(query):
        if not key.startswith(prefix) or len(key) == len(prefix):
            continue
        filter_id = key[len(prefix):]
        value = decode_value(raw)
        if value is None:
            continue
        if filter_id in selection and not isinstance(value, dict):
            # Repeated parameters (filter_x=a&filter_x=b) accumulate.
            previous = selection[filter_id]
            merged = previous if isinstance(previous, list) else [previous]
            for item in value if isinstance(value, list) else [value]:
                if item not in merged:
                    merged.append(item)
            selection[filter_id] = merged
        else:
            selection[filter_id] = value
    return selection


def passthrough_params(query: QueryInput, prefix: str = FILTER_PREFIX) -> List[Tuple[str, str]]:
    """Every parameter the codec does not own, in original order."""
    return [(k, v) for k, v in _pairs(query) if not k.startswith(prefix)]


def filter_url(
    base_url: str,
    selection: Optional[Mapping[str, Any]],
    params: QueryInput = None,
    preserved: Optional[Sequence[str]] = None,
    prefix: str = FILTER_PREFIX,
) -> str:
    """Rebuild ``base_url`` for ``selection``.

    Non-filter parameters come from ``params`` (or the query string already on
    ``base_url``) and pass through unchanged; ``preserved`` restricts them to a
    whitelist.
    """
    parts = urlsplit(base_url)
    source = params if params is not None else parts.query
    others = passthrough_params(source, prefix)
    if preserved is not None:
        keep = set(preserved)
        others = [(k, v) for k, v in others if k in keep]

    query = _urlencode(selection_params(selection, prefix) + others)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def normalize_selection(selection: Optional[Mapping[str, Any]]) -> Selection:
    """Canonical form used for comparisons: strings, one-element lists as scalars."""
    out: Selection = {}
    for filter_id, values in (selection or {}).items():
        if is_empty_value(values):
            continue
        if isinstance(values, Mapping):
            out[filter_id] = {
                name: _format(values[name])
                for name in ("min", "max")
                if not is_empty_value(values.get(name))
            }
        elif isinstance(values, (list, tuple, set, frozenset)):
            items = [_format(v) for v in values if not is_empty_value(v)]
            out[filter_id] = items[0] if len(items) == 1 else items
        else:
            out[filter_id] = _format(values)
    return out


__all__ = [
    "FILTER_PREFIX",
    "MULTI_DELIMITER",
    "RANGE_DELIMITER",
    "encode_value",
    "encode_selection",
    "decode_value",
    "decode_selection",
    "selection_params",
    "passthrough_params",
    "filter_url",
    "normalize_selection",
]
