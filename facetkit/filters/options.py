"""Per-kind option records and their strict merge over defaults."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union

from facetkit.errors import InvalidFilterDefinition

Scalar = Union[int, float, str]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

# Spellings accepted for the metadata comparator option.
_COMPARATOR_ALIASES = {
    "=": "EQ",
    "==": "EQ",
    "EQ": "EQ",
    "IN": "IN",
    "NOT IN": "NOT_IN",
    "NOT_IN": "NOT_IN",
}


@dataclass(frozen=True)
class ClassificationOptions:
    display_type: str = "checkbox"
    hierarchical: bool = True
    show_count: bool = True
    collapse_inactive: bool = False
    search_box: bool = False
    orderby: str = "name"
    order: str = "ASC"
    hide_empty: bool = True
    limit: int = 0
    include: Tuple[Scalar, ...] = ()
    exclude: Tuple[Scalar, ...] = ()

    ALLOWED: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "display_type": ("checkbox", "radio", "select", "multiselect"),
        "orderby": ("name", "count", "slug", "id"),
    }


@dataclass(frozen=True)
class MetadataOptions:
    display_type: str = "checkbox"
    data_type: str = "string"
    comparator: str = "EQ"
    show_count: bool = True
    orderby: str = "name"
    order: str = "ASC"
    choices: Tuple[Tuple[str, str], ...] = ()
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    range_step: float = 1
    hide_empty: bool = True
    limit: int = 0
    include: Tuple[Scalar, ...] = ()
    exclude: Tuple[Scalar, ...] = ()

    ALLOWED: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "display_type": ("checkbox", "radio", "select", "multiselect", "range"),
        "data_type": ("string", "numeric"),
        "comparator": ("EQ", "IN", "NOT_IN"),
        "orderby": ("name", "count"),
    }

    @property
    def is_range(self) -> bool:
        return self.display_type == "range"


@dataclass(frozen=True)
class AttributeOptions:
    display_type: str = "checkbox"
    show_count: bool = True
    hide_empty: bool = True
    orderby: str = "name"
    order: str = "ASC"
    include: Tuple[Scalar, ...] = ()
    exclude: Tuple[Scalar, ...] = ()
    search_box: bool = False
    limit: int = 0

    ALLOWED: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "display_type": ("checkbox", "radio", "select", "multiselect", "color", "image"),
        "orderby": ("name", "count", "slug", "id"),
    }


@dataclass(frozen=True)
class VariationAttributeOptions:
    display_type: str = "select"
    show_count: bool = True
    orderby: str = "name"
    order: str = "ASC"
    hide_empty: bool = True
    include: Tuple[Scalar, ...] = ()
    exclude: Tuple[Scalar, ...] = ()
    limit: int = 0

    ALLOWED: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "display_type": ("checkbox", "radio", "select", "multiselect"),
        "orderby": ("name", "count"),
    }


OptionsRecord = Union[
    ClassificationOptions, MetadataOptions, AttributeOptions, VariationAttributeOptions
]
_O = TypeVar("_O", ClassificationOptions, MetadataOptions, AttributeOptions, VariationAttributeOptions)


# -------- coercion helpers --------

def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise InvalidFilterDefinition(f"Option '{name}' expects a boolean, got {value!r}")


def _as_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidFilterDefinition(f"Option '{name}' expects an integer, got {value!r}") from None
    if number < 0:
        raise InvalidFilterDefinition(f"Option '{name}' must not be negative")
    return number


def _as_number(name: str, value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidFilterDefinition(f"Option '{name}' expects a number, got {value!r}") from None
    return int(number) if number.is_integer() else number


def _as_values(value: Any) -> Tuple[Scalar, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    if isinstance(value, (int, float)):
        return (value,)
    return tuple(value)


def _as_choices(value: Any) -> Tuple[Tuple[str, str], ...]:
    """Accept ``{value: label}``, ``[value, ...]`` or ``[{"value", "label"}, ...]``."""
    if not value:
        return ()
    if isinstance(value, Mapping):
        return tuple((str(k), str(v)) for k, v in value.items())
    pairs = []
    for item in value:
        if isinstance(item, Mapping):
            if "value" not in item:
                raise InvalidFilterDefinition(f"Choice {item!r} has no 'value'")
            raw = str(item["value"])
            pairs.append((raw, str(item.get("label", raw))))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            pairs.append((str(item[0]), str(item[1])))
        else:
            pairs.append((str(item), str(item)))
    return tuple(pairs)


def _coerce(options_cls: Type[_O], name: str, value: Any) -> Any:
    if name in ("include", "exclude"):
        return _as_values(value)
    if name == "choices":
        return _as_choices(value)
    if name == "limit":
        return _as_int(name, value)
    if name in ("range_min", "range_max"):
        return _as_number(name, value)
    if name == "range_step":
        step = _as_number(name, value)
        if step is None or step <= 0:
            raise InvalidFilterDefinition("Option 'range_step' must be a positive number")
        return step
    if name == "order":
        text = str(value).strip().upper()
        if text not in ("ASC", "DESC"):
            raise InvalidFilterDefinition(f"Option 'order' must be ASC or DESC, got {value!r}")
        return text
    if name == "comparator":
        text = _COMPARATOR_ALIASES.get(str(value).strip().upper())
        if text is None:
            raise InvalidFilterDefinition(f"Unsupported comparator {value!r}")
        return text

    default = next(f.default for f in fields(options_cls) if f.name == name)
    if isinstance(default, bool):
        return _as_bool(name, value)

    text = str(value).strip().lower()
    allowed = options_cls.ALLOWED.get(name)
    if allowed is not None and text not in allowed:
        raise InvalidFilterDefinition(
            f"Option '{name}' must be one of {', '.join(allowed)}, got {value!r}"
        )
    return text


def merge_options(options_cls: Type[_O], overrides: Optional[Mapping[str, Any]] = None) -> _O:
    """Return ``options_cls`` defaults with ``overrides`` applied field by field.

    Unknown keys are rejected rather than ignored so that a typo in persisted
    configuration surfaces when the definition is built.
    """
    if overrides is None:
        return options_cls()
    if isinstance(overrides, options_cls):
        return overrides
    if not isinstance(overrides, Mapping):
        raise InvalidFilterDefinition(f"Options must be a mapping, got {type(overrides).__name__}")

    known = {f.name for f in fields(options_cls)}
    unknown = sorted(str(k) for k in overrides if k not in known)
    if unknown:
        raise InvalidFilterDefinition(
            f"Unknown option(s) for {options_cls.__name__}: {', '.join(unknown)}"
        )
    values = {name: _coerce(options_cls, name, value) for name, value in overrides.items()}
    return options_cls(**values)


__all__ = [
    "ClassificationOptions",
    "MetadataOptions",
    "AttributeOptions",
    "VariationAttributeOptions",
    "OptionsRecord",
    "merge_options",
]
