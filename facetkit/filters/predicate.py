"""Backend-agnostic predicate tree and the query specification that carries it."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

# Ids start at 1 in the catalog, so this set never matches an item.
IMPOSSIBLE_ID_SET: Tuple[int, ...] = (0,)


class Comparator(str, Enum):
    EQ = "EQ"
    IN = "IN"
    NOT_IN = "NOT_IN"
    BETWEEN = "BETWEEN"


class ValueType(str, Enum):
    STRING = "string"
    NUMERIC = "numeric"


class Relation(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class Leaf:
    """One condition: ``field <comparator> values``.

    ``match_on`` says which identity of the field the values refer to:
    ``id`` or ``slug`` for classification terms, ``value`` for metadata.
    """

    field: str
    comparator: Comparator
    values: Tuple[Any, ...]
    value_type: ValueType = ValueType.STRING
    match_on: str = "value"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "comparator": self.comparator.value,
            "values": list(self.values),
            "value_type": self.value_type.value,
            "match_on": self.match_on,
        }


@dataclass(frozen=True)
class Group:
    relation: Optional[Relation] = None
    children: Tuple["Node", ...] = ()

    def __len__(self) -> int:
        return len(self.children)

    def __bool__(self) -> bool:
        return bool(self.children)

    def append(self, node: "Node") -> "Group":
        return replace(self, children=self.children + (node,))

    def with_default_relation(self) -> "Group":
        """Default to AND once the group combines more than one child."""
        if self.relation is None and len(self.children) > 1:
            return replace(self, relation=Relation.AND)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relation": self.relation.value if self.relation else None,
            "children": [child.to_dict() for child in self.children],
        }


Node = Union[Leaf, Group]


@dataclass(frozen=True)
class Query:
    """Everything the catalog needs to run one paged lookup."""

    item_type: Tuple[str, ...] = ("post",)
    status: str = "publish"
    page: int = 1
    per_page: int = 10
    orderby: str = "date"
    order: str = "DESC"
    id_in: Optional[Tuple[int, ...]] = None
    classification: Group = field(default_factory=Group)
    metadata: Group = field(default_factory=Group)

    @property
    def is_empty_set(self) -> bool:
        return self.id_in is not None and set(self.id_in) <= set(IMPOSSIBLE_ID_SET)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_type": list(self.item_type),
            "status": self.status,
            "page": self.page,
            "per_page": self.per_page,
            "orderby": self.orderby,
            "order": self.order,
            "id_in": list(self.id_in) if self.id_in is not None else None,
            "classification": self.classification.to_dict(),
            "metadata": self.metadata.to_dict(),
        }


__all__ = [
    "IMPOSSIBLE_ID_SET",
    "Comparator",
    "ValueType",
    "Relation",
    "Leaf",
    "Group",
    "Node",
    "Query",
]
