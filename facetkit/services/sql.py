"""Compile a ``Query`` into a DuckDB WHERE clause over ``catalog.items``."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from facetkit.filters.predicate import Comparator, Group, Leaf, Node, Query, Relation, ValueType

ORDER_COLUMNS = {
    "date": "i.created_at",
    "title": "lower(i.title)",
    "id": "i.id",
    "parent": "i.parent_id",
}

Clause = Tuple[str, List[Any]]


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join(["?"] * len(values))


def _bind(values: Sequence[Any], value_type: ValueType) -> List[Any]:
    if value_type is ValueType.NUMERIC:
        return [float(v) for v in values]
    return [str(v) for v in values]


def _classification_leaf(leaf: Leaf) -> Clause:
    if leaf.comparator is Comparator.BETWEEN:
        raise ValueError(f"BETWEEN is not supported on classification '{leaf.field}'")
    if not leaf.values:
        return ("1=1", []) if leaf.comparator is Comparator.NOT_IN else ("1=0", [])

    column = "t.id" if leaf.match_on == "id" else "lower(t.slug)"
    values = [int(v) for v in leaf.values] if leaf.match_on == "id" else [str(v).lower() for v in leaf.values]
    inner = (
        "SELECT it.item_id FROM catalog.item_terms it "
        "JOIN catalog.terms t ON t.id = it.term_id "
        f"WHERE t.scheme = ? AND {column} IN ({_placeholders(values)})"
    )
    negate = "NOT " if leaf.comparator is Comparator.NOT_IN else ""
    return f"i.id {negate}IN ({inner})", [leaf.field, *values]


def _metadata_leaf(leaf: Leaf) -> Clause:
    if leaf.value_type is ValueType.NUMERIC:
        expr = "TRY_CAST(m.meta_value AS DOUBLE)"
    else:
        expr = "m.meta_value"
    exists = "SELECT 1 FROM catalog.item_meta m WHERE m.item_id = i.id AND m.meta_key = ?"
    values = _bind(leaf.values, leaf.value_type)

    if leaf.comparator is Comparator.BETWEEN:
        if len(values) != 2:
            raise ValueError(f"BETWEEN on '{leaf.field}' needs exactly two values")
        return f"EXISTS ({exists} AND {expr} BETWEEN ? AND ?)", [leaf.field, *values]

    if not values:
        return ("1=1", []) if leaf.comparator is Comparator.NOT_IN else ("1=0", [])

    if leaf.comparator is Comparator.EQ and len(values) == 1:
        return f"EXISTS ({exists} AND {expr} = ?)", [leaf.field, *values]

    condition = f"{expr} IN ({_placeholders(values)})"
    if leaf.comparator is Comparator.NOT_IN:
        return f"NOT EXISTS ({exists} AND {condition})", [leaf.field, *values]
    return f"EXISTS ({exists} AND {condition})", [leaf.field, *values]


def compile_node(node: Node, leaf_compiler) -> Optional[Clause]:
    if isinstance(node, Leaf):
        return leaf_compiler(node)
    return compile_group(node, leaf_compiler)


def compile_group(group: Group, leaf_compiler) -> Optional[Clause]:
    parts: List[str] = []
    params: List[Any] = []
    for child in group.children:
        compiled = compile_node(child, leaf_compiler)
        if compiled is None:
            continue
        sql, child_params = compiled
        parts.append(sql)
        params.extend(child_params)
    if not parts:
        return None
    joiner = f" {(group.relation or Relation.AND).value} "
    return f"({joiner.join(parts)})", params


def compile_where(query: Query) -> Clause:
    """Build a parameterised WHERE clause (without the keyword) for ``query``.

    AND across: item type, status, the explicit id list, the classification
    group and the metadata group.
    """
    where: List[str] = []
    params: List[Any] = []

    if query.item_type:
        where.append(f"i.item_type IN ({_placeholders(query.item_type)})")
        params.extend(query.item_type)
    if query.status:
        where.append("i.status = ?")
        params.append(query.status)
    if query.id_in is not None:
        if query.id_in:
            where.append(f"i.id IN ({_placeholders(query.id_in)})")
            params.extend(int(v) for v in query.id_in)
        else:
            where.append("1=0")

    for group, compiler in (
        (query.classification, _classification_leaf),
        (query.metadata, _metadata_leaf),
    ):
        compiled = compile_group(group, compiler)
        if compiled is not None:
            where.append(compiled[0])
            params.extend(compiled[1])

    clause = " AND ".join(where) if where else "1=1"
    return clause, params


def compile_order(query: Query) -> str:
    column = ORDER_COLUMNS.get(query.orderby, ORDER_COLUMNS["date"])
    direction = "ASC" if str(query.order).upper() == "ASC" else "DESC"
    return f"{column} {direction} NULLS LAST, i.id {direction}"


__all__ = ["ORDER_COLUMNS", "compile_where", "compile_order", "compile_group"]
