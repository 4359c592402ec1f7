import logging

import pytest

from facetkit.errors import CatalogLookupFailure, MalformedSelectionValue
from facetkit.filters.codec import decode_selection
from facetkit.filters.definition import create_filter
from facetkit.filters.predicate import (
    IMPOSSIBLE_ID_SET,
    Comparator,
    Group,
    Leaf,
    Query,
    Relation,
    ValueType,
)
from facetkit.filters.registry import FilterRegistry
from facetkit.filters.translate import PredicateBuilder, build_query, scope_for


@pytest.fixture
def plain_registry():
    """Registry built without a catalog (no source resolution)."""
    return FilterRegistry(
        [
            create_filter("classification", "category"),
            create_filter("attribute", "color"),
            create_filter("metadata", "price"),
            create_filter("metadata", "weight", options={"display_type": "range"}),
            create_filter("metadata", "rating", options={"data_type": "numeric", "comparator": "IN"}),
            create_filter("metadata", "stock", options={"comparator": "NOT IN"}),
        ]
    )


def test_classification_and_attribute_combine_with_and(plain_registry):
    query = build_query(plain_registry, {"category": [1, 2], "color": ["red"]})

    assert query.classification == Group(
        relation=Relation.AND,
        children=(
            Leaf("category", Comparator.IN, (1, 2), ValueType.NUMERIC, match_on="id"),
            Leaf("pa_color", Comparator.IN, ("red",), ValueType.STRING, match_on="slug"),
        ),
    )
    assert not query.metadata


def test_single_filter_group_has_no_relation(plain_registry):
    query = build_query(plain_registry, {"category": "3"})
    assert query.classification.relation is None
    assert query.classification.children == (
        Leaf("category", Comparator.IN, (3,), ValueType.NUMERIC, match_on="id"),
    )


def test_metadata_eq_with_two_values_is_or_group(plain_registry):
    query = build_query(plain_registry, {"price": ["10", "20"]})
    assert query.metadata.children == (
        Group(
            relation=Relation.OR,
            children=(
                Leaf("price", Comparator.EQ, ("10",)),
                Leaf("price", Comparator.EQ, ("20",)),
            ),
        ),
    )


def test_metadata_single_value_is_eq_leaf(plain_registry):
    query = build_query(plain_registry, {"price": "10"})
    assert query.metadata.children == (Leaf("price", Comparator.EQ, ("10",)),)


def test_metadata_in_and_not_in_emit_one_leaf(plain_registry):
    query = build_query(plain_registry, {"rating": ["4", "5"], "stock": ["out"]})
    assert query.metadata == Group(
        relation=Relation.AND,
        children=(
            Leaf("rating", Comparator.IN, (4, 5), ValueType.NUMERIC),
            Leaf("stock", Comparator.NOT_IN, ("out",)),
        ),
    )


def test_metadata_range_emits_between(plain_registry):
    query = build_query(plain_registry, {"weight": {"min": "1", "max": "2.5"}})
    assert query.metadata.children == (
        Leaf("weight", Comparator.BETWEEN, (1, 2.5), ValueType.NUMERIC),
    )


def test_partial_range_contributes_nothing(plain_registry, caplog):
    with caplog.at_level(logging.WARNING, logger="facetkit.translate"):
        query = build_query(plain_registry, {"weight": {"min": "1"}, "category": [1]})
    assert not query.metadata
    assert len(query.classification) == 1
    assert "partial range" in caplog.text


def test_malformed_value_drops_only_that_filter(plain_registry, caplog):
    with caplog.at_level(logging.WARNING, logger="facetkit.translate"):
        query = build_query(plain_registry, {"rating": ["four"], "category": ["x"], "price": "10"})
    assert not query.classification
    assert query.metadata.children == (Leaf("price", Comparator.EQ, ("10",)),)
    assert "rating" in caplog.text


def test_unknown_and_empty_selections_are_ignored(plain_registry):
    query = build_query(plain_registry, {"genre": ["rock"], "category": [], "price": ""})
    assert query == Query()


def test_attribute_identity_follows_first_value(plain_registry):
    by_id = build_query(plain_registry, {"color": ["41", "40"]})
    assert by_id.classification.children == (
        Leaf("pa_color", Comparator.IN, (41, 40), ValueType.NUMERIC, match_on="id"),
    )
    by_slug = build_query(plain_registry, {"color": ["Dark Blue", "red"]})
    assert by_slug.classification.children == (
        Leaf("pa_color", Comparator.IN, ("dark-blue", "red"), ValueType.STRING, match_on="slug"),
    )


def test_attribute_mixed_identity_rejected():
    definition = create_filter("attribute", "color")
    builder = PredicateBuilder()
    with pytest.raises(MalformedSelectionValue):
        definition.apply(builder, ["41", "red"])


def test_duplicate_values_collapse(plain_registry):
    query = build_query(plain_registry, {"category": ["1", 1, "2"]})
    assert query.classification.children[0].values == (1, 2)


def test_base_query_is_kept(plain_registry):
    base = Query(item_type=("product",), per_page=24, page=3, orderby="title", order="ASC")
    query = build_query(plain_registry, {"category": [1]}, base)
    assert query.item_type == ("product",)
    assert (query.page, query.per_page, query.orderby, query.order) == (3, 24, "title", "ASC")


def test_explicit_base_relation_is_kept(plain_registry):
    base = Query(classification=Group(relation=Relation.OR, children=(Leaf("category", Comparator.IN, (9,)),)))
    query = build_query(plain_registry, {"category": [1]}, base)
    assert query.classification.relation is Relation.OR
    assert len(query.classification) == 2


def test_build_query_is_deterministic(plain_registry):
    selection = {"price": ["10", "20"], "category": [2, 1], "color": "red", "weight": {"min": 0, "max": 9}}
    reordered = dict(reversed(list(selection.items())))
    first = build_query(plain_registry, selection)
    assert build_query(plain_registry, selection) == first
    assert build_query(plain_registry, reordered) == first
    # registry order, not selection order
    assert [leaf.field for leaf in first.classification.children] == ["category", "pa_color"]


def test_variation_filter_constrains_to_parent_ids(registry):
    query = build_query(registry, {"size": "large"}, Query(item_type=("product",)))
    assert query.id_in == (100, 102)


def test_variation_without_matches_is_impossible(registry, catalog):
    query = build_query(registry, {"size": "xxl"}, Query(item_type=("product",)))
    assert query.id_in == IMPOSSIBLE_ID_SET
    assert query.is_empty_set
    assert catalog.execute(query).found_count == 0


def test_variation_intersects_existing_id_list(registry):
    base = Query(item_type=("product",), id_in=(101, 102))
    assert build_query(registry, {"size": "large"}, base).id_in == (102,)

    base = Query(item_type=("product",), id_in=(101,))
    assert build_query(registry, {"size": "large"}, base).id_in == IMPOSSIBLE_ID_SET


def test_variation_needs_a_catalog():
    definition = create_filter("variation_attribute", "size")
    with pytest.raises(CatalogLookupFailure):
        definition.apply(PredicateBuilder(), ["large"])


def test_scope_excludes_the_filter_itself(plain_registry):
    selection = {"category": [1], "color": "red"}
    scope = scope_for(plain_registry, selection, "color")
    assert scope == build_query(plain_registry, {"category": [1]})


def test_query_to_dict_is_plain_data(plain_registry):
    data = build_query(plain_registry, {"category": [1, 2], "price": ["10", "20"]}).to_dict()
    assert data["classification"] == {
        "relation": None,
        "children": [
            {"field": "category", "comparator": "IN", "values": [1, 2], "value_type": "numeric", "match_on": "id"}
        ],
    }
    assert data["metadata"]["children"][0]["relation"] == "OR"


def test_range_shaped_value_drops_attribute_filter(registry, catalog, caplog):
    selection = decode_selection("filter_color=red..blue&filter_category=10")
    with caplog.at_level(logging.WARNING, logger="facetkit.translate"):
        query = build_query(registry, selection)
    assert [leaf.field for leaf in query.classification.children] == ["category"]
    assert "color" in caplog.text
    assert catalog.execute(query).found_count == 2


def test_range_shaped_value_drops_variation_filter(registry, catalog):
    base = Query(item_type=("product",))
    query = build_query(registry, decode_selection("filter_size=s..l"), base)
    assert query.id_in is None
    assert catalog.execute(query).found_count == 3


def test_nested_values_are_malformed(plain_registry):
    query = build_query(plain_registry, {"color": [["red"]], "price": [{"min": 1}], "category": [1]})
    assert not query.metadata
    assert [leaf.field for leaf in query.classification.children] == ["category"]
