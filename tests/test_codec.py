import pytest
from werkzeug.datastructures import MultiDict

from facetkit.errors import MalformedSelectionValue
from facetkit.filters.codec import (
    decode_selection,
    encode_selection,
    filter_url,
    normalize_selection,
)


def test_example_selection_encodes_in_order():
    selection = {"category": [1, 2], "color": ["red"]}
    assert encode_selection(selection) == "filter_category=1,2&filter_color=red"


def test_example_selection_decodes_back():
    decoded = decode_selection("filter_category=1,2&filter_color=red")
    assert decoded == {"category": ["1", "2"], "color": "red"}
    assert normalize_selection(decoded) == normalize_selection({"category": [1, 2], "color": ["red"]})


@pytest.mark.parametrize(
    "selection",
    [
        {},
        {"brand": "acme"},
        {"category": ["news", "sports"], "brand": "acme"},
        {"price": {"min": "10", "max": "40"}},
        {"q": "München café", "tag": ["a b", "c&d", "e=f"]},
    ],
)
def test_decode_is_left_inverse_of_encode(selection):
    assert decode_selection(encode_selection(selection)) == selection


def test_empty_filters_are_omitted():
    assert encode_selection({"category": [], "brand": "", "price": None, "color": "red"}) == "filter_color=red"


def test_values_with_delimiter_are_rejected():
    with pytest.raises(MalformedSelectionValue):
        encode_selection({"brand": ["acme, inc", "globex"]})
    with pytest.raises(MalformedSelectionValue):
        encode_selection({"brand": "1..2"})


def test_range_encoding():
    assert encode_selection({"price": {"min": 10, "max": 40}}) == "filter_price=10..40"
    assert decode_selection("filter_price=10..") == {"price": {"min": "10"}}


def test_decode_ignores_foreign_and_blank_params():
    decoded = decode_selection("?paged=2&filter_=x&filter_brand=&filter_color=red&s=shoes")
    assert decoded == {"color": "red"}


def test_decode_merges_repeated_params():
    args = MultiDict([("filter_color", "red"), ("filter_color", "blue,red"), ("page", "2")])
    assert decode_selection(args) == {"color": ["red", "blue"]}


def test_custom_prefix():
    assert encode_selection({"color": "red"}, prefix="f_") == "f_color=red"
    assert decode_selection("f_color=red&filter_size=l", prefix="f_") == {"color": "red"}


def test_filter_url_preserves_other_params():
    url = filter_url(
        "https://shop.example/catalog?paged=2&s=blue+shirt&filter_color=green",
        {"color": ["red", "blue"]},
    )
    assert url == "https://shop.example/catalog?filter_color=red,blue&paged=2&s=blue%20shirt"


def test_filter_url_whitelist():
    url = filter_url(
        "/results",
        {"category": 1},
        params={"orderby": "title", "utm_source": "mail"},
        preserved=["orderby"],
    )
    assert url == "/results?filter_category=1&orderby=title"


def test_filter_url_without_selection_drops_filter_params():
    assert filter_url("/results?filter_color=red&paged=3", {}) == "/results?paged=3"


@pytest.mark.parametrize("bounds", [{"min": "1.", "max": "5"}, {"min": "1", "max": ".5"}, {"max": "5."}])
def test_range_bounds_with_edge_dots_are_rejected(bounds):
    with pytest.raises(MalformedSelectionValue):
        encode_selection({"price": bounds})


def test_decimal_range_bounds_survive():
    encoded = encode_selection({"price": {"min": "1.5", "max": "5.25"}})
    assert encoded == "filter_price=1.5..5.25"
    assert decode_selection(encoded) == {"price": {"min": "1.5", "max": "5.25"}}
