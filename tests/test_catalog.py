from io import BytesIO

import pandas as pd
import pytest
import requests

from facetkit.errors import CatalogLookupFailure
from facetkit.filters.predicate import Comparator, Group, Leaf, Query, Relation, ValueType
from facetkit.filters.translate import build_query
from facetkit.services import catalog as catalog_module
from facetkit.services.catalog import Catalog
from facetkit.services.sql import compile_order, compile_where
from tests.fixtures import catalog_frames


def _ids(page):
    return [item["id"] for item in page.items]


# ---------- SQL compilation ----------

def test_compile_where_base_fields():
    clause, params = compile_where(Query(item_type=("post", "page"), id_in=(3, 1)))
    assert clause == "i.item_type IN (?,?) AND i.status = ? AND i.id IN (?,?)"
    assert params == ["post", "page", "publish", 3, 1]


def test_compile_where_empty_id_list_matches_nothing():
    clause, _ = compile_where(Query(id_in=()))
    assert clause.endswith("1=0")


def test_compile_where_groups():
    query = Query(
        metadata=Group(
            relation=Relation.OR,
            children=(
                Leaf("brand", Comparator.EQ, ("acme",)),
                Leaf("price", Comparator.BETWEEN, (1, 5), ValueType.NUMERIC),
            ),
        )
    )
    clause, params = compile_where(query)
    assert " OR " in clause
    assert "TRY_CAST(m.meta_value AS DOUBLE) BETWEEN ? AND ?" in clause
    assert params[-5:] == ["brand", "acme", "price", 1.0, 5.0]


def test_compile_order_whitelist():
    assert compile_order(Query(orderby="title", order="asc")).startswith("lower(i.title) ASC")
    assert compile_order(Query(orderby="1; DROP TABLE x")).startswith("i.created_at DESC")


# ---------- lookups ----------

def test_schemes_are_derived_from_terms(catalog):
    assert catalog.has_scheme("category")
    assert not catalog.has_scheme("genre")
    assert catalog.attribute_schemes() == ["pa_color", "pa_size"]
    assert catalog.scheme_label("pa_color") == "Color"
    assert catalog.scheme_label("genre") is None
    assert catalog.has_meta_key("attribute_size")


def test_list_entries_rows(catalog):
    rows = catalog.list_entries("pa_color", orderby="count", order="DESC")
    assert rows[0] == {"id": 41, "slug": "blue", "name": "Blue", "parent": 0, "color": "#0000ff", "image": "", "count": 2}


def test_variation_parent_ids_skip_unpublished(catalog):
    assert catalog.variation_parent_ids("size", ["small"]) == [100]
    assert catalog.variation_parent_ids("size", ["LARGE", "small"]) == [100, 102]
    assert catalog.variation_parent_ids("size", []) == []


# ---------- execution ----------

def test_execute_pages_results(catalog):
    page = catalog.execute(Query(per_page=2))
    assert _ids(page) == [3, 2]
    assert (page.found_count, page.page_count) == (3, 2)

    page = catalog.execute(Query(per_page=2, page=2))
    assert _ids(page) == [1]
    assert page.items[0]["created_at"].startswith("2024-01-01")


def test_execute_classification_or_within_and_across(catalog, registry):
    assert _ids(catalog.execute(build_query(registry, {"category": ["10"]}))) == [3, 1]
    assert _ids(catalog.execute(build_query(registry, {"category": ["10", "11"]}))) == [3, 2, 1]
    assert _ids(catalog.execute(build_query(registry, {"category": ["11"], "brand": "acme"}))) == [3]


def test_execute_metadata(catalog, registry):
    assert _ids(catalog.execute(build_query(registry, {"price": {"min": "20", "max": "40"}}))) == [3, 2]
    assert _ids(catalog.execute(build_query(registry, {"brand": ["acme", "globex"]}))) == [3, 2, 1]
    assert _ids(catalog.execute(build_query(registry, {"rating": "4"}))) == [3, 1]


def test_execute_not_in_keeps_items_without_the_key(catalog):
    query = Query(metadata=Group(children=(Leaf("brand", Comparator.NOT_IN, ("acme",)),)))
    assert _ids(catalog.execute(query)) == [2]

    query = Query(item_type=("product",), metadata=Group(children=(Leaf("brand", Comparator.NOT_IN, ("acme",)),)))
    assert _ids(catalog.execute(query)) == [102, 101, 100]


def test_execute_products_with_attribute_and_variation(catalog, registry):
    base = Query(item_type=("product",), orderby="id", order="ASC")
    assert _ids(catalog.execute(build_query(registry, {"color": "blue"}, base))) == [100, 101]
    assert _ids(catalog.execute(build_query(registry, {"color": ["41"]}, base))) == [100, 101]
    assert _ids(catalog.execute(build_query(registry, {"size": "large"}, base))) == [100, 102]
    assert _ids(catalog.execute(build_query(registry, {"size": "large", "color": "blue"}, base))) == [100]


def test_bad_sql_is_wrapped(catalog):
    with pytest.raises(CatalogLookupFailure) as info:
        catalog.run_query("SELECT * FROM catalog.nope")
    assert info.value.__cause__ is not None


# ---------- loading ----------

def test_import_bumps_version():
    cat = Catalog({"DUCKDB_PATH": ":memory:"})
    assert cat.version == 0
    cat.import_frames(**catalog_frames())
    cat.import_frames(**catalog_frames())
    assert cat.version == 2
    assert cat.item_count() == 11


def test_import_csv_dir(tmp_path):
    for name, df in catalog_frames().items():
        df.to_csv(tmp_path / f"{name}.csv", index=False)

    cat = Catalog({"DUCKDB_PATH": str(tmp_path / "db" / "catalog.duckdb")})
    assert cat.import_csv_dir(str(tmp_path))
    assert cat.item_count() == 11
    rows = cat.list_entries("category")
    assert [(r["slug"], r["count"], r["color"]) for r in rows] == [("news", 2, ""), ("sports", 2, "")]
    cat.close()


def test_import_csv_dir_without_items(tmp_path):
    cat = Catalog({"DUCKDB_PATH": ":memory:"})
    assert cat.import_csv_dir(str(tmp_path)) is False
    assert cat.version == 0


class _FakeResponse:
    def __init__(self, content=b"", status=200):
        self.content = content
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


def _parquet(df: pd.DataFrame) -> bytes:
    buf = BytesIO()
    df.to_parquet(buf, index=False)
    return buf.getvalue()


def test_load_remote(monkeypatch):
    frames = catalog_frames()
    frames["items"]["created_at"] = pd.to_datetime(frames["items"]["created_at"])
    requested = []

    def fake_get(url, headers=None, timeout=None):
        requested.append(url)
        name = url.rsplit("/", 1)[-1].replace(".parquet", "")
        if name in frames:
            return _FakeResponse(_parquet(frames[name]))
        return _FakeResponse(status=404)

    monkeypatch.setattr(catalog_module.requests, "get", fake_get)
    cat = Catalog({"DUCKDB_PATH": ":memory:"})
    assert cat.load_remote("https://bucket.example/catalog/")
    assert requested[0] == "https://bucket.example/catalog/items.parquet"
    assert cat.item_count() == 11
    assert cat.attribute_schemes() == ["pa_color", "pa_size"]


def test_load_remote_without_items(monkeypatch):
    monkeypatch.setattr(catalog_module.requests, "get", lambda url, headers=None, timeout=None: _FakeResponse(status=503))
    cat = Catalog({"DUCKDB_PATH": ":memory:"})
    assert cat.load_remote("https://bucket.example/catalog") is False
    assert cat.item_count() == 0


def test_load_prefers_existing_data(catalog):
    assert catalog.load() is True


def test_load_from_csv_dir(tmp_path):
    for name, df in catalog_frames().items():
        df.to_csv(tmp_path / f"{name}.csv", index=False)
    cat = Catalog({"DUCKDB_PATH": ":memory:", "CATALOG_DIR": str(tmp_path)})
    assert cat.load() is True
    assert cat.item_count() == 11
