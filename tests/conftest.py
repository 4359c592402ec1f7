import pytest

from facetkit.app import create_app
from facetkit.filters.registry import FilterRegistry
from facetkit.services.catalog import Catalog
from tests.fixtures import catalog_frames, filter_records


@pytest.fixture
def catalog():
    cat = Catalog({"DUCKDB_PATH": ":memory:"})
    cat.import_frames(**catalog_frames())
    yield cat
    cat.close()


@pytest.fixture
def registry(catalog):
    return FilterRegistry.from_config(filter_records(), catalog=catalog)


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "DUCKDB_PATH": ":memory:",
            "LOAD_CATALOG": False,
            "FILTERS": filter_records(),
            "CHOICE_CACHE_TTL": 0,
            "DEFAULT_ITEM_TYPE": ("post",),
            "PRESERVED_PARAMS": (),
        }
    )
    app.extensions["catalog"].import_frames(**catalog_frames())
    yield app
    app.extensions["catalog"].close()


@pytest.fixture
def client(app):
    return app.test_client()
