"""Application configuration objects."""

import os
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


def _split(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    """Base configuration for the facet service."""

    # -------------------------
    # Data paths
    # -------------------------
    # DuckDB database file (":memory:" keeps the catalog in process)
    DUCKDB_PATH = Path(os.getenv("FACETKIT_DUCKDB_PATH", "data/catalog.duckdb"))

    # Persisted filter definitions (JSON list); empty means default filters
    FILTERS_PATH = os.getenv("FACETKIT_FILTERS_PATH", "data/filters.json")

    # Directory holding items.csv, terms.csv, item_terms.csv, item_meta.csv
    CATALOG_DIR = os.getenv("FACETKIT_CATALOG_DIR", "data/catalog")

    # -------------------------
    # External services
    # -------------------------
    # Base URL of <table>.parquet snapshots
    CATALOG_URL = os.getenv("FACETKIT_CATALOG_URL")
    CATALOG_API_KEY = os.getenv("FACETKIT_CATALOG_API_KEY")

    # -------------------------
    # Choices
    # -------------------------
    # Seconds; 0 disables the cache
    CHOICE_CACHE_TTL = int(os.getenv("CHOICE_CACHE_TTL", "300"))

    # -------------------------
    # Results
    # -------------------------
    DEFAULT_ITEM_TYPE = _split(os.getenv("DEFAULT_ITEM_TYPE", "post"))
    DEFAULT_PER_PAGE = int(os.getenv("DEFAULT_PER_PAGE", "10"))
    MAX_PER_PAGE = int(os.getenv("MAX_PER_PAGE", "100"))

    # -------------------------
    # URLs
    # -------------------------
    FILTER_PARAM_PREFIX = os.getenv("FILTER_PARAM_PREFIX", "filter_")
    # Non-filter params carried into canonical URLs; empty keeps them all
    PRESERVED_PARAMS = _split(os.getenv("PRESERVED_PARAMS", "s,post_type,orderby,order,per_page"))


__all__ = ["Config"]
