"""DuckDB-backed catalog: term/metadata lookups and paged query execution."""

from __future__ import annotations

import logging
import math
import os
import threading
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import duckdb
import pandas as pd
import requests

from facetkit.errors import CatalogLookupFailure
from facetkit.filters.definition import ATTRIBUTE_SCHEME_PREFIX, VARIATION_META_PREFIX
from facetkit.filters.predicate import Query
from facetkit.filters.translate import slugify
from facetkit.services.sql import compile_order, compile_where

logger = logging.getLogger("facetkit.catalog")

PUBLISH = "publish"
VARIATION_TYPE = "product_variation"

# Column -> (DuckDB type, pandas default for a missing column).
TABLES: Dict[str, Dict[str, Tuple[str, Any]]] = {
    "items": {
        "id": ("BIGINT", None),
        "parent_id": ("BIGINT", 0),
        "item_type": ("VARCHAR", "post"),
        "status": ("VARCHAR", PUBLISH),
        "title": ("VARCHAR", ""),
        "created_at": ("TIMESTAMP", None),
    },
    "schemes": {
        "name": ("VARCHAR", None),
        "label": ("VARCHAR", ""),
    },
    "terms": {
        "id": ("BIGINT", None),
        "scheme": ("VARCHAR", None),
        "slug": ("VARCHAR", ""),
        "name": ("VARCHAR", None),
        "parent": ("BIGINT", 0),
        "color": ("VARCHAR", None),
        "image": ("VARCHAR", None),
    },
    "item_terms": {
        "item_id": ("BIGINT", None),
        "term_id": ("BIGINT", None),
    },
    "item_meta": {
        "item_id": ("BIGINT", None),
        "meta_key": ("VARCHAR", None),
        "meta_value": ("VARCHAR", None),
    },
}

# Rows missing any of these are dropped on import.
REQUIRED: Dict[str, Tuple[str, ...]] = {
    "items": ("id",),
    "schemes": ("name",),
    "terms": ("id", "scheme", "name"),
    "item_terms": ("item_id", "term_id"),
    "item_meta": ("item_id", "meta_key", "meta_value"),
}

TERM_ORDER = {
    "name": "lower(t.name)",
    "count": "COUNT(DISTINCT s.id)",
    "slug": "t.slug",
    "id": "t.id",
    "term_order": "t.id",
}


@dataclass
class ResultPage:
    items: List[Dict[str, Any]] = field(default_factory=list)
    found_count: int = 0
    page_count: int = 0
    page: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "found_count": self.found_count,
            "page_count": self.page_count,
            "page": self.page,
        }


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join(["?"] * len(values))


def _split_terms(values: Iterable[Any]) -> Tuple[List[int], List[str]]:
    """Separate numeric term ids from slugs."""
    ids: List[int] = []
    slugs: List[str] = []
    for value in values:
        text = str(value).strip()
        if not text:
            continue
        if text.isdigit():
            ids.append(int(text))
        else:
            slugs.append(text.lower())
    return ids, slugs


def _term_match(ids: List[int], slugs: List[str]) -> Tuple[str, List[Any]]:
    parts: List[str] = []
    params: List[Any] = []
    if ids:
        parts.append(f"t.id IN ({_placeholders(ids)})")
        params.extend(ids)
    if slugs:
        parts.append(f"lower(t.slug) IN ({_placeholders(slugs)})")
        params.extend(slugs)
    return "(" + " OR ".join(parts) + ")", params


class Catalog:
    """Own the catalog tables and answer the engine's lookups.

    Storage backend: DuckDB (file or ``:memory:``)
    - Tables (schema ``catalog``): items, schemes, terms, item_terms, item_meta
    - Sources: pandas frames, a directory of CSVs, or a remote parquet snapshot
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self.config = config or {}
        self._con: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.version = 0

    # ---------- DuckDB helpers ----------

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if self._con is None:
            db_path = str(self.config.get("DUCKDB_PATH") or ":memory:")
            if db_path != ":memory:":
                dirname = os.path.dirname(db_path)
                if dirname:
                    os.makedirs(dirname, exist_ok=True)
            self._con = duckdb.connect(db_path)
            self._ensure_schema(self._con)
        return self._con

    @staticmethod
    def _ensure_schema(con: duckdb.DuckDBPyConnection) -> None:
        con.execute("CREATE SCHEMA IF NOT EXISTS catalog;")
        for table, columns in TABLES.items():
            cols = ", ".join(f"{name} {sqltype}" for name, (sqltype, _) in columns.items())
            con.execute(f"CREATE TABLE IF NOT EXISTS catalog.{table} ({cols});")

    def run_query(self, sql: str, params=None) -> pd.DataFrame:
        """Execute SQL on DuckDB and return as pandas DataFrame."""
        with self._lock:
            con = self._connect()
            try:
                return con.execute(sql, params or []).df()
            except duckdb.Error as exc:
                raise CatalogLookupFailure(f"Catalog query failed: {exc}") from exc

    def _scalar(self, sql: str, params=None) -> Any:
        with self._lock:
            con = self._connect()
            try:
                row = con.execute(sql, params or []).fetchone()
            except duckdb.Error as exc:
                raise CatalogLookupFailure(f"Catalog query failed: {exc}") from exc
        return row[0] if row else None

    def _records(self, sql: str, params=None) -> List[Dict[str, Any]]:
        df = self.run_query(sql, params)
        if df is None or df.empty:
            return []
        return df.astype(object).where(pd.notna(df), None).to_dict("records")

    def close(self) -> None:
        with self._lock:
            if self._con is not None:
                self._con.close()
                self._con = None

    # ---------- loading ----------

    @staticmethod
    def _preprocess(table: str, df: Optional[pd.DataFrame]) -> pd.DataFrame:
        columns = TABLES[table]
        if df is None:
            return pd.DataFrame({name: pd.Series(dtype=object) for name in columns})

        df = df.copy()
        for name, (_, default) in columns.items():
            if name not in df.columns:
                df[name] = default

        if table == "terms":
            missing = df["slug"].isna() | (df["slug"].astype(str).str.strip() == "")
            df.loc[missing, "slug"] = df.loc[missing, "name"].map(slugify)
            df["parent"] = df["parent"].fillna(0)
        if table == "items":
            df["parent_id"] = df["parent_id"].fillna(0)
            df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce")
        df = df.dropna(subset=list(REQUIRED[table])).copy()
        for name, (sqltype, _) in columns.items():
            if sqltype == "VARCHAR":
                # NaN from CSV/parquet must land as NULL, not 'nan'
                df[name] = pd.Series(
                    [None if pd.isna(v) else str(v) for v in df[name]], index=df.index, dtype=object
                )

        df = df[list(columns)].drop_duplicates().reset_index(drop=True)
        return df

    @staticmethod
    def _derive_schemes(terms: pd.DataFrame) -> pd.DataFrame:
        names = sorted(terms["scheme"].astype(str).unique()) if not terms.empty else []
        labels = []
        for name in names:
            bare = name[len(ATTRIBUTE_SCHEME_PREFIX):] if name.startswith(ATTRIBUTE_SCHEME_PREFIX) else name
            labels.append(bare.replace("_", " ").capitalize())
        return pd.DataFrame({"name": names, "label": labels})

    def import_frames(
        self,
        items: pd.DataFrame,
        terms: Optional[pd.DataFrame] = None,
        item_terms: Optional[pd.DataFrame] = None,
        item_meta: Optional[pd.DataFrame] = None,
        schemes: Optional[pd.DataFrame] = None,
    ) -> None:
        """Replace the whole catalog with the given frames."""
        frames = {
            "items": self._preprocess("items", items),
            "terms": self._preprocess("terms", terms),
            "item_terms": self._preprocess("item_terms", item_terms),
            "item_meta": self._preprocess("item_meta", item_meta),
        }
        if schemes is None:
            frames["schemes"] = self._derive_schemes(frames["terms"])
        else:
            frames["schemes"] = self._preprocess("schemes", schemes)

        with self._lock:
            con = self._connect()
            try:
                con.execute("BEGIN TRANSACTION;")
                for table, df in frames.items():
                    tmp = f"tmp_{table}"
                    cols = ", ".join(TABLES[table])
                    con.register(tmp, df)
                    try:
                        con.execute(f"DELETE FROM catalog.{table};")
                        con.execute(f"INSERT INTO catalog.{table} ({cols}) SELECT {cols} FROM {tmp};")
                    finally:
                        con.unregister(tmp)
                con.execute("COMMIT;")
            except duckdb.Error as exc:
                con.execute("ROLLBACK;")
                raise CatalogLookupFailure(f"Catalog import failed: {exc}") from exc
            self.version += 1

        logger.info(
            "Catalog imported: %d item(s), %d term(s), %d meta row(s) (version %d)",
            len(frames["items"]),
            len(frames["terms"]),
            len(frames["item_meta"]),
            self.version,
        )

    def import_csv_dir(self, directory: str) -> bool:
        """Import ``<table>.csv`` files from ``directory``; ``items.csv`` is required."""
        items_path = os.path.join(directory, "items.csv")
        if not os.path.exists(items_path):
            logger.warning("No items.csv in %s; catalog left unchanged", directory)
            return False

        frames: Dict[str, Optional[pd.DataFrame]] = {}
        for table in TABLES:
            path = os.path.join(directory, f"{table}.csv")
            frames[table] = pd.read_csv(path) if os.path.exists(path) else None
        logger.info("Building catalog from CSV directory %s", directory)
        self.import_frames(**frames)
        return True

    def load_remote(self, base_url: str, timeout: int = 60) -> bool:
        """Fetch ``<base_url>/<table>.parquet`` snapshots and import them."""
        headers = {}
        if self.config.get("CATALOG_API_KEY"):
            headers["apikey"] = self.config.get("CATALOG_API_KEY")

        frames: Dict[str, Optional[pd.DataFrame]] = {}
        for table in TABLES:
            url = f"{base_url.rstrip('/')}/{table}.parquet"
            try:
                resp = requests.get(url, headers=headers, timeout=timeout)
                resp.raise_for_status()
            except (requests.HTTPError, requests.ConnectionError, requests.Timeout) as e:
                if table == "items":
                    logger.error("Failed to fetch remote catalog from %s: %s", url, e)
                    return False
                logger.warning("Remote table %s unavailable: %s", table, e)
                frames[table] = None
                continue
            frames[table] = pd.read_parquet(BytesIO(resp.content))

        logger.info("Loaded remote catalog snapshot from %s", base_url)
        self.import_frames(**frames)
        return True

    def item_count(self) -> int:
        return int(self._scalar("SELECT COUNT(*) FROM catalog.items;") or 0)

    def load(self) -> bool:
        """Populate an empty catalog from the configured remote or CSV source."""
        if self.item_count():
            logger.info("Loaded catalog from local DuckDB.")
            return True
        url = self.config.get("CATALOG_URL")
        if url and self.load_remote(url):
            return True
        directory = self.config.get("CATALOG_DIR")
        if directory and self.import_csv_dir(directory):
            return True
        logger.error("No catalog source succeeded; catalog is empty.")
        return False

    # ---------- scheme and key lookups ----------

    def has_scheme(self, scheme: str) -> bool:
        return bool(self._scalar("SELECT COUNT(*) FROM catalog.schemes WHERE name = ?;", [scheme]))

    def scheme_label(self, scheme: str) -> Optional[str]:
        return self._scalar("SELECT label FROM catalog.schemes WHERE name = ?;", [scheme]) or None

    def attribute_schemes(self) -> List[str]:
        df = self.run_query(
            "SELECT name FROM catalog.schemes WHERE starts_with(name, ?) ORDER BY name;",
            [ATTRIBUTE_SCHEME_PREFIX],
        )
        return df["name"].astype(str).tolist() if not df.empty else []

    def has_meta_key(self, key: str) -> bool:
        return bool(self._scalar("SELECT COUNT(*) FROM catalog.item_meta WHERE meta_key = ?;", [key]))

    # ---------- choice lookups ----------

    @staticmethod
    def _scope_sql(scope: Optional[Query]) -> Tuple[str, List[Any]]:
        """Sub-select of the item ids counted towards choices."""
        if scope is None:
            return (
                "SELECT i.id FROM catalog.items i WHERE i.status = ? AND i.item_type <> ?",
                [PUBLISH, VARIATION_TYPE],
            )
        clause, params = compile_where(scope)
        return f"SELECT i.id FROM catalog.items i WHERE {clause}", params

    def list_entries(
        self,
        scheme: str,
        include: Sequence[Any] = (),
        exclude: Sequence[Any] = (),
        hide_empty: bool = True,
        orderby: str = "name",
        order: str = "ASC",
        scope: Optional[Query] = None,
    ) -> List[Dict[str, Any]]:
        """Terms of ``scheme`` with the number of in-scope items carrying each."""
        scope_sql, params = self._scope_sql(scope)
        where = ["t.scheme = ?"]
        params.append(scheme)

        ids, slugs = _split_terms(include)
        if ids or slugs:
            match, match_params = _term_match(ids, slugs)
            where.append(match)
            params.extend(match_params)
        ids, slugs = _split_terms(exclude)
        if ids or slugs:
            match, match_params = _term_match(ids, slugs)
            where.append(f"NOT {match}")
            params.extend(match_params)

        having = "HAVING COUNT(DISTINCT s.id) > 0" if hide_empty else ""
        direction = "DESC" if str(order).upper() == "DESC" else "ASC"
        sort = TERM_ORDER.get(orderby, TERM_ORDER["name"])

        sql = f"""
            SELECT
              t.id, t.slug, t.name,
              COALESCE(t.parent, 0) AS parent,
              COALESCE(t.color, '') AS color,
              COALESCE(t.image, '') AS image,
              COUNT(DISTINCT s.id) AS count
            FROM catalog.terms t
            LEFT JOIN catalog.item_terms it ON it.term_id = t.id
            LEFT JOIN ({scope_sql}) s ON s.id = it.item_id
            WHERE {" AND ".join(where)}
            GROUP BY t.id, t.slug, t.name, t.parent, t.color, t.image
            {having}
            ORDER BY {sort} {direction}, t.id ASC;
        """
        return self._records(sql, params)

    def distinct_values(
        self,
        key: str,
        orderby: str = "name",
        order: str = "ASC",
        scope: Optional[Query] = None,
    ) -> List[Dict[str, Any]]:
        """Distinct non-empty values stored under ``key``, with item counts."""
        scope_sql, scope_params = self._scope_sql(scope)
        direction = "DESC" if str(order).upper() == "DESC" else "ASC"
        sort = "COUNT(DISTINCT m.item_id)" if orderby == "count" else "m.meta_value"
        sql = f"""
            SELECT m.meta_value AS value, COUNT(DISTINCT m.item_id) AS count
            FROM catalog.item_meta m
            WHERE m.meta_key = ?
              AND m.meta_value IS NOT NULL AND m.meta_value <> ''
              AND m.item_id IN ({scope_sql})
            GROUP BY m.meta_value
            ORDER BY {sort} {direction}, m.meta_value ASC;
        """
        return self._records(sql, [key, *scope_params])

    def min_max(self, key: str, scope: Optional[Query] = None) -> Dict[str, Optional[float]]:
        scope_sql, scope_params = self._scope_sql(scope)
        df = self.run_query(
            f"""
            SELECT
              MIN(TRY_CAST(m.meta_value AS DOUBLE)) AS lo,
              MAX(TRY_CAST(m.meta_value AS DOUBLE)) AS hi
            FROM catalog.item_meta m
            WHERE m.meta_key = ? AND m.item_id IN ({scope_sql});
            """,
            [key, *scope_params],
        )
        if df.empty:
            return {"min": None, "max": None}
        row = df.iloc[0]
        return {
            "min": float(row["lo"]) if pd.notna(row["lo"]) else None,
            "max": float(row["hi"]) if pd.notna(row["hi"]) else None,
        }

    def variation_values(self, attribute: str, scope: Optional[Query] = None) -> List[Dict[str, Any]]:
        """Values of ``attribute_<attribute>`` on published variations.

        ``count`` is the number of distinct in-scope parent items.
        """
        scope_sql, scope_params = self._scope_sql(scope)
        sql = f"""
            SELECT m.meta_value AS value, COUNT(DISTINCT v.parent_id) AS count
            FROM catalog.item_meta m
            JOIN catalog.items v ON v.id = m.item_id
            WHERE v.item_type = ? AND v.status = ?
              AND m.meta_key = ?
              AND m.meta_value IS NOT NULL AND m.meta_value <> ''
              AND v.parent_id IN ({scope_sql})
            GROUP BY m.meta_value
            ORDER BY m.meta_value ASC;
        """
        params = [VARIATION_TYPE, PUBLISH, VARIATION_META_PREFIX + attribute, *scope_params]
        return self._records(sql, params)

    def variation_parent_ids(self, attribute: str, values: Sequence[str]) -> List[int]:
        """Parent ids of published variations whose attribute matches any of ``values``."""
        wanted = [str(v).lower() for v in values if str(v).strip()]
        if not wanted:
            return []
        df = self.run_query(
            f"""
            SELECT DISTINCT v.parent_id AS parent_id
            FROM catalog.items v
            JOIN catalog.item_meta m ON m.item_id = v.id
            WHERE v.item_type = ? AND v.status = ?
              AND v.parent_id > 0
              AND m.meta_key = ?
              AND lower(m.meta_value) IN ({_placeholders(wanted)})
            ORDER BY 1;
            """,
            [VARIATION_TYPE, PUBLISH, VARIATION_META_PREFIX + attribute, *wanted],
        )
        return [int(v) for v in df["parent_id"]] if not df.empty else []

    # ---------- query execution ----------

    def execute(self, query: Query) -> ResultPage:
        """Run ``query`` and return one page of matching items."""
        clause, params = compile_where(query)
        found = int(self._scalar(f"SELECT COUNT(*) FROM catalog.items i WHERE {clause};", params) or 0)

        page = max(int(query.page), 1)
        sql = f"""
            SELECT
              i.id, COALESCE(i.parent_id, 0) AS parent_id, i.item_type, i.status, i.title,
              CAST(i.created_at AS VARCHAR) AS created_at
            FROM catalog.items i
            WHERE {clause}
            ORDER BY {compile_order(query)}
        """
        page_params = list(params)
        if query.per_page > 0:
            sql += " LIMIT ? OFFSET ?"
            page_params.extend([int(query.per_page), (page - 1) * int(query.per_page)])
            page_count = math.ceil(found / query.per_page) if found else 0
        else:
            page_count = 1 if found else 0

        items = self._records(sql + ";", page_params)
        return ResultPage(items=items, found_count=found, page_count=page_count, page=page)


__all__ = ["Catalog", "ResultPage", "TABLES", "PUBLISH", "VARIATION_TYPE"]
