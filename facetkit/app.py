"""Application factory for the facet service."""

from __future__ import annotations

import logging

from typing import Any, Mapping, Optional, Union

from flask import Flask, jsonify

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("facetkit")

from .config import Config
from .errors import CatalogLookupFailure, FacetError
from .filters.choices import ChoiceCache
from .filters.registry import load_config_file
from .routes.facets import bp as facets_bp
from .services.catalog import Catalog


def create_app(
    config_object: Optional[Union[str, Mapping[str, Any], type]] = None,
) -> Flask:
    """Create and configure the Flask application.

    ``config_object`` overrides the environment-driven ``Config`` defaults.
    """
    app = Flask(__name__)

    app.config.from_object(Config)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object is not None:
        app.config.from_object(config_object)

    catalog = Catalog(app.config)
    if app.config.get("LOAD_CATALOG", True):
        catalog.load()

    records = app.config.get("FILTERS")
    if records is None:
        records = load_config_file(app.config.get("FILTERS_PATH"))

    app.extensions["catalog"] = catalog
    app.extensions["choice_cache"] = ChoiceCache(ttl=app.config.get("CHOICE_CACHE_TTL", 300))
    app.extensions["filter_records"] = list(records)

    app.register_blueprint(facets_bp)

    @app.errorhandler(CatalogLookupFailure)
    def catalog_failure(exc: CatalogLookupFailure):
        logger.error("Catalog lookup failed: %s", exc)
        return jsonify({"ok": False, "error": str(exc)}), 502

    @app.errorhandler(FacetError)
    def facet_error(exc: FacetError):
        return jsonify({"ok": False, "error": str(exc)}), 400

    logger.info("facetkit app created with %d configured filter(s)", len(records))
    return app


__all__ = ["create_app"]
