"""Healthcheck endpoint."""

from __future__ import annotations

from flask import current_app, jsonify

from facetkit.errors import CatalogLookupFailure

from . import bp, get_catalog


@bp.route("/health", methods=["GET"])
def health():
    catalog = get_catalog()
    try:
        return (
            jsonify(
                {
                    "ok": True,
                    "items": catalog.item_count(),
                    "version": catalog.version,
                    "filters": len(current_app.extensions["filter_records"]),
                }
            ),
            200,
        )
    except CatalogLookupFailure as exc:
        current_app.logger.exception("Healthcheck failed")
        return jsonify({"ok": False, "error": str(exc)}), 500
