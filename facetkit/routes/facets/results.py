"""Filtered result endpoints."""

from __future__ import annotations

import logging

from flask import current_app, jsonify, request

from facetkit.filters.codec import filter_url, normalize_selection
from facetkit.filters.translate import build_query

from . import bp, get_catalog
from .helpers import (
    build_base_query,
    build_filter_registry,
    preserved_params,
    selection_from_args,
    selection_from_payload,
)

logger = logging.getLogger("facetkit.routes")


@bp.route("/results", methods=["GET"])
def results():
    """One page of items matching the ``filter_*`` parameters."""
    registry = build_filter_registry(request.args)
    selection = selection_from_args(request.args)
    query = build_query(registry, selection, build_base_query(request.args))
    page = get_catalog().execute(query)

    url = filter_url(
        request.base_url,
        selection,
        params=request.args,
        preserved=preserved_params(),
        prefix=current_app.config["FILTER_PARAM_PREFIX"],
    )
    payload = page.to_dict()
    payload.update({"selection": normalize_selection(selection), "url": url, "query": query.to_dict()})
    return jsonify(payload)


@bp.route("/filter", methods=["POST"])
def ajax_filter():
    """AJAX filtering: ``{filters, post_type, per_page, paged}`` in the JSON body."""
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        return jsonify({"success": False, "data": {"message": "Expected a JSON object"}}), 400

    registry = build_filter_registry()
    selection = selection_from_payload(registry, body.get("filters"))
    query = build_query(registry, selection, build_base_query(body))
    page = get_catalog().execute(query)
    logger.debug("AJAX filter %s matched %d item(s)", selection, page.found_count)

    url = filter_url(
        request.host_url.rstrip("/") + "/results",
        selection,
        params={},
        prefix=current_app.config["FILTER_PARAM_PREFIX"],
    )
    return jsonify(
        {
            "success": True,
            "data": {
                "items": page.items,
                "found_posts": page.found_count,
                "max_num_pages": page.page_count,
                "current_page": page.page,
                "url": url,
            },
        }
    )
