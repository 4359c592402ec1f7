"""Filter definition and choice endpoints."""

from __future__ import annotations

from flask import jsonify, request

from . import bp
from .helpers import build_base_query, build_choices, build_filter_registry, selection_from_args


@bp.route("/filters", methods=["GET"])
def list_filters():
    """Active filters with choices scoped to the current selection."""
    registry = build_filter_registry(request.args)
    selection = selection_from_args(request.args)
    base_query = build_base_query(request.args)

    return jsonify(
        {
            "filters": build_choices(registry, selection, base_query),
            "selection": selection,
            "skipped": registry.skipped,
        }
    )
