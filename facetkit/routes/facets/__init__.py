"""Facets blueprint package."""

from __future__ import annotations

from flask import Blueprint

bp = Blueprint("facets", __name__)


def get_catalog():
    from flask import current_app

    return current_app.extensions["catalog"]


def get_choice_cache():
    from flask import current_app

    return current_app.extensions["choice_cache"]


from . import filters, health, results  # noqa: E402,F401

__all__ = ["bp", "get_catalog", "get_choice_cache"]
