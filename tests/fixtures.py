from __future__ import annotations

from typing import Dict

import pandas as pd


def catalog_frames() -> Dict[str, pd.DataFrame]:
    """Small blog + shop catalog used across the test suite."""
    items = pd.DataFrame(
        [
            {"id": 1, "item_type": "post", "status": "publish", "title": "Alpha", "created_at": "2024-01-01"},
            {"id": 2, "item_type": "post", "status": "publish", "title": "Beta", "created_at": "2024-01-02"},
            {"id": 3, "item_type": "post", "status": "publish", "title": "Gamma", "created_at": "2024-01-03"},
            {"id": 4, "item_type": "post", "status": "draft", "title": "Draft", "created_at": "2024-01-04"},
            {"id": 100, "item_type": "product", "status": "publish", "title": "Shirt", "created_at": "2024-02-01"},
            {"id": 101, "item_type": "product", "status": "publish", "title": "Mug", "created_at": "2024-02-02"},
            {"id": 102, "item_type": "product", "status": "publish", "title": "Hat", "created_at": "2024-02-03"},
            {"id": 200, "parent_id": 100, "item_type": "product_variation", "status": "publish", "title": "Shirt - S"},
            {"id": 201, "parent_id": 100, "item_type": "product_variation", "status": "publish", "title": "Shirt - L"},
            {"id": 202, "parent_id": 102, "item_type": "product_variation", "status": "publish", "title": "Hat - L"},
            {"id": 203, "parent_id": 101, "item_type": "product_variation", "status": "private", "title": "Mug - S"},
        ]
    )
    terms = pd.DataFrame(
        [
            {"id": 10, "scheme": "category", "slug": "news", "name": "News"},
            {"id": 11, "scheme": "category", "slug": "sports", "name": "Sports"},
            {"id": 12, "scheme": "category", "slug": "empty", "name": "Empty"},
            {"id": 20, "scheme": "post_tag", "slug": "featured", "name": "Featured"},
            {"id": 30, "scheme": "product_cat", "slug": "clothing", "name": "Clothing"},
            {"id": 31, "scheme": "product_cat", "slug": "kitchen", "name": "Kitchen"},
            {"id": 32, "scheme": "product_cat", "slug": "accessories", "name": "Accessories", "parent": 30},
            {"id": 40, "scheme": "pa_color", "slug": "red", "name": "Red", "color": "#ff0000"},
            {"id": 41, "scheme": "pa_color", "slug": "blue", "name": "Blue", "color": "#0000ff"},
            {"id": 42, "scheme": "pa_color", "slug": "green", "name": "Green", "color": "#00ff00"},
            {"id": 43, "scheme": "pa_size", "slug": "small", "name": "Small"},
            {"id": 44, "scheme": "pa_size", "slug": "large", "name": "Large"},
        ]
    )
    item_terms = pd.DataFrame(
        [
            (1, 10), (1, 20),
            (2, 11),
            (3, 10), (3, 11),
            (4, 10),
            (100, 30), (100, 40), (100, 41), (100, 43), (100, 44),
            (101, 31), (101, 41),
            (102, 30), (102, 42), (102, 44),
        ],
        columns=["item_id", "term_id"],
    )
    item_meta = pd.DataFrame(
        [
            (1, "price", "10"), (2, "price", "25"), (3, "price", "40"),
            (1, "brand", "acme"), (2, "brand", "globex"), (3, "brand", "acme"),
            (1, "rating", "4"), (2, "rating", "5"), (3, "rating", "4"),
            (100, "_price", "20"), (101, "_price", "8"), (102, "_price", "15"),
            (200, "attribute_size", "small"),
            (201, "attribute_size", "large"),
            (202, "attribute_size", "large"),
            (203, "attribute_size", "small"),
        ],
        columns=["item_id", "meta_key", "meta_value"],
    )
    return {"items": items, "terms": terms, "item_terms": item_terms, "item_meta": item_meta}


def filter_records():
    """Persisted filter configuration as the admin screen would store it."""
    return [
        {"kind": "taxonomy", "source": "category", "label": "Category"},
        {"kind": "attribute", "source": "pa_color", "options": {"display_type": "color"}},
        {"kind": "variation", "source": "size"},
        {"kind": "meta", "source": "brand"},
        {"kind": "meta", "source": "price", "options": {"display_type": "range", "data_type": "numeric"}},
        {"kind": "meta", "source": "rating", "options": {"data_type": "numeric", "comparator": "IN"}},
    ]
