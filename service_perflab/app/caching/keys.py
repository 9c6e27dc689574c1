"""
Cache key construction.

A key is the resource kind followed by every parameter that changes the result
set, joined with ``:``. Parameters are normalized so equal effective queries
share a key (``10`` and ``10.0``, ``None`` and a missing filter) and percent
encoded so a ``:`` inside a value cannot make two different queries collide.
"""

import math
from typing import Any, Optional
from urllib.parse import quote


KEY_SEPARATOR = ":"
WILDCARD_VALUE = "*"


def _normalize(value: Any) -> str:
    if value is None:
        return WILDCARD_VALUE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return quote(str(value), safe="")


def build_cache_key(resource: str, *params: Any) -> str:
    """Deterministic cache key for a resource query."""
    return KEY_SEPARATOR.join([resource] + [_normalize(param) for param in params])


def resource_prefix(resource: str) -> str:
    """Prefix shared by every list key of a resource kind."""
    return f"{resource}{KEY_SEPARATOR}"


def users_list_key(page: int, limit: int) -> str:
    return build_cache_key("users", page, limit)


def products_list_key(
    category: Optional[str],
    min_price: Optional[float],
    max_price: Optional[float],
    page: int,
    limit: int,
) -> str:
    return build_cache_key(
        "products",
        category,
        min_price,
        max_price,
        page,
        limit,
    )


def product_key(product_id: str) -> str:
    return build_cache_key("product", product_id)


def orders_list_key(status: Optional[str], user_id: Optional[str], page: int, limit: int) -> str:
    return build_cache_key("orders", status, user_id, page, limit)


def order_key(order_id: str) -> str:
    return build_cache_key("order", order_id)
