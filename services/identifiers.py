"""
Shopify identifier helpers.

Product and variant ids reach us both as numeric strings ("8984540053667") and
as platform gids ("gid://shopify/Product/8984540053667"). Every equality check
between ids goes through ``normalize_id`` first.
"""
from __future__ import annotations

import re
from typing import Any, Optional

GID_PREFIX = "gid://shopify/"
PRODUCT_GID_PREFIX = "gid://shopify/Product/"

_GID_RE = re.compile(r"^gid://shopify/[A-Za-z]+/")
_HANDLE_RE = re.compile(r"[^a-z0-9]+")

MAX_HANDLE_LENGTH = 100


def normalize_id(value: Optional[Any]) -> str:
    """Strip the gid prefix (and any query suffix) so ids compare by their numeric part."""
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    text = _GID_RE.sub("", text)
    return text.split("?", 1)[0]


def ids_match(first: Optional[Any], second: Optional[Any]) -> bool:
    left = normalize_id(first)
    right = normalize_id(second)
    if not left or not right:
        return False
    return left == right


def to_product_gid(value: Optional[Any]) -> str:
    text = str(value or "").strip()
    if not text or text.startswith(GID_PREFIX):
        return text
    return f"{PRODUCT_GID_PREFIX}{text}"


def generate_handle(title: str) -> str:
    """URL-friendly handle: "Summer Bundle (2x)!" -> "summer-bundle-2x"."""
    handle = _HANDLE_RE.sub("-", (title or "").lower()).strip("-")
    return handle[:MAX_HANDLE_LENGTH]
