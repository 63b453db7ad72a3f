"""
Centralized configuration helpers for shop scoping and money display.
"""
from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SHOP_ID: str = os.getenv("DEFAULT_SHOP_ID") or "demo-shop.myshopify.com"

DEFAULT_CURRENCY: str = (os.getenv("DEFAULT_CURRENCY") or "EUR").upper()
CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL") or "€"

# Symbols for currencies the storefront commonly renders.
CURRENCY_SYMBOLS: dict[str, str] = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "CAD": "$",
    "AUD": "$",
    "JPY": "¥",
}

# Header the embedded app and the theme extension send the shop domain in.
SHOP_HEADER: str = "X-Shop-Domain"


def sanitize_shop_id(value: Optional[Any]) -> Optional[str]:
    """Normalize raw IDs (strip whitespace, lower-case domains)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    text = str(value).strip()
    if not text:
        return None
    return text.lower()


def resolve_shop_id(*candidates: Optional[Any]) -> str:
    """
    Pick the first usable shop identifier from candidates, otherwise fall back to DEFAULT_SHOP_ID.
    """
    for candidate in candidates:
        normalized = sanitize_shop_id(candidate)
        if normalized:
            return normalized
    return DEFAULT_SHOP_ID


def currency_symbol(currency: Optional[str] = None) -> str:
    """Symbol for a currency code; the configured symbol when no code is given."""
    if not currency:
        return CURRENCY_SYMBOL
    code = currency.upper()
    if code == DEFAULT_CURRENCY:
        return CURRENCY_SYMBOL
    return CURRENCY_SYMBOLS.get(code, f"{code} ")
