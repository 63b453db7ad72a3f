"""Cart lines for a validated bundle selection (consumed by the theme extension's /cart/add.js call)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from schemas.bundle_schemas import BundleData, SelectedItem
from services.identifiers import normalize_id


def bundle_line_properties(bundle: BundleData, tier_id: Optional[str] = None) -> Dict[str, str]:
    """Hidden ``_bundle_*`` line-item properties used to attribute cart lines to the bundle."""
    properties = {
        "_bundle_id": bundle.id or "",
        "_bundle_title": bundle.title,
        "_bundle_type": bundle.type.value if bundle.type else "",
    }

    tier = bundle.find_tier(tier_id)
    if tier is not None:
        properties["_bundle_tier"] = tier.name
        properties["_bundle_tier_id"] = tier.id

    if bundle.discount_type is not None and bundle.discount_value:
        properties["_bundle_discount_type"] = bundle.discount_type.value
        properties["_bundle_discount_value"] = format(bundle.discount_value.normalize(), "f")

    return properties


def build_cart_items(
    bundle: BundleData,
    selected_items: Sequence[SelectedItem],
    tier_id: Optional[str] = None,
    quantity: int = 1,
) -> List[Dict[str, Any]]:
    """One cart line per selected item, with numeric variant ids and bundle quantity applied."""
    properties = bundle_line_properties(bundle, tier_id)
    return [
        {
            "variantId": normalize_id(item.variant_id),
            "quantity": item.quantity * quantity,
            "properties": dict(properties),
        }
        for item in selected_items
    ]
