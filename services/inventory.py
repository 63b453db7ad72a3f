"""
Inventory lookup and bundle availability.

Stock levels are pushed by the embedded app (``POST /api/inventory/sync``) and
stored per variant; the storefront paths read them back through an
``InventoryLookup``. Lookups are always keyed by the normalized variant id.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from fastapi import Depends

from schemas.bundle_schemas import InventoryRecord, SelectedItem
from services.identifiers import normalize_id
from services.storage import BundleStorage, get_bundle_storage

logger = logging.getLogger(__name__)


class InventoryLookup(Protocol):
    async def get_inventory(self, variant_ids: Sequence[str]) -> Dict[str, InventoryRecord]:
        ...


class MappingInventoryLookup:
    """In-memory lookup over a prepared mapping of variant id -> record."""

    def __init__(self, records: Optional[Mapping[str, InventoryRecord]] = None):
        self._records: Dict[str, InventoryRecord] = {}
        for key, record in (records or {}).items():
            self._records[normalize_id(key)] = record

    async def get_inventory(self, variant_ids: Sequence[str]) -> Dict[str, InventoryRecord]:
        found = {}
        for variant_id in variant_ids:
            key = normalize_id(variant_id)
            if key in self._records:
                found[key] = self._records[key]
        return found


class DatabaseInventoryLookup:
    """Reads the synced ``variant_inventory`` rows (variant ids are unique across shops)."""

    def __init__(self, storage: BundleStorage):
        self.storage = storage

    async def get_inventory(self, variant_ids: Sequence[str]) -> Dict[str, InventoryRecord]:
        records = await self.storage.get_variant_inventory(variant_ids)
        missing = {normalize_id(v) for v in variant_ids if v} - set(records)
        if missing:
            logger.debug(f"No synced inventory for {len(missing)} variant(s)")
        return records


async def get_inventory_lookup(storage: BundleStorage = Depends(get_bundle_storage)) -> InventoryLookup:
    return DatabaseInventoryLookup(storage)


@dataclass
class InventoryItemStatus:
    product_id: str
    variant_id: str
    title: str
    required_quantity: int
    available_quantity: int
    available_for_sale: bool

    @property
    def fulfillable_bundles(self) -> int:
        if not self.available_for_sale:
            return 0
        if self.required_quantity <= 0:
            return max(0, self.available_quantity)
        return max(0, self.available_quantity) // self.required_quantity

    def to_dict(self) -> Dict:
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "title": self.title,
            "requiredQuantity": self.required_quantity,
            "availableQuantity": self.available_quantity,
            "availableForSale": self.available_for_sale,
        }


@dataclass
class BundleAvailability:
    available_count: int
    items: List[InventoryItemStatus] = field(default_factory=list)
    limiting_item: Optional[InventoryItemStatus] = None

    @property
    def is_available(self) -> bool:
        return self.available_count > 0

    def to_dict(self) -> Dict:
        limiting = self.limiting_item
        return {
            "isAvailable": self.is_available,
            "availableCount": self.available_count,
            "limitingProduct": limiting.title or limiting.product_id if limiting else None,
            "limitingVariant": limiting.variant_id if limiting else None,
            "limitingStock": limiting.available_quantity if limiting else None,
            "items": [item.to_dict() for item in self.items],
        }


def compute_bundle_availability(
    selected_items: Sequence[SelectedItem],
    inventory: Mapping[str, InventoryRecord],
    quantity: int = 1,
) -> BundleAvailability:
    """
    How many complete bundles the tracked stock can fulfil.

    Each item needs ``item.quantity * quantity`` units per bundle; the item
    allowing the fewest bundles is the limiting one. Variants without a
    synced record are left out, so a bundle with no tracked items reports
    0 available and no limiting item.
    """
    statuses: List[InventoryItemStatus] = []
    for item in selected_items:
        key = normalize_id(item.variant_id)
        record = inventory.get(key) if key else None
        if record is None:
            continue
        statuses.append(
            InventoryItemStatus(
                product_id=item.product_id,
                variant_id=key,
                title=record.title or item.product_id,
                required_quantity=item.quantity * max(quantity, 1),
                available_quantity=record.quantity_available if record.available_for_sale else 0,
                available_for_sale=record.available_for_sale,
            )
        )

    if not statuses:
        return BundleAvailability(available_count=0)

    limiting = min(statuses, key=lambda s: s.fulfillable_bundles)
    return BundleAvailability(
        available_count=limiting.fulfillable_bundles,
        items=statuses,
        limiting_item=limiting,
    )
