"""
Storage Service Layer
Loads bundles with all relations and converts rows into the engine's
dataclasses; writes bundles, stock levels and storefront counters.

One ``BundleStorage`` wraps one request-scoped ``AsyncSession``.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
import logging
import time

from fastapi import Depends
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import (
    Bundle, BundleAnalytics, BundleCategory, BundleInventorySnapshot, BundleItem,
    BundleTier, VariantInventory, VolumeRule, get_db,
)
from schemas.bundle_schemas import (
    BundleCategoryData, BundleData, BundleItemData, BundleTierData,
    DailyStats, InventoryRecord, VolumeRuleData,
)
from services.identifiers import generate_handle, normalize_id, to_product_gid
from utils import retry_storage_read, sanitize_string

logger = logging.getLogger(__name__)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# -------------------------------------------------------------------
# Row -> dataclass conversion
# -------------------------------------------------------------------

def _item_data(row: BundleItem) -> BundleItemData:
    return BundleItemData(
        id=row.id,
        product_id=row.shopify_product_id,
        variant_id=row.shopify_variant_id,
        title=row.product_title or "",
        quantity=row.quantity,
        is_required=row.is_required,
        original_price=row.original_price,
        category_id=row.category_id,
        position=row.position,
    )


def bundle_to_data(row: Bundle) -> BundleData:
    return BundleData(
        id=row.id,
        shop=row.shop,
        title=row.title,
        description=row.description,
        handle=row.handle,
        type=row.bundle_type,
        status=row.status,
        price=row.price,
        compare_at_price=row.compare_at_price,
        discount_type=row.discount_type,
        discount_value=row.discount_value,
        min_products=row.min_products,
        max_products=row.max_products,
        allow_duplicates=row.allow_duplicates,
        apply_to_same_product=row.apply_to_same_product,
        start_date=row.start_date,
        end_date=row.end_date,
        items=[_item_data(i) for i in row.items if not i.category_id],
        categories=[
            BundleCategoryData(
                id=c.id,
                name=c.name,
                min_select=c.min_select,
                max_select=c.max_select,
                position=c.position,
                items=[_item_data(i) for i in c.items],
            )
            for c in row.categories
        ],
        tiers=[
            BundleTierData(
                id=t.id,
                name=t.name,
                price=t.price,
                compare_at_price=t.compare_at_price,
                product_count=t.product_count,
                allowed_products=t.allowed_products,
                position=t.position,
            )
            for t in row.tiers
        ],
        volume_rules=[
            VolumeRuleData(
                id=r.id,
                min_quantity=r.min_quantity,
                max_quantity=r.max_quantity,
                discount_type=r.discount_type,
                discount_value=r.discount_value,
                label=r.label,
                position=r.position,
            )
            for r in row.volume_rules
        ],
    )


# -------------------------------------------------------------------
# Dataclass -> rows
# -------------------------------------------------------------------

def _item_row(item: BundleItemData, position: int) -> BundleItem:
    return BundleItem(
        shopify_product_id=item.product_id,
        shopify_variant_id=item.variant_id or None,
        product_title=sanitize_string(item.title),
        quantity=item.quantity,
        position=item.position or position,
        is_required=item.is_required,
        original_price=item.original_price,
    )


def _apply_to_row(row: Bundle, data: BundleData) -> None:
    row.title = sanitize_string(data.title)
    row.description = data.description
    row.handle = data.handle or generate_handle(data.title)
    row.bundle_type = data.type.value if data.type else ""
    row.status = data.status
    row.price = data.price
    row.compare_at_price = data.compare_at_price
    row.discount_type = data.discount_type.value if data.discount_type else None
    row.discount_value = data.discount_value
    row.min_products = data.min_products
    row.max_products = data.max_products
    row.allow_duplicates = data.allow_duplicates
    row.apply_to_same_product = data.apply_to_same_product
    row.start_date = _naive_utc(data.start_date)
    row.end_date = _naive_utc(data.end_date)

    items = [_item_row(item, pos) for pos, item in enumerate(data.items)]
    categories = []
    for cat_pos, category in enumerate(data.categories):
        category_row = BundleCategory(
            name=sanitize_string(category.name),
            position=category.position or cat_pos,
            min_select=category.min_select,
            max_select=category.max_select,
        )
        for pos, item in enumerate(category.items):
            item_row = _item_row(item, pos)
            item_row.category = category_row
            items.append(item_row)
        categories.append(category_row)

    row.items = items
    row.categories = categories
    row.tiers = [
        BundleTier(
            name=sanitize_string(t.name),
            position=t.position or pos,
            price=t.price,
            compare_at_price=t.compare_at_price,
            product_count=t.product_count,
            allowed_products=t.allowed_products,
        )
        for pos, t in enumerate(data.tiers)
    ]
    row.volume_rules = [
        VolumeRule(
            min_quantity=r.min_quantity,
            max_quantity=r.max_quantity,
            discount_type=r.discount_type.value if r.discount_type else "",
            discount_value=r.discount_value,
            label=r.label,
            position=r.position or pos,
        )
        for pos, r in enumerate(data.volume_rules)
    ]


class BundleStorage:
    """Bundle persistence for a single request."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _bundle_query():
        return select(Bundle).options(
            selectinload(Bundle.items),
            selectinload(Bundle.tiers),
            selectinload(Bundle.volume_rules),
            selectinload(Bundle.categories).selectinload(BundleCategory.items),
        )

    async def _get_row(self, bundle_id: str, shop: str) -> Optional[Bundle]:
        query = self._bundle_query().where(Bundle.id == bundle_id, Bundle.shop == shop)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    @retry_storage_read
    async def get_bundle(
        self, bundle_id: str, shop: str, statuses: Optional[Sequence[str]] = None
    ) -> Optional[BundleData]:
        query = self._bundle_query().where(Bundle.id == bundle_id, Bundle.shop == shop)
        if statuses:
            query = query.where(Bundle.status.in_(list(statuses)))
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        return bundle_to_data(row) if row else None

    @retry_storage_read
    async def list_bundles(
        self, shop: str, bundle_type: Optional[str] = None, status: Optional[str] = None
    ) -> List[BundleData]:
        query = self._bundle_query().where(Bundle.shop == shop).order_by(Bundle.created_at.desc())
        if bundle_type:
            query = query.where(Bundle.bundle_type == bundle_type)
        if status:
            query = query.where(Bundle.status == status)
        result = await self.session.execute(query)
        return [bundle_to_data(row) for row in result.scalars().all()]

    async def create_bundle(self, shop: str, data: BundleData) -> BundleData:
        row = Bundle(shop=shop)
        _apply_to_row(row, data)
        self.session.add(row)
        await self.session.commit()
        logger.info(f"Created bundle {row.id} ({row.bundle_type}) for shop {shop}")
        created = await self.get_bundle(row.id, shop)
        return created if created is not None else data

    async def update_bundle(self, bundle_id: str, shop: str, data: BundleData) -> Optional[BundleData]:
        row = await self._get_row(bundle_id, shop)
        if row is None:
            return None
        _apply_to_row(row, data)
        await self.session.commit()
        logger.info(f"Updated bundle {bundle_id} for shop {shop}")
        return await self.get_bundle(bundle_id, shop)

    async def delete_bundle(self, bundle_id: str, shop: str) -> bool:
        row = await self._get_row(bundle_id, shop)
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.commit()
        logger.info(f"Deleted bundle {bundle_id} for shop {shop}")
        return True

    @retry_storage_read
    async def find_bundles_by_product(
        self, shop: str, product_id: str, statuses: Optional[Sequence[str]] = None
    ) -> List[BundleData]:
        """Bundles with an item for ``product_id``, stored either numeric or as a gid."""
        key = normalize_id(product_id)
        if not key:
            return []
        containing = select(BundleItem.bundle_id).where(
            BundleItem.shopify_product_id.in_([key, to_product_gid(key)])
        )
        query = (
            self._bundle_query()
            .where(Bundle.shop == shop, Bundle.id.in_(containing))
            .order_by(Bundle.created_at.desc())
        )
        if statuses:
            query = query.where(Bundle.status.in_(list(statuses)))
        result = await self.session.execute(query)
        return [bundle_to_data(row) for row in result.scalars().all()]

    async def _handle_taken(self, shop: str, handle: str) -> bool:
        result = await self.session.execute(
            select(Bundle.id).where(Bundle.shop == shop, Bundle.handle == handle).limit(1)
        )
        return result.first() is not None

    async def duplicate_bundle(
        self, bundle_id: str, shop: str, title: Optional[str] = None
    ) -> Optional[BundleData]:
        """Copy a bundle and all its children as an unscheduled draft."""
        source = await self.get_bundle(bundle_id, shop)
        if source is None:
            return None

        new_title = title or f"{source.title} (Copy)"
        handle = generate_handle(new_title)
        if await self._handle_taken(shop, handle):
            handle = f"{handle}-{int(time.time() * 1000)}"

        copy = replace(
            source,
            id=None,
            title=new_title,
            handle=handle,
            status="draft",
            start_date=None,
            end_date=None,
        )
        created = await self.create_bundle(shop, copy)
        logger.info(f"Duplicated bundle {bundle_id} as {created.id}")
        return created

    async def set_schedule(
        self,
        bundle_id: str,
        shop: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        status: str,
    ) -> Optional[BundleData]:
        row = await self._get_row(bundle_id, shop)
        if row is None:
            return None
        row.start_date = _naive_utc(start_date)
        row.end_date = _naive_utc(end_date)
        row.status = status
        await self.session.commit()
        logger.info(f"Scheduled bundle {bundle_id} as {status} (start={start_date}, end={end_date})")
        return await self.get_bundle(bundle_id, shop)

    @retry_storage_read
    async def count_bundles(self, shop: str, status: Optional[str] = None) -> int:
        query = select(func.count(Bundle.id)).where(Bundle.shop == shop)
        if status:
            query = query.where(Bundle.status == status)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def _bump_daily_counter(self, bundle_id: str, counter: str, day: Optional[date]) -> None:
        # one analytics row per bundle and day, created on the first hit
        day = day or datetime.now(timezone.utc).date()
        result = await self.session.execute(
            select(BundleAnalytics).where(
                BundleAnalytics.bundle_id == bundle_id, BundleAnalytics.day == day
            )
        )
        stats = result.scalar_one_or_none()
        if stats is None:
            stats = BundleAnalytics(
                bundle_id=bundle_id, day=day, views=0, add_to_cart_count=0,
                purchase_count=0, revenue=Decimal("0"),
            )
            self.session.add(stats)
        setattr(stats, counter, getattr(stats, counter) + 1)
        await self.session.commit()

    async def record_view(self, bundle_id: str, day: Optional[date] = None) -> None:
        await self._bump_daily_counter(bundle_id, "views", day)

    async def record_add_to_cart(self, bundle_id: str, day: Optional[date] = None) -> None:
        await self._bump_daily_counter(bundle_id, "add_to_cart_count", day)

    @retry_storage_read
    async def get_analytics(
        self,
        shop: str,
        date_from: date,
        date_to: date,
        bundle_id: Optional[str] = None,
    ) -> List[DailyStats]:
        """Daily counters for the shop's bundles between two days, inclusive."""
        query = (
            select(BundleAnalytics, Bundle.title, Bundle.bundle_type)
            .join(Bundle, Bundle.id == BundleAnalytics.bundle_id)
            .where(
                Bundle.shop == shop,
                BundleAnalytics.day >= date_from,
                BundleAnalytics.day <= date_to,
            )
            .order_by(BundleAnalytics.bundle_id, BundleAnalytics.day)
        )
        if bundle_id:
            query = query.where(BundleAnalytics.bundle_id == bundle_id)
        result = await self.session.execute(query)
        return [
            DailyStats(
                bundle_id=stats.bundle_id,
                day=stats.day,
                bundle_title=title or "",
                bundle_type=bundle_type or "",
                views=stats.views,
                add_to_cart_count=stats.add_to_cart_count,
                purchase_count=stats.purchase_count,
                revenue=stats.revenue or Decimal("0"),
            )
            for stats, title, bundle_type in result.all()
        ]

    async def record_inventory_snapshot(
        self,
        bundle_id: str,
        is_available: bool,
        available_count: int,
        limiting_product: Optional[str] = None,
        limiting_variant: Optional[str] = None,
        limiting_stock: Optional[int] = None,
    ) -> None:
        self.session.add(
            BundleInventorySnapshot(
                bundle_id=bundle_id,
                is_available=is_available,
                available_count=available_count,
                limiting_product=limiting_product,
                limiting_variant=limiting_variant,
                limiting_stock=limiting_stock,
            )
        )
        await self.session.commit()

    async def upsert_variant_inventory(self, shop: str, records: Iterable[InventoryRecord]) -> int:
        """Replace stored stock levels for the given variants; returns the number written."""
        by_id: Dict[str, InventoryRecord] = {}
        for record in records:
            key = normalize_id(record.variant_id)
            if key:
                by_id[key] = record
        if not by_id:
            return 0

        await self.session.execute(
            delete(VariantInventory).where(VariantInventory.variant_id.in_(list(by_id)))
        )
        for key, record in by_id.items():
            self.session.add(
                VariantInventory(
                    variant_id=key,
                    shop=shop,
                    product_id=normalize_id(record.product_id) or None,
                    title=record.title or None,
                    available_for_sale=record.available_for_sale,
                    quantity_available=record.quantity_available,
                )
            )
        await self.session.commit()
        logger.info(f"Synced inventory for {len(by_id)} variants (shop={shop})")
        return len(by_id)

    @retry_storage_read
    async def get_variant_inventory(self, variant_ids: Sequence[str]) -> Dict[str, InventoryRecord]:
        keys = sorted({normalize_id(v) for v in variant_ids if normalize_id(v)})
        if not keys:
            return {}
        result = await self.session.execute(
            select(VariantInventory).where(VariantInventory.variant_id.in_(keys))
        )
        return {
            row.variant_id: InventoryRecord(
                variant_id=row.variant_id,
                available_for_sale=row.available_for_sale,
                quantity_available=row.quantity_available,
                title=row.title or "",
                product_id=row.product_id or "",
            )
            for row in result.scalars().all()
        }


async def get_bundle_storage(db: AsyncSession = Depends(get_db)) -> BundleStorage:
    return BundleStorage(db)
