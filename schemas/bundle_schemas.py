"""
Bundle Schemas
==============

Canonical in-memory structures for bundle configuration, customer selections
and the results produced by the pricing engine and the validators.

BUNDLE TYPES:
-------------
- FIXED: predetermined item list sold for a set price or a discount off the item total
- MIX_MATCH: customer picks items (optionally per category) within min/max bounds
- VOLUME: "Buy more, save more" - discount keyed by total quantity
- TIERED: named price tiers, each requiring an exact product count

MONEY:
------
Prices are carried as ``Decimal`` everywhere inside the engine and are only
converted to floats by ``to_dict()`` when building JSON responses. All
``to_dict()`` payloads use the camelCase keys the admin app and the theme
extension read.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, TypedDict

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class BundleType(str, Enum):
    FIXED = "FIXED"
    MIX_MATCH = "MIX_MATCH"
    VOLUME = "VOLUME"
    TIERED = "TIERED"


class BundleStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SCHEDULED = "scheduled"
    ARCHIVED = "archived"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FIXED_PRICE = "fixed_price"
    FIXED_PRICE_PER_ITEM = "fixed_price_per_item"


def parse_bundle_type(value: Any) -> Optional[BundleType]:
    """Map raw type strings ("MIX_MATCH", "mix_match", "MixMatch") onto BundleType."""
    if value is None or value == "":
        return None
    if isinstance(value, BundleType):
        return value
    text = str(value).strip().upper().replace("&", "_").replace("-", "_").replace(" ", "_")
    if text == "MIXMATCH":
        text = "MIX_MATCH"
    try:
        return BundleType(text)
    except ValueError:
        logger.warning(f"Unknown bundle type: {value!r}")
        return None


def parse_discount_type(value: Any) -> Optional[DiscountType]:
    """Unknown discount types map to None so callers fall back to no discount."""
    if value is None or value == "":
        return None
    if isinstance(value, DiscountType):
        return value
    try:
        return DiscountType(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown discount type: {value!r}")
        return None


# =============================================================================
# COERCION HELPERS
# =============================================================================

def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert JSON numbers/strings to Decimal (floats go through str to avoid binary noise)."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Could not parse decimal value: {value!r}")
        return None


def to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse integer value: {value!r}")
        return None


_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        logger.warning(f"Could not parse boolean value: {value!r}")
        return default
    return bool(value)


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO timestamps; naive values are treated as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Could not parse datetime value: {value!r}")
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def money(value: Optional[Decimal]) -> Optional[float]:
    """JSON-friendly money value."""
    if value is None:
        return None
    return float(value)


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key among camelCase/snake_case spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_id_list(value: Any) -> Optional[List[str]]:
    # allowedProducts was historically stored as a JSON-encoded string
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return [value]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v not in (None, "")]
    return None


# =============================================================================
# TYPE DEFINITIONS (wire shapes)
# =============================================================================

class AppliedDiscountDict(TypedDict):
    type: str
    value: float
    label: str


class ItemPriceDict(TypedDict):
    productId: str
    variantId: str
    originalPrice: float
    discountedPrice: float
    quantity: int


class PricingResultDict(TypedDict):
    originalPrice: float
    discountedPrice: float
    savingsAmount: float
    savingsPercent: float
    itemPrices: List[ItemPriceDict]
    appliedDiscount: Optional[AppliedDiscountDict]
    isValid: bool
    validationErrors: List[str]


class ValidationErrorDict(TypedDict):
    field: str
    message: str
    code: str


class ValidationResultDict(TypedDict):
    isValid: bool
    errors: List[ValidationErrorDict]
    warnings: List[str]


# =============================================================================
# CONFIGURATION (read-only engine inputs)
# =============================================================================

@dataclass
class BundleItemData:
    """An item that belongs to a bundle (and optionally to one of its categories)."""
    product_id: str
    variant_id: Optional[str] = None
    title: str = ""
    quantity: int = 1
    is_required: bool = True
    original_price: Optional[Decimal] = None
    category_id: Optional[str] = None
    position: int = 0
    id: Optional[str] = None

    def __post_init__(self):
        self.original_price = to_decimal(self.original_price)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BundleItemData":
        return cls(
            id=_pick(data, "id"),
            product_id=str(_pick(data, "shopifyProductId", "productId", "product_id", default="")),
            variant_id=_pick(data, "shopifyVariantId", "variantId", "variant_id"),
            title=_pick(data, "productTitle", "title", default=""),
            quantity=to_int(_pick(data, "quantity", default=1)) or 1,
            is_required=to_bool(_pick(data, "isRequired", "is_required"), default=True),
            original_price=_pick(data, "originalPrice", "original_price"),
            category_id=_pick(data, "categoryId", "category_id"),
            position=to_int(_pick(data, "position", default=0)) or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "title": self.title,
            "quantity": self.quantity,
            "isRequired": self.is_required,
            "originalPrice": money(self.original_price),
            "categoryId": self.category_id,
            "position": self.position,
        }


@dataclass
class BundleCategoryData:
    """Mix & Match selection group with its own min/max constraints."""
    name: str
    min_select: int = 0
    max_select: Optional[int] = None
    items: List[BundleItemData] = field(default_factory=list)
    position: int = 0
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BundleCategoryData":
        return cls(
            id=_pick(data, "id"),
            name=_pick(data, "name", default=""),
            min_select=to_int(_pick(data, "minSelect", "min_select", default=0)) or 0,
            max_select=to_int(_pick(data, "maxSelect", "max_select")),
            items=[BundleItemData.from_dict(i) for i in _pick(data, "items", default=[])],
            position=to_int(_pick(data, "position", default=0)) or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "minSelect": self.min_select,
            "maxSelect": self.max_select,
            "position": self.position,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class BundleTierData:
    """Named tier: fixed price for an exact number of products."""
    id: str
    name: str
    price: Decimal
    product_count: int
    allowed_products: Optional[List[str]] = None
    compare_at_price: Optional[Decimal] = None
    position: int = 0

    def __post_init__(self):
        self.price = to_decimal(self.price) or Decimal("0")
        self.compare_at_price = to_decimal(self.compare_at_price)
        self.allowed_products = _parse_id_list(self.allowed_products)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BundleTierData":
        return cls(
            id=str(_pick(data, "id", default="")),
            name=_pick(data, "name", default=""),
            price=_pick(data, "price", default=0),
            product_count=to_int(_pick(data, "productCount", "product_count", default=0)) or 0,
            allowed_products=_pick(data, "allowedProducts", "allowed_products"),
            compare_at_price=_pick(data, "compareAtPrice", "compare_at_price"),
            position=to_int(_pick(data, "position", default=0)) or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": money(self.price),
            "compareAtPrice": money(self.compare_at_price),
            "productCount": self.product_count,
            "allowedProducts": self.allowed_products,
            "position": self.position,
        }


@dataclass
class VolumeRuleData:
    """Quantity break; max_quantity=None means unbounded."""
    min_quantity: int
    discount_type: Optional[DiscountType]
    discount_value: Decimal
    max_quantity: Optional[int] = None
    label: Optional[str] = None
    position: int = 0
    id: Optional[str] = None

    def __post_init__(self):
        self.discount_type = parse_discount_type(self.discount_type)
        self.discount_value = to_decimal(self.discount_value) or Decimal("0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VolumeRuleData":
        return cls(
            id=_pick(data, "id"),
            min_quantity=to_int(_pick(data, "minQuantity", "min_quantity", default=0)) or 0,
            max_quantity=to_int(_pick(data, "maxQuantity", "max_quantity")),
            discount_type=_pick(data, "discountType", "discount_type"),
            discount_value=_pick(data, "discountValue", "discount_value", default=0),
            label=_pick(data, "label"),
            position=to_int(_pick(data, "position", default=0)) or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "minQuantity": self.min_quantity,
            "maxQuantity": self.max_quantity,
            "discountType": self.discount_type.value if self.discount_type else None,
            "discountValue": money(self.discount_value),
            "label": self.label,
            "position": self.position,
        }


@dataclass
class BundleData:
    """Bundle definition as seen by the pricing engine and the validators.

    Only the fields relevant to ``type`` are meaningful; the rest are ignored.
    """
    title: str = ""
    type: Optional[BundleType] = None
    id: Optional[str] = None
    shop: Optional[str] = None
    description: Optional[str] = None
    handle: Optional[str] = None
    status: str = BundleStatus.DRAFT.value
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    min_products: Optional[int] = None
    max_products: Optional[int] = None
    allow_duplicates: bool = True
    apply_to_same_product: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    items: List[BundleItemData] = field(default_factory=list)
    categories: List[BundleCategoryData] = field(default_factory=list)
    tiers: List[BundleTierData] = field(default_factory=list)
    volume_rules: List[VolumeRuleData] = field(default_factory=list)

    def __post_init__(self):
        self.type = parse_bundle_type(self.type)
        self.discount_type = parse_discount_type(self.discount_type)
        self.price = to_decimal(self.price)
        self.compare_at_price = to_decimal(self.compare_at_price)
        self.discount_value = to_decimal(self.discount_value)
        self.start_date = to_datetime(self.start_date)
        self.end_date = to_datetime(self.end_date)

    @property
    def has_discount(self) -> bool:
        return self.discount_type is not None and self.discount_value is not None

    def find_tier(self, tier_id: Optional[str]) -> Optional[BundleTierData]:
        if not tier_id:
            return None
        for tier in self.tiers:
            if tier.id == tier_id:
                return tier
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BundleData":
        """Build from an admin payload (camelCase) or a snake_case dict."""
        return cls(
            id=_pick(data, "id"),
            shop=_pick(data, "shop"),
            title=_pick(data, "title", default=""),
            description=_pick(data, "description"),
            handle=_pick(data, "handle"),
            type=_pick(data, "type", "bundleType", "bundle_type"),
            status=_pick(data, "status", default=BundleStatus.DRAFT.value),
            price=_pick(data, "price"),
            compare_at_price=_pick(data, "compareAtPrice", "compare_at_price"),
            discount_type=_pick(data, "discountType", "discount_type"),
            discount_value=_pick(data, "discountValue", "discount_value"),
            min_products=to_int(_pick(data, "minProducts", "min_products")),
            max_products=to_int(_pick(data, "maxProducts", "max_products")),
            allow_duplicates=to_bool(_pick(data, "allowDuplicates", "allow_duplicates"), default=True),
            apply_to_same_product=to_bool(_pick(data, "applyToSameProduct", "apply_to_same_product")),
            start_date=_pick(data, "startDate", "start_date"),
            end_date=_pick(data, "endDate", "end_date"),
            items=[BundleItemData.from_dict(i) for i in _pick(data, "items", default=[])],
            categories=[BundleCategoryData.from_dict(c) for c in _pick(data, "categories", default=[])],
            tiers=[BundleTierData.from_dict(t) for t in _pick(data, "tiers", default=[])],
            volume_rules=[
                VolumeRuleData.from_dict(r)
                for r in _pick(data, "volumeRules", "volume_rules", default=[])
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shop": self.shop,
            "title": self.title,
            "description": self.description,
            "handle": self.handle,
            "type": self.type.value if self.type else None,
            "status": self.status,
            "price": money(self.price),
            "compareAtPrice": money(self.compare_at_price),
            "discountType": self.discount_type.value if self.discount_type else None,
            "discountValue": money(self.discount_value),
            "minProducts": self.min_products,
            "maxProducts": self.max_products,
            "allowDuplicates": self.allow_duplicates,
            "applyToSameProduct": self.apply_to_same_product,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "items": [i.to_dict() for i in self.items],
            "categories": [c.to_dict() for c in self.categories],
            "tiers": [t.to_dict() for t in self.tiers],
            "volumeRules": [r.to_dict() for r in self.volume_rules],
        }


# =============================================================================
# SELECTION (ephemeral caller input)
# =============================================================================

@dataclass
class SelectedItem:
    """A customer's chosen item; never persisted."""
    product_id: str
    variant_id: str = ""
    quantity: int = 1
    price: Decimal = Decimal("0")

    def __post_init__(self):
        self.price = to_decimal(self.price) or Decimal("0")
        self.variant_id = self.variant_id or ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SelectedItem":
        return cls(
            product_id=str(_pick(data, "productId", "product_id", default="")),
            variant_id=str(_pick(data, "variantId", "variant_id", default="")),
            quantity=to_int(_pick(data, "quantity", default=1)) or 0,
            price=_pick(data, "price", default=0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "quantity": self.quantity,
            "price": money(self.price),
        }


@dataclass
class InventoryRecord:
    """Stock information for one variant, as returned by an inventory lookup."""
    variant_id: str
    available_for_sale: bool = True
    quantity_available: int = 0
    title: str = ""
    product_id: str = ""


@dataclass
class DailyStats:
    """One day of storefront counters for a bundle."""
    bundle_id: str
    day: date
    bundle_title: str = ""
    bundle_type: str = ""
    views: int = 0
    add_to_cart_count: int = 0
    purchase_count: int = 0
    revenue: Decimal = Decimal("0")

    @property
    def conversion_rate(self) -> float:
        if not self.views:
            return 0.0
        return self.purchase_count * 100 / self.views

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "views": self.views,
            "addToCartCount": self.add_to_cart_count,
            "purchaseCount": self.purchase_count,
            "revenue": money(self.revenue),
            "conversionRate": self.conversion_rate,
        }


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class AppliedDiscount:
    type: DiscountType
    value: Decimal
    label: str

    def to_dict(self) -> AppliedDiscountDict:
        return {
            "type": self.type.value,
            "value": float(self.value),
            "label": self.label,
        }


@dataclass
class ItemPrice:
    product_id: str
    variant_id: str
    original_price: Decimal
    discounted_price: Decimal
    quantity: int

    def to_dict(self) -> ItemPriceDict:
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "originalPrice": float(self.original_price),
            "discountedPrice": float(self.discounted_price),
            "quantity": self.quantity,
        }


@dataclass
class PricingResult:
    original_price: Decimal
    discounted_price: Decimal
    savings_amount: Decimal
    savings_percent: Decimal
    item_prices: List[ItemPrice] = field(default_factory=list)
    applied_discount: Optional[AppliedDiscount] = None
    is_valid: bool = True
    validation_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> PricingResultDict:
        return {
            "originalPrice": float(self.original_price),
            "discountedPrice": float(self.discounted_price),
            "savingsAmount": float(self.savings_amount),
            "savingsPercent": float(self.savings_percent),
            "itemPrices": [p.to_dict() for p in self.item_prices],
            "appliedDiscount": self.applied_discount.to_dict() if self.applied_discount else None,
            "isValid": self.is_valid,
            "validationErrors": list(self.validation_errors),
        }


@dataclass
class ValidationError:
    field: str
    message: str
    code: str

    def to_dict(self) -> ValidationErrorDict:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass
class ValidationResult:
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def add(self, field_name: str, message: str, code: str) -> None:
        self.errors.append(ValidationError(field=field_name, message=message, code=code))

    def to_dict(self) -> ValidationResultDict:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }
