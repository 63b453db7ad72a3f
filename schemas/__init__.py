"""
Bundle Schemas Package
Provides the data structures shared by the pricing engine, the validators and the routers.
"""

from .bundle_schemas import (
    # Enumerations
    BundleType,
    BundleStatus,
    DiscountType,
    parse_bundle_type,
    parse_discount_type,

    # Configuration
    BundleData,
    BundleItemData,
    BundleCategoryData,
    BundleTierData,
    VolumeRuleData,

    # Selection / inventory
    SelectedItem,
    InventoryRecord,

    # Results
    AppliedDiscount,
    ItemPrice,
    PricingResult,
    ValidationError,
    ValidationResult,

    # Helpers
    to_decimal,
    to_datetime,
    money,
)
