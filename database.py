# --- models section: bundle configuration, stock levels and storefront counters ---

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Integer, Numeric, DateTime, Date, Boolean, JSON,
    ForeignKey, func, Index, UniqueConstraint,
)
from sqlalchemy.pool import StaticPool
from sqlalchemy import text
from datetime import date, datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional
import logging, os, uuid

# Load environment variables early (before reading DATABASE_URL)
from dotenv import load_dotenv
load_dotenv()

# -------------------------------------------------------------------
# Engine / Session
# -------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "")

if DATABASE_URL:
    if DATABASE_URL.startswith("postgresql://"):
        DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif DATABASE_URL.startswith("sqlite://"):
        DATABASE_URL = DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)

    if DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            DATABASE_URL,
            echo=os.getenv("NODE_ENV") == "development",
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(
            DATABASE_URL,
            echo=os.getenv("NODE_ENV") == "development",
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,  # Verify connections before use
            pool_recycle=1800,  # Recycle connections after 30 minutes
            pool_timeout=15,
        )
else:
    DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(
        DATABASE_URL,
        echo=os.getenv("NODE_ENV") == "development",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

def _redact_db_url(url: str) -> str:
    try:
        if "@" in url and "://" in url:
            head, tail = url.split("://", 1)
            creds, hostpart = tail.split("@", 1)
            if ":" in creds:
                user, _pwd = creds.split(":", 1)
                return f"{head}://{user}:******@{hostpart}"
            return url
        if "://" in url:
            return url
    except ValueError:
        pass
    return "******"

logger = logging.getLogger(__name__)
logger.info(f"Creating SQL engine for { _redact_db_url(DATABASE_URL) }")

async def ping_db_connection():
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("DB connectivity check: OK")
    except Exception as e:
        logger.exception(f"DB connectivity check failed: {e}")

# -------------------------------------------------------------------
# Base
# -------------------------------------------------------------------
class Base(DeclarativeBase):
    pass

# -------------------------------------------------------------------
# MODELS
# -------------------------------------------------------------------

class Bundle(Base):
    __tablename__ = "bundles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shop: Mapped[str] = mapped_column(String, index=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    handle: Mapped[str] = mapped_column(String, nullable=False)
    bundle_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    compare_at_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    discount_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    discount_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Mix & Match
    min_products: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_products: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allow_duplicates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Volume
    apply_to_same_product: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    items: Mapped[List["BundleItem"]] = relationship(
        back_populates="bundle", cascade="all, delete-orphan", order_by="BundleItem.position"
    )
    categories: Mapped[List["BundleCategory"]] = relationship(
        back_populates="bundle", cascade="all, delete-orphan", order_by="BundleCategory.position"
    )
    tiers: Mapped[List["BundleTier"]] = relationship(
        back_populates="bundle", cascade="all, delete-orphan", order_by="BundleTier.position"
    )
    volume_rules: Mapped[List["VolumeRule"]] = relationship(
        back_populates="bundle", cascade="all, delete-orphan", order_by="VolumeRule.position"
    )


class BundleCategory(Base):
    __tablename__ = "bundle_categories"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id: Mapped[str] = mapped_column(String, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_select: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_select: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    bundle: Mapped["Bundle"] = relationship(back_populates="categories")
    items: Mapped[List["BundleItem"]] = relationship(back_populates="category", order_by="BundleItem.position")


class BundleItem(Base):
    __tablename__ = "bundle_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id: Mapped[str] = mapped_column(String, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("bundle_categories.id", ondelete="SET NULL"), nullable=True
    )
    shopify_product_id: Mapped[str] = mapped_column(String, nullable=False)
    shopify_variant_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    product_title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    original_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    bundle: Mapped["Bundle"] = relationship(back_populates="items")
    category: Mapped[Optional["BundleCategory"]] = relationship(back_populates="items")


class BundleTier(Base):
    __tablename__ = "bundle_tiers"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id: Mapped[str] = mapped_column(String, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    compare_at_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    product_count: Mapped[int] = mapped_column(Integer, nullable=False)
    allowed_products: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    bundle: Mapped["Bundle"] = relationship(back_populates="tiers")


class VolumeRule(Base):
    __tablename__ = "volume_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id: Mapped[str] = mapped_column(String, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    max_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    discount_type: Mapped[str] = mapped_column(String, nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    bundle: Mapped["Bundle"] = relationship(back_populates="volume_rules")


class BundleAnalytics(Base):
    """Per-day storefront counters for a bundle."""
    __tablename__ = "bundle_analytics"
    __table_args__ = (UniqueConstraint("bundle_id", "date", name="uq_bundle_analytics_bundle_date"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id: Mapped[str] = mapped_column(String, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    add_to_cart_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))


class VariantInventory(Base):
    """Latest stock level per variant, pushed by the embedded app."""
    __tablename__ = "variant_inventory"

    variant_id: Mapped[str] = mapped_column(String, primary_key=True)  # numeric (normalized) id
    shop: Mapped[str] = mapped_column(String, index=True, nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    available_for_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    quantity_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class BundleInventorySnapshot(Base):
    __tablename__ = "bundle_inventory_snapshots"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bundle_id: Mapped[str] = mapped_column(String, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False)
    available_count: Mapped[int] = mapped_column(Integer, nullable=False)
    limiting_product: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    limiting_variant: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    limiting_stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), nullable=False)

# -------------------------------------------------------------------
# Indexes
# -------------------------------------------------------------------
Index('ix_bundles_shop_status', Bundle.shop, Bundle.status)
Index('ix_bundles_type', Bundle.bundle_type)
Index('ix_bundle_items_bundle', BundleItem.bundle_id)
Index('ix_bundle_tiers_bundle', BundleTier.bundle_id)
Index('ix_volume_rules_bundle', VolumeRule.bundle_id)
Index('ix_bundle_inventory_snapshots_bundle', BundleInventorySnapshot.bundle_id)
# -------------------------------------------------------------------
# DI + init helpers
# -------------------------------------------------------------------
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

async def init_db():
    """Ensure tables exist."""
    await ping_db_connection()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("DB init complete (tables ensured).")

async def check_db_health() -> Dict[str, Any]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
