"""Create bundle tables.

Revision ID: 20260204_000001
Revises:
Create Date: 2026-02-04 08:48:20.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260204_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if inspector.has_table("bundles"):
        return

    op.create_table(
        "bundles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("shop", sa.String(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("handle", sa.String(), nullable=False),
        sa.Column("bundle_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("compare_at_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("discount_type", sa.String(), nullable=True),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("min_products", sa.Integer(), nullable=True),
        sa.Column("max_products", sa.Integer(), nullable=True),
        sa.Column("allow_duplicates", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("apply_to_same_product", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_bundles_shop", "bundles", ["shop"])
    op.create_index("ix_bundles_shop_status", "bundles", ["shop", "status"])
    op.create_index("ix_bundles_type", "bundles", ["bundle_type"])

    op.create_table(
        "bundle_categories",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("bundle_id", sa.String(), sa.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_select", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_select", sa.Integer(), nullable=True),
    )

    op.create_table(
        "bundle_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("bundle_id", sa.String(), sa.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "category_id",
            sa.String(),
            sa.ForeignKey("bundle_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("shopify_product_id", sa.String(), nullable=False),
        sa.Column("shopify_variant_id", sa.String(), nullable=True),
        sa.Column("product_title", sa.Text(), nullable=False, server_default=""),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("original_price", sa.Numeric(10, 2), nullable=True),
    )
    op.create_index("ix_bundle_items_bundle", "bundle_items", ["bundle_id"])

    op.create_table(
        "bundle_tiers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("bundle_id", sa.String(), sa.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("compare_at_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("product_count", sa.Integer(), nullable=False),
        sa.Column("allowed_products", sa.JSON(), nullable=True),
    )
    op.create_index("ix_bundle_tiers_bundle", "bundle_tiers", ["bundle_id"])

    op.create_table(
        "volume_rules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("bundle_id", sa.String(), sa.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("min_quantity", sa.Integer(), nullable=False),
        sa.Column("max_quantity", sa.Integer(), nullable=True),
        sa.Column("discount_type", sa.String(), nullable=False),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("label", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_volume_rules_bundle", "volume_rules", ["bundle_id"])

    op.create_table(
        "bundle_analytics",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("bundle_id", sa.String(), sa.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("add_to_cart_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("revenue", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("bundle_id", "date", name="uq_bundle_analytics_bundle_date"),
    )

    op.create_table(
        "variant_inventory",
        sa.Column("variant_id", sa.String(), primary_key=True),
        sa.Column("shop", sa.String(), nullable=False),
        sa.Column("product_id", sa.String(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("available_for_sale", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("quantity_available", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_variant_inventory_shop", "variant_inventory", ["shop"])

    op.create_table(
        "bundle_inventory_snapshots",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("bundle_id", sa.String(), sa.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("available_count", sa.Integer(), nullable=False),
        sa.Column("limiting_product", sa.String(), nullable=True),
        sa.Column("limiting_variant", sa.String(), nullable=True),
        sa.Column("limiting_stock", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_bundle_inventory_snapshots_bundle", "bundle_inventory_snapshots", ["bundle_id"]
    )


def downgrade() -> None:
    op.drop_table("bundle_inventory_snapshots")
    op.drop_table("variant_inventory")
    op.drop_table("bundle_analytics")
    op.drop_table("volume_rules")
    op.drop_table("bundle_tiers")
    op.drop_table("bundle_items")
    op.drop_table("bundle_categories")
    op.drop_table("bundles")
