"""Create wishlist pipeline tables.

Revision ID: 5e1f0c2a9b7d
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "5e1f0c2a9b7d"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "wishlists",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=True, index=True),
        sa.Column("user_email", sa.String(200), nullable=True),
        sa.Column("name", sa.String(200), nullable=False, server_default="Wishlist"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime, nullable=True, index=True),
    )
    op.create_table(
        "wishlist_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("wishlist_id", sa.Integer, sa.ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer, nullable=False),
        sa.Column("variation_id", sa.Integer, nullable=False, server_default="0"),
        sa.Column("original_price", sa.Float, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("date_added", sa.DateTime, nullable=True),
        sa.Column("date_added_to_cart", sa.DateTime, nullable=True),
        sa.Column("last_stock_status", sa.Boolean, nullable=True),
    )
    op.create_index("ix_items_product", "wishlist_items", ["product_id", "variation_id"])
    op.create_index("ix_items_wishlist_status", "wishlist_items", ["wishlist_id", "status"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("price", sa.Float, nullable=False, server_default="0"),
        sa.Column("in_stock", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("permalink", sa.String(2000), nullable=True),
    )

    op.create_table(
        "wishlist_analytics",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, nullable=False),
        sa.Column("variation_id", sa.Integer, nullable=False, server_default="0"),
        sa.Column("wishlist_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("click_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("add_to_cart_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("purchase_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("share_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("average_days_in_wishlist", sa.Float, nullable=False, server_default="0"),
        sa.Column("conversion_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("first_added_date", sa.DateTime, nullable=True),
        sa.Column("last_added_date", sa.DateTime, nullable=True),
        sa.Column("last_purchased_date", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=True, index=True),
        sa.UniqueConstraint("product_id", "variation_id", name="uq_analytics_product_variation"),
    )

    op.create_table(
        "wishlist_notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=True, index=True),
        sa.Column("wishlist_id", sa.Integer, nullable=True),
        sa.Column("product_id", sa.Integer, nullable=True),
        sa.Column("notification_type", sa.String(30), nullable=False),
        sa.Column("email_to", sa.String(200), nullable=False),
        sa.Column("email_subject", sa.String(500), nullable=False),
        sa.Column("email_content", sa.Text, nullable=False),
        sa.Column("trigger_data", sa.JSON, nullable=True),
        sa.Column("scheduled_date", sa.DateTime, nullable=False),
        sa.Column("sent_date", sa.DateTime, nullable=True),
        sa.Column("opened_date", sa.DateTime, nullable=True),
        sa.Column("clicked_date", sa.DateTime, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=True, index=True),
    )
    op.create_index("ix_notifications_queue", "wishlist_notifications", ["status", "scheduled_date"])
    op.create_index(
        "ix_notifications_dedup",
        "wishlist_notifications",
        ["user_id", "product_id", "notification_type", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_dedup", table_name="wishlist_notifications")
    op.drop_index("ix_notifications_queue", table_name="wishlist_notifications")
    op.drop_table("wishlist_notifications")
    op.drop_table("wishlist_analytics")
    op.drop_table("products")
    op.drop_index("ix_items_wishlist_status", table_name="wishlist_items")
    op.drop_index("ix_items_product", table_name="wishlist_items")
    op.drop_table("wishlist_items")
    op.drop_table("wishlists")
