"""Category hierarchy and physical inventory counts

Revision ID: mp003
Revises: mp002
Create Date: 2026-02-03 09:15:00.000000

categories gains a description and an optional parent. inventory_counts and
inventory_count_items hold shop-floor counts; a validated line points at the
ADJUSTMENT movement it produced.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "mp003"
down_revision = "mp002"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.add_column(sa.Column("description", sa.Text(), nullable=True))
        batch_op.add_column(sa.Column("parent_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key("fk_categories_parent_id", "categories", ["parent_id"], ["id"])
        batch_op.create_index("ix_categories_parent_id", ["parent_id"], unique=False)

    op.create_table("inventory_counts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("validated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("inventory_counts", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_counts_status", ["status"], unique=False)
        batch_op.create_index("ix_inventory_counts_created_at", ["created_at"], unique=False)

    op.create_table("inventory_count_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("count_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("theoretical_qty", sa.Integer(), nullable=False),
        sa.Column("counted_qty", sa.Integer(), nullable=False),
        sa.Column("difference", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("stock_movement_id", sa.Integer(), nullable=True),
        sa.CheckConstraint("counted_qty >= 0", name="ck_inventory_count_items_counted_non_negative"),
        sa.ForeignKeyConstraint(["count_id"], ["inventory_counts.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["stock_movement_id"], ["stock_movements.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("count_id", "product_id", name="uq_inventory_count_items_product"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("inventory_count_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_count_items_count_id", ["count_id"], unique=False)
        batch_op.create_index("ix_inventory_count_items_product_id", ["product_id"], unique=False)


def downgrade():
    with op.batch_alter_table("inventory_count_items", schema=None) as batch_op:
        batch_op.drop_index("ix_inventory_count_items_product_id")
        batch_op.drop_index("ix_inventory_count_items_count_id")
    op.drop_table("inventory_count_items")

    with op.batch_alter_table("inventory_counts", schema=None) as batch_op:
        batch_op.drop_index("ix_inventory_counts_created_at")
        batch_op.drop_index("ix_inventory_counts_status")
    op.drop_table("inventory_counts")

    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.drop_index("ix_categories_parent_id")
        batch_op.drop_constraint("fk_categories_parent_id", type_="foreignkey")
        batch_op.drop_column("parent_id")
        batch_op.drop_column("description")
