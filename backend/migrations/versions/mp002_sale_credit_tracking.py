"""Sale credit tracking: amount_paid, due_date and the sale_payments journal

Revision ID: mp002
Revises: mp001
Create Date: 2026-01-19 10:30:00.000000

Until this revision a sale was either paid or not. Databases that skipped it
make the credit endpoints answer with a ConfigurationError
(see `flask managepme check-schema`).

Existing rows: non-credit sales are considered paid in full; credit sales
start with nothing paid.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "mp002"
down_revision = "mp001"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.add_column(sa.Column("amount_paid", sa.Numeric(14, 3), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("due_date", sa.DateTime(timezone=True), nullable=True))

    op.execute("UPDATE sales SET amount_paid = total WHERE payment_method <> 'CREDIT'")

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_check_constraint("ck_sales_amount_paid_le_total", "amount_paid <= total")

    op.create_table("sale_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 3), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("sale_payments", schema=None) as batch_op:
        batch_op.create_index("ix_sale_payments_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_payments_sale_created", ["sale_id", "created_at"], unique=False)


def downgrade():
    with op.batch_alter_table("sale_payments", schema=None) as batch_op:
        batch_op.drop_index("ix_sale_payments_sale_created")
        batch_op.drop_index("ix_sale_payments_sale_id")
    op.drop_table("sale_payments")

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.drop_constraint("ck_sales_amount_paid_le_total", type_="check")
        batch_op.drop_column("due_date")
        batch_op.drop_column("amount_paid")
