"""Initial schema: catalog, stock ledger, parties, sales, purchases, quotes, registers

Revision ID: mp001
Revises:
Create Date: 2026-01-05 09:00:00.000000

This migration adds:
1. Catalog (categories, products, price_history) and the stock_movements ledger
2. Clients and suppliers
3. Currencies, daily exchange rates, settings and document sequences
4. Cash registers (one OPEN per user, partial unique index)
5. Sales, sale items and credit notes (sale_refunds)
6. Purchases and quotes with their lines

Credit tracking on sales (amount_paid, due_date, sale_payments) comes in mp002.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "mp001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, index=False):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=False,
        index=index,
    )


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table("categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True
    )

    op.create_table("suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("contact_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )

    op.create_table("products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("barcode", sa.String(length=128), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("purchase_price", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("sale_price", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("stock_current", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_min", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default="PIECE"),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("stock_current >= 0", name="ck_products_stock_non_negative"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_barcode", ["barcode"], unique=False)
        batch_op.create_index("ix_products_category_id", ["category_id"], unique=False)
        batch_op.create_index("ix_products_active_name", ["is_active", "name"], unique=False)

    op.create_table("price_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("purchase_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("sale_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("price_history", schema=None) as batch_op:
        batch_op.create_index("ix_price_history_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_price_history_product_created", ["product_id", "created_at"], unique=False)

    op.create_table("stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 3), nullable=True),
        sa.Column("total_value", sa.Numeric(14, 3), nullable=True),
        sa.Column("reference", sa.String(length=64), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_type", ["type"], unique=False)
        batch_op.create_index("ix_stock_movements_reference", ["reference"], unique=False)
        batch_op.create_index("ix_stock_movements_reference_id", ["reference_id"], unique=False)
        batch_op.create_index("ix_stock_movements_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_stock_movements_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_stock_movements_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_product_created", ["product_id", "created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_type_created", ["type", "created_at"], unique=False)

    # ==========================================================================
    # 2. CLIENTS
    # ==========================================================================
    op.create_table("clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="INDIVIDUAL"),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("last_name", sa.String(length=128), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=128), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("clients", schema=None) as batch_op:
        batch_op.create_index("ix_clients_email", ["email"], unique=False)
        batch_op.create_index("ix_clients_last_first", ["last_name", "first_name"], unique=False)

    # ==========================================================================
    # 3. CURRENCIES, SETTINGS, SEQUENCES
    # ==========================================================================
    op.create_table("currencies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=8), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("symbol", sa.String(length=8), nullable=True),
        sa.Column("unit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True
    )

    op.create_table("exchange_rates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(length=8), nullable=False),
        sa.Column("rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("rate_date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="MANUAL"),
        _timestamp("created_at"),
        sa.CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("currency_code", "rate_date", name="uq_exchange_rates_code_date"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("exchange_rates", schema=None) as batch_op:
        batch_op.create_index("ix_exchange_rates_currency_code", ["currency_code"], unique=False)
        batch_op.create_index("ix_exchange_rates_rate_date", ["rate_date"], unique=False)

    op.create_table("app_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key"),
        sqlite_autoincrement=True
    )

    op.create_table("document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type"),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 4. CASH REGISTERS
    # ==========================================================================
    op.create_table("cash_registers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("initial_amount", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("expected_amount", sa.Numeric(14, 3), nullable=True),
        sa.Column("actual_amount", sa.Numeric(14, 3), nullable=True),
        sa.Column("difference", sa.Numeric(14, 3), nullable=True),
        _timestamp("open_date"),
        sa.Column("close_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("cash_registers", schema=None) as batch_op:
        batch_op.create_index("ix_cash_registers_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_cash_registers_status", ["status"], unique=False)
    op.create_index(
        "uq_cash_registers_user_open",
        "cash_registers",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    # ==========================================================================
    # 5. SALES AND CREDIT NOTES
    # ==========================================================================
    op.create_table("sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="COMPLETED"),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("cash_register_id", sa.Integer(), nullable=True),
        sa.Column("subtotal", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("discount", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("tax", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("margin", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("cash_amount", sa.Numeric(14, 3), nullable=True),
        sa.Column("card_amount", sa.Numeric(14, 3), nullable=True),
        sa.Column("change_due", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("currency_code", sa.String(length=8), nullable=False),
        _timestamp("created_at"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["cash_register_id"], ["cash_registers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_type", ["type"], unique=False)
        batch_op.create_index("ix_sales_status", ["status"], unique=False)
        batch_op.create_index("ix_sales_client_id", ["client_id"], unique=False)
        batch_op.create_index("ix_sales_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_sales_cash_register_id", ["cash_register_id"], unique=False)
        batch_op.create_index("ix_sales_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_sales_status_created", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_sales_client_status", ["client_id", "status"], unique=False)

    op.create_table("sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("discount", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("purchase_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("margin", sa.Numeric(14, 3), nullable=False),
        sa.Column("refunded_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        sa.CheckConstraint(
            "refunded_quantity >= 0 AND refunded_quantity <= quantity",
            name="ck_sale_items_refunded_range",
        ),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_items_product_id", ["product_id"], unique=False)

    op.create_table("sale_refunds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("avoir_number", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("refund_amount", sa.Numeric(14, 3), nullable=False),
        sa.Column("refunded_items", sa.JSON(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("avoir_number"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("sale_refunds", schema=None) as batch_op:
        batch_op.create_index("ix_sale_refunds_sale_id", ["sale_id"], unique=False)

    # ==========================================================================
    # 6. PURCHASES AND QUOTES
    # ==========================================================================
    op.create_table("purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("total_amount", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("invoice_number", sa.String(length=64), nullable=True),
        sa.Column("invoice_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.create_index("ix_purchases_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_purchases_status", ["status"], unique=False)
        batch_op.create_index("ix_purchases_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_purchases_supplier_status", ["supplier_id", "status"], unique=False)

    op.create_table("purchase_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("received_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("total_price", sa.Numeric(14, 3), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        sa.CheckConstraint(
            "received_qty >= 0 AND received_qty <= quantity",
            name="ck_purchase_items_received_range",
        ),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("purchase_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_items_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_items_product_id", ["product_id"], unique=False)

    op.create_table("quotes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("quote_number", sa.String(length=64), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="DRAFT"),
        sa.Column("subtotal", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("discount", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("tax", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("margin", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("currency_code", sa.String(length=8), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("converted_sale_id", sa.Integer(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["converted_sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quote_number"),
        sa.UniqueConstraint("converted_sale_id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("quotes", schema=None) as batch_op:
        batch_op.create_index("ix_quotes_client_id", ["client_id"], unique=False)
        batch_op.create_index("ix_quotes_status", ["status"], unique=False)
        batch_op.create_index("ix_quotes_status_valid_until", ["status", "valid_until"], unique=False)

    op.create_table("quote_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("quote_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("discount", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("purchase_price", sa.Numeric(14, 3), nullable=False),
        sa.Column("margin", sa.Numeric(14, 3), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_quote_items_quantity_positive"),
        sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("quote_items", schema=None) as batch_op:
        batch_op.create_index("ix_quote_items_quote_id", ["quote_id"], unique=False)
        batch_op.create_index("ix_quote_items_product_id", ["product_id"], unique=False)


def downgrade():
    op.drop_table("quote_items")
    op.drop_table("quotes")
    op.drop_table("purchase_items")
    op.drop_table("purchases")
    op.drop_table("sale_refunds")
    op.drop_table("sale_items")
    op.drop_table("sales")
    op.drop_index("uq_cash_registers_user_open", table_name="cash_registers")
    op.drop_table("cash_registers")
    op.drop_table("document_sequences")
    op.drop_table("app_settings")
    op.drop_table("exchange_rates")
    op.drop_table("currencies")
    op.drop_table("clients")
    op.drop_table("stock_movements")
    op.drop_table("price_history")
    op.drop_table("products")
    op.drop_table("suppliers")
    op.drop_table("categories")
