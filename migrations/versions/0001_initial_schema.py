"""initial schema: locations, catalog, stock, customers, drawers and sales

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

PAYMENT_METHODS = ("CASH", "CREDIT", "CARD_DEBIT", "CARD_CREDIT", "QR", "TRANSFER", "MIXED")


def timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def money(name, nullable=False):
    # Montos en centavos enteros
    return sa.Column(name, sa.BigInteger(), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("is_main", sa.Boolean(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("bar_code", sa.String(50), nullable=True),
        money("price"),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *timestamps(),
    )
    op.create_index(op.f("ix_products_bar_code"), "products", ["bar_code"])

    op.create_table(
        "stocks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reorder_threshold", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        *timestamps(),
        sa.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
    )

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(20), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *timestamps(),
    )
    op.create_index(op.f("ix_inventory_movements_product_id"), "inventory_movements", ["product_id"])
    op.create_index(op.f("ix_inventory_movements_location_id"), "inventory_movements", ["location_id"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("document", sa.String(30), nullable=True, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        money("credit_balance"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *timestamps(),
        sa.CheckConstraint("credit_balance >= 0", name="ck_customer_credit_non_negative"),
    )
    op.create_index(op.f("ix_customers_name"), "customers", ["name"])

    op.create_table(
        "drawer_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("cashier_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("state", sa.Enum("OPEN", "CLOSED", name="drawer_state"), nullable=False),
        money("opening_float"),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        money("counted_close", nullable=True),
        money("expected_close", nullable=True),
        money("variance", nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("sale_count", sa.Integer(), nullable=False),
        money("sales_total"),
        money("cash_total"),
        money("credit_total"),
        money("card_debit_total"),
        money("card_credit_total"),
        money("qr_total"),
        money("transfer_total"),
        money("mixed_total"),
        *timestamps(),
    )
    op.create_index(op.f("ix_drawer_sessions_cashier_id"), "drawer_sessions", ["cashier_id"])
    op.create_index(op.f("ix_drawer_sessions_location_id"), "drawer_sessions", ["location_id"])
    op.create_index(op.f("ix_drawer_sessions_state"), "drawer_sessions", ["state"])
    op.create_index(
        "uq_drawer_sessions_open_cashier",
        "drawer_sessions",
        ["cashier_id"],
        unique=True,
        postgresql_where=sa.text("state = 'OPEN'"),
        sqlite_where=sa.text("state = 'OPEN'"),
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("fulfilling_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("is_remote", sa.Boolean(), nullable=False),
        sa.Column("buyer_name", sa.String(150), nullable=True),
        sa.Column("cashier_id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("drawer_session_id", sa.Uuid(), sa.ForeignKey("drawer_sessions.id"), nullable=False),
        sa.Column("method", sa.Enum(*PAYMENT_METHODS, name="payment_method"), nullable=False),
        sa.Column("state", sa.Enum("PENDING", "COMPLETED", "CANCELLED", name="sale_state"), nullable=False),
        money("total"),
        money("credit_applied"),
        money("net_due"),
        money("tendered_cash"),
        money("tendered_other"),
        money("change_due"),
        money("credit_top_up"),
        money("overpayment"),
        *timestamps(),
    )
    for column in ("location_id", "fulfilling_location_id", "cashier_id", "customer_id",
                   "drawer_session_id", "method"):
        op.create_index(op.f(f"ix_sales_{column}"), "sales", [column])

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        money("unit_price"),
        money("subtotal"),
    )
    op.create_index(op.f("ix_sale_lines_sale_id"), "sale_lines", ["sale_id"])


def downgrade() -> None:
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_index("uq_drawer_sessions_open_cashier", table_name="drawer_sessions")
    op.drop_table("drawer_sessions")
    op.drop_table("customers")
    op.drop_table("inventory_movements")
    op.drop_table("stocks")
    op.drop_table("products")
    op.drop_table("locations")
    sa.Enum(name="sale_state").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="payment_method").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="drawer_state").drop(op.get_bind(), checkfirst=True)
