"""init reseller ledger tables

Revision ID: 0001_init_ledger
Revises:
Create Date: 2026-10-17T09:00:00.000000Z
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )

    op.create_table(
        "operators",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("role", sa.Enum("admin", "staff", name="operatorrole"), nullable=False, server_default="staff"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "username", name="uq_operator_tenant_username"),
    )
    op.create_index("ix_operators_tenant_id", "operators", ["tenant_id"])

    op.create_table(
        "resellers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("resellers.id"), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "role",
            sa.Enum("reseller", "sub_reseller", "sub_sub_reseller", name="resellerrole"),
            nullable=False,
            server_default="reseller",
        ),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_collections", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "commission_type",
            sa.Enum("percentage", "flat", name="commissiontype"),
            nullable=False,
            server_default="percentage",
        ),
        sa.Column("commission_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("rate_type", sa.Enum("discount", "full_price", name="ratetype"), nullable=False, server_default="discount"),
        sa.Column("customer_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("can_create_sub_reseller", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_add_customers", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("can_edit_customers", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_delete_customers", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_recharge_customers", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("can_view_sub_customers", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_transfer_balance", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_sub_resellers", sa.Integer(), nullable=True),
        sa.Column("max_customers", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "username", name="uq_reseller_tenant_username"),
        sa.CheckConstraint("balance >= 0", name="ck_reseller_balance_non_negative"),
    )
    op.create_index("ix_resellers_tenant_id", "resellers", ["tenant_id"])
    op.create_index("ix_resellers_parent_id", "resellers", ["parent_id"])

    op.create_table(
        "isp_packages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("validity_days", sa.Integer(), nullable=False, server_default="30"),
        *_timestamps(),
    )
    op.create_index("ix_isp_packages_tenant_id", "isp_packages", ["tenant_id"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("reseller_id", sa.Integer(), sa.ForeignKey("resellers.id"), nullable=True),
        sa.Column("package_id", sa.Integer(), sa.ForeignKey("isp_packages.id"), nullable=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("customer_code", sa.String(length=32), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("monthly_bill", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("due_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("active", "expired", "suspended", "pending", "cancelled", name="customerstatus"),
            nullable=False,
            server_default="pending",
        ),
        *_timestamps(),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])
    op.create_index("ix_customers_reseller_id", "customers", ["reseller_id"])

    op.create_table(
        "reseller_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("reseller_id", sa.Integer(), sa.ForeignKey("resellers.id"), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "recharge", "deduction", "commission", "refund", "transfer_in", "transfer_out",
                "customer_payment", "deposit", "withdrawal",
                name="transactiontype",
            ),
            nullable=False,
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("sequence", sa.BigInteger(), nullable=False),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("reference_type", sa.String(length=32), nullable=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("from_reseller_id", sa.Integer(), sa.ForeignKey("resellers.id"), nullable=True),
        sa.Column("to_reseller_id", sa.Integer(), sa.ForeignKey("resellers.id"), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("reseller_id", "sequence", name="uq_reseller_tx_sequence"),
        sa.UniqueConstraint("reseller_id", "idempotency_key", name="uq_reseller_tx_idempotency"),
        sa.CheckConstraint("balance_after = balance_before + amount", name="ck_reseller_tx_arithmetic"),
        sa.CheckConstraint("amount <> 0", name="ck_reseller_tx_amount_non_zero"),
    )
    op.create_index("ix_reseller_transactions_tenant_id", "reseller_transactions", ["tenant_id"])
    op.create_index("ix_reseller_transactions_reseller_id", "reseller_transactions", ["reseller_id"])
    op.create_index("ix_reseller_transactions_customer_id", "reseller_transactions", ["customer_id"])
    op.create_index("ix_reseller_tx_reseller_created", "reseller_transactions", ["reseller_id", "created_at"])

    op.create_table(
        "customer_recharges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("reseller_id", sa.Integer(), sa.ForeignKey("resellers.id"), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("months", sa.Integer(), nullable=False),
        sa.Column("discount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("old_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("new_expiry", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("completed", "failed", name="rechargestatus"),
            nullable=False,
            server_default="completed",
        ),
        sa.Column("collected_by_type", sa.String(length=32), nullable=False),
        sa.Column("collected_by_name", sa.String(length=128), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("commission", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reseller_charged", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_recharge_idempotency"),
    )
    op.create_index("ix_customer_recharges_tenant_id", "customer_recharges", ["tenant_id"])
    op.create_index("ix_customer_recharges_customer_id", "customer_recharges", ["customer_id"])
    op.create_index("ix_customer_recharges_reseller_id", "customer_recharges", ["reseller_id"])

    op.create_table(
        "customer_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_customer_payments_tenant_id", "customer_payments", ["tenant_id"])
    op.create_index("ix_customer_payments_customer_id", "customer_payments", ["customer_id"])

    op.create_table(
        "multi_collections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("total_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_customers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("succeeded_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("collected_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("collected_by_name", sa.String(length=128), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_multi_collections_tenant_id", "multi_collections", ["tenant_id"])

    op.create_table(
        "multi_collection_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("multi_collection_id", sa.Integer(), sa.ForeignKey("multi_collections.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("months", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum("completed", "failed", name="collectionitemstatus"), nullable=False),
        sa.Column("error", sa.String(length=255), nullable=True),
        sa.Column("recharge_id", sa.Integer(), sa.ForeignKey("customer_recharges.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_multi_collection_items_multi_collection_id", "multi_collection_items", ["multi_collection_id"])


def downgrade():
    op.drop_table("multi_collection_items")
    op.drop_table("multi_collections")
    op.drop_table("customer_payments")
    op.drop_table("customer_recharges")
    op.drop_table("reseller_transactions")
    op.drop_table("customers")
    op.drop_table("isp_packages")
    op.drop_table("resellers")
    op.drop_table("operators")
    op.drop_table("tenants")
    for name in (
        "collectionitemstatus", "rechargestatus", "transactiontype", "customerstatus",
        "ratetype", "commissiontype", "resellerrole", "operatorrole",
    ):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
