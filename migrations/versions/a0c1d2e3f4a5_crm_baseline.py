"""crm baseline: users, audit events, customers, products, history logs

Revision ID: a0c1d2e3f4a5
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a0c1d2e3f4a5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    def _has_index(table: str, name: str) -> bool:
        try:
            return any(ix.get("name") == name for ix in inspect(op.get_bind()).get_indexes(table))
        except Exception:
            return False

    def _ensure_indexes(table: str, indexes: tuple[tuple[str, list[str]], ...]) -> None:
        if table not in existing_tables:
            return
        for idx_name, cols in indexes:
            if not _has_index(table, idx_name):
                op.create_index(idx_name, table, cols)

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("username", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="sales"),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint("email", name="uq_users_email"),
            sa.UniqueConstraint("username", name="uq_users_username"),
        )
        existing_tables.add("users")

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("actor_username", sa.String(length=64), nullable=True),
            sa.Column("client_ip", sa.String(length=64), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("reason", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        existing_tables.add("audit_events")
    _ensure_indexes(
        "audit_events",
        (
            ("idx_audit_events_created_at", ["created_at"]),
            ("idx_audit_events_entity", ["entity_type", "entity_id"]),
        ),
    )

    if "customers" not in existing_tables:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("phone", sa.Text(), nullable=True),
            sa.Column("email", sa.Text(), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("company_name", sa.Text(), nullable=True),
            sa.Column("customer_type", sa.String(length=32), nullable=False),
            sa.Column("business_type", sa.Text(), nullable=True),
            sa.Column("scale", sa.Text(), nullable=True),
            sa.Column("province_city", sa.Text(), nullable=True),
            sa.Column("customer_source", sa.Text(), nullable=True),
            sa.Column("staff_in_charge_id", sa.Integer(), nullable=True),
            sa.Column("stage", sa.String(length=32), nullable=False, server_default="care"),
            sa.Column("level", sa.String(length=16), nullable=False, server_default="cold"),
            sa.Column("contact_status", sa.String(length=32), nullable=False, server_default="not_called"),
            sa.Column("customer_feedback", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("appointment_date", sa.DateTime(timezone=False), nullable=True),
            sa.Column("appointment_reminder", sa.Text(), nullable=True),
            sa.Column("is_tracking", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["staff_in_charge_id"], ["users.id"], ondelete="SET NULL"),
        )
        existing_tables.add("customers")
    _ensure_indexes(
        "customers",
        (
            ("idx_customers_is_tracking_updated_at", ["is_tracking", "updated_at"]),
            ("idx_customers_staff_in_charge_id", ["staff_in_charge_id"]),
            ("idx_customers_customer_type", ["customer_type"]),
            ("idx_customers_stage", ["stage"]),
        ),
    )

    if "customer_products" not in existing_tables:
        op.create_table(
            "customer_products",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("product", sa.String(length=128), nullable=False),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("customer_id", "product", name="uq_customer_products_customer_product"),
        )
        existing_tables.add("customer_products")
    _ensure_indexes("customer_products", (("idx_customer_products_product", ["product"]),))

    if "contact_history" not in existing_tables:
        op.create_table(
            "contact_history",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("contact_date", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("contact_type", sa.Text(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("staff_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["staff_id"], ["users.id"], ondelete="SET NULL"),
        )
        existing_tables.add("contact_history")
    _ensure_indexes(
        "contact_history",
        (
            ("idx_contact_history_customer_date", ["customer_id", "contact_date"]),
            ("idx_contact_history_contact_date", ["contact_date"]),
        ),
    )

    if "purchase_history" not in existing_tables:
        op.create_table(
            "purchase_history",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("product", sa.Text(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("purchase_date", sa.Date(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        )
        existing_tables.add("purchase_history")
    _ensure_indexes("purchase_history", (("idx_purchase_history_customer_date", ["customer_id", "purchase_date"]),))

    if "payment_history" not in existing_tables:
        op.create_table(
            "payment_history",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("payment_date", sa.Date(), nullable=False),
            sa.Column("payment_method", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        )
        existing_tables.add("payment_history")
    _ensure_indexes("payment_history", (("idx_payment_history_customer_date", ["customer_id", "payment_date"]),))


def downgrade() -> None:
    for table in (
        "payment_history",
        "purchase_history",
        "contact_history",
        "customer_products",
        "customers",
        "audit_events",
        "users",
    ):
        op.drop_table(table)
