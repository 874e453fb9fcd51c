"""create sku catalog, bom and inventory ledger tables

Revision ID: 20260118_create_catalog_and_ledger
Revises:
Create Date: 2026-01-18

"""

from alembic import op
import sqlalchemy as sa


revision = "20260118_create_catalog_and_ledger"
down_revision = None
branch_labels = None
depends_on = None


SKU_KINDS = ("RAW", "ASSEMBLY", "COMPLETED")
INVENTORY_STATES = ("RECEIVED", "RAW", "ASSEMBLED", "COMPLETED")


def upgrade():
    op.create_table(
        "sku",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "kind",
            sa.Enum(*SKU_KINDS, name="sku_kind", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("process", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("code", name="uq_sku_code"),
    )

    op.create_table(
        "bom_component",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("parent_sku_id", sa.Integer(), sa.ForeignKey("sku.id"), nullable=False),
        sa.Column("component_sku_id", sa.Integer(), sa.ForeignKey("sku.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "parent_sku_id", "component_sku_id", name="uq_bom_component_pair"
        ),
        sa.CheckConstraint("quantity > 0", name="ck_bom_component_quantity_positive"),
        sa.CheckConstraint(
            "parent_sku_id <> component_sku_id", name="ck_bom_component_not_self"
        ),
    )
    op.create_index(
        "ix_bom_component_component_sku_id", "bom_component", ["component_sku_id"]
    )

    op.create_table(
        "inventory_entry",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku_id", sa.Integer(), sa.ForeignKey("sku.id"), nullable=False),
        sa.Column(
            "state",
            sa.Enum(*INVENTORY_STATES, name="inventory_state", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("sku_id", "state", name="uq_inventory_entry_sku_state"),
    )


def downgrade():
    op.drop_table("inventory_entry")
    op.drop_index("ix_bom_component_component_sku_id", table_name="bom_component")
    op.drop_table("bom_component")
    op.drop_table("sku")
