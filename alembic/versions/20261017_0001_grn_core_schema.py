"""grn core schema: items / inbounds / returns / stock_cards

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, *, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if default else None,
    )


def upgrade() -> None:
    # ---------- 主数据（外部维护） ----------
    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )

    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=True, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("vendor_type", sa.String(length=16), nullable=False, server_default=sa.text("'REGULAR'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default=sa.text("'PCS'")),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("current_stock >= 0", name="ck_items_current_stock_nonneg"),
    )

    # ---------- 收货单 ----------
    op.create_table(
        "inbounds",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("grn_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("purchase_request_id", sa.Integer(), nullable=False),
        sa.Column("po_number", sa.String(length=64), nullable=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=True),
        _ts("receive_date"),
        sa.Column(
            "status", sa.String(length=32), nullable=False, server_default=sa.text("'PENDING_VERIFICATION'")
        ),
        sa.Column(
            "parent_inbound_id", sa.Integer(), sa.ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=True
        ),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("verified_by_id", sa.Integer(), nullable=True),
        _ts("verified_at", nullable=True, default=False),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("proof_document_url", sa.String(length=512), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_amount", sa.Numeric(14, 2), nullable=True),
        _ts("payment_date", nullable=True, default=False),
        sa.Column("payment_proof_url", sa.String(length=512), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_inbounds_purchase_request_id", "inbounds", ["purchase_request_id"])
    op.create_index("ix_inbounds_vendor_id", "inbounds", ["vendor_id"])
    op.create_index("ix_inbounds_parent_inbound_id", "inbounds", ["parent_inbound_id"])
    op.create_index("ix_inbounds_status_created", "inbounds", ["status", "created_at"])

    op.create_table(
        "inbound_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inbound_id", sa.Integer(), sa.ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("expected_quantity", sa.Integer(), nullable=False),
        sa.Column("received_quantity", sa.Integer(), nullable=False),
        sa.Column("accepted_quantity", sa.Integer(), nullable=False),
        sa.Column("rejected_quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_added_to_stock", sa.Integer(), nullable=False),
        sa.Column("discrepancy_type", sa.String(length=16), nullable=False, server_default=sa.text("'NONE'")),
        sa.Column("discrepancy_reason", sa.Text(), nullable=True),
        sa.Column("discrepancy_action", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'OPEN_ISSUE'")),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(
            "expected_quantity >= 0 AND received_quantity >= 0 "
            "AND accepted_quantity >= 0 AND rejected_quantity >= 0 "
            "AND quantity_added_to_stock >= 0",
            name="ck_inbound_items_qty_nonneg",
        ),
    )
    op.create_index("ix_inbound_items_inbound_id", "inbound_items", ["inbound_id"])
    op.create_index("ix_inbound_items_item_id", "inbound_items", ["item_id"])

    # ---------- 退供应商 ----------
    op.create_table(
        "returns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("return_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("purchase_request_id", sa.Integer(), nullable=False),
        sa.Column("inbound_id", sa.Integer(), sa.ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=True),
        sa.Column(
            "inbound_item_id", sa.Integer(), sa.ForeignKey("inbound_items.id", ondelete="RESTRICT"), nullable=True
        ),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False),
        _ts("return_date"),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("approved_by_id", sa.Integer(), nullable=True),
        _ts("approved_at", nullable=True, default=False),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        _ts("sent_to_vendor_at", nullable=True, default=False),
        _ts("completed_at", nullable=True, default=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_returns_purchase_request_id", "returns", ["purchase_request_id"])
    op.create_index("ix_returns_inbound_id", "returns", ["inbound_id"])
    op.create_index("ix_returns_vendor_id", "returns", ["vendor_id"])

    op.create_table(
        "return_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("return_id", sa.Integer(), sa.ForeignKey("returns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_in_stock", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
    )
    op.create_index("ix_return_items_return_id", "return_items", ["return_id"])

    # ---------- 库存卡（台账） ----------
    op.create_table(
        "stock_cards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("movement_type", sa.String(length=32), nullable=False),
        sa.Column("reference_type", sa.String(length=32), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("inbound_id", sa.Integer(), sa.ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("return_id", sa.Integer(), sa.ForeignKey("returns.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_stock_cards_chain_arith",
        ),
        sa.CheckConstraint("quantity_after >= 0", name="ck_stock_cards_after_nonneg"),
    )
    op.create_index("ix_stock_cards_item_id", "stock_cards", ["item_id"])
    op.create_index("ix_stock_cards_item_txn", "stock_cards", ["item_id", "transaction_date", "id"])
    op.create_index("ix_stock_cards_ref", "stock_cards", ["reference_type", "reference_id"])


def downgrade() -> None:
    op.drop_index("ix_stock_cards_ref", table_name="stock_cards")
    op.drop_index("ix_stock_cards_item_txn", table_name="stock_cards")
    op.drop_index("ix_stock_cards_item_id", table_name="stock_cards")
    op.drop_table("stock_cards")

    op.drop_index("ix_return_items_return_id", table_name="return_items")
    op.drop_table("return_items")

    op.drop_index("ix_returns_vendor_id", table_name="returns")
    op.drop_index("ix_returns_inbound_id", table_name="returns")
    op.drop_index("ix_returns_purchase_request_id", table_name="returns")
    op.drop_table("returns")

    op.drop_index("ix_inbound_items_item_id", table_name="inbound_items")
    op.drop_index("ix_inbound_items_inbound_id", table_name="inbound_items")
    op.drop_table("inbound_items")

    op.drop_index("ix_inbounds_status_created", table_name="inbounds")
    op.drop_index("ix_inbounds_parent_inbound_id", table_name="inbounds")
    op.drop_index("ix_inbounds_vendor_id", table_name="inbounds")
    op.drop_index("ix_inbounds_purchase_request_id", table_name="inbounds")
    op.drop_table("inbounds")

    op.drop_table("items")
    op.drop_table("vendors")
    op.drop_table("warehouses")
