"""Create invoice transmissions (PDP deposit tracking)

Revision ID: 20250315_invoice_transmissions
Revises: 20250301_facturation_schema
Create Date: 2025-03-15 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20250315_invoice_transmissions"
down_revision: str | None = "20250301_facturation_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "invoice_transmissions",
        sa.Column("id", sa.Integer(), autoincrement=True),
        sa.Column("invoice_id", sa.String(64), nullable=False),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("connector_id", sa.String(50), nullable=False),
        sa.Column("transmission_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("status_message", sa.Text(), nullable=True),
        sa.Column("status_history", JSON_TYPE, nullable=False),
        sa.Column("errors", JSON_TYPE, nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_retry_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_invoice_transmissions"),
        sa.ForeignKeyConstraint(
            ["invoice_id"],
            ["invoices.id"],
            name="fk_invoice_transmissions_invoice_id_invoices",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_invoice_transmissions_invoice_id", "invoice_transmissions", ["invoice_id"])
    op.create_index(
        "ix_invoice_transmissions_connector_id", "invoice_transmissions", ["connector_id"]
    )
    op.create_index(
        "ix_invoice_transmissions_transmission_id", "invoice_transmissions", ["transmission_id"]
    )
    op.create_index("ix_invoice_transmissions_status", "invoice_transmissions", ["status"])


def downgrade() -> None:
    op.drop_index("ix_invoice_transmissions_status", table_name="invoice_transmissions")
    op.drop_index("ix_invoice_transmissions_transmission_id", table_name="invoice_transmissions")
    op.drop_index("ix_invoice_transmissions_connector_id", table_name="invoice_transmissions")
    op.drop_index("ix_invoice_transmissions_invoice_id", table_name="invoice_transmissions")
    op.drop_table("invoice_transmissions")
