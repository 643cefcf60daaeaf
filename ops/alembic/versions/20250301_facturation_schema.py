"""Create companies, invoice sequences, invoices and outbox events

Revision ID: 20250301_facturation_schema
Revises:
Create Date: 2025-03-01 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20250301_facturation_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("postal_code", sa.String(16)),
        sa.Column("city", sa.Text()),
        sa.Column("country_code", sa.String(2), nullable=False, server_default="FR"),
        sa.Column("siret", sa.String(14)),
        sa.Column("vat_number", sa.String(32)),
        sa.Column("email", sa.Text()),
        sa.Column("phone", sa.String(32)),
        sa.Column("legal_form", sa.Text()),
        sa.Column("share_capital", sa.Text()),
        sa.Column("rcs", sa.Text()),
        sa.Column("iban", sa.String(34)),
        sa.Column("bic", sa.String(11)),
        sa.Column("fiscal_year_start_month", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("fiscal_year_start_day", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id", name="pk_companies"),
    )

    op.create_table(
        "invoice_sequences",
        sa.Column("id", sa.Integer(), autoincrement=True),
        sa.Column("company_key", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_invoice_sequences"),
        sa.UniqueConstraint(
            "company_key", "fiscal_year", "type", name="uq_invoice_sequences_company_year_type"
        ),
        sa.CheckConstraint(
            "last_number >= 0", name="ck_invoice_sequences_last_number_non_negative"
        ),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(64)),
        sa.Column("company_key", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("number", sa.String(32), nullable=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("total_net", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_tax", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_gross", sa.Numeric(14, 2), nullable=False),
        sa.Column("document", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_invoices"),
        sa.UniqueConstraint("company_key", "number", name="uq_invoices_company_number"),
    )
    op.create_index("ix_invoices_status_issue_date", "invoices", ["status", "issue_date"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.String(36)),
        sa.Column("topic", sa.Text(), nullable=False),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_attempt_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_outbox_events"),
    )
    op.create_index(
        "ix_outbox_events_status_next_attempt_at",
        "outbox_events",
        ["status", "next_attempt_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status_next_attempt_at", table_name="outbox_events")
    op.drop_table("outbox_events")
    op.drop_index("ix_invoices_status_issue_date", table_name="invoices")
    op.drop_table("invoices")
    op.drop_table("invoice_sequences")
    op.drop_table("companies")
