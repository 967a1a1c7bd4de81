"""add flux donation tables

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None

_AUDIT_COLUMNS = (
    ("receiver_email", 127),
    ("item_name", 127),
    ("item_number", 127),
    ("quantity", 9),
    ("payment_status", 20),
    ("pending_reason", 20),
    ("payment_date", 50),
    ("mc_gross", 20),
    ("mc_fee", 20),
    ("tax", 20),
    ("mc_currency", 3),
    ("txn_id", 20),
    ("txn_type", 20),
    ("first_name", 64),
    ("last_name", 64),
    ("address_street", 200),
    ("address_city", 40),
    ("address_state", 40),
    ("address_zip", 20),
    ("address_country", 64),
    ("address_status", 20),
    ("payer_email", 127),
    ("payer_status", 20),
    ("payment_type", 20),
    ("notify_version", 20),
    ("verify_sign", 255),
    ("referrer_id", 20),
)


def upgrade() -> None:
    # The login table belongs to the game server and already exists in its database.
    op.create_table(
        "flux_donation_credits",
        sa.Column("account_id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_donation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_donation_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
    )
    op.create_table(
        "flux_paypal_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("account_id", sa.String(length=20), nullable=True),
        sa.Column("server_name", sa.String(length=255), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        *(sa.Column(name, sa.String(length=length), nullable=True) for name, length in _AUDIT_COLUMNS),
        sa.Column("process_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_flux_paypal_transactions_account_id", "flux_paypal_transactions", ["account_id"], unique=False)
    op.create_index("ix_flux_paypal_transactions_txn_id", "flux_paypal_transactions", ["txn_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_flux_paypal_transactions_txn_id", table_name="flux_paypal_transactions")
    op.drop_index("ix_flux_paypal_transactions_account_id", table_name="flux_paypal_transactions")
    op.drop_table("flux_paypal_transactions")
    op.drop_table("flux_donation_credits")
