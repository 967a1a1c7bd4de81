from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class DonationCredit(Base):
    __tablename__ = "flux_donation_credits"

    account_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_donation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_donation_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )


# IPN fields copied verbatim into each audit row; referrer_id is filled from receiver_id.
PAYPAL_AUDIT_FIELDS: tuple[str, ...] = (
    "receiver_email",
    "item_name",
    "item_number",
    "quantity",
    "payment_status",
    "pending_reason",
    "payment_date",
    "mc_gross",
    "mc_fee",
    "tax",
    "mc_currency",
    "txn_id",
    "txn_type",
    "first_name",
    "last_name",
    "address_street",
    "address_city",
    "address_state",
    "address_zip",
    "address_country",
    "address_status",
    "payer_email",
    "payer_status",
    "payment_type",
    "notify_version",
    "verify_sign",
)


class PaypalTransaction(Base):
    __tablename__ = "flux_paypal_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    server_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    receiver_email: Mapped[str | None] = mapped_column(String(127), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(127), nullable=True)
    item_number: Mapped[str | None] = mapped_column(String(127), nullable=True)
    quantity: Mapped[str | None] = mapped_column(String(9), nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pending_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_date: Mapped[str | None] = mapped_column(String(50), nullable=True)
    mc_gross: Mapped[str | None] = mapped_column(String(20), nullable=True)
    mc_fee: Mapped[str | None] = mapped_column(String(20), nullable=True)
    tax: Mapped[str | None] = mapped_column(String(20), nullable=True)
    mc_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    txn_id: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    txn_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address_street: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address_city: Mapped[str | None] = mapped_column(String(40), nullable=True)
    address_state: Mapped[str | None] = mapped_column(String(40), nullable=True)
    address_zip: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address_country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payer_email: Mapped[str | None] = mapped_column(String(127), nullable=True)
    payer_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    notify_version: Mapped[str | None] = mapped_column(String(20), nullable=True)
    verify_sign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    referrer_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    process_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
