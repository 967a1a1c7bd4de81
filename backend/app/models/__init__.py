from app.db.base import Base  # noqa: F401
from app.models.login import LoginAccount  # noqa: F401
from app.models.donation import DonationCredit, PaypalTransaction  # noqa: F401

__all__ = [
    "Base",
    "LoginAccount",
    "DonationCredit",
    "PaypalTransaction",
]
