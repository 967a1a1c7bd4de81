from datetime import datetime

from sqlalchemy import DateTime, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base

SERVER_ACCOUNT_SEX = "S"
# login.account_id is a signed 32-bit INTEGER on the game server.
ACCOUNT_ID_MAX = 2**31 - 1


class LoginAccount(Base):
    """Row of the game server's own ``login`` table."""

    __tablename__ = "login"

    account_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    userid: Mapped[str] = mapped_column(String(23), nullable=False, unique=True, index=True)
    user_pass: Mapped[str] = mapped_column(String(32), nullable=False)
    sex: Mapped[str] = mapped_column(String(1), nullable=False, default="M", server_default="M")
    email: Mapped[str | None] = mapped_column(String(39), nullable=True)
    level: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0, server_default="0")
    state: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    unban_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    logincount: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lastlogin: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_ip: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def accepts_donations(self) -> bool:
        return self.sex != SERVER_ACCOUNT_SEX and self.level >= 0
