from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select

from app.core import security
from app.db.session import ServerGroupRegistry
from app.models.donation import DonationCredit
from app.models.login import SERVER_ACCOUNT_SEX, LoginAccount

logger = logging.getLogger(__name__)

_GENDERS = {"M": "Male", "F": "Female", SERVER_ACCOUNT_SEX: "Server"}
_ACCOUNT_STATES = {0: "Normal", 5: "Permanently Banned"}


class AuthenticationError(Exception):
    pass


@dataclass(frozen=True)
class AccountOverview:
    account: LoginAccount
    server_name: str
    balance: int


def gender_text(sex: str | None) -> str | None:
    return _GENDERS.get((sex or "").upper())


def account_state_text(state: int | None) -> str | None:
    return _ACCOUNT_STATES.get(int(state or 0))


async def authenticate(registry: ServerGroupRegistry, *, server_name: str, userid: str, password: str) -> LoginAccount:
    group = registry.get(server_name)
    if group is None:
        raise AuthenticationError("Unknown server")
    async with group.session_factory() as session:
        account = (
            await session.execute(select(LoginAccount).where(LoginAccount.userid == userid))
        ).scalar_one_or_none()
    if account is None or account.sex == SERVER_ACCOUNT_SEX or not security.verify_password(password, account.user_pass):
        logger.info("Failed login for %s on %s", userid, server_name)
        raise AuthenticationError("Invalid username or password")
    if account.state != 0:
        raise AuthenticationError("Account is banned")
    return account


async def load_account_overview(registry: ServerGroupRegistry, *, server_name: str, account_id: int) -> AccountOverview | None:
    group = registry.get(server_name)
    if group is None:
        return None
    async with group.session_factory() as session:
        account = await session.get(LoginAccount, account_id)
        if account is None:
            return None
        credit = await session.get(DonationCredit, account_id)
    return AccountOverview(account=account, server_name=group.name, balance=int(credit.balance) if credit else 0)
