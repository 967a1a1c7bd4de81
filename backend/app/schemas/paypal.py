from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Mapping

from pydantic import BaseModel, Field


class IpnNotification(Mapping[str, str]):
    """Fields of one PayPal IPN POST, immutable and in the order they were received."""

    __slots__ = ("_items", "_index")

    def __init__(self, items: Iterable[tuple[str, str]] | Mapping[str, str]):
        pairs = items.items() if isinstance(items, Mapping) else items
        self._items: tuple[tuple[str, str], ...] = tuple((str(k), "" if v is None else str(v)) for k, v in pairs)
        self._index: dict[str, str] = dict(self._items)

    def __getitem__(self, key: str) -> str:
        return self._index[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def get(self, key: str, default: str = "") -> str:  # type: ignore[override]
        return self._index.get(key, default)

    def items_in_order(self) -> tuple[tuple[str, str], ...]:
        return self._items

    def __repr__(self) -> str:
        return f"IpnNotification(txn_id={self.get('txn_id')!r}, fields={len(self)})"


class IpnOutcome(str, enum.Enum):
    unverified = "unverified"
    unauthorized_receiver = "unauthorized_receiver"
    processed_with_credits = "processed_with_credits"
    processed_without_credits = "processed_without_credits"


class IpnIssue(str, enum.Enum):
    connection_failure = "connection_failure"
    verification_rejected = "verification_rejected"
    unauthorized_receiver = "unauthorized_receiver"
    decode_failure = "decode_failure"
    missing_target = "missing_target"
    unsupported_txn_type = "unsupported_txn_type"
    unknown_server = "unknown_server"
    currency_mismatch = "currency_mismatch"
    incomplete_payment = "incomplete_payment"
    unknown_account = "unknown_account"
    invalid_amount = "invalid_amount"
    duplicate_txn = "duplicate_txn"
    file_write_failure = "file_write_failure"
    database_write_failure = "database_write_failure"


class VerificationResult(BaseModel):
    verified: bool
    response_line: str = ""
    error: str | None = None


class IpnResult(BaseModel):
    outcome: IpnOutcome
    txn_id: str = ""
    account_id: str = ""
    server_name: str = ""
    credits: int = 0
    audit_rows: int = 0
    archive_path: str | None = None
    issues: list[IpnIssue] = Field(default_factory=list)
