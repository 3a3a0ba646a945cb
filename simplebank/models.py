"""Domain records and request payloads of the bank API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping


class InvalidPayload(ValueError):
    """Raised when a request body cannot be decoded into a request."""


def _format_decimal(value: Decimal) -> str:
    """Render a decimal as a plain string without exponent or trailing zeros."""
    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _format_time(moment: datetime) -> str:
    """Render a timestamp in RFC 3339 form."""
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    fraction = f"{moment.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = moment.utcoffset()
    if offset is None:
        return text
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset >= timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class User:
    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """JSON view of the user; the password hash is never exposed."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "created_at": _format_time(self.created_at),
        }


@dataclass(frozen=True)
class Account:
    id: str
    user_id: str
    number: str
    balance: Decimal
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "number": self.number,
            "balance": _format_decimal(self.balance),
            "created_at": _format_time(self.created_at),
        }


@dataclass(frozen=True)
class Card:
    id: str
    account_id: str
    number: str
    expiry_month: int
    expiry_year: int
    cvv: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """JSON view of the card; the CVV is never exposed."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "number": self.number,
            "expiry_month": self.expiry_month,
            "expiry_year": self.expiry_year,
            "created_at": _format_time(self.created_at),
        }


@dataclass(frozen=True)
class Transaction:
    id: str
    from_account_id: str
    to_account_id: str
    amount: Decimal
    timestamp: datetime
    transaction_type: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON view; empty account ids and description are omitted."""
        result: dict[str, Any] = {"id": self.id}
        if self.from_account_id:
            result["from_account_id"] = self.from_account_id
        if self.to_account_id:
            result["to_account_id"] = self.to_account_id
        result["amount"] = _format_decimal(self.amount)
        result["timestamp"] = _format_time(self.timestamp)
        result["transaction_type"] = self.transaction_type
        if self.description:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class Payment:
    due_date: datetime
    amount: Decimal
    principal_part: Decimal
    interest_part: Decimal
    paid: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "due_date": _format_time(self.due_date),
            "amount": _format_decimal(self.amount),
            "principal_part": _format_decimal(self.principal_part),
            "interest_part": _format_decimal(self.interest_part),
            "paid": self.paid,
        }


@dataclass(frozen=True)
class Loan:
    id: str
    user_id: str
    account_id: str
    amount: Decimal
    interest_rate: Decimal
    term_months: int
    start_date: datetime
    payment_schedule: tuple[Payment, ...]
    remaining_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "amount": _format_decimal(self.amount),
            "interest_rate": _format_decimal(self.interest_rate),
            "term_months": self.term_months,
            "start_date": _format_time(self.start_date),
            "payment_schedule": [payment.to_dict() for payment in self.payment_schedule],
            "remaining_amount": _format_decimal(self.remaining_amount),
        }


def _fields(data: Any) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise InvalidPayload("request body must be a JSON object")
    return data


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    folded = key.casefold()
    for name, value in data.items():
        if isinstance(name, str) and name.casefold() == folded:
            return value
    return None


def _string(data: Mapping[str, Any], key: str) -> str:
    value = _lookup(data, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidPayload(f"field {key!r} must be a string")
    return value


def _integer(data: Mapping[str, Any], key: str) -> int:
    value = _lookup(data, key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPayload(f"field {key!r} must be an integer")
    return value


def _decimal(data: Mapping[str, Any], key: str) -> Decimal:
    value = _lookup(data, key)
    if value is None:
        return Decimal(0)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidPayload(f"field {key!r} must be a number")
    try:
        result = Decimal(value if isinstance(value, str) else str(value))
    except InvalidOperation as exc:
        raise InvalidPayload(f"field {key!r} is not a valid decimal") from exc
    if not result.is_finite():
        raise InvalidPayload(f"field {key!r} is not a valid decimal")
    return result


@dataclass(frozen=True)
class RegisterRequest:
    username: str
    email: str
    password: str

    @classmethod
    def from_dict(cls, data: Any) -> RegisterRequest:
        fields = _fields(data)
        return cls(
            username=_string(fields, "username"),
            email=_string(fields, "email"),
            password=_string(fields, "password"),
        )


@dataclass(frozen=True)
class LoginRequest:
    username: str
    password: str

    @classmethod
    def from_dict(cls, data: Any) -> LoginRequest:
        fields = _fields(data)
        return cls(
            username=_string(fields, "username"),
            password=_string(fields, "password"),
        )


@dataclass(frozen=True)
class CreateAccountRequest:
    user_id: str

    @classmethod
    def from_dict(cls, data: Any) -> CreateAccountRequest:
        return cls(user_id=_string(_fields(data), "user_id"))


@dataclass(frozen=True)
class GenerateCardRequest:
    account_id: str

    @classmethod
    def from_dict(cls, data: Any) -> GenerateCardRequest:
        return cls(account_id=_string(_fields(data), "account_id"))


@dataclass(frozen=True)
class PaymentRequest:
    card_number: str
    amount: Decimal
    merchant: str

    @classmethod
    def from_dict(cls, data: Any) -> PaymentRequest:
        fields = _fields(data)
        return cls(
            card_number=_string(fields, "card_number"),
            amount=_decimal(fields, "amount"),
            merchant=_string(fields, "merchant"),
        )


@dataclass(frozen=True)
class TransferRequest:
    from_account_id: str
    to_account_id: str
    amount: Decimal

    @classmethod
    def from_dict(cls, data: Any) -> TransferRequest:
        fields = _fields(data)
        return cls(
            from_account_id=_string(fields, "from_account_id"),
            to_account_id=_string(fields, "to_account_id"),
            amount=_decimal(fields, "amount"),
        )


@dataclass(frozen=True)
class DepositRequest:
    to_account_id: str
    amount: Decimal

    @classmethod
    def from_dict(cls, data: Any) -> DepositRequest:
        fields = _fields(data)
        return cls(
            to_account_id=_string(fields, "to_account_id"),
            amount=_decimal(fields, "amount"),
        )


@dataclass(frozen=True)
class ApplyLoanRequest:
    user_id: str
    account_id: str
    amount: Decimal
    term_months: int

    @classmethod
    def from_dict(cls, data: Any) -> ApplyLoanRequest:
        fields = _fields(data)
        return cls(
            user_id=_string(fields, "user_id"),
            account_id=_string(fields, "account_id"),
            amount=_decimal(fields, "amount"),
            term_months=_integer(fields, "term_months"),
        )