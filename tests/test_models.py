from datetime import datetime, timezone
from decimal import Decimal

import pytest

from simplebank.models import (
    Account,
    ApplyLoanRequest,
    Card,
    CreateAccountRequest,
    DepositRequest,
    GenerateCardRequest,
    InvalidPayload,
    Loan,
    LoginRequest,
    Payment,
    PaymentRequest,
    RegisterRequest,
    Transaction,
    TransferRequest,
    User,
)

MOMENT = datetime(2024, 5, 10, 12, 30, 0, tzinfo=timezone.utc)


def test_user_to_dict_hides_password_hash():
    user = User("u1", "alice", "alice@example.com", "hash-value", MOMENT)
    data = user.to_dict()
    assert "password_hash" not in data
    assert data["username"] == "alice"
    assert data["email"] == "alice@example.com"
    assert data["created_at"].startswith("2024-05-10T12:30:00")


def test_card_to_dict_hides_cvv():
    card = Card("c1", "a1", "4123", 5, 2028, "123", MOMENT)
    data = card.to_dict()
    assert "cvv" not in data
    assert data["expiry_month"] == 5
    assert data["expiry_year"] == 2028


def test_account_balance_is_string_without_trailing_zeros():
    account = Account("a1", "u1", "40817810", Decimal("10.50"), MOMENT)
    assert account.to_dict()["balance"] == "10.5"


def test_zero_balance_renders_as_zero():
    account = Account("a1", "u1", "40817810", Decimal("0.00"), MOMENT)
    assert account.to_dict()["balance"] == "0"


def test_large_balance_has_no_exponent():
    account = Account("a1", "u1", "40817810", Decimal("1E+3"), MOMENT)
    assert account.to_dict()["balance"] == "1000"


def test_transaction_omits_empty_fields():
    tx = Transaction("t1", "", "a2", Decimal("5"), MOMENT, "deposit")
    data = tx.to_dict()
    assert "from_account_id" not in data
    assert "description" not in data
    assert data["to_account_id"] == "a2"
    assert data["transaction_type"] == "deposit"


def test_loan_to_dict_contains_schedule():
    payment = Payment(MOMENT, Decimal("10"), Decimal("8"), Decimal("2"))
    loan = Loan("l1", "u1", "a1", Decimal("100"), Decimal("21"), 1, MOMENT, (payment,), Decimal("100"))
    data = loan.to_dict()
    assert data["payment_schedule"] == [payment.to_dict()]
    assert data["payment_schedule"][0]["paid"] is False
    assert data["interest_rate"] == "21"


def test_register_request_from_dict():
    request = RegisterRequest.from_dict(
        {"username": "bob", "email": "bob@example.com", "password": "password"}
    )
    assert request == RegisterRequest("bob", "bob@example.com", "password")


def test_missing_fields_become_empty():
    request = LoginRequest.from_dict({})
    assert request.username == ""
    assert request.password == ""


def test_field_names_match_case_insensitively():
    request = CreateAccountRequest.from_dict({"User_ID": "u7"})
    assert request.user_id == "u7"


def test_amount_accepts_numbers_and_strings():
    assert DepositRequest.from_dict({"to_account_id": "a", "amount": "12.34"}).amount == Decimal("12.34")
    assert DepositRequest.from_dict({"to_account_id": "a", "amount": 0.1}).amount == Decimal("0.1")
    assert TransferRequest.from_dict({"amount": 7}).amount == Decimal(7)


def test_payment_request_fields():
    request = PaymentRequest.from_dict({"card_number": "4000", "amount": "3", "merchant": "Shop"})
    assert request.merchant == "Shop"
    assert request.amount == Decimal(3)


def test_apply_loan_request_fields():
    request = ApplyLoanRequest.from_dict(
        {"user_id": "u", "account_id": "a", "amount": 1000, "term_months": 12}
    )
    assert request.term_months == 12
    assert request.amount == Decimal(1000)


@pytest.mark.parametrize(
    "payload",
    [
        [1, 2],
        "text",
        {"account_id": 5},
    ],
)
def test_generate_card_request_rejects_bad_payload(payload):
    with pytest.raises(InvalidPayload):
        GenerateCardRequest.from_dict(payload)


@pytest.mark.parametrize("amount", ["abc", True, "NaN", [1]])
def test_bad_amount_rejected(amount):
    with pytest.raises(InvalidPayload):
        DepositRequest.from_dict({"to_account_id": "a", "amount": amount})


@pytest.mark.parametrize("term", [1.5, "12", True])
def test_bad_term_rejected(term):
    with pytest.raises(InvalidPayload):
        ApplyLoanRequest.from_dict({"term_months": term})