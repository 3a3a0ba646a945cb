from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from simplebank.handlers import ApiError, BankService
from simplebank.storage import InMemoryStorage

START = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return _Clock(START)


@pytest.fixture
def mails():
    return []


@pytest.fixture
def service(clock, mails):
    return BankService(
        InMemoryStorage(),
        key_rate=lambda: Decimal("16"),
        notifier=lambda to, subject, body: mails.append((to, subject, body)),
        clock=clock,
        background=lambda task: task(),
    )


def _register(service, username="alice"):
    _, body = service.register_user(
        {"username": username, "email": f"{username}@example.com", "password": "password"}
    )
    return body["id"]


def _account(service, user_id):
    _, body = service.create_account({"user_id": user_id})
    return body


def _balance(service, account_id):
    return service.storage.get_account(account_id).balance


def test_register_returns_user_without_hash_and_sends_mail(service, mails):
    status, body = service.register_user(
        {"username": "alice", "email": "alice@example.com", "password": "password"}
    )
    assert status == 201
    assert body["username"] == "alice"
    assert "password_hash" not in body
    assert mails[0][0] == "alice@example.com"
    assert mails[0][1] == "Welcome to Simple Bank!"
    assert "alice" in mails[0][2]


def test_register_requires_all_fields(service):
    with pytest.raises(ApiError) as info:
        service.register_user({"username": "alice", "email": "", "password": "password"})
    assert info.value.status == 400
    assert info.value.message == "Username, email, and password are required"


def test_register_rejects_malformed_payload(service):
    with pytest.raises(ApiError) as info:
        service.register_user(["not", "an", "object"])
    assert info.value.status == 400
    assert info.value.message == "Invalid request payload"


def test_register_duplicate_username_conflicts(service):
    _register(service)
    with pytest.raises(ApiError) as info:
        service.register_user({"username": "alice", "email": "other@example.com", "password": "password"})
    assert info.value.status == 409
    assert info.value.message == "username 'alice' already taken"


def test_failing_notifier_does_not_break_registration(clock):
    def broken(to, subject, body):
        raise OSError("no route")

    bank = BankService(InMemoryStorage(), notifier=broken, clock=clock, background=lambda task: task())
    status, body = bank.register_user({"username": "bob", "email": "bob@example.com", "password": "password"})
    assert status == 201
    assert bank.storage.get_user_by_username("bob").id == body["id"]


def test_login_success_and_failure(service):
    user_id = _register(service)
    status, body = service.login_user({"username": "alice", "password": "password"})
    assert status == 200
    assert body == {"message": "Login successful", "user_id": user_id}
    with pytest.raises(ApiError) as info:
        service.login_user({"username": "alice", "password": "secret"})
    assert info.value.status == 401
    with pytest.raises(ApiError) as info:
        service.login_user({"username": "nobody", "password": "password"})
    assert info.value.message == "Invalid username or password"


def test_create_account_validation(service):
    with pytest.raises(ApiError) as info:
        service.create_account({})
    assert (info.value.status, info.value.message) == (400, "UserID is required")
    with pytest.raises(ApiError) as info:
        service.create_account({"user_id": "ghost"})
    assert info.value.status == 500
    assert info.value.message.startswith("Failed to create account:")


def test_create_account_and_list(service):
    user_id = _register(service)
    account = _account(service, user_id)
    assert account["number"].startswith("40817810")
    assert len(account["number"]) == 18
    assert Decimal(account["balance"]) == 0
    status, accounts = service.get_user_accounts(user_id)
    assert status == 200
    assert [a["id"] for a in accounts] == [account["id"]]


def test_generate_card_hides_cvv(service):
    account = _account(service, _register(service))
    status, card = service.generate_card({"account_id": account["id"]})
    assert status == 201
    assert "cvv" not in card
    assert card["number"].startswith("4")
    assert (card["expiry_month"], card["expiry_year"]) == (START.month, START.year + 4)
    _, cards = service.get_account_cards(account["id"])
    assert cards == [card]


def test_card_errors(service):
    with pytest.raises(ApiError) as info:
        service.generate_card({"account_id": "nope"})
    assert (info.value.status, info.value.message) == (400, "Account nope not found")
    with pytest.raises(ApiError) as info:
        service.get_account_cards("nope")
    assert info.value.status == 404


def test_pay_with_card(service):
    account = _account(service, _register(service))
    service.deposit({"to_account_id": account["id"], "amount": "100"})
    _, card = service.generate_card({"account_id": account["id"]})
    status, body = service.pay_with_card({"card_number": card["number"], "amount": 30, "merchant": "Shop"})
    assert status == 200
    assert body == {"message": "Payment successful"}
    assert _balance(service, account["id"]) == Decimal("100") - Decimal(30)
    _, txs = service.get_transactions(account["id"])
    assert txs[0]["transaction_type"] == "payment"
    assert txs[0]["description"] == "Payment to Shop"
    assert "to_account_id" not in txs[0]


def test_payment_errors(service):
    account = _account(service, _register(service))
    _, card = service.generate_card({"account_id": account["id"]})
    with pytest.raises(ApiError) as info:
        service.pay_with_card({"card_number": card["number"], "amount": 0})
    assert (info.value.status, info.value.message) == (400, "Payment amount must be positive")
    with pytest.raises(ApiError) as info:
        service.pay_with_card({"card_number": "0000", "amount": 1})
    assert (info.value.status, info.value.message) == (404, "Card not found")
    with pytest.raises(ApiError) as info:
        service.pay_with_card({"card_number": card["number"], "amount": 1})
    assert (info.value.status, info.value.message) == (402, "Insufficient funds")


def test_card_expires_after_last_day_of_month(service, clock):
    account = _account(service, _register(service))
    service.deposit({"to_account_id": account["id"], "amount": 10})
    _, card = service.generate_card({"account_id": account["id"]})
    clock.now = datetime(START.year + 4, START.month, 31, 23, 0, tzinfo=timezone.utc)
    assert service.pay_with_card({"card_number": card["number"], "amount": 1})[0] == 200
    clock.now = datetime(START.year + 4, START.month + 1, 1, 0, 0, 1, tzinfo=timezone.utc)
    with pytest.raises(ApiError) as info:
        service.pay_with_card({"card_number": card["number"], "amount": 1})
    assert (info.value.status, info.value.message) == (400, "Card expired")


def test_transfer_moves_money(service):
    user_id = _register(service)
    source = _account(service, user_id)
    target = _account(service, user_id)
    service.deposit({"to_account_id": source["id"], "amount": 50})
    status, body = service.transfer(
        {"from_account_id": source["id"], "to_account_id": target["id"], "amount": "20.5"}
    )
    assert (status, body) == (200, {"message": "Transfer successful"})
    assert _balance(service, source["id"]) == Decimal(50) - Decimal("20.5")
    assert _balance(service, target["id"]) == Decimal("20.5")


def test_transfer_errors(service):
    user_id = _register(service)
    source = _account(service, user_id)
    target = _account(service, user_id)
    with pytest.raises(ApiError) as info:
        service.transfer({"from_account_id": source["id"], "to_account_id": source["id"], "amount": 1})
    assert (info.value.status, info.value.message) == (400, "Cannot transfer to the same account")
    with pytest.raises(ApiError) as info:
        service.transfer({"from_account_id": source["id"], "to_account_id": target["id"], "amount": -1})
    assert info.value.message == "Transfer amount must be positive"
    with pytest.raises(ApiError) as info:
        service.transfer({"from_account_id": "nope", "to_account_id": target["id"], "amount": 1})
    assert (info.value.status, info.value.message) == (404, "Source account nope not found")
    with pytest.raises(ApiError) as info:
        service.transfer({"from_account_id": source["id"], "to_account_id": target["id"], "amount": 1})
    assert (info.value.status, info.value.message) == (402, "Insufficient funds in source account")


def test_deposit_errors(service):
    with pytest.raises(ApiError) as info:
        service.deposit({"to_account_id": "nope", "amount": 5})
    assert (info.value.status, info.value.message) == (404, "account nope not found")
    with pytest.raises(ApiError) as info:
        service.deposit({"to_account_id": "nope", "amount": 0})
    assert info.value.message == "Deposit amount must be positive"


def test_transactions_newest_first(service, clock):
    user_id = _register(service)
    source = _account(service, user_id)
    target = _account(service, user_id)
    service.deposit({"to_account_id": source["id"], "amount": 10})
    clock.advance(minutes=1)
    service.deposit({"to_account_id": source["id"], "amount": 10})
    clock.advance(minutes=1)
    service.transfer({"from_account_id": source["id"], "to_account_id": target["id"], "amount": 5})
    _, txs = service.get_transactions(source["id"])
    assert [tx["transaction_type"] for tx in txs] == ["transfer", "deposit", "deposit"]
    stamps = [tx["timestamp"] for tx in txs]
    assert stamps == sorted(stamps, reverse=True)
    with pytest.raises(ApiError) as info:
        service.get_transactions("nope")
    assert info.value.status == 404


def test_apply_loan_disburses_and_schedules(service):
    user_id = _register(service)
    account = _account(service, user_id)
    status, loan = service.apply_loan(
        {"user_id": user_id, "account_id": account["id"], "amount": 12000, "term_months": 12}
    )
    assert status == 201
    assert Decimal(loan["interest_rate"]) == Decimal("16") + 5
    assert len(loan["payment_schedule"]) == 12
    assert sum(Decimal(p["principal_part"]) for p in loan["payment_schedule"]) == Decimal(12000)
    assert _balance(service, account["id"]) == Decimal(12000)
    _, txs = service.get_transactions(account["id"])
    assert txs[0]["description"] == f"Loan disbursement (ID: {loan['id']})"
    _, schedule = service.get_loan_schedule(loan["id"])
    assert schedule == loan["payment_schedule"]


def test_apply_loan_falls_back_when_rate_unavailable(clock):
    def unavailable():
        raise RuntimeError("offline")

    bank = BankService(InMemoryStorage(), key_rate=unavailable, clock=clock, background=lambda task: None)
    user_id = _register(bank)
    account = _account(bank, user_id)
    _, loan = bank.apply_loan({"user_id": user_id, "account_id": account["id"], "amount": 100, "term_months": 2})
    assert Decimal(loan["interest_rate"]) == Decimal(10) + 5


def test_apply_loan_errors(service):
    user_id = _register(service)
    account = _account(service, user_id)
    with pytest.raises(ApiError) as info:
        service.apply_loan({"user_id": user_id, "account_id": account["id"], "amount": 100, "term_months": 0})
    assert (info.value.status, info.value.message) == (400, "Loan amount and term must be positive")
    with pytest.raises(ApiError) as info:
        service.apply_loan({"user_id": "ghost", "account_id": account["id"], "amount": 100, "term_months": 2})
    assert (info.value.status, info.value.message) == (404, "User ghost not found")
    with pytest.raises(ApiError) as info:
        service.apply_loan({"user_id": user_id, "account_id": "nope", "amount": 100, "term_months": 2})
    assert (info.value.status, info.value.message) == (404, "Account nope not found")
    with pytest.raises(ApiError) as info:
        service.get_loan_schedule("missing")
    assert (info.value.status, info.value.message) == (404, "Loan missing not found")


def test_financial_summary(service):
    user_id = _register(service)
    first = _account(service, user_id)
    second = _account(service, user_id)
    service.deposit({"to_account_id": first["id"], "amount": 40})
    service.apply_loan({"user_id": user_id, "account_id": second["id"], "amount": 300, "term_months": 3})
    status, summary = service.get_financial_summary(user_id)
    assert status == 200
    assert summary["user_id"] == user_id
    assert summary["number_of_accounts"] == 2
    assert Decimal(summary["total_account_balance"]) == Decimal(40) + Decimal(300)
    assert Decimal(summary["total_loan_debt"]) == Decimal(300)
    assert summary["active_loans"] == 1