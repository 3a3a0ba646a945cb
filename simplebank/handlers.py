"""Request handling for the bank API, independent of the HTTP layer."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, TypeVar

from .auth import check_password_hash, hash_password
from .models import (
    Account,
    ApplyLoanRequest,
    Card,
    CreateAccountRequest,
    DepositRequest,
    GenerateCardRequest,
    InvalidPayload,
    Loan,
    LoginRequest,
    PaymentRequest,
    RegisterRequest,
    Transaction,
    TransferRequest,
    User,
)
from .services import get_cbr_key_rate, send_email_notification
from .storage import (
    ConflictError,
    InMemoryStorage,
    InsufficientFundsError,
    NotFoundError,
    StorageError,
)
from .utils import (
    add_months,
    calculate_monthly_payment,
    generate_account_number,
    generate_card_number,
    generate_cvv,
    generate_expiry_date,
    generate_id,
    generate_payment_schedule,
)

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_LOAN_MARGIN = Decimal(5)
_FALLBACK_KEY_RATE = Decimal(10)


class ApiError(Exception):
    """A request failed; carries the HTTP status and the message for the client."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def _decode(factory: Callable[[Any], _T], payload: Any) -> _T:
    try:
        return factory(payload)
    except InvalidPayload as exc:
        raise ApiError(400, "Invalid request payload") from exc


def _start_thread(task: Callable[[], None]) -> None:
    threading.Thread(target=task, daemon=True).start()


def _local_now() -> datetime:
    return datetime.now().astimezone()


class BankService:
    """The bank's operations; each returns ``(status, body)`` or raises ApiError."""

    def __init__(
        self,
        storage: InMemoryStorage | None = None,
        *,
        key_rate: Callable[[], Decimal] = get_cbr_key_rate,
        notifier: Callable[[str, str, str], None] = send_email_notification,
        clock: Callable[[], datetime] = _local_now,
        background: Callable[[Callable[[], None]], None] = _start_thread,
    ) -> None:
        self.storage = storage if storage is not None else InMemoryStorage()
        self._key_rate = key_rate
        self._notifier = notifier
        self._clock = clock
        self._background = background

    def _now(self) -> datetime:
        now = self._clock()
        return now if now.tzinfo is not None else now.astimezone()

    def _welcome(self, user: User) -> None:
        subject = "Welcome to Simple Bank!"
        body = f"Hello {user.username},\n\nThank you for registering at Simple Bank."
        try:
            self._notifier(user.email, subject, body)
        except Exception as exc:  # a failed notification must never break registration
            logger.error("Failed to send registration email to %s: %s", user.email, exc)

    def register_user(self, payload: Any) -> tuple[int, Any]:
        req = _decode(RegisterRequest.from_dict, payload)
        if not (req.username and req.email and req.password):
            raise ApiError(400, "Username, email, and password are required")
        try:
            hashed = hash_password(req.password)
        except ValueError as exc:
            raise ApiError(500, "Failed to hash password") from exc
        user = User(
            id=generate_id(),
            username=req.username,
            email=req.email,
            password_hash=hashed,
            created_at=self._now(),
        )
        try:
            self.storage.add_user(user)
        except ConflictError as exc:
            raise ApiError(409, str(exc)) from exc
        self._background(lambda: self._welcome(user))
        logger.info("User registered: %s (ID: %s)", user.username, user.id)
        return 201, user.to_dict()

    def login_user(self, payload: Any) -> tuple[int, Any]:
        req = _decode(LoginRequest.from_dict, payload)
        user = self.storage.get_user_by_username(req.username)
        if user is None or not check_password_hash(req.password, user.password_hash):
            raise ApiError(401, "Invalid username or password")
        logger.info("User logged in: %s", user.username)
        return 200, {"message": "Login successful", "user_id": user.id}

    def create_account(self, payload: Any) -> tuple[int, Any]:
        req = _decode(CreateAccountRequest.from_dict, payload)
        if not req.user_id:
            raise ApiError(400, "UserID is required")
        account = Account(
            id=generate_id(),
            user_id=req.user_id,
            number=generate_account_number(),
            balance=Decimal(0),
            created_at=self._now(),
        )
        try:
            self.storage.add_account(account)
        except StorageError as exc:
            raise ApiError(500, f"Failed to create account: {exc}") from exc
        logger.info("Account created: %s for user %s", account.number, account.user_id)
        return 201, account.to_dict()

    def get_user_accounts(self, user_id: str) -> tuple[int, Any]:
        accounts = self.storage.get_user_accounts(user_id)
        logger.info("Fetched %d accounts for user %s", len(accounts), user_id)
        return 200, [account.to_dict() for account in accounts]

    def generate_card(self, payload: Any) -> tuple[int, Any]:
        req = _decode(GenerateCardRequest.from_dict, payload)
        if self.storage.get_account(req.account_id) is None:
            raise ApiError(400, f"Account {req.account_id} not found")
        now = self._now()
        month, year = generate_expiry_date(now)
        card = Card(
            id=generate_id(),
            account_id=req.account_id,
            number=generate_card_number(),
            expiry_month=month,
            expiry_year=year,
            cvv=generate_cvv(),
            created_at=now,
        )
        try:
            self.storage.add_card(card)
        except StorageError as exc:
            raise ApiError(500, f"Failed to generate card: {exc}") from exc
        logger.info("Card generated for account %s", card.account_id)
        return 201, card.to_dict()

    def get_account_cards(self, account_id: str) -> tuple[int, Any]:
        if self.storage.get_account(account_id) is None:
            raise ApiError(404, f"Account {account_id} not found")
        cards = self.storage.get_account_cards(account_id)
        logger.info("Fetched %d cards for account %s", len(cards), account_id)
        return 200, [card.to_dict() for card in cards]

    def pay_with_card(self, payload: Any) -> tuple[int, Any]:
        req = _decode(PaymentRequest.from_dict, payload)
        if req.amount <= 0:
            raise ApiError(400, "Payment amount must be positive")
        card = self.storage.get_card_by_number(req.card_number)
        if card is None:
            raise ApiError(404, "Card not found")

        month_start = datetime(card.expiry_year, card.expiry_month, 1, 23, 59, 59, tzinfo=timezone.utc)
        expiry = add_months(month_start, 1) - timedelta(days=1)
        if self._now() > expiry:
            raise ApiError(400, "Card expired")

        account = self.storage.get_account(card.account_id)
        if account is None:
            raise ApiError(500, "Associated account not found")
        if account.balance < req.amount:
            raise ApiError(402, "Insufficient funds")
        try:
            self.storage.update_account_balance(account.id, -req.amount)
        except StorageError as exc:
            raise ApiError(500, f"Failed to process payment: {exc}") from exc

        self.storage.add_transaction(
            Transaction(
                id=generate_id(),
                from_account_id=account.id,
                to_account_id="",
                amount=req.amount,
                timestamp=self._now(),
                transaction_type="payment",
                description=f"Payment to {req.merchant}",
            )
        )
        logger.info(
            "Payment of %s processed from account %s (card %s) to %s",
            req.amount,
            account.id,
            card.number[:4] + "...",
            req.merchant,
        )
        return 200, {"message": "Payment successful"}

    def transfer(self, payload: Any) -> tuple[int, Any]:
        req = _decode(TransferRequest.from_dict, payload)
        if req.from_account_id == req.to_account_id:
            raise ApiError(400, "Cannot transfer to the same account")
        if req.amount <= 0:
            raise ApiError(400, "Transfer amount must be positive")
        try:
            self.storage.transfer(
                req.from_account_id,
                req.to_account_id,
                req.amount,
                generate_id(),
                self._now(),
            )
        except NotFoundError as exc:
            raise ApiError(404, str(exc)) from exc
        except InsufficientFundsError as exc:
            raise ApiError(402, str(exc)) from exc
        logger.info(
            "Transfer of %s from %s to %s successful",
            req.amount,
            req.from_account_id,
            req.to_account_id,
        )
        return 200, {"message": "Transfer successful"}

    def deposit(self, payload: Any) -> tuple[int, Any]:
        req = _decode(DepositRequest.from_dict, payload)
        if req.amount <= 0:
            raise ApiError(400, "Deposit amount must be positive")
        try:
            account = self.storage.update_account_balance(req.to_account_id, req.amount)
        except NotFoundError as exc:
            raise ApiError(404, str(exc)) from exc
        except StorageError as exc:
            raise ApiError(500, f"Failed to process deposit: {exc}") from exc
        self.storage.add_transaction(
            Transaction(
                id=generate_id(),
                from_account_id="",
                to_account_id=req.to_account_id,
                amount=req.amount,
                timestamp=self._now(),
                transaction_type="deposit",
                description=f"Deposit to account {account.number}",
            )
        )
        logger.info("Deposit of %s to account %s successful", req.amount, req.to_account_id)
        return 200, {"message": "Deposit successful"}

    def apply_loan(self, payload: Any) -> tuple[int, Any]:
        req = _decode(ApplyLoanRequest.from_dict, payload)
        if req.amount <= 0 or req.term_months <= 0:
            raise ApiError(400, "Loan amount and term must be positive")
        if not self.storage.has_user(req.user_id):
            raise ApiError(404, f"User {req.user_id} not found")
        if self.storage.get_account(req.account_id) is None:
            raise ApiError(404, f"Account {req.account_id} not found")

        try:
            base_rate = self._key_rate()
        except Exception as exc:  # any failure of the rate source falls back to the default
            logger.warning("Warning: Failed to get key rate, using default 10%%: %s", exc)
            base_rate = _FALLBACK_KEY_RATE
        interest_rate = base_rate + _LOAN_MARGIN

        monthly_payment = calculate_monthly_payment(req.amount, interest_rate, req.term_months)
        start_date = self._now()
        schedule = generate_payment_schedule(
            req.amount, interest_rate, req.term_months, start_date, monthly_payment
        )
        loan = Loan(
            id=generate_id(),
            user_id=req.user_id,
            account_id=req.account_id,
            amount=req.amount,
            interest_rate=interest_rate,
            term_months=req.term_months,
            start_date=start_date,
            payment_schedule=tuple(schedule),
            remaining_amount=req.amount,
        )
        try:
            self.storage.add_loan(loan)
        except StorageError as exc:
            raise ApiError(500, f"Failed to save loan: {exc}") from exc
        try:
            self.storage.update_account_balance(req.account_id, req.amount)
        except StorageError as exc:
            raise ApiError(500, f"Failed to disburse loan funds: {exc}") from exc

        self.storage.add_transaction(
            Transaction(
                id=generate_id(),
                from_account_id="",
                to_account_id=req.account_id,
                amount=req.amount,
                timestamp=self._now(),
                transaction_type="loan_disbursement",
                description=f"Loan disbursement (ID: {loan.id})",
            )
        )
        logger.info(
            "Loan %s approved for user %s, amount %s, rate %s%%, term %d months. "
            "Funds disbursed to account %s.",
            loan.id,
            req.user_id,
            req.amount,
            interest_rate,
            req.term_months,
            req.account_id,
        )
        return 201, loan.to_dict()

    def get_loan_schedule(self, loan_id: str) -> tuple[int, Any]:
        loan = self.storage.get_loan(loan_id)
        if loan is None:
            raise ApiError(404, f"Loan {loan_id} not found")
        logger.info("Fetched payment schedule for loan %s", loan_id)
        return 200, [payment.to_dict() for payment in loan.payment_schedule]

    def get_transactions(self, account_id: str) -> tuple[int, Any]:
        if self.storage.get_account(account_id) is None:
            raise ApiError(404, f"Account {account_id} not found")
        transactions = sorted(
            self.storage.get_account_transactions(account_id),
            key=lambda tx: tx.timestamp,
            reverse=True,
        )
        logger.info("Fetched %d transactions for account %s", len(transactions), account_id)
        return 200, [tx.to_dict() for tx in transactions]

    def get_financial_summary(self, user_id: str) -> tuple[int, Any]:
        accounts = self.storage.get_user_accounts(user_id)
        loans = self.storage.get_user_loans(user_id)
        total_balance = sum((account.balance for account in accounts), Decimal(0))
        total_debt = sum((loan.remaining_amount for loan in loans), Decimal(0))
        active_loans = sum(1 for loan in loans if loan.remaining_amount > 0)
        logger.info("Generated financial summary for user %s", user_id)
        return 200, {
            "user_id": user_id,
            "total_account_balance": Account(
                id="", user_id="", number="", balance=total_balance, created_at=self._now()
            ).to_dict()["balance"],
            "number_of_accounts": len(accounts),
            "total_loan_debt": Account(
                id="", user_id="", number="", balance=total_debt, created_at=self._now()
            ).to_dict()["balance"],
            "active_loans": active_loans,
        }