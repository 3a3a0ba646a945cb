"""Thread-safe in-memory store for users, accounts, cards, loans and transactions."""

from __future__ import annotations

import dataclasses
import threading
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from .models import Account, Card, Loan, Transaction, User


class StorageError(Exception):
    """Base class of storage failures."""


class NotFoundError(StorageError, LookupError):
    """A referenced record does not exist."""


class ConflictError(StorageError):
    """A unique field is already taken."""


class InsufficientFundsError(StorageError):
    """An account holds less than the requested amount."""


class InMemoryStorage:
    """All bank records, kept in memory and guarded by one lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[str, User] = {}
        self._accounts: dict[str, Account] = {}
        self._cards: dict[str, Card] = {}
        self._loans: dict[str, Loan] = {}
        self._transactions: list[Transaction] = []
        self._user_index: dict[str, str] = {}
        self._email_index: dict[str, str] = {}
        self._account_index: defaultdict[str, list[str]] = defaultdict(list)
        self._card_index: defaultdict[str, list[str]] = defaultdict(list)
        self._loan_index: defaultdict[str, list[str]] = defaultdict(list)

    def add_user(self, user: User) -> None:
        with self._lock:
            if user.username in self._user_index:
                raise ConflictError(f"username '{user.username}' already taken")
            if user.email in self._email_index:
                raise ConflictError(f"email '{user.email}' already registered")
            self._users[user.id] = user
            self._user_index[user.username] = user.id
            self._email_index[user.email] = user.id

    def get_user_by_username(self, username: str) -> User | None:
        with self._lock:
            user_id = self._user_index.get(username)
            return None if user_id is None else self._users.get(user_id)

    def has_user(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._users

    def add_account(self, account: Account) -> None:
        with self._lock:
            if account.user_id not in self._users:
                raise NotFoundError(f"user with ID {account.user_id} not found")
            self._accounts[account.id] = account
            self._account_index[account.user_id].append(account.id)

    def get_account(self, account_id: str) -> Account | None:
        with self._lock:
            return self._accounts.get(account_id)

    def get_user_accounts(self, user_id: str) -> list[Account]:
        with self._lock:
            ids = self._account_index.get(user_id, [])
            return [self._accounts[i] for i in ids if i in self._accounts]

    def update_account_balance(self, account_id: str, amount: Decimal) -> Account:
        """Add ``amount`` (possibly negative) to the balance and return the account."""
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise NotFoundError(f"account {account_id} not found")
            updated = dataclasses.replace(account, balance=account.balance + amount)
            self._accounts[account_id] = updated
            return updated

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        transaction_id: str,
        timestamp: datetime,
    ) -> Transaction:
        """Move money between two accounts atomically and record the transfer."""
        with self._lock:
            source = self._accounts.get(from_account_id)
            target = self._accounts.get(to_account_id)
            if source is None:
                raise NotFoundError(f"Source account {from_account_id} not found")
            if target is None:
                raise NotFoundError(f"Destination account {to_account_id} not found")
            if source.balance < amount:
                raise InsufficientFundsError("Insufficient funds in source account")
            self._accounts[from_account_id] = dataclasses.replace(source, balance=source.balance - amount)
            target = self._accounts[to_account_id]
            self._accounts[to_account_id] = dataclasses.replace(target, balance=target.balance + amount)
            transaction = Transaction(
                id=transaction_id,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                amount=amount,
                timestamp=timestamp,
                transaction_type="transfer",
                description=f"Transfer from {source.number} to {target.number}",
            )
            self._transactions.append(transaction)
            return transaction

    def add_transaction(self, transaction: Transaction) -> None:
        with self._lock:
            self._transactions.append(transaction)

    def get_account_transactions(self, account_id: str) -> list[Transaction]:
        with self._lock:
            return [
                tx
                for tx in self._transactions
                if account_id in (tx.from_account_id, tx.to_account_id)
            ]

    def add_card(self, card: Card) -> None:
        with self._lock:
            if card.account_id not in self._accounts:
                raise NotFoundError(f"account {card.account_id} not found")
            self._cards[card.id] = card
            self._card_index[card.account_id].append(card.id)

    def get_account_cards(self, account_id: str) -> list[Card]:
        with self._lock:
            ids = self._card_index.get(account_id, [])
            return [self._cards[i] for i in ids if i in self._cards]

    def get_card_by_number(self, number: str) -> Card | None:
        with self._lock:
            return next((card for card in self._cards.values() if card.number == number), None)

    def add_loan(self, loan: Loan) -> None:
        with self._lock:
            if loan.user_id not in self._users:
                raise NotFoundError(f"user {loan.user_id} not found")
            if loan.account_id not in self._accounts:
                raise NotFoundError(f"account {loan.account_id} not found")
            self._loans[loan.id] = loan
            self._loan_index[loan.user_id].append(loan.id)

    def get_user_loans(self, user_id: str) -> list[Loan]:
        with self._lock:
            ids = self._loan_index.get(user_id, [])
            return [self._loans[i] for i in ids if i in self._loans]

    def get_loan(self, loan_id: str) -> Loan | None:
        with self._lock:
            return self._loans.get(loan_id)