# simplebank

A small banking HTTP API that keeps everything in memory. It supports user
registration and login, bank accounts, payment cards, card payments,
transfers between accounts, deposits, loans with an annuity payment schedule,
and a few analytics views.

## Installation

```
pip install .
```

To run the test suite, install the `test` extra:

```
pip install ".[test]"
pytest
```

## Running the server

```
simplebank
```

Options:

- `--host` – interface to listen on (default `0.0.0.0`)
- `--port` – port to listen on (default `8080`)

The server uses Flask's built-in development server. It logs every request
and its duration to standard output.

## Endpoints

All request and response bodies are JSON. A body that is not valid JSON, or
whose fields have the wrong types, answers `400` with
`{"error": "Invalid request payload"}`. Every other error also comes back as
`{"error": "<message>"}` with a matching HTTP status code.

| Method | Path                                   | Purpose                                    |
|--------|----------------------------------------|--------------------------------------------|
| POST   | `/register`                            | Register a user                            |
| POST   | `/login`                               | Check a username and password              |
| POST   | `/accounts`                            | Open an account for a user                 |
| GET    | `/users/{userId}/accounts`             | List a user's accounts                     |
| POST   | `/cards`                               | Issue a card for an account                |
| GET    | `/accounts/{accountId}/cards`          | List an account's cards                    |
| POST   | `/payments/card`                       | Pay a merchant with a card                 |
| POST   | `/transfers`                           | Move money between two accounts            |
| POST   | `/deposits`                            | Put money into an account                  |
| POST   | `/loans`                               | Take a loan, paid out to an account        |
| GET    | `/loans/{loanId}/schedule`             | A loan's monthly payment schedule          |
| GET    | `/analytics/transactions/{accountId}`  | An account's transactions, newest first    |
| GET    | `/analytics/summary/{userId}`          | Total balance, loan debt and loan counts   |

Amounts in responses are decimal strings without trailing zeros (`"100"`,
`"25.5"`); timestamps are RFC 3339 strings.

### Registering and logging in

`POST /register`

```json
{"username": "alice", "email": "alice@example.com", "password": "password"}
```

Answers `201` with the new user's `id`, `username`, `email` and `created_at`;
the password hash is never returned. A missing field answers `400`, a
username or e-mail address that is already registered answers `409`, and a
password longer than 72 bytes answers `500`. A welcome e-mail is handed to the
notifier in the background (see below).

`POST /login` with `{"username": "alice", "password": "password"}` answers
`200` with `{"message": "Login successful", "user_id": "<user id>"}`, or
`401` for an unknown user or a wrong password.

### Accounts and cards

`POST /accounts` with `{"user_id": "<user id>"}` opens an account with a zero
balance and a generated 18-digit account number. An unknown user answers
`500`.

`POST /cards` with `{"account_id": "<account id>"}` issues a card expiring in
the same month four years ahead. The CVV is never included in any response.

### Moving money

Amounts may be JSON numbers or strings and must be positive.

- `POST /deposits` with `{"to_account_id": "<account id>", "amount": "100.00"}`
- `POST /transfers` with `{"from_account_id": "<account id>", "to_account_id": "<account id>", "amount": "25.50"}`
- `POST /payments/card` with `{"card_number": "<card number>", "amount": "9.99", "merchant": "Coffee shop"}`

Payments and transfers answer `402` when the balance is too low. An unknown
card or account answers `404`, an expired card answers `400`, and
transferring to the same account answers `400`. Every successful operation
is recorded as a transaction (`deposit`, `transfer` or `payment`).

### Loans

`POST /loans`

```json
{"user_id": "<user id>", "account_id": "<account id>", "amount": "100000", "term_months": 12}
```

The interest rate is the key rate plus five percentage points. The monthly
annuity payment is rounded to two decimal places with banker's rounding, and
the last instalment absorbs any remaining principal. The loan amount is
credited to the given account and recorded as a `loan_disbursement`
transaction. The answer is `201` with the loan, including its
`payment_schedule`. `GET /loans/{loanId}/schedule` returns the list of
payments with their due dates, amounts, principal and interest parts.

### Analytics

`GET /analytics/summary/{userId}` answers with:

```json
{
  "user_id": "<user id>",
  "total_account_balance": "100",
  "number_of_accounts": 1,
  "total_loan_debt": "0",
  "active_loans": 0
}
```

## Using it as a library

The HTTP layer is thin; the operations live in `simplebank.handlers.BankService`.
Each method takes a decoded JSON payload (or a path parameter) and returns a
`(status, body)` pair, or raises `simplebank.handlers.ApiError`, which carries
`status` and `message`.

```python
from simplebank.handlers import BankService
from simplebank.app import create_app

service = BankService()
status, user = service.register_user(
    {"username": "alice", "email": "alice@example.com", "password": "password"}
)
app = create_app(service)  # a Flask application
```

`BankService` accepts its own `InMemoryStorage` and, as keyword arguments, a
`key_rate` callable, a `notifier(to, subject, body)` callable, a `clock`
returning the current time and a `background` runner for the welcome e-mail.

E-mail is sent by `simplebank.services.send_email_notification`, configured
with a `SmtpConfig` (`host`, `port`, `username`, `password`, `from_address`).
With the default configuration the host is a placeholder and messages are
only logged, not sent. To send real mail, give the service a notifier bound
to a real configuration:

```python
from functools import partial
from simplebank.services import SmtpConfig, send_email_notification

notifier = partial(send_email_notification, config=SmtpConfig(host="mail.example.com"))
service = BankService(notifier=notifier)
```

## What it does not do

- Nothing is persisted: all data lives in the running process, and a restart
  starts from an empty bank.
- Login only checks the password; no session or token is issued, and no
  endpoint requires one.
- The key rate is not fetched from any outside source. `KeyRateProvider`
  returns a fixed 16% by default (so loans carry 21%) and caches it for an
  hour; pass another `key_rate` callable to `BankService` to change it. If
  that callable fails, 10% is used instead.
- Loan repayments are not collected: schedules are informational and a loan's
  remaining amount never decreases.