"""HTTP front end of the bank API."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any

from flask import Flask, Response, g, request

from .handlers import ApiError, BankService

logger = logging.getLogger(__name__)


def _reply(status: int, payload: Any) -> Response:
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return Response(body, status=status, mimetype="application/json")


def _request_body() -> Any:
    try:
        return json.loads(request.get_data())
    except ValueError as exc:
        raise ApiError(400, "Invalid request payload") from exc


def _request_uri() -> str:
    query = request.query_string.decode("latin-1")
    return f"{request.path}?{query}" if query else request.path


def create_app(service: BankService | None = None) -> Flask:
    """Build the Flask application serving the bank API."""
    bank = service if service is not None else BankService()
    app = Flask(__name__)

    @app.before_request
    def _log_start() -> None:
        g.started = time.perf_counter()
        logger.info(
            "--> %s %s %s",
            request.method,
            _request_uri(),
            request.environ.get("SERVER_PROTOCOL", ""),
        )

    @app.after_request
    def _log_end(response: Response) -> Response:
        elapsed = time.perf_counter() - g.get("started", time.perf_counter())
        logger.info("<-- %s %s (%.6fs)", request.method, _request_uri(), elapsed)
        return response

    @app.errorhandler(ApiError)
    def _api_error(exc: ApiError) -> Response:
        logger.info("HTTP Error %d: %s", exc.status, exc.message)
        return _reply(exc.status, {"error": exc.message})

    @app.post("/register")
    def register() -> Response:
        return _reply(*bank.register_user(_request_body()))

    @app.post("/login")
    def login() -> Response:
        return _reply(*bank.login_user(_request_body()))

    @app.post("/accounts")
    def create_account() -> Response:
        return _reply(*bank.create_account(_request_body()))

    @app.get("/users/<user_id>/accounts")
    def user_accounts(user_id: str) -> Response:
        return _reply(*bank.get_user_accounts(user_id))

    @app.post("/cards")
    def generate_card() -> Response:
        return _reply(*bank.generate_card(_request_body()))

    @app.get("/accounts/<account_id>/cards")
    def account_cards(account_id: str) -> Response:
        return _reply(*bank.get_account_cards(account_id))

    @app.post("/payments/card")
    def pay_with_card() -> Response:
        return _reply(*bank.pay_with_card(_request_body()))

    @app.post("/transfers")
    def transfer() -> Response:
        return _reply(*bank.transfer(_request_body()))

    @app.post("/deposits")
    def deposit() -> Response:
        return _reply(*bank.deposit(_request_body()))

    @app.post("/loans")
    def apply_loan() -> Response:
        return _reply(*bank.apply_loan(_request_body()))

    @app.get("/loans/<loan_id>/schedule")
    def loan_schedule(loan_id: str) -> Response:
        return _reply(*bank.get_loan_schedule(loan_id))

    @app.get("/analytics/transactions/<account_id>")
    def transactions(account_id: str) -> Response:
        return _reply(*bank.get_transactions(account_id))

    @app.get("/analytics/summary/<user_id>")
    def summary(user_id: str) -> Response:
        return _reply(*bank.get_financial_summary(user_id))

    return app


def main(argv: list[str] | None = None) -> int:
    """Run the API server; returns the process exit status."""
    parser = argparse.ArgumentParser(prog="simplebank", description="Run the Simple Bank API server.")
    parser.add_argument("--host", default="0.0.0.0", help="interface to listen on")
    parser.add_argument("--port", type=int, default=8080, help="port to listen on")
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stdout,
        level=logging.INFO,
        format="%(asctime)s %(filename)s:%(lineno)d: %(message)s",
    )
    logger.info("Starting Simple Bank API...")
    service = BankService()
    logger.info("In-memory storage initialized.")
    app = create_app(service)
    logger.info("Server starting on port %s", args.port)
    try:
        app.run(host=args.host, port=args.port)
    except OSError as exc:
        logger.critical("Server failed to start: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())