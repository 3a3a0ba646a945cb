"""External services: the central bank key rate and e-mail notifications."""

from __future__ import annotations

import contextlib
import logging
import smtplib
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

logger = logging.getLogger(__name__)

_FIXED_KEY_RATE = Decimal("16")
_UNCONFIGURED_HOST = "smtp.example.com"
PASSWORD = "password"


def _fixed_key_rate() -> Decimal:
    return _FIXED_KEY_RATE


class KeyRateProvider:
    """Key rate source that caches a non-zero rate for ``ttl`` seconds."""

    def __init__(
        self,
        fetch: Callable[[], Decimal] | None = None,
        clock: Callable[[], float] = time.monotonic,
        ttl: float = 3600.0,
    ) -> None:
        self._fetch = fetch or _fixed_key_rate
        self._clock = clock
        self._ttl = ttl
        self._rate = Decimal(0)
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def get_rate(self) -> Decimal:
        with self._lock:
            if not self._rate.is_zero() and self._clock() - self._fetched_at < self._ttl:
                logger.info("Using cached key rate")
                return self._rate
            logger.info("Fetching key rate from external source (using fixed value for demo)")
            rate = self._fetch()
            self._rate = rate
            self._fetched_at = self._clock()
            return rate


_default_provider = KeyRateProvider()


def get_cbr_key_rate() -> Decimal:
    """Current key rate in percent, from the shared provider."""
    return _default_provider.get_rate()


@dataclass(frozen=True)
class SmtpConfig:
    host: str = _UNCONFIGURED_HOST
    port: int = 587
    username: str = "your_email@example.com"
    password: str = PASSWORD
    from_address: str = "bankapp@example.com"


def send_email_notification(to: str, subject: str, body: str, config: SmtpConfig | None = None) -> None:
    """Send a plain e-mail; skipped when SMTP is left at its placeholder host."""
    config = config or SmtpConfig()
    if config.host == _UNCONFIGURED_HOST:
        logger.info("SMTP not configured. Skipping email to %s: Subject: %s", to, subject)
        return

    message = f"From: {config.from_address}\r\nTo: {to}\r\nSubject: {subject}\r\n\r\n{body}\r\n"
    try:
        server = smtplib.SMTP(config.host, config.port)
        try:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if server.has_extn("auth"):
                server.login(config.username, config.password)
            server.sendmail(config.from_address, [to], message.encode("utf-8"))
        finally:
            with contextlib.suppress(smtplib.SMTPException, OSError):
                server.quit()
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Error sending email to %s: %s", to, exc)
        raise
    logger.info("Email sent successfully to %s", to)