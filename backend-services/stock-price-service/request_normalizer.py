# backend-services/stock-price-service/request_normalizer.py
"""
Turns the raw query of GET /api/stock-prices into the canonical inputs of a lookup:
an ordered ticker set, the like intent and the client identity.

Pure functions only; nothing here performs I/O.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

MISSING_SINGLE_MSG = "Please include a stock ticker before submitting the form."
MISSING_BOTH_MSG = "Please include two ticker symbols before submitting the form."
MISSING_FIRST_MSG = "Please include a first stock ticker symbol before submitting the form."
MISSING_SECOND_MSG = "Please include a second stock ticker symbol before submitting the form."

# Symbols outside this pattern are still forwarded; the price source rejects them.
_TICKER_PATTERN = re.compile(r"^[A-Z0-9.\-^]{1,10}$")
_TRUTHY_FLAGS = {"true", "1", "yes", "on"}
_FORWARDED_SEPARATOR = ","


class TickerValidationError(ValueError):
    """Raised when the submitted ticker field(s) are missing or empty."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionViolation(RuntimeError):
    """Raised when the transport layer did not supply a usable client address."""


@dataclass(frozen=True)
class TickerQuery:
    tickers: List[str]
    like: bool


def is_like_requested(raw_like) -> bool:
    """A like is recorded only when the flag is explicitly truthy (e.g. like=true)."""
    if raw_like is None:
        return False
    if isinstance(raw_like, bool):
        return raw_like
    return str(raw_like).strip().lower() in _TRUTHY_FLAGS


def _as_list(raw_tickers: Union[None, str, Sequence[str]]) -> List[str]:
    if raw_tickers is None:
        return []
    if isinstance(raw_tickers, str):
        return [raw_tickers]
    return [t if t is not None else "" for t in raw_tickers]


def normalize_ticker_query(raw_tickers: Union[None, str, Sequence[str]], raw_like=None) -> TickerQuery:
    """
    Validates the ticker field(s) and returns a TickerQuery.

    A single value (or a one-element list) is the single-stock form; two values
    are the comparison form. Symbols are stripped and uppercased, and order is kept.

    Raises:
        TickerValidationError: with one of the four form messages.
    """
    values = [v.strip() for v in _as_list(raw_tickers)]

    if len(values) <= 1:
        if not values or not values[0]:
            raise TickerValidationError(MISSING_SINGLE_MSG)
        tickers = [values[0].upper()]
    else:
        if len(values) > 2:
            logger.info(f"Received {len(values)} ticker values; only the first two are compared.")
            values = values[:2]
        first, second = values
        if not first and not second:
            raise TickerValidationError(MISSING_BOTH_MSG)
        if not first:
            raise TickerValidationError(MISSING_FIRST_MSG)
        if not second:
            raise TickerValidationError(MISSING_SECOND_MSG)
        tickers = [first.upper(), second.upper()]
        # Comparing a stock with itself collapses to the single-stock lookup.
        if tickers[0] == tickers[1]:
            tickers = tickers[:1]

    for ticker in tickers:
        if not _TICKER_PATTERN.match(ticker):
            logger.info(f"Ticker '{ticker}' does not look like a listed symbol; forwarding anyway.")

    return TickerQuery(tickers=tickers, like=is_like_requested(raw_like))


def extract_client_identity(forwarded_for: Optional[str], remote_addr: Optional[str] = None) -> str:
    """
    Returns the originating client address: the first entry of the
    X-Forwarded-For chain, or the socket peer address for direct requests.

    Raises:
        PreconditionViolation: if neither source yields an address.
    """
    if forwarded_for:
        client = forwarded_for.split(_FORWARDED_SEPARATOR, 1)[0].strip()
        if client:
            return client
        raise PreconditionViolation("Malformed X-Forwarded-For header: first address is empty.")
    if remote_addr:
        return remote_addr
    raise PreconditionViolation("Client address is unavailable: no X-Forwarded-For header or peer address.")
