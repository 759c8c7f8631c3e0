# backend-services/stock-price-service/services/join_barrier.py
"""
Per-request accumulator that joins the price and like lookups of one query.

The dispatcher fans out one price lookup and one like lookup per ticker (2 or 4
operations). Each operation delivers exactly one completion to `JoinBarrier.ingest`,
in any order and from any worker thread. The barrier:
- records successful values per ticker,
- resolves immediately on the first ErrorResult,
- resolves with the composed payload once every price and like count is known,
- discards everything that arrives after it resolved.

Resolution happens at most once; the optional `on_emit` hook fires exactly once.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from helper_functions import compute_relative_likes, compose_stock_response

logger = logging.getLogger(__name__)

ACCUMULATING = "ACCUMULATING"
RESOLVED = "RESOLVED"


# --- Completion variants ---
@dataclass(frozen=True)
class PriceResult:
    ticker: str
    price: float


@dataclass(frozen=True)
class LikeResult:
    ticker: str
    likes: int


@dataclass(frozen=True)
class ErrorResult:
    message: str


Completion = Union[PriceResult, LikeResult, ErrorResult]


@dataclass
class PendingResultSet:
    """Values collected so far for one request; keys are always members of the ticker set."""
    prices: Dict[str, float] = field(default_factory=dict)
    likes: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class BarrierOutcome:
    """What the barrier resolved with: a response payload or an error message."""
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class JoinBarrier:
    def __init__(self, tickers: Iterable[str], on_emit: Optional[Callable[[BarrierOutcome], None]] = None):
        self.tickers: List[str] = list(tickers)
        if len(self.tickers) not in (1, 2):
            raise ValueError(f"A lookup joins one or two tickers, got {len(self.tickers)}.")
        self._pending = PendingResultSet()
        self._rel_likes: Optional[Dict[str, int]] = None
        self._state = ACCUMULATING
        self._outcome: Optional[BarrierOutcome] = None
        self._on_emit = on_emit
        self._futures: list = []
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def state(self) -> str:
        return self._state

    @property
    def outcome(self) -> Optional[BarrierOutcome]:
        return self._outcome

    def attach(self, futures: Iterable) -> None:
        """Keeps the in-flight operations so they can be cancelled once the barrier resolves."""
        with self._lock:
            self._futures.extend(futures)
            resolved = self._state == RESOLVED
        if resolved:
            self._cancel_outstanding()

    def ingest(self, completion: Completion) -> bool:
        """
        Applies one completion atomically.

        Returns:
            bool: True if this completion resolved the barrier, False otherwise
            (still accumulating, or discarded because the barrier had already resolved).
        """
        with self._lock:
            if self._state == RESOLVED:
                logger.debug(f"Discarding late completion {completion!r}")
                return False
            outcome = self._apply(completion)
            if outcome is None:
                return False
            self._state = RESOLVED
            self._outcome = outcome

        self._cancel_outstanding()
        if self._on_emit is not None:
            try:
                self._on_emit(outcome)
            finally:
                self._done.set()
        else:
            self._done.set()
        return True

    def expire(self, message: str) -> bool:
        """Resolves the barrier with `message` unless a completion resolved it first."""
        return self.ingest(ErrorResult(message))

    def wait(self, timeout: Optional[float] = None) -> Optional[BarrierOutcome]:
        """Blocks until the barrier resolves; returns None if `timeout` elapses first."""
        if not self._done.wait(timeout):
            return None
        return self._outcome

    # --- Internal transitions (called with the lock held) ---

    def _apply(self, completion: Completion) -> Optional[BarrierOutcome]:
        if isinstance(completion, ErrorResult):
            logger.warning(f"Lookup failed for {self.tickers}: {completion.message}")
            return BarrierOutcome(error=completion.message)

        if isinstance(completion, PriceResult):
            slot = self._pending.prices
            value = completion.price
        elif isinstance(completion, LikeResult):
            slot = self._pending.likes
            value = completion.likes
        else:
            raise TypeError(f"Unsupported completion type: {type(completion).__name__}")

        if completion.ticker not in self.tickers:
            logger.warning(f"Ignoring completion for unrequested ticker {completion.ticker}")
            return None
        if completion.ticker in slot:
            logger.debug(f"Ignoring duplicate completion {completion!r}")
            return None
        slot[completion.ticker] = value

        return self._check_ready()

    def _check_ready(self) -> Optional[BarrierOutcome]:
        prices, likes = self._pending.prices, self._pending.likes
        expected = len(self.tickers)

        if expected == 2 and self._rel_likes is None and len(likes) == 2:
            self._rel_likes = compute_relative_likes(self.tickers, likes)

        if len(prices) < expected or len(likes) < expected:
            return None

        payload = compose_stock_response(self.tickers, prices, likes, self._rel_likes)
        logger.debug(f"Join complete for {self.tickers}")
        return BarrierOutcome(payload=payload)

    def _cancel_outstanding(self) -> None:
        with self._lock:
            futures, self._futures = self._futures, []
        cancelled = sum(1 for f in futures if f.cancel())
        if cancelled:
            logger.debug(f"Cancelled {cancelled} queued lookup(s) for {self.tickers}")
