# backend-services/stock-price-service/services/fetch_dispatcher.py
"""
Issues the price and like lookups of one query on a shared thread pool.

For every ticker one price lookup and one like lookup are submitted; each
delivers its completion to the sink (the request's JoinBarrier) as soon as it
finishes. The dispatcher never waits on the lookups.
"""
import logging
from concurrent.futures import Executor, Future
from typing import Callable, List, Sequence
from services.join_barrier import Completion, ErrorResult

logger = logging.getLogger(__name__)

PriceSource = Callable[[str], Completion]
LikeStore = Callable[[str, str, bool], Completion]


def _deliver_to(sink: Callable[[Completion], object], ticker: str, kind: str):
    """Builds the done-callback that forwards a finished lookup into the sink."""
    def _on_done(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"{kind} lookup for {ticker} raised: {exc}")
            sink(ErrorResult(f"Could not retrieve {kind} data for {ticker}"))
            return
        sink(future.result())
    return _on_done


def dispatch_lookups(
    tickers: Sequence[str],
    like_intent: bool,
    client_identity: str,
    sink: Callable[[Completion], object],
    executor: Executor,
    price_source: PriceSource,
    like_store: LikeStore,
) -> List[Future]:
    """
    Submits 2 x len(tickers) independent lookups and returns their futures immediately.

    Args:
        tickers: Canonical ticker set (one or two symbols).
        like_intent: Whether each like lookup also records a like for the client.
        client_identity: Opaque client key handed to the like store.
        sink: Receives each completion (PriceResult, LikeResult or ErrorResult).
        executor: Pool the lookups run on.
        price_source: fetch_price(ticker) -> completion.
        like_store: record_and_count(ticker, client_identity, should_increment) -> completion.
    """
    futures: List[Future] = []
    for ticker in tickers:
        logger.debug(f"Dispatching price and like lookups for {ticker} (like={like_intent})")

        price_future = executor.submit(price_source, ticker)
        price_future.add_done_callback(_deliver_to(sink, ticker, "price"))
        futures.append(price_future)

        like_future = executor.submit(like_store, ticker, client_identity, like_intent)
        like_future.add_done_callback(_deliver_to(sink, ticker, "like"))
        futures.append(like_future)
    return futures
