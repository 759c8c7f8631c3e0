# backend-services/stock-price-service/helper_functions.py
import logging
from typing import Any, Dict, List, Optional, Sequence
from pydantic import ValidationError
from shared.contracts import StockPriceResponse

# Use logger
logger = logging.getLogger(__name__)


def compute_relative_likes(tickers: Sequence[str], likes: Dict[str, int]) -> Dict[str, int]:
    """
    Likes of each stock minus the likes of the other stock in a comparison.

    Args:
        tickers (Sequence[str]): The two compared tickers.
        likes (dict): Like count per ticker; must hold both tickers.

    Returns:
        dict: {first: likes[first] - likes[second], second: likes[second] - likes[first]}.
        The two values always sum to zero.
    """
    if len(tickers) != 2:
        raise ValueError("Relative likes are only defined for a two-stock comparison.")
    first, second = tickers
    diff = likes[first] - likes[second]
    return {first: diff, second: -diff}


def compose_stock_response(
    tickers: Sequence[str],
    prices: Dict[str, float],
    likes: Dict[str, int],
    rel_likes: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
    """
    Builds the stockData envelope.

    One ticker yields {stock, price, likes}; two tickers yield a list of
    {stock, price, rel_likes} in submission order. The order always comes from
    `tickers`, never from the dicts.
    """
    if len(tickers) == 1:
        ticker = tickers[0]
        return {"stockData": {"stock": ticker, "price": prices[ticker], "likes": likes[ticker]}}

    if rel_likes is None:
        rel_likes = compute_relative_likes(tickers, likes)
    stock_data: List[Dict[str, Any]] = [
        {"stock": ticker, "price": prices[ticker], "rel_likes": rel_likes[ticker]}
        for ticker in tickers
    ]
    return {"stockData": stock_data}


def validate_stock_response(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Validates a composed payload against the StockPriceResponse contract.

    Returns:
        dict: The validated payload ready for jsonify, or None if it violates the contract.
    """
    try:
        validated = StockPriceResponse.model_validate(payload)
    except ValidationError as e:
        logger.critical(f"Output contract violation for StockPriceResponse: {e}")
        return None
    return validated.model_dump()
