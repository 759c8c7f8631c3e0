# backend-services/stock-price-service/data_fetcher.py
import os
import logging
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from services.join_barrier import PriceResult, ErrorResult

logger = logging.getLogger(__name__)

# Configuration
PRICE_SERVICE_URL = os.getenv("PRICE_SERVICE_URL", "https://stock-price-checker-proxy.freecodecamp.rocks/v1/stock")
PRICE_HTTP_TIMEOUT = float(os.getenv("PRICE_HTTP_TIMEOUT_SECONDS", "10"))

# --- Create a shared requests Session for connection pooling and retries ---
session = requests.Session()

# Define the retry strategy
retry_strategy = Retry(
    total=3,  # Total number of retries
    backoff_factor=0.5,  # Wait 0.5s, 1s, 2s between retries
    status_forcelist=[429, 500, 502, 503, 504],  # Retry on these status codes
    allowed_methods=["HEAD", "GET", "OPTIONS"]
)

# Mount the retry strategy to the session
adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=20)
session.mount("http://", adapter)
session.mount("https://", adapter)
# --- End of shared session configuration ---

_UNKNOWN_SYMBOL_BODIES = {"unknown symbol", "invalid symbol"}


def _invalid_symbol(ticker):
    return ErrorResult(f"Invalid stock symbol: {ticker}")


def fetch_price(ticker):
    """
    Fetch the latest price for `ticker` from the quote proxy.
    Never raises; failures come back as an ErrorResult carrying the user-facing message.
    """
    url = f"{PRICE_SERVICE_URL}/{ticker}/quote"
    try:
        response = session.get(url, timeout=PRICE_HTTP_TIMEOUT)
        if response.status_code == 404:
            logger.warning(f"Quote proxy returned 404 for {ticker}")
            return _invalid_symbol(ticker)
        response.raise_for_status()
        quote = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f"Error fetching price data for {ticker} after retries: {e}")
        return ErrorResult(f"Could not fetch price data for {ticker}")
    except ValueError as e:
        # Body was not JSON
        logger.error(f"Malformed quote payload for {ticker}: {e}")
        return ErrorResult(f"Could not fetch price data for {ticker}")

    if isinstance(quote, str):
        if quote.strip().lower() in _UNKNOWN_SYMBOL_BODIES:
            return _invalid_symbol(ticker)
        logger.error(f"Unexpected quote payload for {ticker}: {quote!r}")
        return ErrorResult(f"Could not fetch price data for {ticker}")

    price = quote.get("latestPrice") if isinstance(quote, dict) else None
    if price is None:
        logger.warning(f"Quote for {ticker} has no latestPrice; treating symbol as invalid.")
        return _invalid_symbol(ticker)
    try:
        return PriceResult(ticker=ticker, price=float(price))
    except (TypeError, ValueError):
        logger.error(f"Non-numeric latestPrice for {ticker}: {price!r}")
        return ErrorResult(f"Could not fetch price data for {ticker}")
