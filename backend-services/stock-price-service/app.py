# backend-services/stock-price-service/app.py
# responsible for handling API routing and HTTP request/response logic
import os
import threading
import time
import logging
from logging.handlers import RotatingFileHandler
from concurrent.futures import ThreadPoolExecutor
from flask import Flask, jsonify, request
from flask_cors import CORS
from pymongo.errors import PyMongoError
from shared.contracts import ApiError
from database import mongo_client
from data_fetcher import fetch_price
from request_normalizer import (
    normalize_ticker_query,
    extract_client_identity,
    TickerValidationError,
    PreconditionViolation,
)
from services.fetch_dispatcher import dispatch_lookups
from services.join_barrier import JoinBarrier
from helper_functions import validate_stock_response

app = Flask(__name__)

# Configuration
PORT = int(os.getenv("PORT", 3007))
FETCH_MAX_WORKERS = int(os.getenv("FETCH_MAX_WORKERS", 8))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))
DB_RECONNECT_INTERVAL_SECONDS = float(os.getenv("DB_RECONNECT_INTERVAL_SECONDS", "30"))
TIMEOUT_MESSAGE = "Timed out waiting for stock data."

# Frontend pages are served from another origin, so the API is open to CORS.
CORS(app, resources={r"/api/*": {"origins": os.getenv("CORS_ORIGINS", "*")}})

# Content security policy: scripts and styles only from this server (plus Google Fonts CSS).
SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; script-src 'self'; style-src 'self' fonts.googleapis.com",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
}

# --- Thread-local storage for context ---
_thread_local = threading.local()

# --- Custom Logging Filter ---
class TickerContextFilter(logging.Filter):
    """
    This filter injects the ticker symbol(s) from thread-local storage into log records.
    """
    def filter(self, record):
        record.ticker = getattr(_thread_local, 'ticker', 'N/A')
        return True

# --- Structured Logging Setup ---
def setup_logging(app):
    """Configures comprehensive logging for the Flask app."""
    log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    ticker_filter = TickerContextFilter()
    log_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(ticker)s] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.addFilter(ticker_filter)
    console_handler.setFormatter(log_formatter)
    handlers.append(console_handler)

    log_directory = os.getenv("LOG_DIRECTORY", "/app/logs")
    file_logging_error = None
    try:
        os.makedirs(log_directory, exist_ok=True)
        # Up to 5 backup files of 5MB each.
        file_handler = RotatingFileHandler(
            os.path.join(log_directory, "stock_price_service.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=5
        )
        file_handler.setLevel(log_level)
        file_handler.addFilter(ticker_filter)
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)
    except OSError as e:
        file_logging_error = e

    # Any module using logging.getLogger(__name__) goes through the same handlers,
    # including the worker threads that run the lookups.
    loggers_to_configure = [
        app.logger,
        logging.getLogger('data_fetcher'),
        logging.getLogger('request_normalizer'),
        logging.getLogger('helper_functions'),
        logging.getLogger('database.mongo_client'),
        logging.getLogger('services.fetch_dispatcher'),
        logging.getLogger('services.join_barrier'),
    ]
    for logger in loggers_to_configure:
        # Clear any existing handlers to prevent duplicate log entries
        logger.handlers.clear()
        for h in handlers:
            logger.addHandler(h)
        logger.setLevel(log_level)
        logger.propagate = False

    if file_logging_error is not None:
        app.logger.warning(f"File logging disabled, cannot write to {log_directory}: {file_logging_error}")

setup_logging(app)
# --- End of Logging Setup ---

# Shared pool for the price/like lookups of every request
executor = ThreadPoolExecutor(max_workers=FETCH_MAX_WORKERS, thread_name_prefix="lookup")

# --- Database Connection ---
_db = None
_db_lock = threading.Lock()
_next_connect_attempt = 0.0

def get_db():
    """
    Returns the likes database handle, connecting on first use.
    Returns None if MongoDB cannot be reached. A failed attempt is not repeated
    for DB_RECONNECT_INTERVAL_SECONDS, and requests arriving while another one
    is connecting do not wait for it.
    """
    global _db, _next_connect_attempt
    if _db is not None:
        return _db
    if time.monotonic() < _next_connect_attempt:
        return None
    if not _db_lock.acquire(blocking=False):
        return _db
    try:
        if _db is None and time.monotonic() >= _next_connect_attempt:
            client = None
            try:
                client, db = mongo_client.connect()
                mongo_client.initialize_indexes(db)
                _db = db
                app.logger.info("Stock-price-service successfully connected to MongoDB.")
            except PyMongoError as e:
                if client is not None:
                    client.close()
                _next_connect_attempt = time.monotonic() + DB_RECONNECT_INTERVAL_SECONDS
                app.logger.critical(f"Stock-price-service could not connect to MongoDB: {e}")
    finally:
        _db_lock.release()
    return _db


def _with_ticker_context(func):
    """
    Runs a lookup with its ticker set in thread-local storage for logging.
    The ticker stays set after the lookup returns: the future's done-callback runs
    next on this worker thread and logs under it. The next lookup overwrites it.
    """
    def worker(ticker, *args):
        _thread_local.ticker = ticker
        return func(ticker, *args)
    return worker


@app.after_request
def set_security_headers(response):
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


@app.route('/api/stock-prices', methods=['GET'])
def stock_prices():
    """
    Price and like tally for one stock, or a relative-likes comparison of two.

    Query parameters:
        ticker: one symbol, or repeated twice to compare two stocks
        like:   'true' to record a like from this client (at most one per stock)
    """
    try:
        query = normalize_ticker_query(request.args.getlist('ticker'), request.args.get('like'))
    except TickerValidationError as e:
        app.logger.info(f"Rejected stock query: {e.message}")
        return jsonify(e.message), 400

    # Set ticker context for logging in this thread
    _thread_local.ticker = ",".join(query.tickers)
    try:
        try:
            client_identity = extract_client_identity(
                request.headers.get('X-Forwarded-For'), request.remote_addr
            )
        except PreconditionViolation as e:
            app.logger.error(f"Cannot identify client: {e}")
            return jsonify(ApiError(error="Unable to identify the requesting client.").model_dump(exclude_none=True)), 400

        db = get_db()
        def like_store(ticker, client, should_increment):
            return mongo_client.record_and_count(db, ticker, client, should_increment)

        barrier = JoinBarrier(query.tickers)
        futures = dispatch_lookups(
            query.tickers,
            query.like,
            client_identity,
            barrier.ingest,
            executor,
            _with_ticker_context(fetch_price),
            _with_ticker_context(like_store),
        )
        barrier.attach(futures)

        outcome = barrier.wait(REQUEST_TIMEOUT_SECONDS)
        if outcome is None:
            if barrier.expire(TIMEOUT_MESSAGE):
                app.logger.error(f"Lookups did not finish within {REQUEST_TIMEOUT_SECONDS}s")
                return jsonify(TIMEOUT_MESSAGE), 504
            outcome = barrier.wait()

        if outcome.is_error:
            return jsonify(outcome.error), 502

        validated = validate_stock_response(outcome.payload)
        if validated is None:
            return jsonify({"error": "An internal error occurred while generating the response."}), 500
        return jsonify(validated), 200

    finally:
        # Clean up the ticker context to prevent bleeding into other requests
        if hasattr(_thread_local, 'ticker'):
            del _thread_local.ticker


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({'status': 'healthy'}), 200


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=PORT)
