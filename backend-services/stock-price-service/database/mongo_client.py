# backend-services/stock-price-service/database/mongo_client.py
"""
MongoDB client and like-tally operations for stock-price-service.

Each ticker has one document in the `stock_likes` collection:
    {"ticker": "GOOG", "likes": [<client digest>, ...]}
The like count is the size of the `likes` set. Recording a like uses $addToSet,
so a client can contribute at most one like per ticker no matter how often it asks.
Client addresses are never stored; only a salted SHA-256 digest is.
"""

import os, sys
import hashlib
import logging
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from typing import Any, Tuple
from services.join_barrier import LikeResult, ErrorResult

logger = logging.getLogger(__name__)

_LIKES_COLL = "stock_likes"
LIKE_HASH_SALT = os.getenv("LIKE_HASH_SALT", "")


def connect() -> Tuple[MongoClient, Any]:
    """
    Establishes connection to MongoDB and returns client and database handle

    Returns:
        Tuple[MongoClient, Database]: MongoDB client and database object

    Raises:
        ConnectionFailure: If unable to connect to MongoDB
    """
    MONGO_URI = os.getenv('MONGO_URI', 'mongodb://mongodb:27017/')
    if os.getenv("ENV") == "test":
        db_name = os.getenv("TEST_DB_NAME", "test_stock_analysis")
    else:
        db_name = os.getenv("STOCK_LIKES_DB", "stock_analysis")
        # Safety: Prevent test code from accidentally hitting prod
        if "pytest" in sys.modules and "test" not in db_name.lower():
            raise RuntimeError(
                f"Refusing to use prod DB '{db_name}' during test run. "
                f"Set ENV=test or TEST_DB_NAME."
            )
    client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=5000)
    try:
        # The ping command is cheap and does not require auth.
        client.admin.command('ping')
    except PyMongoError:
        # Release the monitor threads and pools of the unusable client.
        client.close()
        raise
    db = client[db_name]
    return client, db


def initialize_indexes(db: Any) -> None:
    """
    Creates the unique index on stock_likes.ticker so each ticker has exactly one tally document.
    """
    db[_LIKES_COLL].create_index(
        [("ticker", 1)],
        name="stock_likes_ticker_idx",
        unique=True,
        background=True,
    )


def anonymize_client_identity(client_identity: str) -> str:
    """Salted SHA-256 digest of the client address; the raw address is never persisted."""
    return hashlib.sha256(f"{LIKE_HASH_SALT}{client_identity}".encode("utf-8")).hexdigest()


def _add_like(db: Any, ticker: str, digest: str) -> Any:
    update = {"$addToSet": {"likes": digest}}
    try:
        return db[_LIKES_COLL].find_one_and_update(
            {"ticker": ticker}, update,
            projection={"likes": 1, "_id": 0},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # A concurrent upsert created the document first; the retry updates it.
        return db[_LIKES_COLL].find_one_and_update(
            {"ticker": ticker}, update,
            projection={"likes": 1, "_id": 0},
            return_document=ReturnDocument.AFTER,
        )


def record_and_count(db: Any, ticker: str, client_identity: str, should_increment: bool):
    """
    Optionally records a like for (ticker, client) and returns the ticker's like count.

    Args:
        db: MongoDB database handle, or None if the database is unavailable
        ticker: Uppercased stock ticker symbol
        client_identity: Opaque client key (the originating address)
        should_increment: Record a like before counting

    Returns:
        LikeResult on success, ErrorResult if the database cannot be reached or fails.
    """
    if db is None:
        logger.error(f"Like lookup for {ticker} skipped: database is unavailable.")
        return ErrorResult("Like database is unavailable.")
    try:
        if should_increment:
            doc = _add_like(db, ticker, anonymize_client_identity(client_identity))
        else:
            doc = db[_LIKES_COLL].find_one({"ticker": ticker}, {"likes": 1, "_id": 0})
    except PyMongoError as e:
        logger.error(f"Database error while counting likes for {ticker}: {e}")
        return ErrorResult(f"Could not retrieve likes for {ticker}")

    likes = len((doc or {}).get("likes") or [])
    return LikeResult(ticker=ticker, likes=likes)


def clear_likes(db: Any) -> int:
    """Removes every like tally. Used to reset the collection between test rounds."""
    result = db[_LIKES_COLL].delete_many({})
    return result.deleted_count
