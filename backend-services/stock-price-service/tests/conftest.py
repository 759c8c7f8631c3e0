# backend-services/stock-price-service/tests/conftest.py
"""
Pytest configuration and shared fixtures for stock-price-service tests
Centralizes the Flask test client, env setup, and in-memory stand-ins for
the quote proxy and the likes collection.
"""

import os
import sys
import tempfile
import threading
from typing import Any, Dict, Optional
from unittest.mock import MagicMock, patch

import pytest

# Ensure local imports resolve when running from repo root
SERVICE_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, SERVICE_ROOT)
sys.path.insert(0, os.path.abspath(os.path.join(SERVICE_ROOT, '..')))

# Must be set before app.py is imported: logging is configured at import time.
os.environ.setdefault("LOG_DIRECTORY", tempfile.mkdtemp(prefix="stock_price_service_logs_"))
os.environ.setdefault("ENV", "test")


# -------------------------------------------------------------------
# Environment helpers
# -------------------------------------------------------------------

@pytest.fixture(autouse=True)
def ensure_test_env(monkeypatch):
    """Keeps every test pointed at the isolated test database."""
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("TEST_DB_NAME", "test_stock_analysis")
    yield

# -------------------------------------------------------------------
# Flask app and client fixtures
# -------------------------------------------------------------------

@pytest.fixture(scope="session")
def app():
    from app import app as flask_app
    flask_app.config["TESTING"] = True
    yield flask_app

@pytest.fixture
def client(app):
    return app.test_client()

# -------------------------------------------------------------------
# In-memory collaborators
# -------------------------------------------------------------------

class FakeLikesCollection:
    """
    Minimal stand-in for the stock_likes collection: supports the
    find_one / find_one_and_update($addToSet) calls made by mongo_client.
    """
    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.create_index = MagicMock()

    def find_one(self, filter, projection=None):
        doc = self.docs.get(filter["ticker"])
        return {"likes": list(doc["likes"])} if doc else None

    def find_one_and_update(self, filter, update, projection=None, upsert=False, return_document=None):
        ticker = filter["ticker"]
        with self._lock:
            doc = self.docs.get(ticker)
            if doc is None:
                if not upsert:
                    return None
                doc = self.docs[ticker] = {"ticker": ticker, "likes": []}
            for value in update.get("$addToSet", {}).values():
                if value not in doc["likes"]:
                    doc["likes"].append(value)
            return {"likes": list(doc["likes"])}


@pytest.fixture
def fake_likes_db():
    """A db handle whose every collection lookup returns the same FakeLikesCollection."""
    collection = FakeLikesCollection()
    db = MagicMock()
    db.__getitem__.return_value = collection
    db.collection = collection
    return db


class StaticQuotes:
    """Price source returning fixed prices; unknown tickers resolve as invalid symbols."""
    def __init__(self, prices: Dict[str, float], gate: Optional[threading.Event] = None):
        self.prices = prices
        self.gate = gate
        self.calls = []

    def __call__(self, ticker):
        from services.join_barrier import PriceResult, ErrorResult
        self.calls.append(ticker)
        if self.gate is not None:
            self.gate.wait(5)
        if ticker not in self.prices:
            return ErrorResult(f"Invalid stock symbol: {ticker}")
        return PriceResult(ticker=ticker, price=self.prices[ticker])


@pytest.fixture
def patch_collaborators(fake_likes_db):
    """
    Context-manager style:
      with patch_collaborators({"GOOG": 123.45}) as quotes:
          ...
    Patches the price source and the database handle used by the route.
    """
    class _Ctx:
        def __init__(self, prices, gate=None):
            self.quotes = StaticQuotes(prices, gate)
            self._patches = [
                patch('app.fetch_price', self.quotes),
                patch('app.get_db', return_value=fake_likes_db),
            ]
        def __enter__(self):
            for p in self._patches:
                p.start()
            return self.quotes
        def __exit__(self, exc_type, exc, tb):
            for p in reversed(self._patches):
                p.stop()
            return False
    return _Ctx
