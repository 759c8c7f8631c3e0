# backend-services/stock-price-service/tests/unit/test_helper_functions.py
import itertools
import unittest

from helper_functions import compute_relative_likes, compose_stock_response, validate_stock_response


class TestComputeRelativeLikes(unittest.TestCase):

    def test_example_values(self):
        self.assertEqual(compute_relative_likes(["GOOG", "MSFT"], {"GOOG": 3, "MSFT": 1}), {"GOOG": 2, "MSFT": -2})

    def test_values_always_sum_to_zero(self):
        for a, b in itertools.product(range(0, 6), repeat=2):
            rel = compute_relative_likes(["A", "B"], {"A": a, "B": b})
            self.assertEqual(rel["A"] + rel["B"], 0)
            self.assertEqual(rel["A"], a - b)

    def test_requires_exactly_two_tickers(self):
        with self.assertRaises(ValueError):
            compute_relative_likes(["GOOG"], {"GOOG": 1})


class TestComposeStockResponse(unittest.TestCase):

    def test_single_shape(self):
        payload = compose_stock_response(["GOOG"], {"GOOG": 123.45}, {"GOOG": 4})
        self.assertEqual(payload, {"stockData": {"stock": "GOOG", "price": 123.45, "likes": 4}})

    def test_pair_follows_ticker_order_not_dict_order(self):
        prices = {"GOOG": 123.45, "MSFT": 234.56}
        likes = {"GOOG": 3, "MSFT": 1}
        payload = compose_stock_response(["MSFT", "GOOG"], prices, likes, {"GOOG": 2, "MSFT": -2})
        self.assertEqual(payload["stockData"], [
            {"stock": "MSFT", "price": 234.56, "rel_likes": -2},
            {"stock": "GOOG", "price": 123.45, "rel_likes": 2},
        ])

    def test_pair_computes_relative_likes_when_not_given(self):
        payload = compose_stock_response(["GOOG", "MSFT"], {"GOOG": 1.0, "MSFT": 2.0}, {"GOOG": 0, "MSFT": 5})
        self.assertEqual([s["rel_likes"] for s in payload["stockData"]], [-5, 5])


class TestValidateStockResponse(unittest.TestCase):

    def test_valid_single_passes_through(self):
        payload = {"stockData": {"stock": "GOOG", "price": 123.45, "likes": 1}}
        self.assertEqual(validate_stock_response(payload), payload)

    def test_valid_pair_passes_through(self):
        payload = {"stockData": [
            {"stock": "GOOG", "price": 123.45, "rel_likes": 2},
            {"stock": "MSFT", "price": 234.56, "rel_likes": -2},
        ]}
        self.assertEqual(validate_stock_response(payload), payload)

    def test_unbalanced_pair_is_rejected(self):
        payload = {"stockData": [
            {"stock": "GOOG", "price": 123.45, "rel_likes": 2},
            {"stock": "MSFT", "price": 234.56, "rel_likes": 2},
        ]}
        self.assertIsNone(validate_stock_response(payload))

    def test_missing_price_is_rejected(self):
        self.assertIsNone(validate_stock_response({"stockData": {"stock": "GOOG", "likes": 1}}))


if __name__ == '__main__':
    unittest.main()
