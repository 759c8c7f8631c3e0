# backend-services/shared/contracts.py
"""
This module defines the Pydantic models that serve as the formal data contracts
for the responses of the stock price service.

These models ensure data consistency, provide automatic validation, and act as
living documentation for the payloads exchanged with the frontend.
"""

from typing import List, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Contract 1: Single stock lookup ---
class SingleStockData(BaseModel):
    """Price and like tally for a single ticker."""
    model_config = ConfigDict(extra='forbid')
    stock: str = Field(..., min_length=1)
    price: float
    likes: int = Field(..., ge=0)


# --- Contract 2: Two-stock comparison ---
class PairStockDataItem(BaseModel):
    """One side of a two-ticker comparison, carrying likes relative to the other side."""
    model_config = ConfigDict(extra='forbid')
    stock: str = Field(..., min_length=1)
    price: float
    rel_likes: int


# --- Contract 3: Response envelope ---
class StockPriceResponse(BaseModel):
    """
    Envelope returned by GET /api/stock-prices.
    stockData is an object for one ticker and an ordered pair for two.
    """
    stockData: Union[SingleStockData, List[PairStockDataItem]]

    @model_validator(mode='after')
    def check_pair_shape(self):
        if isinstance(self.stockData, list):
            if len(self.stockData) != 2:
                raise ValueError("A comparison must contain exactly two stocks.")
            if self.stockData[0].rel_likes + self.stockData[1].rel_likes != 0:
                raise ValueError("Relative likes of a comparison must sum to zero.")
        return self


# --- Contract 4: ApiError ---
class ApiError(BaseModel):
    """Structured error body for failures that are not user-facing validation messages."""
    error: str
