"""Prediction-market data access (Polymarket Gamma + Data APIs)."""

from prescience.markets.models import Market, Trade
from prescience.markets.polymarket import PolymarketClient

__all__ = ["Market", "PolymarketClient", "Trade"]
