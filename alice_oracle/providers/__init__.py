"""Upstream data-provider adapters."""

from .dexscreener import DexscreenerListing, DexscreenerMarketData

__all__ = ["DexscreenerListing", "DexscreenerMarketData"]
