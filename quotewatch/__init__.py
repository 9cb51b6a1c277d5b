"""
quotewatch - watchlist quote polling and price alerts.
"""

__version__ = "0.1.0"
