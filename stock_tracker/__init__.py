"""
Stock portfolio and watchlist tracker.

Records buy/sell transactions, fetches quotes from Financial Modeling Prep
and derives portfolio valuation with weighted-average cost accounting.
"""

__version__ = "1.0.0"
