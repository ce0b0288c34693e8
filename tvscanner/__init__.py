"""
PURPOSE: TV Scanner: TradingView alert consolidation and pivot/CPR dashboard backend.
"""

__version__ = "1.0.0"
