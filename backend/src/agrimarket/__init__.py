"""AgriMarket: produce exchange backend for farmers and buyers."""

__version__ = "1.0.0"
