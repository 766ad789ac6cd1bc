"""Strategy Lab: backtesting engine for PineScript-style strategy scripts."""

__version__ = "0.1.0"
