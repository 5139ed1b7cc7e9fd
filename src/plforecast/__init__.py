"""Goal-driven P&L forecasting engine."""

__version__ = "0.4.0"
