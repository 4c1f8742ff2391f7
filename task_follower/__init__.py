"""task-follower - keeps spreadsheet task trackers in sync and nudges the people behind them."""

__version__ = "0.1.0"
