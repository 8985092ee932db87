"""
Power Price Alerts - hourly electricity spot prices with email alerts

Tracks hourly spot prices for the Norwegian bidding zones NO1-NO5, stores them
and notifies subscribers when prices cross their threshold.

Main components:
- Price fetcher and analytics over the stored hourly series
- Alert evaluator with once-per-day de-duplication
- SQLite storage with schema versioning
- Background job scheduler
- Domain exceptions for clear error handling
"""

__version__ = "1.0.0"
