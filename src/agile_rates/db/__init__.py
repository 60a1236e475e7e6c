"""SQLite persistence for the rate cache."""

from agile_rates.db.engine import close_db, init_db

__all__ = ["close_db", "init_db"]
