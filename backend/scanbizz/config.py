# backend/scanbizz/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Device database: accounts and local key-value storage
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///scanbizz.sqlite3",
    )
    # Remote keyed store documents (only used by the "sql" backend)
    SQLALCHEMY_BINDS = {
        "remote": os.environ.get("REMOTE_DATABASE_URL", "sqlite:///scanbizz_remote.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" persists the remote tree; "memory" keeps it in-process
    REMOTE_STORE_BACKEND = os.environ.get("REMOTE_STORE_BACKEND", "sql")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))
    TOP_PRODUCTS_LIMIT = int(os.environ.get("TOP_PRODUCTS_LIMIT", "5"))
    PIN_LENGTH = 4
    DEFAULT_STORE_NAME = os.environ.get("DEFAULT_STORE_NAME", "My Store")

    # Pending actions older than this are reported as due for sync
    SYNC_INTERVAL_SECONDS = int(os.environ.get("SYNC_INTERVAL_SECONDS", "3600"))

    # Re-enter the remembered identity (at the PIN step) when the app starts
    RESTORE_SESSION_ON_START = True

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
