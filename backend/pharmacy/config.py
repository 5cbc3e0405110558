# backend/pharmacy/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmacy.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmacy.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock-take progress mirror. None keeps the mirror in process memory.
    LOCAL_CACHE_PATH = os.environ.get("LOCAL_CACHE_PATH")

    # Debounce delay for mirroring an open stock-take to the local cache
    STOCK_TAKE_AUTOSAVE_SECONDS = float(os.environ.get("STOCK_TAKE_AUTOSAVE_SECONDS", "20"))

    # Transient database failures are retried before surfacing a StoreError
    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "3"))
    STORE_RETRY_BACKOFF_SECONDS = float(os.environ.get("STORE_RETRY_BACKOFF_SECONDS", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
