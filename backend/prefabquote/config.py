# backend/prefabquote/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///prefabquote.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" (Flask-SQLAlchemy models) or "memory" (in-process document store)
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "sql")

    # Irish standard VAT rate; amounts are always stored ex VAT alongside it
    VAT_RATE = os.environ.get("VAT_RATE", "0.23")
    CURRENCY = os.environ.get("CURRENCY", "EUR")

    QUOTE_RETENTION_DAYS = int(os.environ.get("QUOTE_RETENTION_DAYS", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Configurator dev servers allowed to call the API from the browser
    CORS_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    }
