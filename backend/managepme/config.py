# backend/managepme/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///managepme.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Every exchange rate is expressed against this currency (1 unit = rate base units)
    BASE_CURRENCY = os.environ.get("BASE_CURRENCY", "TND").upper()

    # Invoices without an explicit due date fall due after this many days
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))

    # Fallback when the credit_overdue_days_threshold setting is unset
    CREDIT_OVERDUE_DAYS_DEFAULT = int(os.environ.get("CREDIT_OVERDUE_DAYS_DEFAULT", "30"))

    # Unit-of-work retries on lock/version conflicts (exponential backoff, seconds)
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))
