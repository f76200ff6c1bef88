# backend/tradesphere/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tradesphere.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tradesphere.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Optimistic-lock / deadlock retries for a whole unit of work
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    # Zero-padding for PO-00001 / SO-00001 / INV-00001 / PAY-00001
    DOCUMENT_NUMBER_PAD = int(os.environ.get("DOCUMENT_NUMBER_PAD", "5"))

    # What happens to a PAID invoice when a payment is voided:
    # REVERT re-derives the status from the remaining payments, HOLD keeps it.
    INVOICE_PAYMENT_REVERSAL_POLICY = os.environ.get("INVOICE_PAYMENT_REVERSAL_POLICY", "REVERT")
    INVOICE_ALLOW_OVERPAYMENT = _env_bool("INVOICE_ALLOW_OVERPAYMENT", False)

    # Optional dotted path "module:function" replacing the default role matrix
    PERMISSION_ORACLE = os.environ.get("PERMISSION_ORACLE")
