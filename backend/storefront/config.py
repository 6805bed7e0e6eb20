# backend/storefront/config.py
from __future__ import annotations
import json
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_json(name: str, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    return json.loads(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Promotion lifecycle job (flips is_active from starts_at/expires_at)
    PROMOTION_SCHEDULER_ENABLED = _env_bool("PROMOTION_SCHEDULER_ENABLED", False)
    PROMOTION_SCHEDULER_INTERVAL_SECONDS = int(os.environ.get("PROMOTION_SCHEDULER_INTERVAL_SECONDS", "60"))

    # High-value discount schedules: ordered [{"min_subtotal_cents", "percent_bps" | "flat_cents"}]
    HIGH_VALUE_DISCOUNT_TIERS = _env_json("HIGH_VALUE_DISCOUNT_TIERS", [])
    HIGH_VALUE_DISCOUNT_TIERS_B2B = _env_json(
        "HIGH_VALUE_DISCOUNT_TIERS_B2B",
        [{"min_subtotal_cents": 500_000, "percent_bps": 1000}],  # 10% from $5,000
    )

    # Guest cart merge: first attempt + one retry on concurrency conflicts
    MERGE_RETRY_ATTEMPTS = int(os.environ.get("MERGE_RETRY_ATTEMPTS", "2"))

    # Shared secret for operator endpoints (X-Admin-Token); unset disables them
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")
