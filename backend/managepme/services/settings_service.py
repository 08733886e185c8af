from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AppSetting
from .concurrency import run_with_retry
from .errors import ValidationError


CREDIT_OVERDUE_DAYS_KEY = "credit_overdue_days_threshold"
DEFAULT_CURRENCY_KEY = "default_currency_code"

KNOWN_KEYS = {CREDIT_OVERDUE_DAYS_KEY, DEFAULT_CURRENCY_KEY}


def _defaults() -> dict[str, str]:
    return {
        CREDIT_OVERDUE_DAYS_KEY: str(current_app.config["CREDIT_OVERDUE_DAYS_DEFAULT"]),
        DEFAULT_CURRENCY_KEY: current_app.config["BASE_CURRENCY"],
    }


def get_setting(key: str, default: str | None = None) -> str | None:
    row = db.session.query(AppSetting).filter_by(key=key).first()
    if row is not None and row.value is not None:
        return row.value
    if default is not None:
        return default
    return _defaults().get(key)


def get_int_setting(key: str, default: int | None = None) -> int | None:
    """Integer setting; an unparsable stored value falls back to the default."""
    raw = get_setting(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        current_app.logger.warning("Setting %s has non-integer value %r", key, raw)
        if default is not None:
            return default
        return int(_defaults()[key])


def get_all_settings() -> dict[str, str | None]:
    values = dict(_defaults())
    for row in db.session.query(AppSetting).order_by(AppSetting.key.asc()).all():
        values[row.key] = row.value
    return values


def _validate(key: str, value) -> str:
    if key not in KNOWN_KEYS:
        raise ValidationError(f"Unknown setting: {key}")
    if value is None:
        raise ValidationError(f"{key} cannot be null")
    text = str(value).strip()
    if key == CREDIT_OVERDUE_DAYS_KEY:
        if not text.isdigit():
            raise ValidationError(f"{key} must be a non-negative integer")
    if key == DEFAULT_CURRENCY_KEY:
        text = text.upper()
        if not text:
            raise ValidationError(f"{key} cannot be blank")
    return text


def set_setting(key: str, value, user_id: int | None = None, *, commit: bool = True) -> AppSetting:
    """Upsert a setting. With commit=False the caller owns the unit of work."""
    text = _validate(key, value)

    def _apply() -> AppSetting:
        row = db.session.query(AppSetting).filter_by(key=key).first()
        if row is None:
            row = AppSetting(key=key)
            db.session.add(row)
        row.value = text
        row.updated_by_user_id = user_id
        db.session.flush()
        return row

    if not commit:
        return _apply()

    def _op() -> AppSetting:
        row = _apply()
        db.session.commit()
        return row

    return run_with_retry(_op)
