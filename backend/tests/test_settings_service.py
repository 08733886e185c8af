import pytest

from managepme.models import AppSetting
from managepme.extensions import db
from managepme.services import settings_service
from managepme.services.errors import ValidationError


def test_defaults_come_from_config(db_session):
    settings = settings_service.get_all_settings()
    assert settings[settings_service.CREDIT_OVERDUE_DAYS_KEY] == "30"
    assert settings[settings_service.DEFAULT_CURRENCY_KEY] == "TND"


def test_set_setting_upserts(db_session):
    settings_service.set_setting(settings_service.CREDIT_OVERDUE_DAYS_KEY, 45, user_id=3)
    settings_service.set_setting(settings_service.CREDIT_OVERDUE_DAYS_KEY, "60", user_id=4)

    row = db.session.query(AppSetting).one()
    assert row.value == "60"
    assert row.updated_by_user_id == 4
    assert settings_service.get_int_setting(settings_service.CREDIT_OVERDUE_DAYS_KEY) == 60


@pytest.mark.parametrize("key,value", [
    ("unknown_key", "1"),
    (settings_service.CREDIT_OVERDUE_DAYS_KEY, "-1"),
    (settings_service.CREDIT_OVERDUE_DAYS_KEY, "ten"),
    (settings_service.CREDIT_OVERDUE_DAYS_KEY, None),
    (settings_service.DEFAULT_CURRENCY_KEY, "  "),
])
def test_invalid_values(db_session, key, value):
    with pytest.raises(ValidationError):
        settings_service.set_setting(key, value)


def test_unparsable_stored_value_falls_back(db_session):
    db.session.add(AppSetting(key=settings_service.CREDIT_OVERDUE_DAYS_KEY, value="abc"))
    db.session.commit()

    assert settings_service.get_int_setting(settings_service.CREDIT_OVERDUE_DAYS_KEY) == 30
