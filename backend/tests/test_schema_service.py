"""
Schema check tests: a table missing credit columns (skipped migration)
must surface as a ConfigurationError, not as a raw SQL error.
"""

from unittest import mock

import pytest

from managepme.services import credits_service, schema_service
from managepme.services.errors import ConfigurationError


def test_schema_matches_models(db_session):
    assert schema_service.check_schema() == {}
    assert schema_service.missing_columns("sales", ["amount_paid", "due_date"]) == []


def test_missing_table_reports_every_column(db_session):
    assert schema_service.missing_columns("no_such_table", ["a", "b"]) == ["a", "b"]


def test_missing_credit_columns_raise_configuration_error(db_session):
    with mock.patch.object(schema_service, "missing_columns", return_value=["due_date"]):
        with pytest.raises(ConfigurationError) as exc:
            credits_service.get_client_credits_summary()

    assert exc.value.status_code == 500
    assert exc.value.details == {"table": "sales", "missing_columns": ["due_date"]}
    assert schema_service.MIGRATE_HINT in exc.value.message
