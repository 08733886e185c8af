from datetime import date

import pytest

from managepme.extensions import db
from managepme.models import DocumentSequence
from managepme.services import document_service
from managepme.services.document_service import DocumentSequenceError


def test_numbers_are_sequential_per_type(db_session):
    assert document_service.next_document_number("TICKET") == "TKT-000001"
    assert document_service.next_document_number("TICKET") == "TKT-000002"
    assert document_service.next_document_number("QUOTE") == "DEV-000001"
    assert document_service.next_document_number("PURCHASE") == "ACH-000001"
    db.session.commit()

    row = db.session.query(DocumentSequence).filter_by(document_type="TICKET").one()
    assert row.next_number == 3


def test_rollback_releases_the_number(db_session):
    document_service.next_document_number("INVOICE")
    db.session.commit()
    document_service.next_document_number("INVOICE")
    db.session.rollback()

    assert document_service.next_document_number("INVOICE") == "INV-000002"


def test_avoir_numbers_restart_each_day(db_session):
    assert document_service.next_avoir_number(date(2026, 3, 1)) == "AV-20260301-001"
    assert document_service.next_avoir_number(date(2026, 3, 1)) == "AV-20260301-002"
    assert document_service.next_avoir_number(date(2026, 3, 2)) == "AV-20260302-001"


def test_unknown_document_type(db_session):
    with pytest.raises(DocumentSequenceError):
        document_service.next_document_number("DELIVERY")
