# Overview: Store-backed document number sequences (tickets, invoices, quotes, purchases, counts, Avoirs).

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import ConcurrencyConflict
from managepme.time_utils import today


# document_type -> (prefix, pad)
SEQUENCES = {
    "TICKET": ("TKT", 6),
    "INVOICE": ("INV", 6),
    "QUOTE": ("DEV", 6),
    "PURCHASE": ("ACH", 6),
    "COUNT": ("CNT", 6),
}

AVOIR_PAD = 3


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(document_type: str) -> int:
    """
    Atomically take the next number for a document type.

    Must run inside the caller's unit of work: the counter row is updated
    in the same transaction as the document it numbers, so a rollback
    releases the number too. A concurrent first insert of the same row
    surfaces as ConcurrencyConflict, which run_with_retry retries.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1

    seq = DocumentSequence(document_type=document_type, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"sequence {document_type} created concurrently") from exc
    return 1


def next_document_number(document_type: str) -> str:
    """TKT-000001, INV-000001, DEV-000001, ACH-000001, CNT-000001."""
    try:
        prefix, pad = SEQUENCES[document_type]
    except KeyError:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")
    next_num = _allocate(document_type)
    return f"{prefix}-{next_num:0{pad}d}"


def next_avoir_number(on_date: date | None = None) -> str:
    """AV-YYYYMMDD-NNN, numbered per calendar day."""
    day = (on_date or today()).strftime("%Y%m%d")
    next_num = _allocate(f"AVOIR-{day}")
    return f"AV-{day}-{next_num:0{AVOIR_PAD}d}"
