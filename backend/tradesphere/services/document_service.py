# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import RetryableConflict


# document_type -> number prefix
PURCHASE_ORDER = ("PURCHASE_ORDER", "PO")
SALES_ORDER = ("SALES_ORDER", "SO")
SALES_INVOICE = ("SALES_INVOICE", "INV")
PURCHASE_INVOICE = ("PURCHASE_INVOICE", "BILL")
PAYMENT = ("PAYMENT", "PAY")


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int | None = None,
) -> str:
    """
    Allocate the next document number for a type inside the caller's
    transaction (e.g. "PO-00042").

    The increment is a single UPDATE ... SET next_number = next_number + 1,
    which takes the row lock until the caller commits. The first allocation
    for a type inserts the sequence row; if two callers race on that insert
    the loser raises RetryableConflict and its unit of work is re-run.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if pad is None:
        pad = int(current_app.config.get("DOCUMENT_NUMBER_PAD", 5))

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
        next_num = current - 1
    else:
        seq = DocumentSequence(document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise RetryableConflict(f"sequence {document_type} created concurrently") from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
