from datetime import date
import logging

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from wms.models import DocumentSequence


logger = logging.getLogger(__name__)

PREFIX_PURCHASE_ORDER = "PO"
PREFIX_ASN = "ASN"
PREFIX_SALES_ORDER = "SO"
PREFIX_PICKING = "PICK"

_CONFLICT_COLUMNS = ["company_id", "prefix", "sequence_date"]


def format_document_number(prefix: str, on_date: date, sequence: int) -> str:
    return f"{prefix}-{on_date:%Y%m%d}-{sequence:03d}"


def _ensure_sequence_row(db: Session, company_id: int, prefix: str, on_date: date) -> None:
    values = {"company_id": company_id, "prefix": prefix, "sequence_date": on_date, "last_value": 0}
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql_insert(DocumentSequence).values(**values).on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
    elif dialect == "sqlite":
        stmt = sqlite_insert(DocumentSequence).values(**values).on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
    else:
        exists = (
            db.query(DocumentSequence.id)
            .filter(
                DocumentSequence.company_id == company_id,
                DocumentSequence.prefix == prefix,
                DocumentSequence.sequence_date == on_date,
            )
            .first()
        )
        if not exists:
            db.add(DocumentSequence(**values))
            db.flush()
        return
    db.execute(stmt)


def next_document_number(db: Session, company_id: int, prefix: str, on_date: date | None = None) -> str:
    """Issue the next ``{PREFIX}-{yyyymmdd}-{seq}`` number for a tenant and day.

    The counter row is created idempotently and then incremented under a row lock, so two
    concurrent requests on the same day can never receive the same number.
    """
    on_date = on_date or date.today()
    _ensure_sequence_row(db, company_id, prefix, on_date)
    sequence = (
        db.query(DocumentSequence)
        .filter(
            DocumentSequence.company_id == company_id,
            DocumentSequence.prefix == prefix,
            DocumentSequence.sequence_date == on_date,
        )
        .with_for_update()
        .populate_existing()
        .one()
    )
    sequence.last_value = (sequence.last_value or 0) + 1
    db.flush()
    number = format_document_number(prefix, on_date, sequence.last_value)
    logger.debug("Issued document number %s for company_id=%s", number, company_id)
    return number
