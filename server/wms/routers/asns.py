from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from wms.auth import require_module
from wms.db import get_db, run_with_retry
from wms.errors import FulfillmentError, http_exception
from wms.models import AdvancedShippingNotice, User
from wms.module_keys import ModuleKey
from wms.purchasing import schemas
from wms.purchasing.service import (
    cancel_asn,
    create_asn,
    get_asn,
    mark_asn_arrived,
    mark_asn_in_transit,
    process_asn,
    update_asn_lines,
)
from wms.putaway.service import create_putaway, process_putaway


router = APIRouter(prefix="/api/asns", tags=["asns"])

require_asns = require_module(ModuleKey.ASNS.value)


def _to_response(asn: AdvancedShippingNotice) -> schemas.ASNResponse:
    return schemas.ASNResponse(
        id=asn.id,
        asn_number=asn.asn_number,
        purchase_order_id=asn.purchase_order_id,
        holding_location_id=asn.holding_location_id,
        status=asn.status,
        shipment_date=asn.shipment_date,
        expected_arrival_date=asn.expected_arrival_date,
        actual_arrival_date=asn.actual_arrival_date,
        carrier_name=asn.carrier_name,
        tracking_number=asn.tracking_number,
        total_fee_amount=asn.total_fee_amount,
        lines=[
            schemas.ASNLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else f"Item #{line.item_id}",
                shipped_qty=line.shipped_qty,
                remaining_qty=line.remaining_qty,
                put_away_qty=line.put_away_qty,
                unit_price=line.unit_price,
                fee_rate=line.fee_rate,
                fee_amount=line.fee_amount,
            )
            for line in asn.lines
        ],
    )


def _run(db: Session, company_id: int, operation) -> schemas.ASNResponse:
    try:
        asn = run_with_retry(operation)
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return _to_response(get_asn(db, company_id, asn.id))


@router.post("", response_model=schemas.ASNResponse, status_code=status.HTTP_201_CREATED)
def create_asn_endpoint(
    payload: schemas.ASNCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_asns),
):
    return _run(db, current_user.company_id, lambda: create_asn(db, current_user.company_id, payload.model_dump()))


@router.get("/{asn_id}", response_model=schemas.ASNResponse)
def get_asn_endpoint(asn_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_asns)):
    try:
        return _to_response(get_asn(db, current_user.company_id, asn_id))
    except FulfillmentError as exc:
        raise http_exception(exc)


@router.put("/{asn_id}/lines", response_model=schemas.ASNResponse)
def update_asn_lines_endpoint(
    asn_id: int,
    payload: List[schemas.ASNLineCreate],
    db: Session = Depends(get_db),
    current_user: User = Depends(require_asns),
):
    lines = [line.model_dump() for line in payload]
    return _run(db, current_user.company_id, lambda: update_asn_lines(db, current_user.company_id, asn_id, lines))


@router.post("/{asn_id}/ship", response_model=schemas.ASNResponse)
def ship_asn_endpoint(asn_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_asns)):
    return _run(db, current_user.company_id, lambda: mark_asn_in_transit(db, current_user.company_id, asn_id))


@router.post("/{asn_id}/arrive", response_model=schemas.ASNResponse)
def arrive_asn_endpoint(
    asn_id: int,
    payload: schemas.ASNArrive | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_asns),
):
    arrived_at = payload.actual_arrival_date if payload else None
    return _run(db, current_user.company_id, lambda: mark_asn_arrived(db, current_user.company_id, asn_id, arrived_at))


@router.post("/{asn_id}/process", response_model=schemas.ASNResponse)
def process_asn_endpoint(asn_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_asns)):
    return _run(db, current_user.company_id, lambda: process_asn(db, current_user.company_id, asn_id))


@router.post("/{asn_id}/cancel", response_model=schemas.ASNResponse)
def cancel_asn_endpoint(asn_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_asns)):
    return _run(db, current_user.company_id, lambda: cancel_asn(db, current_user.company_id, asn_id))


@router.post("/{asn_id}/putaway-plan", response_model=List[schemas.PutawaySuggestionResponse])
def putaway_plan_endpoint(asn_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_asns)):
    try:
        return create_putaway(db, current_user.company_id, asn_id)
    except FulfillmentError as exc:
        raise http_exception(exc)


@router.post("/{asn_id}/putaway", response_model=schemas.ASNResponse)
def putaway_endpoint(
    asn_id: int,
    payload: schemas.PutawayRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_asns),
):
    entries = [line.model_dump() for line in payload.lines]
    return _run(db, current_user.company_id, lambda: process_putaway(db, current_user.company_id, asn_id, entries))
