from decimal import Decimal

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from wms.auth import require_module
from wms.db import get_db, run_with_retry
from wms.errors import FulfillmentError, http_exception
from wms.models import PurchaseOrder, User
from wms.module_keys import ModuleKey
from wms.purchasing import schemas
from wms.purchasing.service import (
    cancel_purchase_order,
    close_purchase_order,
    create_purchase_order,
    get_purchase_order,
    send_purchase_order,
)
from wms.utils import quantize_money


router = APIRouter(prefix="/api/purchase-orders", tags=["purchase-orders"])

require_purchase_orders = require_module(ModuleKey.PURCHASE_ORDERS.value)


def _to_detail_response(po: PurchaseOrder) -> schemas.PurchaseOrderResponse:
    return schemas.PurchaseOrderResponse(
        id=po.id,
        po_number=po.po_number,
        supplier_id=po.supplier_id,
        status=po.status,
        order_date=po.order_date,
        expected_date=po.expected_date,
        notes=po.notes,
        total=po.total_amount,
        sent_at=po.sent_at,
        created_at=po.created_at,
        lines=[
            schemas.PurchaseOrderLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else f"Item #{line.item_id}",
                quantity=line.qty_ordered,
                unit_price=line.unit_price,
                line_total=quantize_money(Decimal(line.qty_ordered) * Decimal(line.unit_price)),
            )
            for line in po.lines
        ],
    )


def _run(db: Session, company_id: int, operation) -> schemas.PurchaseOrderResponse:
    try:
        po = run_with_retry(operation)
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return _to_detail_response(get_purchase_order(db, company_id, po.id))


@router.post("", response_model=schemas.PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
def create_purchase_order_endpoint(
    payload: schemas.PurchaseOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchase_orders),
):
    return _run(
        db,
        current_user.company_id,
        lambda: create_purchase_order(db, current_user.company_id, payload.model_dump()),
    )


@router.get("/{purchase_order_id}", response_model=schemas.PurchaseOrderResponse)
def get_purchase_order_endpoint(
    purchase_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchase_orders),
):
    try:
        return _to_detail_response(get_purchase_order(db, current_user.company_id, purchase_order_id))
    except FulfillmentError as exc:
        raise http_exception(exc)


@router.post("/{purchase_order_id}/send", response_model=schemas.PurchaseOrderResponse)
def send_purchase_order_endpoint(
    purchase_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchase_orders),
):
    return _run(db, current_user.company_id, lambda: send_purchase_order(db, current_user.company_id, purchase_order_id))


@router.post("/{purchase_order_id}/cancel", response_model=schemas.PurchaseOrderResponse)
def cancel_purchase_order_endpoint(
    purchase_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchase_orders),
):
    return _run(db, current_user.company_id, lambda: cancel_purchase_order(db, current_user.company_id, purchase_order_id))


@router.post("/{purchase_order_id}/close", response_model=schemas.PurchaseOrderResponse)
def close_purchase_order_endpoint(
    purchase_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchase_orders),
):
    return _run(db, current_user.company_id, lambda: close_purchase_order(db, current_user.company_id, purchase_order_id))
