from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from wms.auth import require_module
from wms.db import get_db, run_with_retry
from wms.errors import FulfillmentError, http_exception
from wms.models import User
from wms.module_keys import ModuleKey
from wms.sales import schemas
from wms.sales.service import (
    assign_holding_location,
    cancel_sales_order,
    create_sales_order,
    get_sales_order,
    ship_sales_order,
)


router = APIRouter(prefix="/api/sales-orders", tags=["sales-orders"])

require_sales_orders = require_module(ModuleKey.SALES_ORDERS.value)


def _run(db: Session, company_id: int, operation):
    try:
        sales_order = run_with_retry(operation)
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return get_sales_order(db, company_id, sales_order.id)


@router.post("", response_model=schemas.SalesOrderResponse, status_code=status.HTTP_201_CREATED)
def create_sales_order_endpoint(
    payload: schemas.SalesOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_sales_orders),
):
    return _run(
        db,
        current_user.company_id,
        lambda: create_sales_order(db, current_user.company_id, payload.model_dump()),
    )


@router.get("/{sales_order_id}", response_model=schemas.SalesOrderResponse)
def get_sales_order_endpoint(
    sales_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_sales_orders),
):
    try:
        return get_sales_order(db, current_user.company_id, sales_order_id)
    except FulfillmentError as exc:
        raise http_exception(exc)


@router.put("/{sales_order_id}/holding-location", response_model=schemas.SalesOrderResponse)
def assign_holding_location_endpoint(
    sales_order_id: int,
    payload: schemas.HoldingLocationAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_sales_orders),
):
    return _run(
        db,
        current_user.company_id,
        lambda: assign_holding_location(db, current_user.company_id, sales_order_id, payload.location_id),
    )


@router.post("/{sales_order_id}/ship", response_model=schemas.SalesOrderResponse)
def ship_sales_order_endpoint(
    sales_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_sales_orders),
):
    return _run(db, current_user.company_id, lambda: ship_sales_order(db, current_user.company_id, sales_order_id))


@router.post("/{sales_order_id}/cancel", response_model=schemas.SalesOrderResponse)
def cancel_sales_order_endpoint(
    sales_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_sales_orders),
):
    return _run(db, current_user.company_id, lambda: cancel_sales_order(db, current_user.company_id, sales_order_id))
