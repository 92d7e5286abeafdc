from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from wms.auth import require_module
from wms.db import atomic, get_db
from wms.errors import FulfillmentError, http_exception
from wms.inventory import schemas
from wms.inventory.service import get_location, recompute_location_capacity
from wms.models import User
from wms.module_keys import ModuleKey


router = APIRouter(prefix="/api/locations", tags=["locations"])


@router.post("/recompute-capacity", response_model=schemas.CapacityRecomputeResponse)
def recompute_capacity(
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module(ModuleKey.LOCATIONS.value)),
):
    try:
        with atomic(db):
            if location_id is not None:
                get_location(db, current_user.company_id, location_id)
            drifted = recompute_location_capacity(db, current_user.company_id, location_id)
    except FulfillmentError as exc:
        raise http_exception(exc)
    db.commit()
    return {"checked_location_id": location_id, "drifted": drifted}
