# app/api/v1/unit_inventory.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.auth_deps import get_current_principal
from app.policies.rbac import Principal
from app.services.unit_inventory_service import UnitInventoryService

router = APIRouter(prefix="/inventory")


def _to_resp(u):
    return {
        "unitId": u.unit_id,
        "stateKey": u.state_key,
        "stateName": u.state_name,
        "areaKey": u.area_key,
        "areaName": u.area_name,
        "slotNumber": u.slot_number,
        "latitude": u.latitude,
        "longitude": u.longitude,
        "status": u.status,
    }


@router.get("/available")
def list_available(
    stateKey: str = Query(..., min_length=1),
    areaKey: str = Query(..., min_length=1),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    units = UnitInventoryService().list_available(db, state_key=stateKey, area_key=areaKey, limit=limit)
    return {"stateKey": stateKey, "areaKey": areaKey, "units": [_to_resp(u) for u in units]}
