# demarcation/routes/geography.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.db import get_db
from demarcation.models import User
from demarcation.permissions import Capability
from demarcation.routes.auth import get_current_user, require
from demarcation.schemas import (
    CircleIn,
    CircleOut,
    DistrictIn,
    DistrictOut,
    MapLocation,
    VillageIn,
    VillageOut,
)
from demarcation.services import lifecycle, plots, villages
from demarcation.services.scoping import PlotFilters, Scope

router = APIRouter(prefix="/api", tags=["geography"])

can_manage = require(Capability.MANAGE_GEOGRAPHY)
can_view_plots = require(Capability.VIEW_PLOTS)


@router.get("/districts", response_model=List[DistrictOut])
async def list_districts(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await villages.list_districts(db)


@router.post("/districts", response_model=DistrictOut, status_code=201)
async def create_district(payload: DistrictIn, user: User = Depends(can_manage), db: AsyncSession = Depends(get_db)):
    return await villages.create_district(db, user, payload.name, payload.code)


@router.get("/circles", response_model=List[CircleOut])
async def list_circles(
    district_id: Optional[int] = Query(None, alias="districtId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await villages.list_circles(db, district_id)


@router.post("/circles", response_model=CircleOut, status_code=201)
async def create_circle(payload: CircleIn, user: User = Depends(can_manage), db: AsyncSession = Depends(get_db)):
    return await villages.create_circle(db, user, payload.name, payload.code, payload.district_id)


@router.get("/villages", response_model=List[VillageOut])
async def list_villages(
    circle_id: Optional[int] = Query(None, alias="circleId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await villages.list_villages(db, circle_id)


@router.post("/villages", response_model=VillageOut, status_code=201)
async def create_village(payload: VillageIn, user: User = Depends(can_manage), db: AsyncSession = Depends(get_db)):
    return await villages.create_village(
        db,
        user,
        payload.name,
        payload.code,
        payload.circle_id,
        payload.latitude,
        payload.longitude,
    )


@router.get("/plots/map-locations", response_model=List[MapLocation])
async def plot_map_locations(
    status: Optional[str] = Query(None),
    village_id: Optional[int] = Query(None, alias="villageId"),
    circle_id: Optional[int] = Query(None, alias="circleId"),
    user: User = Depends(can_view_plots),
    db: AsyncSession = Depends(get_db),
):
    filters = PlotFilters(
        status=lifecycle.parse_status(status) if status else None,
        village_id=village_id,
        circle_id=circle_id,
    )
    return await plots.list_map_locations(db, Scope.for_user(user), filters)
