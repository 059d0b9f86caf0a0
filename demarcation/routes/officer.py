# demarcation/routes/officer.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.db import get_db
from demarcation.models import User
from demarcation.permissions import Capability, Role, as_role
from demarcation.routes.auth import require
from demarcation.schemas import (
    AssignIn,
    AssignmentOut,
    LogCreate,
    LogOut,
    OfficerStats,
    PlotCreate,
    PlotOut,
    StatusUpdate,
)
from demarcation.services import lifecycle, logs, officer_metrics, plots, stats
from demarcation.services.scoping import PlotFilters, Scope, list_plots

router = APIRouter(prefix="/api/officer", tags=["officer"])

staff = require(Capability.UPDATE_STATUS)
can_record = require(Capability.RECORD_ACTIVITY)
can_assign = require(Capability.ASSIGN_OFFICER)


@router.get("/plots", response_model=List[PlotOut])
async def search_plots(
    status: Optional[str] = Query(None),
    plot_type: Optional[str] = Query(None, alias="plotType"),
    priority: Optional[str] = Query(None),
    village_id: Optional[int] = Query(None, alias="villageId"),
    circle_id: Optional[int] = Query(None, alias="circleId"),
    search: Optional[str] = Query(None),
    is_duplicate: Optional[bool] = Query(None, alias="isDuplicate"),
    sort: str = Query("updated"),
    user: User = Depends(staff),
    db: AsyncSession = Depends(get_db),
):
    filters = PlotFilters(
        status=lifecycle.parse_status(status) if status else None,
        plot_type=lifecycle.parse_plot_type(plot_type) if plot_type else None,
        priority=lifecycle.parse_priority(priority) if priority else None,
        village_id=village_id,
        circle_id=circle_id,
        search=search,
        is_duplicate=is_duplicate,
        sort=sort,
    )
    return await list_plots(db, Scope.for_user(user), filters)


@router.post("/plots", response_model=PlotOut, status_code=201)
async def register_plot(payload: PlotCreate, user: User = Depends(staff), db: AsyncSession = Depends(get_db)):
    return await plots.create_plot(db, user, payload.model_dump())


# must stay above /plots/{plot_id}
@router.get("/plots/assigned", response_model=List[PlotOut])
async def assigned_plots(
    status: Optional[str] = Query(None),
    user: User = Depends(staff),
    db: AsyncSession = Depends(get_db),
):
    return await plots.list_assigned_plots(db, user, status)


@router.get("/plots/{plot_id}", response_model=PlotOut)
async def get_plot(plot_id: int, user: User = Depends(staff), db: AsyncSession = Depends(get_db)):
    return await plots.get_plot(db, Scope.for_user(user), plot_id)


@router.patch("/plots/{plot_id}/status", response_model=PlotOut)
async def update_status(
    plot_id: int,
    payload: StatusUpdate,
    user: User = Depends(staff),
    db: AsyncSession = Depends(get_db),
):
    return await plots.update_status(db, user, plot_id, payload.status, payload.description)


@router.get("/plots/{plot_id}/logs", response_model=List[LogOut])
async def plot_logs(plot_id: int, user: User = Depends(staff), db: AsyncSession = Depends(get_db)):
    return await logs.list_logs(db, Scope.for_user(user), plot_id)


@router.post("/plots/{plot_id}/logs", response_model=LogOut, status_code=201)
async def record_activity(
    plot_id: int,
    payload: LogCreate,
    user: User = Depends(can_record),
    db: AsyncSession = Depends(get_db),
):
    return await logs.record_activity(db, user, plot_id, payload.model_dump())


@router.post("/plots/{plot_id}/assign", response_model=AssignmentOut, status_code=201)
async def assign_plot(
    plot_id: int,
    payload: AssignIn,
    user: User = Depends(can_assign),
    db: AsyncSession = Depends(get_db),
):
    return await plots.assign_officer(db, user, plot_id, payload.officer_id, payload.notes)


@router.get("/stats", response_model=OfficerStats)
async def officer_stats(user: User = Depends(staff), db: AsyncSession = Depends(get_db)):
    dashboard = await stats.get_dashboard_stats(db, Scope.for_user(user))
    performance = None
    if as_role(user.role) == Role.OFFICER:
        performance = await officer_metrics.calculate_metrics(db, user.id)
    assigned = await plots.list_assigned_plots(db, user)
    return {"dashboard": dashboard, "performance": performance, "assigned": len(assigned)}
