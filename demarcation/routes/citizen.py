# demarcation/routes/citizen.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.db import get_db
from demarcation.models import User
from demarcation.permissions import Capability
from demarcation.routes.auth import require
from demarcation.schemas import DashboardStats, LogOut, PlotCreate, PlotOut
from demarcation.services import lifecycle, logs, plots, stats
from demarcation.services.scoping import PlotFilters, Scope, list_plots

router = APIRouter(prefix="/api/citizen", tags=["citizen"])

can_view = require(Capability.VIEW_PLOTS)
can_submit = require(Capability.SUBMIT_REQUEST)


@router.get("/plots", response_model=List[PlotOut])
async def my_plots(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user: User = Depends(can_view),
    db: AsyncSession = Depends(get_db),
):
    filters = PlotFilters(
        status=lifecycle.parse_status(status) if status else None,
        search=search,
    )
    return await list_plots(db, Scope.for_user(user), filters)


@router.post("/plots", response_model=PlotOut, status_code=201)
async def submit_request(
    payload: PlotCreate,
    user: User = Depends(can_submit),
    db: AsyncSession = Depends(get_db),
):
    return await plots.create_plot(db, user, payload.model_dump())


@router.get("/plots/{plot_id}", response_model=PlotOut)
async def get_my_plot(plot_id: int, user: User = Depends(can_view), db: AsyncSession = Depends(get_db)):
    return await plots.get_plot(db, Scope.for_user(user), plot_id)


@router.get("/plots/{plot_id}/logs", response_model=List[LogOut])
async def plot_history(plot_id: int, user: User = Depends(can_view), db: AsyncSession = Depends(get_db)):
    return await logs.list_logs(db, Scope.for_user(user), plot_id)


@router.get("/stats", response_model=DashboardStats)
async def my_stats(user: User = Depends(can_view), db: AsyncSession = Depends(get_db)):
    return await stats.get_dashboard_stats(db, Scope.for_user(user))
