# demarcation/routes/admin.py
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.db import get_db
from demarcation.models import User
from demarcation.permissions import Capability
from demarcation.routes.auth import require
from demarcation.schemas import (
    DashboardStats,
    DistributionItem,
    LogOut,
    OfficerPerformance,
    UserCreate,
    UserOut,
    UserUpdate,
)
from demarcation.services import logs, officer_metrics, reports, stats, users
from demarcation.services.scoping import Scope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

can_report = require(Capability.VIEW_REPORTS)
can_manage_users = require(Capability.MANAGE_USERS)
can_retract = require(Capability.RETRACT_LOG)


# -----------------------------
# Statistics
# -----------------------------
@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(user: User = Depends(can_report), db: AsyncSession = Depends(get_db)):
    return await stats.get_dashboard_stats(db, Scope.for_user(user))


@router.get("/distribution/{dimension}", response_model=List[DistributionItem])
async def distribution(dimension: str, user: User = Depends(can_report), db: AsyncSession = Depends(get_db)):
    return await stats.get_distribution(db, dimension, Scope.for_user(user))


@router.get("/officer-performance", response_model=List[OfficerPerformance])
async def officer_performance(user: User = Depends(can_report), db: AsyncSession = Depends(get_db)):
    return await officer_metrics.get_officer_performance(db)


@router.get("/reports")
async def download_report(
    report_type: str = Query(..., alias="type"),
    fmt: str = Query("csv", alias="format"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    user: User = Depends(can_report),
    db: AsyncSession = Depends(get_db),
):
    report = await reports.generate_report(db, report_type, fmt, date_from, date_to)
    logger.info("user=%s downloaded %s", user.id, report.filename)
    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )


# -----------------------------
# Users
# -----------------------------
@router.get("/users", response_model=List[UserOut])
async def list_users(
    role: Optional[str] = Query(None),
    user: User = Depends(can_manage_users),
    db: AsyncSession = Depends(get_db),
):
    return await users.list_users(db, user, role)


@router.post("/users", response_model=UserOut, status_code=201)
async def create_user(payload: UserCreate, user: User = Depends(can_manage_users), db: AsyncSession = Depends(get_db)):
    return await users.create_user(db, user, payload.model_dump())


@router.patch("/users/{user_id}", response_model=UserOut)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    user: User = Depends(can_manage_users),
    db: AsyncSession = Depends(get_db),
):
    return await users.update_user(db, user, user_id, payload.model_dump(exclude_unset=True))


# -----------------------------
# Logs
# -----------------------------
@router.delete("/logs/{log_id}", response_model=LogOut)
async def retract_log(log_id: int, user: User = Depends(can_retract), db: AsyncSession = Depends(get_db)):
    return await logs.retract_log(db, user, log_id)
