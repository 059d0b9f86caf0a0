# demarcation/services/officer_metrics.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.errors import NotFoundError
from demarcation.models import Circle, DemarcationLog, Plot, PlotStatus, User
from demarcation.permissions import Role
from demarcation.services.lifecycle import OPEN_STATUSES
from demarcation.services.stats import mean, resolution_days, round_half_up


def efficiency(completed: int, pending: int) -> int:
    """Share of finished work in percent; 0 when the officer has nothing."""
    denominator = completed + pending
    if denominator == 0:
        return 0
    return round_half_up(completed / denominator * 100)


def _date_conditions(created_from: Optional[datetime], created_to: Optional[datetime]):
    conditions = []
    if created_from is not None:
        conditions.append(Plot.created_at >= created_from)
    if created_to is not None:
        conditions.append(Plot.created_at < created_to)
    return conditions


async def get_officer_performance(
    session: AsyncSession,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    officer_ids: Optional[List[int]] = None,
) -> List[Dict[str, Any]]:
    """
    Per-officer workload and speed, best efficiency first.

    completed / pending count the plots currently assigned to the officer;
    the average resolution time uses the completed logs the officer wrote.
    """
    officers_query = (
        select(User, Circle.name)
        .outerjoin(Circle, Circle.id == User.circle_id)
        .where(User.role == Role.OFFICER.value)
        .order_by(User.full_name)
    )
    if officer_ids is not None:
        officers_query = officers_query.where(User.id.in_(officer_ids))
    officers = (await session.execute(officers_query)).all()
    if not officers:
        return []
    ids = [officer.id for officer, _ in officers]
    date_conditions = _date_conditions(created_from, created_to)

    # 1️⃣ plot counts per officer and status
    counts: Dict[int, Dict[str, int]] = {}
    rows = await session.execute(
        select(Plot.assigned_officer_id, Plot.current_status, func.count(Plot.id))
        .where(Plot.assigned_officer_id.in_(ids), *date_conditions)
        .group_by(Plot.assigned_officer_id, Plot.current_status)
    )
    for officer_id, status, count in rows.all():
        counts.setdefault(officer_id, {})[status] = int(count)

    # 2️⃣ resolution durations from the officer's completed logs
    durations: Dict[int, List[float]] = {}
    rows = await session.execute(
        select(DemarcationLog.officer_id, DemarcationLog.created_at, Plot.created_at)
        .join(Plot, Plot.id == DemarcationLog.plot_id)
        .where(
            DemarcationLog.officer_id.in_(ids),
            DemarcationLog.status == PlotStatus.COMPLETED.value,
            DemarcationLog.is_deleted.is_(False),
            *date_conditions,
        )
    )
    for officer_id, done_at, created_at in rows.all():
        durations.setdefault(officer_id, []).append(resolution_days(done_at, created_at))

    # 3️⃣ last activity
    rows = await session.execute(
        select(DemarcationLog.officer_id, func.max(DemarcationLog.created_at))
        .where(DemarcationLog.officer_id.in_(ids), DemarcationLog.is_deleted.is_(False))
        .group_by(DemarcationLog.officer_id)
    )
    last_activity = {officer_id: when for officer_id, when in rows.all()}

    performance = []
    for officer, circle_name in officers:
        by_status = counts.get(officer.id, {})
        completed = by_status.get(PlotStatus.COMPLETED.value, 0)
        pending = sum(by_status.get(status, 0) for status in OPEN_STATUSES)
        avg_days = mean(durations.get(officer.id, []))
        performance.append({
            "id": officer.id,
            "name": officer.full_name,
            "circle": circle_name,
            "total_plots": sum(by_status.values()),
            "completed_plots": completed,
            "pending_plots": pending,
            "efficiency": efficiency(completed, pending),
            "avg_resolution_days": round(avg_days, 1) if avg_days is not None else None,
            "avg_time_per_plot": f"{round_half_up(avg_days)} days" if avg_days is not None else "N/A",
            "last_activity": last_activity.get(officer.id),
        })

    # stable sort keeps the name order among equal efficiencies
    performance.sort(key=lambda row: row["efficiency"], reverse=True)
    return performance


async def calculate_metrics(session: AsyncSession, officer_id: int) -> Dict[str, Any]:
    rows = await get_officer_performance(session, officer_ids=[officer_id])
    if not rows:
        raise NotFoundError("Officer not found")
    return rows[0]
