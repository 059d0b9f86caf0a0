# demarcation/services/stats.py
import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.errors import ValidationError
from demarcation.models import Circle, DemarcationLog, Plot, PlotAssignment, PlotStatus, Village
from demarcation.services.lifecycle import OPEN_STATUSES
from demarcation.services.scoping import Scope, apply_scope

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
DIMENSIONS = ("status", "circle", "village")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolution_days(completed_at: Optional[datetime], created_at: Optional[datetime]) -> Optional[float]:
    if completed_at is None or created_at is None:
        return None
    return (completed_at - created_at).total_seconds() / 86400


def mean(values: Iterable[Optional[float]]) -> Optional[float]:
    values = [v for v in values if v is not None]
    return sum(values) / len(values) if values else None


async def _count(session: AsyncSession, scope: Scope, *conditions, column=None) -> int:
    target = func.count(column) if column is not None else func.count(Plot.id)
    query = apply_scope(select(target).select_from(Plot), scope)
    if conditions:
        query = query.where(*conditions)
    return int((await session.execute(query)).scalar() or 0)


async def completed_resolution_days(session: AsyncSession, scope: Scope) -> List[float]:
    """Days from plot creation to each completed (non-retracted) log, within scope."""
    query = apply_scope(
        select(DemarcationLog.created_at, Plot.created_at)
        .select_from(DemarcationLog)
        .join(Plot, Plot.id == DemarcationLog.plot_id)
        .where(
            DemarcationLog.status == PlotStatus.COMPLETED.value,
            DemarcationLog.is_deleted.is_(False),
        ),
        scope,
    )
    rows = (await session.execute(query)).all()
    return [d for d in (resolution_days(done, created) for done, created in rows) if d is not None]


async def get_dashboard_stats(session: AsyncSession, scope: Scope) -> Dict[str, Any]:
    total = await _count(session, scope)
    completed = await _count(session, scope, Plot.current_status == PlotStatus.COMPLETED.value)
    pending = await _count(session, scope, Plot.current_status.in_(OPEN_STATUSES))
    villages = await _count(session, scope, column=distinct(Plot.village_id))
    duplicates = await _count(session, scope, Plot.is_duplicate.is_(True))

    officers_query = apply_scope(
        select(func.count(distinct(PlotAssignment.officer_id)))
        .select_from(PlotAssignment)
        .join(Plot, Plot.id == PlotAssignment.plot_id)
        .where(PlotAssignment.is_active.is_(True)),
        scope,
    )
    active_officers = int((await session.execute(officers_query)).scalar() or 0)

    avg_days = mean(await completed_resolution_days(session, scope))
    completion_rate = f"{round_half_up(completed / total * 100)}%" if total else "0%"

    return {
        "total_plots": total,
        "completed_plots": completed,
        "pending_plots": pending,
        "total_villages": villages,
        "active_officers": active_officers,
        "duplicates": duplicates,
        "average_resolution_days": round(avg_days, 1) if avg_days is not None else 0.0,
        "completion_rate": completion_rate,
    }


def _merge_buckets(rows: Iterable[Tuple[Any, Optional[str], int]]) -> List[Dict[str, Any]]:
    """Rows are (group key, display name, count); groups sharing a name stay apart."""
    buckets: Dict[Any, Dict[str, Any]] = {}
    for key, name, count in rows:
        if not name:
            key, name = None, UNKNOWN
        bucket = buckets.setdefault(key, {"name": name, "count": 0})
        bucket["count"] += int(count)
    return sorted(buckets.values(), key=lambda item: (-item["count"], item["name"]))


async def get_distribution(session: AsyncSession, dimension: str, scope: Optional[Scope] = None) -> List[Dict[str, Any]]:
    """
    Plot counts grouped by status, circle or village, largest first.
    Plots without a value land in the "unknown" bucket so totals reconcile.
    """
    scope = scope or Scope.unrestricted()
    dimension = (dimension or "").strip().lower()

    if dimension == "status":
        query = select(Plot.current_status, func.count(Plot.id)).group_by(Plot.current_status)
        rows = (await session.execute(apply_scope(query, scope))).all()
        return _merge_buckets((status, status, count) for status, count in rows)
    if dimension == "circle":
        query = (
            select(Circle.id, Circle.name, func.count(Plot.id))
            .select_from(Plot)
            .outerjoin(Circle, Circle.id == Plot.circle_id)
            .group_by(Circle.id, Circle.name)
        )
    elif dimension == "village":
        query = (
            select(Village.id, Village.name, func.count(Plot.id))
            .select_from(Plot)
            .outerjoin(Village, Village.id == Plot.village_id)
            .group_by(Village.id, Village.name)
        )
    else:
        raise ValidationError(f"Unknown dimension '{dimension}'. Allowed: {', '.join(DIMENSIONS)}")

    rows = (await session.execute(apply_scope(query, scope))).all()
    return _merge_buckets(rows)
