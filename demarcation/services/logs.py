# demarcation/services/logs.py
"""
Append-only demarcation activity log.

The latest non-retracted log that carries a status is the source of truth for
a plot's status. `Plot.current_status` is only a cache of it and is written
here and nowhere else, always in the same unit of work as the log row.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.db import unit_of_work
from demarcation.errors import AuthorizationError, NotFoundError, ValidationError
from demarcation.models import ActivityType, DemarcationLog, Plot, PlotStatus, as_naive_utc, utcnow
from demarcation.permissions import Capability, has_capability
from demarcation.services import lifecycle
from demarcation.services.scoping import Scope

logger = logging.getLogger(__name__)


def duration_hours(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Hours between start and end, one decimal. Display only."""
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 3600, 1)


async def append_log(
    session: AsyncSession,
    plot: Plot,
    officer_id: Optional[int],
    activity_type: str,
    description: str,
    status: Optional[str] = None,
    *,
    activity_date: Optional[datetime] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    stakeholders_present: Optional[str] = None,
    issues_encountered: Optional[str] = None,
    next_steps: Optional[str] = None,
    initial: bool = False,
) -> DemarcationLog:
    """
    Insert a new log row for `plot`. When `status` is given the transition is
    validated and the plot's cached status follows it. `initial` marks the
    first log of a new plot, which records `pending` without a transition.

    Does not commit; callers run it inside `unit_of_work`.
    """
    if not description or not description.strip():
        raise ValidationError("description is required")
    activity_date = as_naive_utc(activity_date)
    start_time = as_naive_utc(start_time)
    end_time = as_naive_utc(end_time)
    if start_time and end_time and end_time < start_time:
        raise ValidationError("end time must not be before start time")

    now = utcnow()
    if status is not None:
        status = lifecycle.parse_status(status)
        if initial:
            if status != PlotStatus.PENDING.value:
                raise ValidationError("a new plot always starts as pending")
        else:
            lifecycle.validate_transition(plot.current_status, status)
        plot.current_status = status
    plot.updated_at = now

    entry = DemarcationLog(
        plot_id=plot.id,
        officer_id=officer_id,
        activity_type=lifecycle.parse_activity_type(activity_type),
        description=description.strip(),
        activity_date=activity_date or now,
        start_time=start_time,
        end_time=end_time,
        stakeholders_present=stakeholders_present,
        issues_encountered=issues_encountered,
        next_steps=next_steps,
        status=status,
        is_deleted=False,
        created_at=now,
    )
    session.add(entry)
    await session.flush()
    return entry


async def latest_status(session: AsyncSession, plot_id: int) -> str:
    """Status carried by the newest non-retracted log, `pending` if none."""
    result = await session.execute(
        select(DemarcationLog.status)
        .where(
            DemarcationLog.plot_id == plot_id,
            DemarcationLog.is_deleted.is_(False),
            DemarcationLog.status.is_not(None),
        )
        .order_by(desc(DemarcationLog.created_at), desc(DemarcationLog.id))
        .limit(1)
    )
    return result.scalar_one_or_none() or PlotStatus.PENDING.value


async def record_activity(session: AsyncSession, actor, plot_id: int, data: dict) -> DemarcationLog:
    """Officer-facing log entry; same permission rules as a status update."""
    from demarcation.services.plots import get_plot, ensure_can_act_on

    plot = await get_plot(session, Scope.for_user(actor), plot_id)
    ensure_can_act_on(actor, plot)

    async with unit_of_work(session):
        entry = await append_log(
            session,
            plot,
            actor.id,
            data.get("activity_type") or ActivityType.DOCUMENTATION.value,
            data.get("description") or "",
            data.get("status"),
            activity_date=data.get("activity_date"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            stakeholders_present=data.get("stakeholders_present"),
            issues_encountered=data.get("issues_encountered"),
            next_steps=data.get("next_steps"),
        )
    logger.info("activity %s recorded on plot=%s by user=%s", entry.activity_type, plot.id, actor.id)
    return entry


async def retract_log(session: AsyncSession, actor, log_id: int) -> DemarcationLog:
    """Soft-delete a log and re-derive the plot status from what remains."""
    if not has_capability(actor.role, Capability.RETRACT_LOG):
        raise AuthorizationError("Only administrators can retract log entries")

    entry = await session.get(DemarcationLog, log_id)
    if entry is None or entry.is_deleted:
        raise NotFoundError("Log entry not found")
    plot = await session.get(Plot, entry.plot_id)

    async with unit_of_work(session):
        entry.is_deleted = True
        await session.flush()
        plot.current_status = await latest_status(session, plot.id)
        plot.updated_at = utcnow()

    logger.info("log=%s retracted by user=%s; plot=%s status now %s", log_id, actor.id, plot.id, plot.current_status)
    return entry


async def list_logs(session: AsyncSession, scope: Scope, plot_id: int) -> List[DemarcationLog]:
    from demarcation.services.plots import get_plot

    await get_plot(session, scope, plot_id)
    result = await session.execute(
        select(DemarcationLog)
        .where(DemarcationLog.plot_id == plot_id, DemarcationLog.is_deleted.is_(False))
        .order_by(desc(DemarcationLog.created_at), desc(DemarcationLog.id))
    )
    return list(result.scalars().all())
