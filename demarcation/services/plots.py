# demarcation/services/plots.py
"""
Plot lifecycle: demarcation requests, duplicate detection, status updates and
officer assignment.

Every write that touches more than one table (plot + log, assignment + plot
+ log) runs inside a single unit of work.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.db import unit_of_work
from demarcation.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from demarcation.models import (
    ActivityType,
    Plot,
    PlotAssignment,
    PlotStatus,
    PlotType,
    Priority,
    User,
    Village,
    utcnow,
)
from demarcation.permissions import Capability, Role, as_role, has_capability
from demarcation.services import lifecycle
from demarcation.services.logs import append_log
from demarcation.services.scoping import PlotFilters, Scope, apply_scope, build_plot_query

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("plot_number", "village_id", "area", "request_type")


def generate_reference() -> str:
    return f"DM-{utcnow().year}-{uuid.uuid4().hex[:8].upper()}"


async def find_duplicate(session: AsyncSession, plot_number: str, village_id: int) -> Optional[Plot]:
    """
    Earliest plot with the same external plot number in the same village.
    The earliest one is canonical; later submissions are flagged against it.
    """
    result = await session.execute(
        select(Plot)
        .where(Plot.plot_number == plot_number, Plot.village_id == village_id)
        .order_by(Plot.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_plot(session: AsyncSession, scope: Scope, plot_id: int) -> Plot:
    """
    Plot visible to `scope`. Missing plots and plots outside the caller's
    scope raise the same NotFoundError.
    """
    query = apply_scope(select(Plot).where(Plot.id == plot_id), scope)
    plot = (await session.execute(query)).scalar_one_or_none()
    if plot is None:
        raise NotFoundError("Plot not found or you do not have access")
    return plot


def ensure_can_act_on(actor: User, plot: Plot) -> None:
    """Supervisors/admins act anywhere; officers only on plots assigned to them in their circle."""
    if not has_capability(actor.role, Capability.UPDATE_STATUS):
        raise AuthorizationError("You are not allowed to update plots")
    if has_capability(actor.role, Capability.CROSS_CIRCLE):
        return
    if plot.assigned_officer_id != actor.id or plot.circle_id != actor.circle_id:
        raise AuthorizationError("Only the assigned officer can update this plot")


def _missing_fields(data: Dict[str, Any]) -> List[str]:
    missing = []
    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


async def create_plot(session: AsyncSession, actor: User, data: Dict[str, Any]) -> Plot:
    """
    Register a demarcation request. Citizens always own what they submit;
    officers can only register plots of villages in their own circle.
    """
    if not has_capability(actor.role, Capability.SUBMIT_REQUEST):
        raise AuthorizationError("You are not allowed to submit demarcation requests")

    missing = _missing_fields(data)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    try:
        area = float(data["area"])
    except (TypeError, ValueError):
        raise ValidationError("area must be a number") from None
    if area <= 0:
        raise ValidationError("area must be greater than zero")

    village = await session.get(Village, int(data["village_id"]))
    if village is None:
        raise ValidationError("Unknown village")

    role = as_role(actor.role)
    owner_id = data.get("owner_id")
    owner_name = data.get("owner_name")
    if role == Role.CITIZEN:
        if owner_id is not None and int(owner_id) != actor.id:
            raise AuthorizationError("Citizens can only submit requests for themselves")
        owner_id = actor.id
        owner_name = owner_name or actor.full_name
    else:
        if role == Role.OFFICER and village.circle_id != actor.circle_id:
            raise AuthorizationError("Officers can only register plots in their own circle")
        if owner_id is not None and await session.get(User, int(owner_id)) is None:
            raise ValidationError("Unknown owner")

    plot_number = str(data["plot_number"]).strip()
    original = await find_duplicate(session, plot_number, village.id)

    plot = Plot(
        reference=generate_reference(),
        plot_number=plot_number,
        village_id=village.id,
        circle_id=village.circle_id,
        plot_type=lifecycle.parse_plot_type(data.get("plot_type") or PlotType.AGRICULTURAL),
        request_type=str(data["request_type"]).strip(),
        area=area,
        area_unit=data.get("area_unit") or "acres",
        owner_name=owner_name,
        owner_contact=data.get("owner_contact"),
        owner_id=owner_id,
        current_status=PlotStatus.PENDING.value,
        priority=lifecycle.parse_priority(data.get("priority") or Priority.MEDIUM),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        is_duplicate=original is not None,
        duplicate_of_id=original.id if original is not None else None,
        created_at=utcnow(),
        updated_at=utcnow(),
    )

    async with unit_of_work(session):
        session.add(plot)
        await session.flush()
        await append_log(
            session,
            plot,
            None if role == Role.CITIZEN else actor.id,
            ActivityType.REQUEST_SUBMITTED.value,
            data.get("description") or "Demarcation request submitted",
            PlotStatus.PENDING.value,
            initial=True,
        )

    if plot.is_duplicate:
        logger.warning(
            "plot=%s (%s, village=%s) flagged as duplicate of plot=%s",
            plot.id, plot_number, village.id, plot.duplicate_of_id,
        )
    logger.info("plot=%s created by user=%s role=%s", plot.id, actor.id, role.value)
    return plot


async def update_status(
    session: AsyncSession,
    actor: User,
    plot_id: int,
    new_status: str,
    description: Optional[str] = None,
) -> Plot:
    if not has_capability(actor.role, Capability.UPDATE_STATUS):
        raise AuthorizationError("You are not allowed to update plot status")
    new_status = lifecycle.parse_status(new_status)

    plot = await get_plot(session, Scope.for_user(actor), plot_id)
    ensure_can_act_on(actor, plot)
    previous = plot.current_status

    async with unit_of_work(session):
        await append_log(
            session,
            plot,
            actor.id,
            ActivityType.STATUS_CHANGE.value,
            description or f"Status updated to {new_status}",
            new_status,
        )

    logger.info("plot=%s status %s -> %s by user=%s", plot.id, previous, new_status, actor.id)
    return plot


async def assign_officer(
    session: AsyncSession,
    actor: User,
    plot_id: int,
    officer_id: int,
    notes: Optional[str] = None,
) -> PlotAssignment:
    if not has_capability(actor.role, Capability.ASSIGN_OFFICER):
        raise AuthorizationError("Only supervisors can assign plots to officers")

    plot = await get_plot(session, Scope.for_user(actor), plot_id)
    officer = await session.get(User, officer_id)
    if officer is None:
        raise NotFoundError("Officer not found")
    if officer.role != Role.OFFICER.value or not officer.is_active:
        raise ValidationError("Plots can only be assigned to active officers")
    if plot.circle_id is not None and officer.circle_id != plot.circle_id:
        raise ValidationError("Officer does not belong to the plot's circle")
    if lifecycle.is_terminal(plot.current_status):
        raise ConflictError(f"Plot is {plot.current_status} and can no longer be assigned")

    new_status = PlotStatus.IN_PROGRESS.value if plot.current_status == PlotStatus.PENDING.value else None
    description = f"Plot assigned to officer {officer.full_name}"
    if notes:
        description = f"{description}: {notes}"

    async with unit_of_work(session):
        await session.execute(
            update(PlotAssignment)
            .where(PlotAssignment.plot_id == plot.id, PlotAssignment.is_active.is_(True))
            .values(is_active=False)
        )
        assignment = PlotAssignment(
            plot_id=plot.id,
            officer_id=officer.id,
            assigned_by=actor.id,
            assigned_at=utcnow(),
            is_active=True,
            notes=notes,
        )
        session.add(assignment)
        plot.assigned_officer_id = officer.id
        await append_log(session, plot, actor.id, ActivityType.ASSIGNMENT.value, description, new_status)

    logger.info("plot=%s assigned to officer=%s by user=%s", plot.id, officer.id, actor.id)
    return assignment


async def list_assigned_plots(session: AsyncSession, officer: User, status: Optional[str] = None) -> List[Plot]:
    query = (
        select(Plot)
        .join(PlotAssignment, PlotAssignment.plot_id == Plot.id)
        .where(PlotAssignment.officer_id == officer.id, PlotAssignment.is_active.is_(True))
    )
    if status:
        query = query.where(Plot.current_status == lifecycle.parse_status(status))
    query = query.order_by(desc(Plot.updated_at), desc(Plot.id))
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_map_locations(
    session: AsyncSession, scope: Scope, filters: Optional[PlotFilters] = None
) -> List[Dict[str, Any]]:
    """
    Map markers for the plots visible to `scope`. A plot without coordinates
    is placed at its village; plots with neither are left off the map.
    """
    visible = list((await session.execute(build_plot_query(scope, filters))).scalars().all())

    village_ids = {p.village_id for p in visible if p.latitude is None or p.longitude is None}
    village_coords = {}
    if village_ids:
        rows = await session.execute(
            select(Village.id, Village.latitude, Village.longitude).where(Village.id.in_(village_ids))
        )
        village_coords = {vid: (lat, lng) for vid, lat, lng in rows.all()}

    markers = []
    for plot in visible:
        lat, lng = plot.latitude, plot.longitude
        from_village = lat is None or lng is None
        if from_village:
            lat, lng = village_coords.get(plot.village_id, (None, None))
        if lat is None or lng is None:
            continue
        markers.append({
            "id": plot.id,
            "reference": plot.reference,
            "plot_number": plot.plot_number,
            "status": plot.current_status,
            "village_id": plot.village_id,
            "latitude": lat,
            "longitude": lng,
            "approximate": from_village,
        })
    return markers
