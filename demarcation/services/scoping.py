# demarcation/services/scoping.py
"""
Role-scoped plot queries.

Every plot read in the application goes through `build_plot_query`, so the
visibility rules live in one place:

- citizens only ever see plots they own (circle filters are ignored);
- officers only see plots of their own circle, whatever circle they ask for;
  an officer without a circle sees nothing;
- supervisors and administrators get exactly the filters they asked for.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import Select, desc, false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.models import Plot
from demarcation.permissions import Role, as_role

SORT_UPDATED = "updated"
SORT_CREATED = "created"


@dataclass(frozen=True)
class Scope:
    role: Role
    user_id: Optional[int]
    circle_id: Optional[int] = None

    @classmethod
    def for_user(cls, user) -> "Scope":
        return cls(role=as_role(user.role), user_id=user.id, circle_id=user.circle_id)

    @classmethod
    def unrestricted(cls) -> "Scope":
        return cls(role=Role.ADMINISTRATOR, user_id=None)


@dataclass
class PlotFilters:
    status: Optional[str] = None
    plot_type: Optional[str] = None
    priority: Optional[str] = None
    village_id: Optional[int] = None
    circle_id: Optional[int] = None
    search: Optional[str] = None
    is_duplicate: Optional[bool] = None
    sort: str = SORT_UPDATED


def apply_scope(query: Select, scope: Scope) -> Select:
    """Add the implicit constraint for the caller's role."""
    if scope.role == Role.CITIZEN:
        return query.where(Plot.owner_id == scope.user_id)
    if scope.role == Role.OFFICER:
        if scope.circle_id is None:
            return query.where(false())
        return query.where(Plot.circle_id == scope.circle_id)
    return query


def build_plot_query(scope: Scope, filters: Optional[PlotFilters] = None) -> Select:
    filters = filters or PlotFilters()
    query = apply_scope(select(Plot), scope)

    if filters.status:
        query = query.where(Plot.current_status == filters.status)
    if filters.plot_type:
        query = query.where(Plot.plot_type == filters.plot_type)
    if filters.priority:
        query = query.where(Plot.priority == filters.priority)
    if filters.village_id is not None:
        query = query.where(Plot.village_id == filters.village_id)
    # only unrestricted roles may pick a circle; officers are already pinned
    if filters.circle_id is not None and scope.role in (Role.SUPERVISOR, Role.ADMINISTRATOR):
        query = query.where(Plot.circle_id == filters.circle_id)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        query = query.where(or_(Plot.plot_number.ilike(pattern), Plot.reference.ilike(pattern)))
    if filters.is_duplicate is not None:
        query = query.where(Plot.is_duplicate == filters.is_duplicate)

    if filters.sort == SORT_CREATED:
        return query.order_by(desc(Plot.created_at), desc(Plot.id))
    return query.order_by(desc(Plot.updated_at), desc(Plot.id))


async def list_plots(session: AsyncSession, scope: Scope, filters: Optional[PlotFilters] = None) -> List[Plot]:
    result = await session.execute(build_plot_query(scope, filters))
    return list(result.scalars().all())
