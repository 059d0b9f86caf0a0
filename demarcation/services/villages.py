# demarcation/services/villages.py
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.errors import AuthorizationError, ConflictError, ValidationError
from demarcation.models import Circle, District, Village, utcnow
from demarcation.permissions import Capability, has_capability

logger = logging.getLogger(__name__)


def _require_admin(actor) -> None:
    if not has_capability(actor.role, Capability.MANAGE_GEOGRAPHY):
        raise AuthorizationError("Only administrators can manage districts, circles and villages")


def _clean(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required")
    return value


async def _ensure_unique_code(session: AsyncSession, model, code: str) -> None:
    existing = await session.execute(select(model.id).where(func.lower(model.code) == code.lower()))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"{model.__name__} code '{code}' already exists")


async def _save(session: AsyncSession, row):
    session.add(row)
    try:
        await session.commit()
    except IntegrityError:
        # lost a race on the unique code
        await session.rollback()
        raise ConflictError(f"{type(row).__name__} code '{row.code}' already exists") from None
    await session.refresh(row)
    return row


# ----------------------------
# Districts
# ----------------------------
async def list_districts(session: AsyncSession) -> List[District]:
    result = await session.execute(select(District).order_by(District.name))
    return list(result.scalars().all())


async def create_district(session: AsyncSession, actor, name: str, code: str) -> District:
    _require_admin(actor)
    name, code = _clean(name, "name"), _clean(code, "code")
    await _ensure_unique_code(session, District, code)
    district = await _save(session, District(name=name, code=code, created_at=utcnow()))
    logger.info("district=%s (%s) created by user=%s", district.id, code, actor.id)
    return district


# ----------------------------
# Circles
# ----------------------------
async def list_circles(session: AsyncSession, district_id: Optional[int] = None) -> List[Circle]:
    query = select(Circle).order_by(Circle.name)
    if district_id is not None:
        query = query.where(Circle.district_id == district_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_circle(session: AsyncSession, actor, name: str, code: str, district_id: Optional[int] = None) -> Circle:
    _require_admin(actor)
    name, code = _clean(name, "name"), _clean(code, "code")
    if district_id is not None and await session.get(District, district_id) is None:
        raise ValidationError("Unknown district")
    await _ensure_unique_code(session, Circle, code)
    circle = await _save(session, Circle(name=name, code=code, district_id=district_id, created_at=utcnow()))
    logger.info("circle=%s (%s) created by user=%s", circle.id, code, actor.id)
    return circle


# ----------------------------
# Villages
# ----------------------------
async def list_villages(session: AsyncSession, circle_id: Optional[int] = None) -> List[Village]:
    query = select(Village).order_by(Village.name)
    if circle_id is not None:
        query = query.where(Village.circle_id == circle_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_village(
    session: AsyncSession,
    actor,
    name: str,
    code: str,
    circle_id: int,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Village:
    _require_admin(actor)
    name, code = _clean(name, "name"), _clean(code, "code")
    if circle_id is None or await session.get(Circle, circle_id) is None:
        raise ValidationError("Unknown circle")
    if latitude is not None and not -90 <= latitude <= 90:
        raise ValidationError("latitude out of range")
    if longitude is not None and not -180 <= longitude <= 180:
        raise ValidationError("longitude out of range")
    await _ensure_unique_code(session, Village, code)
    village = await _save(session, Village(
        name=name,
        code=code,
        circle_id=circle_id,
        latitude=latitude,
        longitude=longitude,
        created_at=utcnow(),
    ))
    logger.info("village=%s (%s) created in circle=%s by user=%s", village.id, code, circle_id, actor.id)
    return village


# ----------------------------
# Demo seed
# ----------------------------
DEMO_GEOGRAPHY = [
    # district, circles -> villages
    ("Kamrup Metro", "KMM", [
        ("Dispur", "DSP", [("Beltola", "BLT", 26.12, 91.79), ("Hatigaon", "HTG", 26.13, 91.78)]),
        ("Guwahati", "GHY", [("Pandu", "PND", 26.17, 91.68)]),
    ]),
    ("Nagaon", "NGN", [
        ("Kaliabor", "KLB", [("Jakhalabandha", "JKB", 26.59, 93.01)]),
    ]),
]


async def seed_demo_geography(session: AsyncSession) -> int:
    """Insert demo districts, circles and villages when the tables are empty."""
    count = (await session.execute(select(func.count(Village.id)))).scalar() or 0
    if count:
        return 0

    created = 0
    for district_name, district_code, circles in DEMO_GEOGRAPHY:
        district = District(name=district_name, code=district_code, created_at=utcnow())
        session.add(district)
        await session.flush()
        for circle_name, circle_code, villages in circles:
            circle = Circle(name=circle_name, code=circle_code, district_id=district.id, created_at=utcnow())
            session.add(circle)
            await session.flush()
            for village_name, village_code, lat, lon in villages:
                session.add(Village(
                    name=village_name,
                    code=village_code,
                    circle_id=circle.id,
                    latitude=lat,
                    longitude=lon,
                    created_at=utcnow(),
                ))
                created += 1
    await session.commit()
    logger.info("seeded %d demo villages", created)
    return created
