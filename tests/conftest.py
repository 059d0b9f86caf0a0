"""Shared fixtures for the demarcation portal test suite."""

from dataclasses import dataclass

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from demarcation.db import get_db, init_models, make_engine
from demarcation.main import app
from demarcation.models import Circle, District, User, Village
from demarcation.permissions import Role
from demarcation.services.users import hash_password

PASSWORD = "Passw0rd123"
# hashed once; bcrypt is slow on purpose
PASSWORD_HASH = hash_password(PASSWORD)


# ═══════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test; StaticPool keeps every session on one connection."""
    engine = make_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ═══════════════════════════════════════════════════
# Geography + users
# ═══════════════════════════════════════════════════

@dataclass
class World:
    district: District
    narnaul_circle: Circle
    rewari_circle: Circle
    narnaul: Village
    nangal: Village
    rewari: Village
    citizen: User
    other_citizen: User
    officer: User
    idle_officer: User
    rewari_officer: User
    supervisor: User
    admin: User


def _user(email, name, role, circle=None):
    return User(
        email=email,
        full_name=name,
        hashed_password=PASSWORD_HASH,
        role=role.value,
        circle_id=circle.id if circle is not None else None,
        is_active=True,
    )


@pytest_asyncio.fixture
async def world(session) -> World:
    district = District(name="Mahendragarh", code="MHG")
    session.add(district)
    await session.flush()

    narnaul_circle = Circle(name="Narnaul Circle", code="NRN-C", district_id=district.id)
    rewari_circle = Circle(name="Rewari Circle", code="RWR-C", district_id=district.id)
    session.add_all([narnaul_circle, rewari_circle])
    await session.flush()

    narnaul = Village(name="Narnaul", code="NRN", circle_id=narnaul_circle.id)
    nangal = Village(name="Nangal", code="NGL", circle_id=narnaul_circle.id)
    rewari = Village(name="Rewari", code="RWR", circle_id=rewari_circle.id)
    session.add_all([narnaul, nangal, rewari])
    await session.flush()

    users = {
        "citizen": _user("asha@example.com", "Asha Devi", Role.CITIZEN),
        "other_citizen": _user("ravi@example.com", "Ravi Kumar", Role.CITIZEN),
        "officer": _user("patwari@example.com", "Suresh Yadav", Role.OFFICER, narnaul_circle),
        "idle_officer": _user("idle@example.com", "Anil Sharma", Role.OFFICER, narnaul_circle),
        "rewari_officer": _user("rewari@example.com", "Meena Rao", Role.OFFICER, rewari_circle),
        "supervisor": _user("adc@example.com", "Kavita Singh", Role.SUPERVISOR),
        "admin": _user("admin@example.com", "Admin", Role.ADMINISTRATOR),
    }
    session.add_all(users.values())
    await session.commit()
    # detached copies: a rollback inside a service must not expire the actors
    session.expunge_all()

    return World(
        district=district,
        narnaul_circle=narnaul_circle,
        rewari_circle=rewari_circle,
        narnaul=narnaul,
        nangal=nangal,
        rewari=rewari,
        **users,
    )
