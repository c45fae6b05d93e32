"""
Test fixtures - in-memory SQLite database + authenticated HTTP clients per role
"""
from datetime import date

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from cafeteria.database import Base, enable_sqlite_foreign_keys, get_db
from cafeteria.main import app
from cafeteria.api.auth import get_password_hash, create_access_token
from cafeteria.api.mealplans import get_today
from cafeteria.models.user import User, UserRole
from cafeteria.models.person import Person, PersonType
from cafeteria.models.establishment import Establishment

TODAY = date(2025, 3, 5)


@pytest_asyncio.fixture()
async def db_session():
    """Create a fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """Two establishments, one user per role, a student and a staff member"""
    est_a = Establishment(name="Institut A")
    est_b = Establishment(name="Institut B")
    db_session.add_all([est_a, est_b])
    await db_session.commit()

    password = get_password_hash("testpass123")
    admin = User(username="admin", email="admin@school.mr", full_name="Admin",
                 hashed_password=password, role=UserRole.ADMIN)
    manager = User(username="manager", email="manager@school.mr", full_name="Manager A",
                   hashed_password=password, role=UserRole.MANAGER, establishment_id=est_a.id)
    scanner = User(username="scanner", full_name="Scan Agent",
                   hashed_password=password, role=UserRole.SCAN_AGENT)
    student_user = User(username="12345", email="12345@school.mr", full_name="Awa Diop",
                        hashed_password=password, role=UserRole.STUDENT, establishment_id=est_a.id)
    staff_user = User(username="S900", full_name="Moussa Ba",
                      hashed_password=password, role=UserRole.STAFF, establishment_id=est_a.id)

    student = Person(matricule="12345", name="Awa Diop", email="12345@school.mr",
                     establishment_id=est_a.id, type=PersonType.STUDENT, student_year=2)
    other_student = Person(matricule="67890", name="Fatou Sall",
                           establishment_id=est_b.id, type=PersonType.STUDENT)
    staff = Person(matricule="S900", name="Moussa Ba",
                   establishment_id=est_a.id, type=PersonType.STAFF)

    db_session.add_all([admin, manager, scanner, student_user, staff_user, student, other_student, staff])
    await db_session.commit()

    return {
        "est_a": est_a,
        "est_b": est_b,
        "admin": admin,
        "manager": manager,
        "scanner": scanner,
        "student_user": student_user,
        "staff_user": staff_user,
        "student": student,
        "other_student": other_student,
        "staff": staff,
    }


@pytest_asyncio.fixture()
async def clock():
    """Mutable 'today' served to the window dependency"""
    return {"today": TODAY}


async def _client_for(db_session, clock, user=None):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: clock["today"]

    transport = ASGITransport(app=app)
    ac = AsyncClient(transport=transport, base_url="http://test", follow_redirects=True)
    if user is not None:
        token = create_access_token(data={"sub": user.username})
        ac.headers["Authorization"] = f"Bearer {token}"
    return ac


@pytest_asyncio.fixture()
async def client(db_session, seed_data, clock):
    """Authenticated admin client"""
    async with await _client_for(db_session, clock, seed_data["admin"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def manager_client(db_session, seed_data, clock):
    async with await _client_for(db_session, clock, seed_data["manager"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def scanner_client(db_session, seed_data, clock):
    async with await _client_for(db_session, clock, seed_data["scanner"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def student_client(db_session, seed_data, clock):
    async with await _client_for(db_session, clock, seed_data["student_user"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def staff_client(db_session, seed_data, clock):
    async with await _client_for(db_session, clock, seed_data["staff_user"]) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session, clock):
    """Unauthenticated httpx AsyncClient"""
    async with await _client_for(db_session, clock) as ac:
        yield ac
    app.dependency_overrides.clear()
