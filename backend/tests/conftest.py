"""
Shared pytest fixtures for the compliance backend tests.

Uses SQLite in-memory with StaticPool so all sessions share one connection,
meaning data written in one session is visible to others (important for HTTP client tests).
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

import app.models  # noqa – registers all SQLAlchemy models with Base.metadata
from app.api.deps import get_adjustment_dispatcher, get_blob_store, get_clock
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.core.storage import LocalBlobStore
from app.main import app
from app.models.compliance import ComplianceViolation
from app.models.tenant import Tenant
from app.models.time_entry import TimeEntry
from app.services.compliance_service import ComplianceService, dedup_key
from app.services.interval_source import SqlIntervalSource

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "test_secret_key_for_signed_report_links_32c"
DOWNLOAD_BASE_URL = "http://test/api/v1/compliance/reports/download"

UTC = timezone.utc
NOW = datetime(2025, 3, 12, 10, 0, tzinfo=UTC)  # Mittwoch


# ── Test-Doubles ──────────────────────────────────────────────────────────────

class FixedClock:
    """Uhr mit fester, manuell vorstellbarer Zeit."""

    def __init__(self, now: datetime = NOW):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs) -> None:
        self._now += timedelta(**kwargs)


class RecordingDispatcher:
    def __init__(self):
        self.jobs = []

    def dispatch(self, job) -> bool:
        self.jobs.append(job)
        return True


# ── Shared engine (function-scoped: fresh DB per test) ───────────────────────

@pytest_asyncio.fixture
async def engine():
    """Creates a fresh in-memory SQLite engine per test with a shared connection pool."""
    eng = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,          # single shared connection → all sessions see same data
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    """Async DB session for direct data inspection inside tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(root=tmp_path / "blobs", base_url=DOWNLOAD_BASE_URL, secret_key=TEST_SECRET)


@pytest.fixture
def service(db, clock, dispatcher) -> ComplianceService:
    return ComplianceService(db, clock, SqlIntervalSource(db), dispatcher)


# ── HTTP client fixture ───────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, clock, dispatcher, blob_store) -> AsyncClient:
    """
    FastAPI test client with get_db, clock, blob store and dispatcher
    overridden. Each request gets its own session but shares the same
    underlying connection via StaticPool.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_adjustment_dispatcher] = lambda: dispatcher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ── Tenant + Token fixtures ───────────────────────────────────────────────────

async def create_tenant(db, modules: list[str] | None = None) -> Tenant:
    t = Tenant(
        id=uuid.uuid4(),
        name="Test GmbH",
        slug=f"test-{uuid.uuid4().hex[:8]}",
        settings={"modules": modules if modules is not None else ["time_account"]},
        is_active=True,
        created_at=NOW,
    )
    db.add(t)
    await db.commit()
    return t


@pytest_asyncio.fixture
async def tenant(db) -> Tenant:
    return await create_tenant(db)


@pytest.fixture
def admin_token(tenant) -> str:
    return create_access_token("admin-1", tenant.id, "admin")


@pytest.fixture
def manager_token(tenant) -> str:
    return create_access_token("manager-1", tenant.id, "manager")


@pytest.fixture
def employee_token(tenant) -> str:
    return create_access_token("employee-1", tenant.id, "employee")


# ── Helper ────────────────────────────────────────────────────────────────────

def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def utc(year, month, day, hour=0, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


async def add_time_entry(
    db,
    tenant_id: uuid.UUID,
    user_id: str,
    clock_in: datetime,
    clock_out: datetime | None,
    break_minutes: int = 0,
) -> TimeEntry:
    entry = TimeEntry(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        user_id=user_id,
        clock_in=clock_in,
        clock_out=clock_out,
        break_minutes=break_minutes,
        source="clock",
        created_at=clock_in,
    )
    db.add(entry)
    await db.commit()
    return entry


async def add_violation(
    db,
    tenant_id: uuid.UUID,
    detected_at: datetime,
    user_id: str = "user-1",
    violation_type: str = "REST_PERIOD_VIOLATION",
    severity: str = "error",
    rule_set: str = "eu",
    acknowledged: bool = False,
) -> ComplianceViolation:
    period_start = detected_at - timedelta(hours=12)
    period_end = detected_at - timedelta(hours=2)
    v = ComplianceViolation(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        user_id=user_id,
        violation_type=violation_type,
        severity=severity,
        rule_set=rule_set,
        detected_at=detected_at,
        period_start=period_start,
        period_end=period_end,
        details={"expected": 660, "actual": 600, "affected_entries": ["e1", "e2"]},
        dedup_key=dedup_key(tenant_id, user_id, violation_type, period_start, period_end),
        acknowledged_at=detected_at if acknowledged else None,
        acknowledged_by="manager-1" if acknowledged else None,
    )
    db.add(v)
    await db.commit()
    return v
