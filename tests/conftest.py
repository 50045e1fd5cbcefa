import os
from datetime import datetime, timedelta, timezone

os.environ["MODE"] = "test"

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from main import app as fastapi_app
import db as project_db
import db_models  # ensure models are imported
from db_base import Base
from db_models.asset import Asset
from db_models.employee import Employee
from db_models.location import Location
from db_models.user import User
from core import deps
from core.clock import Clock
from core.security import get_password_hash, create_access_token
from core.token_cache import TokenCache
from notifications.mailer import MailDeliveryError
from notifications.templates import render

TEST_DATABASE_URL = "sqlite+aiosqlite://"

# One shared in-memory connection so every session sees the same database
engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
AsyncSessionTest = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class FixedClock(Clock):
    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> None:
        self._now += timedelta(**kwargs)


class RecordingMailer:
    """Renders every message like a real transport and keeps it in `sent`."""

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []
        self.fail_for: set[str] = set()

    async def send(self, recipient, template, data):
        if not recipient:
            raise MailDeliveryError("Recipient has no email address")
        render(template, data)
        if recipient in self.fail_for:
            raise MailDeliveryError(f"Mailbox unavailable: {recipient}")
        self.sent.append((recipient, template, data))

    def to(self, recipient: str) -> list[tuple[str, dict]]:
        return [(template, data) for r, template, data in self.sent if r == recipient]

    def templates(self) -> list[str]:
        return [template for _, template, _ in self.sent]


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def prepare_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory(prepare_db):
    return AsyncSessionTest


@pytest.fixture
async def seed(prepare_db):
    """
    Users 1-3 (admin, auditor, viewer), employees 1-4, two locations and
    four assets. Tokyo holds PC-001..PC-003, Osaka holds PC-004.
    """
    async with AsyncSessionTest() as session:
        session.add_all([
            User(email="admin@example.com", hashed_password=get_password_hash("adminpass"),
                 full_name="Test Admin", role="ADMIN", is_active=True),
            User(email="auditor@example.com", hashed_password=get_password_hash("auditorpass"),
                 full_name="Test Auditor", role="AUDITOR", is_active=True),
            User(email="viewer@example.com", hashed_password=get_password_hash("viewerpass"),
                 full_name="Test Viewer", role="VIEWER", is_active=True),
        ])
        session.add_all([
            Employee(name="Alice Auditor", email="alice@example.com", department="Audit"),
            Employee(name="Bob Owner", email="bob@example.com", department="Sales"),
            Employee(name="Carol Owner", email="carol@example.com", department="Sales"),
            Employee(name="Dave NoMail", email=None, department="Warehouse"),
        ])
        session.add_all([
            Location(name="Tokyo HQ", address="1-1 Marunouchi"),
            Location(name="Osaka Branch", address="2-2 Umeda"),
        ])
        await session.flush()
        session.add_all([
            Asset(asset_id="PC-001", type="Laptop", model="X1", location="Tokyo HQ",
                  status="利用中", user_id=2),
            Asset(asset_id="PC-002", type="Laptop", model="X1", location="Tokyo HQ",
                  status="利用中", user_id=3),
            Asset(asset_id="PC-003", type="Monitor", model="U27", location="Tokyo HQ",
                  status="保管中", user_id=None),
            Asset(asset_id="PC-004", type="Laptop", model="T14", location="Osaka Branch",
                  status="利用中", user_id=2),
        ])
        await session.commit()
    yield


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def token_cache():
    return TokenCache()


@pytest.fixture
async def async_client(seed, clock, mailer, token_cache):
    # A fresh session per request, like the real dependency
    async def override_get_session():
        async with AsyncSessionTest() as session:
            yield session

    fastapi_app.dependency_overrides[project_db.get_session] = override_get_session
    fastapi_app.dependency_overrides[deps.get_clock] = lambda: clock
    fastapi_app.dependency_overrides[deps.get_mailer] = lambda: mailer
    fastapi_app.dependency_overrides[deps.get_token_cache] = lambda: token_cache

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    # Clean up
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def admin_token():
    """Generate an admin JWT token for tests."""
    return create_access_token(data={"sub": "1"})


@pytest.fixture(scope="session")
def auditor_token():
    """Generate an auditor JWT token for tests."""
    return create_access_token(data={"sub": "2"})


@pytest.fixture(scope="session")
def viewer_token():
    return create_access_token(data={"sub": "3"})


@pytest.fixture(scope="session")
def admin_headers(admin_token):
    """Return authorization headers for admin user."""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture(scope="session")
def auditor_headers(auditor_token):
    """Return authorization headers for auditor user."""
    return {"Authorization": f"Bearer {auditor_token}"}


@pytest.fixture(scope="session")
def viewer_headers(viewer_token):
    return {"Authorization": f"Bearer {viewer_token}"}


@pytest.fixture
def create_plan(async_client, admin_headers):
    """Create a plan through the API. Defaults: Tokyo HQ audited by Alice, due in 7 days."""

    async def _create(**overrides):
        payload = {
            "name": "Q1 Audit",
            "description": "Quarterly asset audit",
            "start_date": "2025-01-06",
            "due_date": "2025-01-17",
            "location_ids": [1],
            "auditor_ids": [1],
        }
        payload.update(overrides)
        resp = await async_client.post("/api/v1/audit-plans", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create


@pytest.fixture
def audit_asset_ids(async_client, admin_headers):
    """Map asset tag -> audit asset id for one plan."""

    async def _ids(plan_id: int) -> dict[str, int]:
        resp = await async_client.get(
            "/api/v1/audit-assets", params={"plan_id": plan_id}, headers=admin_headers
        )
        assert resp.status_code == 200, resp.text
        return {row["asset"]["asset_id"]: row["audit_asset"]["id"] for row in resp.json()}

    return _ids


@pytest.fixture
def portal_token(async_client, mailer):
    """Request portal access and return the token from the emailed link."""

    async def _token(email: str, plan_id: int) -> str:
        resp = await async_client.post(
            "/api/v1/employee-audits/request-access",
            json={"email": email, "audit_plan_id": plan_id},
        )
        assert resp.status_code == 200, resp.text
        template, data = mailer.to(email)[-1]
        assert template == "audit_access"
        return data["access_url"].rsplit("/", 1)[-1]

    return _token
