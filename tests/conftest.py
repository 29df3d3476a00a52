import os
# Settings are read from the environment on first use, so set them BEFORE any app imports
os.environ["ENVIRONMENT"] = "development"
os.environ["TESTING"] = "True"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123456789"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-0123456789abcdef01234"
os.environ["SLACK_BOT_TOKEN"] = ""
os.environ["SLACK_CHANNEL_ID"] = ""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Register every model on the metadata before create_all
from app.shared.db.base import Base
from app.models.user import User
from app.models.aws_account import AwsAccount
from app.models.azure_account import AzureAccount
from app.models.gcp_account import GcpAccount
from app.models.cloud import CostRecord, Resource
from app.models.recommendation import Recommendation
from app.models.alert import Alert
from app.modules.notifications.domain.events import EventBus
from app.shared.core.config import get_settings

ACCOUNT_MODELS = {"aws": AwsAccount, "azure": AzureAccount, "gcp": GcpAccount}


class Factory:
    """Persists test rows with sensible defaults."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, role: str = "member", **kwargs) -> User:
        n = self._next()
        return await self._save(User(email=kwargs.pop("email", f"user{n}@example.com"), role=role, **kwargs))

    async def account(self, user: User, provider: str = "aws", deleted: bool = False, **kwargs):
        n = self._next()
        model = ACCOUNT_MODELS[provider]
        defaults = {
            "aws": {"account_id": f"{100000000000 + n}", "access_key_id": "AKIATEST", "secret_access_key": "s3cr3t"},
            "azure": {"subscription_id": f"sub-{n}", "client_id": "client", "client_secret": "secret"},
            "gcp": {"project_id": f"project-{n}", "service_account_json": '{"type": "service_account"}'},
        }[provider]
        fields = {"name": f"{provider.upper()} account {n}", **defaults, **kwargs}
        if deleted:
            fields["deleted_at"] = datetime.now(timezone.utc)
        return await self._save(model(user_id=user.id, **fields))

    async def cost(self, account, day: date, service: str = "Compute", cost="10", **kwargs) -> CostRecord:
        return await self._save(CostRecord(
            provider=account.provider,
            account_id=account.id,
            date=day,
            service=service,
            cost=Decimal(str(cost)),
            **kwargs,
        ))

    async def resource(self, account, **kwargs) -> Resource:
        n = self._next()
        fields = {
            "resource_id": f"res-{n}",
            "resource_type": "vm",
            "status": "running",
            "utilization": 50.0,
            "cost_per_month": Decimal("100"),
            "tags": {},
            **kwargs,
        }
        fields["cost_per_month"] = Decimal(str(fields["cost_per_month"]))
        return await self._save(Resource(provider=account.provider, account_id=account.id, **fields))

    async def recommendation(self, account, **kwargs) -> Recommendation:
        n = self._next()
        fields = {
            "title": f"Recommendation {n}",
            "recommendation_type": "rightsizing",
            "impact": "medium",
            "potential_savings": Decimal("50"),
            "status": "open",
            "extra_metadata": {},
            **kwargs,
        }
        fields["potential_savings"] = Decimal(str(fields["potential_savings"]))
        return await self._save(Recommendation(provider=account.provider, account_id=account.id, **fields))

    async def alert(self, user: User, **kwargs) -> Alert:
        n = self._next()
        fields = {"title": f"Alert {n}", "message": "Something happened", "severity": "info",
                  "category": "cost", "status": "new", **kwargs}
        return await self._save(Alert(user_id=user.id, **fields))


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


def make_token(user_id, secret: str = None, expires_in: timedelta = timedelta(hours=1)) -> str:
    payload = {"sub": str(user_id), "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, secret or get_settings().JWT_SECRET, algorithm="HS256")


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}


@pytest.fixture
def bus() -> EventBus:
    """A private event bus with no consumer, so published events stay queued."""
    return EventBus()


@pytest.fixture
def sync_client() -> MagicMock:
    """Billing API client that accepts any credentials and returns no costs."""
    client = MagicMock()
    client.validate_credentials = AsyncMock(return_value=True)
    client.fetch_cost_and_usage = AsyncMock(return_value=[])
    return client


@pytest.fixture
async def ac(db, bus, sync_client) -> AsyncGenerator[AsyncClient, None]:
    """API client whose requests share the test session, event bus and sync client."""
    from app.main import app
    from app.shared.db.session import get_db
    from app.modules.notifications.domain.events import get_event_bus
    from app.modules.reporting.api.v1.accounts import get_sync_client

    async def _get_test_db():
        yield db

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[get_sync_client] = lambda: sync_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    """Bearer headers for a persisted user."""
    return auth_headers
