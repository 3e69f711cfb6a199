import json
import os
from decimal import Decimal

# Must be set before any src module reads settings
os.environ["TESTING"] = "True"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MPGS_MERCHANT_ID"] = "TESTMERCHANT"
os.environ["MPGS_API_PASSWORD"] = "test-api-password"
os.environ["MPGS_GATEWAY_URL"] = "https://gateway.test/api"
os.environ["MPGS_RETURN_BASE_URL"] = "http://testserver"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["CLIENT_BASE_URL"] = "http://client.test"
os.environ["MPGS_APP_SCHEME"] = "fecs"

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.api.auth.models import DecodedToken
from src.api.payments.reconciliation import ReconciliationEngine
from src.api.payments.repository import OrderPaymentRepository
from src.database.base import Base
from src.database.models import Order
from src.database.schema_guard import PaymentSchemaGuard, SchemaStatus
from src.integrations.mpgs.client import MPGSClient
from tests.constants import GATEWAY_URL


class FakeGateway:
    """Scripted MPGS gateway behind httpx.MockTransport. Records every request."""

    def __init__(self):
        self.requests = []
        self._responses = []

    def respond(self, body, status_code=200):
        self._responses.append(("json", status_code, body))
        return self

    def reject(self, explanation, status_code=400, **error):
        body = {"result": "ERROR", "error": {"explanation": explanation, **error}}
        return self.respond(body, status_code)

    def session(self, session_id, success_indicator=None):
        body = {"result": "SUCCESS", "session": {"id": session_id}}
        if success_indicator:
            body["successIndicator"] = success_indicator
        return self.respond(body)

    def raw(self, text, status_code=200):
        self._responses.append(("text", status_code, text))
        return self

    def fail(self, exc_class=httpx.ConnectError, message="connection refused"):
        self._responses.append(("raise", exc_class, message))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected gateway call: {request.method} {request.url}")
        kind, first, second = self._responses.pop(0)
        if kind == "raise":
            raise first(second, request=request)
        if kind == "text":
            return httpx.Response(first, text=second)
        return httpx.Response(first, json=second)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def payloads(self):
        return [json.loads(r.content) if r.content else None for r in self.requests]

    @property
    def operations(self):
        return [p.get("apiOperation") if p else None for p in self.payloads]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mpgs_client(gateway):
    return MPGSClient(
        merchant_id="TESTMERCHANT",
        api_password="test-api-password",
        gateway_url=GATEWAY_URL,
        api_version="73",
        timeout=5,
        transport=gateway.transport,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's writes."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def schema_status():
    return SchemaStatus()


@pytest.fixture
def repository(db_engine, session_factory, schema_status):
    return OrderPaymentRepository(
        session_factory, PaymentSchemaGuard(db_engine, schema_status)
    )


@pytest.fixture
def reconciliation(repository):
    return ReconciliationEngine(repository)


@pytest.fixture
def seed_order(session_factory):
    async def _seed(order_id=42, total_amount="25.50", currency="JOD", **fields):
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    Order(
                        id=order_id,
                        order_number=f"ORD-{order_id}",
                        total_amount=Decimal(total_amount),
                        currency=currency,
                        **fields,
                    )
                )
        return order_id

    return _seed


def _test_user() -> DecodedToken:
    return DecodedToken(
        iss="https://securetoken.google.com/test",
        aud="test",
        auth_time=0,
        user_id="customer-1",
        sub="customer-1",
        iat=0,
        exp=9999999999,
        firebase={"sign_in_provider": "custom"},
        uid="customer-1",
    )


@pytest_asyncio.fixture
async def api_client(db_engine, session_factory, mpgs_client):
    """AsyncClient bound to the app with the database and gateway swapped out."""
    from main import app
    from src.dependencies.auth import get_current_user
    from src.dependencies.payments import get_engine, get_mpgs_client, get_session_factory

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_mpgs_client] = lambda: mpgs_client
    app.dependency_overrides[get_current_user] = _test_user
    app.state.schema_status = SchemaStatus()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver", timeout=20
    ) as client:
        yield client

    app.dependency_overrides.clear()
