"""
Dependency wiring for the payment endpoints.

Process-lifetime state (the schema guard status) lives on ``app.state`` so
tests can replace it between runs.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.api.payments.reconciliation import ReconciliationEngine
from src.api.payments.repository import OrderPaymentRepository
from src.api.payments.service import PaymentService
from src.database.connection import AsyncSessionLocal, engine
from src.database.schema_guard import PaymentSchemaGuard, SchemaStatus
from src.integrations.mpgs.client import MPGSClient
from src.integrations.mpgs.negotiation import SessionNegotiator


def get_engine() -> AsyncEngine:
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_schema_status(request: Request) -> SchemaStatus:
    status = getattr(request.app.state, "schema_status", None)
    if status is None:
        status = SchemaStatus()
        request.app.state.schema_status = status
    return status


def get_schema_guard(
    db_engine: AsyncEngine = Depends(get_engine),
    status: SchemaStatus = Depends(get_schema_status),
) -> PaymentSchemaGuard:
    return PaymentSchemaGuard(db_engine, status)


def get_mpgs_client() -> MPGSClient:
    return MPGSClient()


def get_order_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    schema_guard: PaymentSchemaGuard = Depends(get_schema_guard),
) -> OrderPaymentRepository:
    return OrderPaymentRepository(session_factory, schema_guard)


def get_payment_service(
    repository: OrderPaymentRepository = Depends(get_order_repository),
    client: MPGSClient = Depends(get_mpgs_client),
) -> PaymentService:
    return PaymentService(repository, client, SessionNegotiator(client))


def get_reconciliation_engine(
    repository: OrderPaymentRepository = Depends(get_order_repository),
) -> ReconciliationEngine:
    return ReconciliationEngine(repository)
