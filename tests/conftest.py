"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from redsys_core.config import REDSYS_ENDPOINTS
from redsys_core.engine.operations import PaymentOperations
from redsys_core.models.billing import Base, Member, Subscription
from redsys_core.protocol.codec import encode_parameters
from redsys_core.protocol.signature import create_signature
from redsys_core.providers.mock_gateway import MockRedsysGateway
from redsys_core.providers.redsys_client import RedsysClient
from redsys_core.store import BillingStore

# Public RedSys test-environment merchant account
SECRET_KEY = "sq7HjrUOBfKmC576ILgskD5srU870gJ7"
MERCHANT_CODE = "999008881"
NOTIFICATION_URL = "http://testserver/api/payments/notification"

NOW = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)


def signed_notification(order: str = "2503M0000001", code: str = "0000", **extra) -> tuple[str, str]:
    """Encoded parameters and signature of a processor notification."""
    params = {
        "Ds_Order": order,
        "Ds_Response": code,
        "Ds_Amount": "1000",
        "Ds_AuthorisationCode": "654321",
        "Ds_CardNumber": "454881******0004",
        **extra,
    }
    encoded = encode_parameters(params)
    return encoded, create_signature(SECRET_KEY, encoded, order)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingHook:
    """Transition hook that records each call instead of touching members."""

    def __init__(self):
        self.calls = []

    async def __call__(self, subscription, new_status, **member_fields):
        self.calls.append((subscription.id, new_status, member_fields))


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(db_session, clock):
    return BillingStore(db_session, clock)


@pytest.fixture
def mock_gateway():
    return MockRedsysGateway(SECRET_KEY)


@pytest_asyncio.fixture
async def redsys_client(mock_gateway):
    http = httpx.AsyncClient(transport=mock_gateway.transport)
    client = RedsysClient(
        SECRET_KEY,
        MERCHANT_CODE,
        REDSYS_ENDPOINTS["test"],
        notification_url=NOTIFICATION_URL,
        http_client=http,
    )
    yield client
    await http.aclose()


@pytest.fixture
def operations(redsys_client):
    return PaymentOperations(redsys_client)


@pytest_asyncio.fixture
async def add_subscription(db_session):
    """Factory inserting a member (if new) and a subscription due yesterday."""

    async def _add(member_id: str = "MEM-001", **overrides) -> str:
        if await db_session.get(Member, member_id) is None:
            db_session.add(Member(
                id=member_id,
                name=f"Member {member_id}",
                is_member=True,
                subscription_status="active",
            ))
        values = {
            "member_id": member_id,
            "plan_type": "over25",
            "interval": "monthly",
            "status": "active",
            "start_date": YESTERDAY - timedelta(days=31),
            "end_date": YESTERDAY,
            "card_token": f"tok_{member_id.lower()}",
            "card_token_expiry": "3412",
            "cof_txn_id": "999999999999999",
            "renewal_failures": 0,
        }
        values.update(overrides)
        subscription = Subscription(**values)
        db_session.add(subscription)
        await db_session.commit()
        return subscription.id

    return _add
