"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from redsys_core.database import get_session
from redsys_core.providers.base import PaymentGateway
from redsys_core.providers.redsys_client import RedsysClient
from redsys_core.store import BillingStore


async def get_store(session: AsyncSession = Depends(get_session)) -> BillingStore:
    return BillingStore(session)


async def get_gateway() -> AsyncGenerator[PaymentGateway, None]:
    async with RedsysClient.from_settings() as client:
        yield client
