"""API test fixtures: a bare app wired against a temp database and a fake Discogs."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import httpx
import pytest
from fastapi import FastAPI

from bitrot.config.settings import Settings
from bitrot.infrastructure.lifecycle import wire_services
from bitrot.infrastructure.persistence.database import Database
from bitrot.main import create_app


@pytest.fixture
def app(settings: Settings, db: Database, fake_discogs: Any) -> FastAPI:
    application = create_app(settings, with_lifespan=False)
    wire_services(application, settings, db, fake_discogs)
    return application


@pytest.fixture
def drain(app: FastAPI) -> Callable[[], Awaitable[None]]:
    """Wait for background matches started by ingestion."""

    async def _drain() -> None:
        trigger = app.state.trigger_match
        for _ in range(200):
            if not trigger.pending_dispatches:
                break
            await asyncio.sleep(0.01)
        await app.state.discogs_queue.wait_idle(timeout=2)

    return _drain


@pytest.fixture
async def client(
    app: FastAPI, drain: Callable[[], Awaitable[None]]
) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http
    # Background matches must finish before the db fixture closes the engine
    await drain()
