# tests/conftest.py

"""Shared fixtures: in-memory database, app client and fake collaborators."""

import asyncio
import json
import os
import tempfile
from typing import Any, Dict, List, Optional, Tuple

# Settings are read at import time, so point them at throwaway resources first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="rental-uploads-"))
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:1")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db, get_prediction_queue, get_scoring_client
from app.db.init_db import init_db
from app.domains.accounts.api.user_endpoints import issue_token
from app.domains.accounts.models.user import ROLE_ADMIN, ROLE_OWNER, ROLE_TENANT, User
from app.domains.accounts.schemas.user import UserCreate
from app.domains.accounts.services.user_service import UserService
from app.domains.chat.services.chat_service import ChatConnectionManager, get_chat_connections
from app.domains.listings.models.listing import Listing
from app.domains.listings.services.upload_service import UploadService, get_upload_service
from app.domains.predictions.queue import PredictionQueue
from app.domains.predictions.scoring_client import ScoringClient


class RecordingQueue(PredictionQueue):
    """Queue double that accepts every job and remembers it."""

    available = True

    def __init__(self):
        self.calls: List[Tuple[str, Optional[Dict[str, Any]]]] = []

    async def enqueue(self, listing_id, features=None, *, attempts=None, backoff_seconds=None):
        self.calls.append((listing_id, features))
        return f"job-{len(self.calls)}"


class BrokenQueue(PredictionQueue):
    """Queue double whose backend refuses every job."""

    available = True

    async def enqueue(self, listing_id, features=None, *, attempts=None, backoff_seconds=None):
        raise ConnectionError("redis connection refused")


class HangingQueue(PredictionQueue):
    """Queue double whose backend never answers."""

    available = True

    async def enqueue(self, listing_id, features=None, *, attempts=None, backoff_seconds=None):
        await asyncio.sleep(30)
        return "never"


class ScoringStub:
    """Programmable handler for ``httpx.MockTransport``."""

    def __init__(self, payload: Optional[Dict[str, Any]] = None, status_code: int = 200):
        self.payload = payload if payload is not None else {"predicted_price": 42000, "model_version": "v1"}
        self.status_code = status_code
        self.requests: List[Dict[str, Any]] = []
        self.before_reply = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.before_reply is not None:
            await self.before_reply()
        return httpx.Response(self.status_code, json=self.payload)


def make_scoring_client(handler) -> ScoringClient:
    return ScoringClient(base_url="http://ml.test", timeout=1.0, transport=httpx.MockTransport(handler))


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def scoring_stub():
    return ScoringStub()


@pytest_asyncio.fixture
async def scoring_client(scoring_stub):
    client = make_scoring_client(scoring_stub)
    yield client
    await client.close()


@pytest.fixture
def upload_service(tmp_path):
    return UploadService(upload_dir=str(tmp_path / "uploads"), max_bytes=1024, max_files=3)


@pytest.fixture
def chat_connections():
    return ChatConnectionManager()


@pytest.fixture
def app(session_factory, queue, scoring_client, upload_service, chat_connections):
    from app.main import app as fastapi_app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_prediction_queue] = lambda: queue
    fastapi_app.dependency_overrides[get_scoring_client] = lambda: scoring_client
    fastapi_app.dependency_overrides[get_upload_service] = lambda: upload_service
    fastapi_app.dependency_overrides[get_chat_connections] = lambda: chat_connections
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


async def create_user(session_factory, username: str, role: str = ROLE_TENANT) -> User:
    async with session_factory() as session:
        user = await UserService.create_user(
            session,
            UserCreate(
                email=f"{username}@example.com",
                username=username,
                password="password123",
                name=username.title(),
            ),
        )
        if role != ROLE_TENANT:
            user = await UserService.set_role(session, user, role)
        return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest_asyncio.fixture
async def owner(session_factory):
    return await create_user(session_factory, "owner", ROLE_OWNER)


@pytest_asyncio.fixture
async def tenant(session_factory):
    return await create_user(session_factory, "tenant")


@pytest_asyncio.fixture
async def admin(session_factory):
    return await create_user(session_factory, "admin", ROLE_ADMIN)


async def insert_listing(session_factory, owner_id: int, **fields) -> Listing:
    values = {"title": "2BHK near metro", "address": "12 MG Road", "price": 25000.0, "city": "Bengaluru"}
    values.update(fields)
    async with session_factory() as session:
        listing = Listing(owner_id=owner_id, **values)
        session.add(listing)
        await session.commit()
        await session.refresh(listing)
        return listing


async def fetch_listing(session_factory, listing_id: str) -> Optional[Listing]:
    async with session_factory() as session:
        return await session.get(Listing, listing_id)
