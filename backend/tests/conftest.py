"""
Shared fixtures: SQLite-backed sessions and a stubbed Graph API.
"""

import os

os.environ.setdefault("ENVIRONMENT", "development")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from adagent.database import Base
import adagent.models  # noqa: F401
from adagent.services.auth_service import create_access_token
from adagent.services.credential_store import LinkedCredential

USER_ID = "user-1"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'adagent_test.db'}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield maker
    await engine.dispose()


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def credential():
    return LinkedCredential(user_id=USER_ID, access_token="meta-token")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token(USER_ID)}"}


class GraphStub:
    """
    In-memory Graph API. Routes match on the path after the version segment,
    optionally narrowed by a substring of the `fields` parameter.
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, path, body, status=200, fields_contains=None):
        self.routes.append((path, fields_contains, status, body))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/", 2)[-1]
        fields = request.url.params.get("fields", "")
        self.calls.append((request.method, path, fields))
        # Later routes override earlier ones
        for route_path, contains, status, body in reversed(self.routes):
            if route_path == path and (contains is None or contains in fields):
                if isinstance(body, Exception):
                    raise body
                if callable(body):
                    return body(request)
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={"error": {"message": f"Unknown path {path}", "code": 803}})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, path, fields_contains=None) -> int:
        return sum(
            1 for _, p, f in self.calls
            if p == path and (fields_contains is None or fields_contains in f)
        )


@pytest.fixture
def graph():
    return GraphStub()
