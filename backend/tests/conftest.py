import pytest
import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

# Test environment, set before reelpipe is imported
os.environ.setdefault('TESTING', 'true')
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///:memory:'
os.environ['STREAM_API_KEY'] = 'test-api-key'
os.environ['STREAM_LIBRARY_ID'] = '12345'
os.environ['STREAM_API_URL'] = 'https://stream.test'
os.environ['STREAM_TUS_ENDPOINT'] = 'https://stream.test/tusupload'
os.environ['STREAM_CDN_HOSTNAME'] = 'cdn.stream.test'

import httpx

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from reelpipe.core.database import Base, get_db
from reelpipe.core.security import get_current_user
from reelpipe.main import app
from reelpipe.models import User, Project, ProjectMember, Video
from reelpipe.services.stream_host import StreamHostClient, get_stream_host


@pytest.fixture
async def db_session():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def stream_host():
    """Stream host client with the network calls mocked out"""
    client = StreamHostClient(api_url="https://stream.test", api_key="test-api-key", library_id="12345")
    client.create_video = AsyncMock(side_effect=lambda title, collection_id=None: f"guid-{uuid.uuid4().hex[:12]}")
    client.get_video = AsyncMock(return_value={"status": 2, "encodeProgress": 10})
    client.delete_video = AsyncMock(return_value=True)
    return client


@pytest.fixture
async def seed(db_session):
    """Owner, uploader, deleter and outsider around one project.

    Only ids are handed out; ORM objects can expire when a service rolls back.
    """
    owner = User(id=str(uuid.uuid4()), email="owner@example.com", username="owner")
    uploader = User(id=str(uuid.uuid4()), email="uploader@example.com", username="uploader")
    deleter = User(id=str(uuid.uuid4()), email="deleter@example.com", username="deleter")
    outsider = User(id=str(uuid.uuid4()), email="outsider@example.com", username="outsider")
    project = Project(id=str(uuid.uuid4()), name="Launch film", owner_id=owner.id,
                      video_count=0, collection_id="collection-1")
    other_project = Project(id=str(uuid.uuid4()), name="Other", owner_id=outsider.id, video_count=0)
    db_session.add_all([owner, uploader, deleter, outsider, project, other_project])
    db_session.add_all([
        ProjectMember(project_id=project.id, user_id=uploader.id, can_upload=True, can_delete=False),
        ProjectMember(project_id=project.id, user_id=deleter.id, can_upload=False, can_delete=True),
    ])
    await db_session.commit()
    return SimpleNamespace(
        owner_id=owner.id,
        uploader_id=uploader.id,
        deleter_id=deleter.id,
        outsider_id=outsider.id,
        project_id=project.id,
        other_project_id=other_project.id,
    )


_clock = {"now": datetime(2026, 1, 1, tzinfo=timezone.utc)}


@pytest.fixture
def make_video(db_session):
    """Insert a video row directly; created_at increases with every call"""
    async def _make(project_id, uploaded_by, status="processing", **fields):
        _clock["now"] += timedelta(seconds=1)
        video = Video(
            id=fields.pop("id", str(uuid.uuid4())),
            project_id=project_id,
            uploaded_by=uploaded_by,
            external_video_id=fields.pop("external_video_id", f"guid-{uuid.uuid4().hex[:12]}"),
            external_library_id="12345",
            title=fields.pop("title", "Clip"),
            original_file_name=fields.pop("original_file_name", "clip.mp4"),
            file_size=fields.pop("file_size", 1024),
            mime_type=fields.pop("mime_type", "video/mp4"),
            status=status,
            created_at=fields.pop("created_at", _clock["now"]),
            **fields,
        )
        db_session.add(video)
        project = await db_session.get(Project, project_id)
        project.video_count = (project.video_count or 0) + 1
        await db_session.commit()
        return video.id
    return _make


@pytest.fixture
def auth():
    """Mutable holder for the user the API sees as authenticated"""
    return SimpleNamespace(user_id=None)


@pytest.fixture
async def client(db_session, stream_host, auth):
    async def override_get_db():
        yield db_session

    async def override_current_user():
        return await db_session.get(User, auth.user_id)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user
    app.dependency_overrides[get_stream_host] = lambda: stream_host
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def refetch(db_session):
    """Read a row again, bypassing the identity map's stale copy"""
    async def _refetch(model, ident):
        return await db_session.get(model, ident, populate_existing=True)
    return _refetch


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
