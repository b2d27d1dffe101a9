"""
CampusNotes Backend: Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own SQLite database (aiosqlite) with the schema
       created from the ORM metadata, its own storage directory and a
       NoteService wired to a fake preview renderer. The HTTP client talks
       to the FastAPI app in-process through ASGITransport with the
       database and note service dependencies overridden.

Fixture Hierarchy:
    ├── test_settings: Settings pointing at tmp_path storage, no retry waits
    ├── engine / session_factory / db_session: per-test SQLite database
    ├── object_store: ObjectStore over tmp_path
    ├── renderer / failing_renderer: fake PreviewRenderers
    ├── note_service: NoteService(object_store, renderer)
    ├── make_user: factory for persisted users
    ├── pdf_upload: a small PDF-typed payload
    └── client: HTTPX AsyncClient against the app
"""

import os
import tempfile

# Must happen before any campusnotes import: settings and the engine are
# created at import time.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="campusnotes_test_db_"), "unused.db"
)
os.environ["STATIC_FILE_STORAGE_LOCATION"] = tempfile.mkdtemp(prefix="campusnotes_test_")
os.environ["STATIC_FILES_URL"] = "https://static.example.test"
os.environ["SIGNING_SECRET"] = "test-signing-secret-0123456789"
os.environ["IDENTITY_EXCHANGE_SECRET"] = "test-exchange-secret"
os.environ["LOG_LEVEL"] = "WARNING"

from pathlib import Path
from typing import AsyncGenerator, Callable, List, Optional, Tuple

import aiofiles
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from campusnotes.config import Settings
from campusnotes.database import Base, get_db_session
from campusnotes.exceptions import PreviewRenderError
from campusnotes.models.note import Note
from campusnotes.models.user import User
from campusnotes.models.vote import Vote  # noqa: F401
from campusnotes.schemas.note import UploadedFile, UploadMetadata
from campusnotes.security import create_session_token
from campusnotes.services.note_service import NoteService
from campusnotes.services.object_store import ObjectStore
from campusnotes.services.preview_base import PreviewRenderer

# Minimal bytes with a PDF header; only the declared content type is checked
SAMPLE_PDF = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


# ══════════════════════════════════════════════════════════════════════════
# Fake Preview Renderers
# ══════════════════════════════════════════════════════════════════════════

class FakeRenderer(PreviewRenderer):
    """Writes a tiny JPEG where pdftoppm would and records its calls."""

    def __init__(self):
        self.calls: List[Tuple[Path, Path]] = []

    async def render(self, source_pdf: Path, dest_without_extension: Path) -> Path:
        self.calls.append((source_pdf, dest_without_extension))
        output = Path(f"{dest_without_extension}.jpg")
        output.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(output, "wb") as f:
            await f.write(b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9")
        return output

    async def health_check(self) -> bool:
        return True


class FailingRenderer(PreviewRenderer):
    def __init__(self):
        self.calls = 0

    async def render(self, source_pdf: Path, dest_without_extension: Path) -> Path:
        self.calls += 1
        raise PreviewRenderError("pdftoppm exited with status 1")

    async def health_check(self) -> bool:
        return False


# ══════════════════════════════════════════════════════════════════════════
# Configuration & Storage
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        static_file_storage_location=str(tmp_path / "storage"),
        static_files_url="https://static.example.test",
        file_size_limit_mb=1,
        preview_max_attempts=1,
        preview_retry_wait=0,
        cb_failure_threshold=3,
        orphan_grace_seconds=60,
    )


@pytest.fixture
def object_store(test_settings) -> ObjectStore:
    return ObjectStore(test_settings)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def failing_renderer() -> FailingRenderer:
    return FailingRenderer()


@pytest.fixture
def note_service(object_store, renderer, test_settings) -> NoteService:
    return NoteService(object_store=object_store, renderer=renderer, config=test_settings)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine(test_settings):
    engine = create_async_engine(test_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session) -> Callable:
    """
    Usage:
        alice = await make_user("alice")
    """

    async def _make_user(handle: str, picture: Optional[str] = None) -> User:
        user = User(
            google_id=f"google-{handle}",
            email=f"{handle}@campus.example.edu",
            full_name=handle.capitalize(),
            picture=picture,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_note(db_session) -> Callable:
    """A committed notes row without files, for vote and ranking tests."""

    async def _make_note(uploader: User, course_code: str = "CS101", downloads: int = 0) -> Note:
        note = Note(
            course_name="Introduction to Computing",
            course_code=course_code,
            note_year=2024,
            note_semester="Autumn",
            uploader_user_id=uploader.id,
            downloads=downloads,
        )
        db_session.add(note)
        await db_session.commit()
        return note

    return _make_note


# ══════════════════════════════════════════════════════════════════════════
# Upload Payloads
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def pdf_upload() -> UploadedFile:
    return UploadedFile(filename="notes.pdf", content_type="application/pdf", content=SAMPLE_PDF)


@pytest.fixture
def metadata() -> UploadMetadata:
    return UploadMetadata(
        course_name="Programming and Data Structures",
        course_code="CS10001",
        description="Week 1-4 lecture notes",
        professor_names="Prof. Rao, Prof. Sen",
        tags="midsem, arrays",
        year="2024",
        semester="Autumn",
    )


@pytest.fixture
def auth_headers() -> Callable[[User], dict]:
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_session_token(user.google_id)}"}

    return _headers


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def client(session_factory, note_service) -> AsyncGenerator[AsyncClient, None]:
    """
    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from campusnotes.dependencies import get_note_service
    from campusnotes.main import app

    async def _test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_session
    app.dependency_overrides[get_note_service] = lambda: note_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
