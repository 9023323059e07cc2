"""
Shared fixtures: a throwaway sqlite database, the app wired to fakes, and
small builders for templates and projects.

Environment variables are set before anything from ``onboardhub`` is
imported, because settings and the engine are created at import time.
"""

import os
import tempfile
from pathlib import Path
from typing import Any

_DB_DIR = tempfile.mkdtemp(prefix="onboardhub-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["ENVIRONMENT"] = "test"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["CRM_API_KEY"] = "test-crm-key"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["RESEND_API_KEY"] = ""
os.environ["STORAGE_SERVICE_KEY"] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402

from onboardhub.api.deps import get_mailer, get_storage  # noqa: E402
from onboardhub.config import get_settings  # noqa: E402
from onboardhub.db.base import Base  # noqa: E402
from onboardhub.db.session import async_session_factory, engine  # noqa: E402
from onboardhub.exceptions import UpstreamError  # noqa: E402
from onboardhub.main import app  # noqa: E402
from onboardhub.models import Project, Stage, Task, Template, TemplateTask  # noqa: E402
from onboardhub.services.email import Mailer  # noqa: E402
from onboardhub.services.storage import BlobStore  # noqa: E402

STAFF_HEADERS = {"X-API-Key": "test-admin-key"}
CRM_HEADERS = {"Authorization": "Bearer test-crm-key"}
PORTAL_TOKEN = "a" * 32


# =============================================================================
# Fakes for outbound services
# =============================================================================


class RecordingMailer(Mailer):
    """Mailer that renders every message but never touches the network."""

    def __init__(self, settings, fail_for: set[str] | None = None):
        super().__init__(settings)
        self.sent: list[dict[str, Any]] = []
        self.fail_for = fail_for or set()

    async def send(self, to, subject, html, template_type, project_id=None):
        self.sent.append(
            {"to": to, "subject": subject, "html": html, "template_type": template_type}
        )
        if to in self.fail_for:
            return None
        return {"id": f"email-{len(self.sent)}"}


class MemoryBlobStore(BlobStore):
    """Blob store keeping objects in a dict."""

    def __init__(self, settings):
        super().__init__(settings)
        self.objects: dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        full_path = f"{self.bucket}/{path}"
        self.objects[full_path] = data
        return full_path

    async def download(self, full_path: str) -> bytes:
        if full_path not in self.objects:
            raise UpstreamError("storage", "Download failed (404)")
        return self.objects[full_path]


# =============================================================================
# Database and app fixtures
# =============================================================================


@pytest.fixture
async def database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await app.state.activity.drain()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def db(database):
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def activity():
    return app.state.activity


@pytest.fixture
def mailer(settings):
    return RecordingMailer(settings)


@pytest.fixture
def storage(settings):
    return MemoryBlobStore(settings)


@pytest.fixture
async def client(database, mailer, storage):
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_storage] = lambda: storage
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# =============================================================================
# Builders
# =============================================================================


async def make_template(db, stages: list[tuple[str, int]] = (), tasks: list[dict] = ()) -> Template:
    """Template with stages given as (name, order_index) and raw task dicts.

    A task dict may name its stage with ``stage`` (a stage name) and its
    dependency with ``after`` (another task's title).
    """
    template = Template(name="Standard onboarding", is_active=True, estimated_days=30)
    db.add(template)
    await db.flush()

    stage_rows = {}
    for name, order_index in stages:
        stage = Stage(template_id=template.id, name=name, order_index=order_index)
        db.add(stage)
        stage_rows[name] = stage
    await db.flush()

    task_rows = {}
    for idx, task_fields in enumerate(tasks):
        task_fields = dict(task_fields)
        stage_name = task_fields.pop("stage", None)
        task_fields.pop("after", None)
        task_fields.setdefault("order_index", idx)
        task = TemplateTask(
            template_id=template.id,
            stage_id=stage_rows[stage_name].id if stage_name else None,
            **task_fields,
        )
        db.add(task)
        task_rows[task_fields["title"]] = task
    await db.flush()

    for task_fields in tasks:
        if task_fields.get("after"):
            task_rows[task_fields["title"]].depends_on = task_rows[task_fields["after"]].id
    await db.commit()
    return template


async def make_project(db, **fields) -> Project:
    fields.setdefault("name", "Maple Court")
    fields.setdefault("status", "active")
    fields.setdefault("public_token", PORTAL_TOKEN)
    project = Project(**fields)
    db.add(project)
    await db.commit()
    await db.refresh(project)
    return project


async def make_task(db, project: Project, **fields) -> Task:
    fields.setdefault("title", "Upload lease")
    fields.setdefault("visibility", "external")
    fields.setdefault("status", "pending")
    fields.setdefault("order_index", 0)
    task = Task(project_id=project.id, checklist=[], **fields)
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task
