"""Tests for mail rendering and the Resend/storage HTTP clients."""

from datetime import date

import httpx
import pytest
from pydantic import SecretStr

from onboardhub.exceptions import UpstreamError
from onboardhub.services.email import INVITE_BODY, Mailer, render
from onboardhub.services.storage import BlobStore


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through a handler; returns the captured requests."""
    captured: list[httpx.Request] = []
    responses: list[httpx.Response] = []
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return responses.pop(0)

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)
    return captured, responses


class TestRender:
    def test_variables_are_escaped(self):
        html = render(
            INVITE_BODY,
            sender="Onboarding",
            client_name="<script>alert(1)</script>",
            project_name="Maple & Oak",
            community_name=None,
            portal_url="https://portal.example.com/p/abc",
        )
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "Maple &amp; Oak" in html
        # The body itself is not double-escaped inside the layout
        assert "<h2>Welcome to Your Onboarding Portal</h2>" in html


class TestMailer:
    async def test_no_api_key_skips(self, settings):
        assert await Mailer(settings).send("a@example.com", "Hi", "<p>x</p>", "client_invite") is None

    async def test_send_success(self, settings, mock_http):
        captured, responses = mock_http
        responses.append(httpx.Response(200, json={"id": "re_123"}))
        configured = settings.model_copy(update={"resend_api_key": SecretStr("re_key")})

        result = await Mailer(configured).send("a@example.com", "Hi", "<p>x</p>", "client_invite")

        assert result == {"id": "re_123"}
        assert captured[0].headers["Authorization"] == "Bearer re_key"

    async def test_rejected_send_returns_none(self, settings, mock_http):
        _, responses = mock_http
        responses.append(httpx.Response(422, json={"message": "bad"}))
        configured = settings.model_copy(update={"resend_api_key": SecretStr("re_key")})

        assert await Mailer(configured).send("a@example.com", "Hi", "<p>x</p>", "client_invite") is None

    async def test_non_json_success_body_returns_none(self, settings, mock_http):
        _, responses = mock_http
        responses.append(httpx.Response(200, content=b"<html>gateway</html>"))
        configured = settings.model_copy(update={"resend_api_key": SecretStr("re_key")})

        assert await Mailer(configured).send("a@example.com", "Hi", "<p>x</p>", "task_reminder") is None

    async def test_success_without_id_returns_none(self, settings, mock_http):
        _, responses = mock_http
        responses.append(httpx.Response(200, json=["queued"]))
        configured = settings.model_copy(update={"resend_api_key": SecretStr("re_key")})

        assert await Mailer(configured).send("a@example.com", "Hi", "<p>x</p>", "task_reminder") is None

    async def test_reminder_lists_first_five(self, settings):
        class Capture(Mailer):
            async def send(self, to, subject, html, template_type, project_id=None):
                self.last = {"subject": subject, "html": html}
                return {"id": "x"}

        mailer = Capture(settings)
        tasks = [{"title": f"Task {i}", "due_date": date(2026, 3, i + 1)} for i in range(7)]
        await mailer.send_reminder("a@example.com", "Jordan", "Maple Court", tasks, "tok")

        assert mailer.last["subject"] == "7 Pending Tasks: Maple Court"
        assert "Task 4" in mailer.last["html"]
        assert "Task 5" not in mailer.last["html"]
        assert "and 2 more" in mailer.last["html"]
        assert "Mar 01, 2026" in mailer.last["html"]


class TestBlobStore:
    async def test_upload_requires_credentials(self, settings):
        with pytest.raises(UpstreamError):
            await BlobStore(settings).upload("p/file.pdf", b"data", "application/pdf")

    async def test_upload_and_download(self, settings, mock_http):
        captured, responses = mock_http
        responses.extend([httpx.Response(200, json={"Key": "x"}), httpx.Response(200, content=b"data")])
        configured = settings.model_copy(update={"storage_service_key": SecretStr("svc")})
        store = BlobStore(configured)

        path = await store.upload("p/file.pdf", b"data", "application/pdf")
        assert path == f"{configured.storage_bucket}/p/file.pdf"
        assert captured[0].headers["x-upsert"] == "true"

        assert await store.download(path) == b"data"

    async def test_failed_upload(self, settings, mock_http):
        _, responses = mock_http
        responses.append(httpx.Response(500))
        configured = settings.model_copy(update={"storage_service_key": SecretStr("svc")})
        with pytest.raises(UpstreamError):
            await BlobStore(configured).upload("p/file.pdf", b"data", "application/pdf")
