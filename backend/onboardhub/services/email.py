"""Transactional email for client invites and task reminders (Resend)."""

from datetime import date
from typing import Any

import httpx
import structlog
from jinja2 import BaseLoader, Environment, select_autoescape
from markupsafe import Markup

from onboardhub.config import Settings

logger = structlog.get_logger()

# Reminder mails list at most this many tasks and summarise the rest
REMINDER_TASK_LIMIT = 5

_jinja_env = Environment(loader=BaseLoader(), autoescape=select_autoescape(default=True))

LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin:0;padding:20px;background:#f9fafb;font-family:sans-serif;">
  <div style="max-width:600px;margin:0 auto;">
    <div style="background:#00c9e3;padding:24px 32px;border-radius:8px 8px 0 0;">
      <h1 style="color:white;margin:0;font-size:20px;">{{ sender }}</h1>
    </div>
    <div style="padding:32px;border:1px solid #e5e7eb;border-top:none;background:white;">
      {{ body }}
    </div>
  </div>
</body>
</html>"""

INVITE_BODY = """<h2>Welcome to Your Onboarding Portal</h2>
<p>Hi {{ client_name }},</p>
<p>We're excited to begin working with you{% if community_name %} on {{ community_name }}{% endif %}.</p>
<p>Your onboarding portal for <strong>{{ project_name }}</strong> contains the tasks,
documents and information you'll need to get started.</p>
<p><a href="{{ portal_url }}">Access Your Portal</a></p>
<p>No password is required. Bookmark the link for easy access.</p>"""

REMINDER_BODY = """<h2>You Have {{ task_count }} Pending Task{{ '' if task_count == 1 else 's' }}</h2>
<p>Hi {{ client_name }},</p>
<p>This is a friendly reminder about your pending tasks for <strong>{{ project_name }}</strong>.</p>
<ul>
{% for task in tasks %}  <li>{{ task.title }}{% if task.due_date %} (due {{ task.due_date }}){% endif %}</li>
{% endfor %}{% if remaining %}  <li>...and {{ remaining }} more</li>
{% endif %}</ul>
<p><a href="{{ portal_url }}">View All Tasks</a></p>"""


def render(body_template: str, sender: str, **variables: Any) -> str:
    """Render a body template inside the shared layout."""
    body = _jinja_env.from_string(body_template).render(**variables)
    # Body is escaped already
    return _jinja_env.from_string(LAYOUT).render(sender=sender, body=Markup(body))


class Mailer:
    """Sends transactional mail through the Resend HTTP API.

    Every send returns ``{"id": ...}`` on success and ``None`` on any
    failure; failures are logged, never raised.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def portal_url(self, portal_token: str) -> str:
        return f"{self.settings.portal_base_url.rstrip('/')}/p/{portal_token}"

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        template_type: str,
        project_id: Any = None,
    ) -> dict[str, str] | None:
        api_key = self.settings.resend_api_key.get_secret_value()
        if not api_key:
            logger.warning("email_skipped_no_api_key", template_type=template_type)
            return None

        payload = {
            "from": f"{self.settings.mail_from_name} <{self.settings.mail_from_email}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            async with httpx.AsyncClient(timeout=self.settings.mail_timeout) as client:
                response = await client.post(
                    self.settings.resend_api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "email_send_rejected",
                template_type=template_type,
                project_id=str(project_id) if project_id else None,
                status_code=e.response.status_code,
            )
            return None
        except (httpx.HTTPError, ValueError) as e:
            # ValueError covers a 2xx reply whose body is not JSON
            logger.error(
                "email_send_failed",
                template_type=template_type,
                project_id=str(project_id) if project_id else None,
                error=str(e),
            )
            return None

        email_id = data.get("id") if isinstance(data, dict) else None
        if not email_id:
            logger.error(
                "email_send_failed",
                template_type=template_type,
                project_id=str(project_id) if project_id else None,
                error="response carried no message id",
            )
            return None
        logger.info(
            "email_sent",
            template_type=template_type,
            project_id=str(project_id) if project_id else None,
            email_id=email_id,
        )
        return {"id": email_id}

    async def send_invite(
        self,
        to: str,
        client_name: str,
        project_name: str,
        portal_token: str,
        community_name: str | None = None,
        project_id: Any = None,
    ) -> dict[str, str] | None:
        html = render(
            INVITE_BODY,
            sender=self.settings.mail_from_name,
            client_name=client_name,
            project_name=project_name,
            community_name=community_name,
            portal_url=self.portal_url(portal_token),
        )
        return await self.send(
            to=to,
            subject=f"Welcome to your onboarding portal: {project_name}",
            html=html,
            template_type="client_invite",
            project_id=project_id,
        )

    async def send_reminder(
        self,
        to: str,
        client_name: str,
        project_name: str,
        pending_tasks: list[dict[str, Any]],
        portal_token: str,
        project_id: Any = None,
    ) -> dict[str, str] | None:
        task_count = len(pending_tasks)
        shown = [
            {
                "title": t["title"],
                "due_date": t["due_date"].strftime("%b %d, %Y")
                if isinstance(t.get("due_date"), date)
                else t.get("due_date"),
            }
            for t in pending_tasks[:REMINDER_TASK_LIMIT]
        ]
        html = render(
            REMINDER_BODY,
            sender=self.settings.mail_from_name,
            client_name=client_name,
            project_name=project_name,
            task_count=task_count,
            tasks=shown,
            remaining=max(task_count - REMINDER_TASK_LIMIT, 0),
            portal_url=self.portal_url(portal_token),
        )
        plural = "" if task_count == 1 else "s"
        return await self.send(
            to=to,
            subject=f"{task_count} Pending Task{plural}: {project_name}",
            html=html,
            template_type="task_reminder",
            project_id=project_id,
        )
