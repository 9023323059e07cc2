"""Tests for project creation, listings, CRM access and invites."""

from datetime import date
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from conftest import CRM_HEADERS, STAFF_HEADERS, RecordingMailer, make_project, make_task, make_template
from onboardhub.exceptions import UpstreamError
from onboardhub.models import ActivityLog, Project, ProjectTag, Signature, Stage, Tag, Task
from onboardhub.services.projects import ProjectService, is_overdue, next_action


class TestProjectHelpers:
    def test_is_overdue(self):
        today = date(2026, 6, 1)
        late = Task(status="pending", due_date=date(2026, 5, 30))
        skipped = Task(status="skipped", due_date=date(2026, 5, 30))
        due_today = Task(status="pending", due_date=today)
        assert is_overdue(late, today) is True
        assert is_overdue(skipped, today) is False
        assert is_overdue(due_today, today) is False

    def test_next_action_prefers_signatures(self):
        tasks = [Task(title="Upload lease", status="pending", visibility="external")]
        assert next_action(tasks, 2, 0) == "2 signatures pending"
        assert next_action(tasks, 0, 0) == "Upload lease"

    def test_next_action_falls_back_to_staff_work(self):
        tasks = [
            Task(title="Upload lease", status="completed", visibility="external"),
            Task(title="Configure bank", status="pending", visibility="internal"),
        ]
        assert next_action(tasks, 0, 50) == "Staff: Configure bank"
        assert next_action([], 0, 100) is None


class TestCreateProject:
    async def test_staff_create_with_template(self, client, db):
        template = await make_template(
            db,
            [("Kickoff", 0)],
            [{"title": "Intro call", "stage": "Kickoff", "due_days_offset": 3}],
        )

        response = await client.post(
            "/api/v1/projects/",
            json={
                "name": "Maple Court",
                "template_id": str(template.id),
                "client_contact_email": "client@example.com",
                "management_start_date": "2026-02-01",
            },
            headers=STAFF_HEADERS,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "draft"
        assert body["stages_created"] == 1
        assert body["tasks_created"] == 1
        assert len(body["public_token"]) == 32

        rows = await db.execute(select(Task.due_date).where(Task.project_id == UUID(body["id"])))
        assert rows.scalars().all() == [date(2026, 2, 4)]

    async def test_tokens_are_unique(self, db, activity, settings):
        service = ProjectService(db, activity, settings)
        first, _ = await service.create_project({"name": "One"})
        second, _ = await service.create_project({"name": "Two"})
        assert first.public_token != second.public_token

    async def test_name_required(self, client, db):
        response = await client.post("/api/v1/projects/", json={"name": ""}, headers=STAFF_HEADERS)
        assert response.status_code == 422

    async def test_failed_copy_keeps_project(self, db, activity, settings):
        template = await make_template(db, [("A", 0), ("B", 0)], [{"title": "Only", "stage": "A"}])
        service = ProjectService(db, activity, settings)

        project, copy_result = await service.create_project(
            {"name": "Maple Court", "template_id": template.id, "status": "active"}
        )
        await activity.drain()

        assert copy_result is None
        assert project.status == "active"
        assert project.started_at is not None
        stored = (await db.execute(select(Project).where(Project.id == project.id))).scalar_one()
        assert stored.name == "Maple Court"

        actions = (
            await db.execute(select(ActivityLog.action).where(ActivityLog.project_id == project.id))
        ).scalars().all()
        assert set(actions) == {"template_copy_failed", "project_created"}


class TestProjectReads:
    async def test_list_with_filters(self, client, db):
        maple = await make_project(db, name="Maple Court", assigned_staff_email="pat@example.com")
        await make_project(db, name="Oak Ridge", public_token="c" * 32, status="draft")
        await make_task(db, maple, status="completed")
        await make_task(db, maple, title="Late", due_date=date(2020, 1, 1))

        response = await client.get("/api/v1/projects/", params={"search": "maple"}, headers=STAFF_HEADERS)
        assert response.status_code == 200
        items = response.json()
        assert [p["name"] for p in items] == ["Maple Court"]
        assert items[0]["progress"] == 50
        assert items[0]["overdue_tasks"] == 1

        drafts = (await client.get("/api/v1/projects/", params={"status": "draft"}, headers=STAFF_HEADERS)).json()
        assert [p["name"] for p in drafts] == ["Oak Ridge"]

    async def test_detail_counts(self, client, db):
        project = await make_project(db)
        await make_task(db, project)
        db.add(Signature(project_id=project.id, signer_name="Pat"))
        await db.commit()

        body = (await client.get(f"/api/v1/projects/{project.id}", headers=STAFF_HEADERS)).json()
        assert len(body["tasks"]) == 1
        assert body["signatures_count"] == 1
        assert body["files_count"] == 0

    async def test_cancel_is_soft_delete(self, client, db):
        project = await make_project(db)
        response = await client.delete(f"/api/v1/projects/{project.id}", headers=STAFF_HEADERS)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        await db.refresh(project)
        assert project.status == "cancelled"

    async def test_activation_stamps_started_at(self, db, activity, settings):
        project = await make_project(db, status="draft")
        updated = await ProjectService(db, activity, settings).update_project(project.id, {"status": "active"})
        assert updated.started_at is not None


class TestCrm:
    async def test_crm_create_requires_deal(self, client, db):
        response = await client.post("/api/v1/crm/projects", json={"name": "Maple"}, headers=CRM_HEADERS)
        assert response.status_code == 422

    async def test_crm_create_and_lookup(self, client, db):
        response = await client.post(
            "/api/v1/crm/projects",
            json={"name": "Maple", "source_deal_id": "deal-42"},
            headers=CRM_HEADERS,
        )
        assert response.status_code == 201
        assert response.json()["status"] == "active"

        listed = await client.get("/api/v1/crm/projects", params={"deal_id": "deal-42"}, headers=CRM_HEADERS)
        assert [p["name"] for p in listed.json()] == ["Maple"]

    async def test_crm_key_is_not_a_staff_key(self, client, db):
        response = await client.get("/api/v1/projects/", headers=CRM_HEADERS)
        assert response.status_code == 401

    async def test_summary(self, client, db):
        project = await make_project(db)
        await make_task(db, project, title="Upload lease")
        db.add(Signature(project_id=project.id, signer_name="Pat", status="sent"))
        await db.commit()

        response = await client.get(f"/api/v1/crm/projects/{project.id}/summary", headers=CRM_HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["next_action"] == "1 signature pending"
        assert body["pending_signatures"] == 1
        assert body["portal_url"].endswith(f"/p/{project.public_token}")


class TestInvite:
    async def test_requires_client_email(self, client, db):
        project = await make_project(db)
        response = await client.post(f"/api/v1/projects/{project.id}/invite", headers=STAFF_HEADERS)
        assert response.status_code == 400

    async def test_sends_portal_link(self, client, db, mailer):
        project = await make_project(db, client_contact_email="client@example.com", client_contact_name="Jordan")
        response = await client.post(f"/api/v1/projects/{project.id}/invite", headers=STAFF_HEADERS)
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert len(mailer.sent) == 1
        assert mailer.sent[0]["to"] == "client@example.com"
        assert f"/p/{project.public_token}" in mailer.sent[0]["html"]

    async def test_mailer_failure_is_upstream_error(self, db, activity, settings):
        mailer = RecordingMailer(settings, fail_for={"client@example.com"})
        project = await make_project(db, client_contact_email="client@example.com")
        with pytest.raises(UpstreamError):
            await ProjectService(db, activity, settings).send_invite(project.id, mailer)



class TestDuplicateProject:
    async def test_copy_is_a_fresh_draft(self, client, db):
        template = await make_template(
            db,
            [("Kickoff", 0), ("Documents", 1)],
            [
                {"title": "Intro call", "stage": "Kickoff"},
                {"title": "Upload lease", "stage": "Documents", "after": "Intro call"},
            ],
        )
        create = await client.post(
            "/api/v1/projects/",
            json={"name": "Maple Court", "template_id": str(template.id), "status": "active"},
            headers=STAFF_HEADERS,
        )
        source = create.json()
        source_id = UUID(source["id"])
        intro = (
            await db.execute(select(Task).where(Task.project_id == source_id, Task.title == "Intro call"))
        ).scalar_one()
        intro.status = "completed"
        intro.completed_by = "staff"
        intro.client_notes = "Done on the phone"
        intro.checklist = [{"id": "c1", "text": "Agenda", "completed": True}]
        tag = Tag(name="Priority")
        db.add(tag)
        await db.flush()
        db.add(ProjectTag(project_id=source_id, tag_id=tag.id))
        await db.commit()

        response = await client.post(f"/api/v1/projects/{source_id}/duplicate", headers=STAFF_HEADERS)

        assert response.status_code == 201
        body = response.json()
        copy_id = UUID(body["id"])
        assert copy_id != source_id
        assert body["name"] == "Maple Court (Copy)"
        assert body["status"] == "draft"
        assert body["public_token"] != source["public_token"]
        assert body["stages_created"] == 2
        assert body["tasks_created"] == 2

        stages = (await db.execute(select(Stage).where(Stage.project_id == copy_id))).scalars().all()
        tasks = (await db.execute(select(Task).where(Task.project_id == copy_id))).scalars().all()
        stage_names = {s.id: s.name for s in stages}
        by_title = {t.title: t for t in tasks}
        assert stage_names[by_title["Upload lease"].stage_id] == "Documents"
        assert by_title["Upload lease"].depends_on == by_title["Intro call"].id

        copied_intro = by_title["Intro call"]
        assert copied_intro.id != intro.id
        assert copied_intro.status == "pending"
        assert copied_intro.completed_by is None
        assert copied_intro.client_notes is None
        assert copied_intro.checklist[0]["completed"] is False
        assert copied_intro.checklist[0]["id"] != "c1"

        tags = (await db.execute(select(ProjectTag.tag_id).where(ProjectTag.project_id == copy_id))).scalars().all()
        assert tags == [tag.id]

    async def test_custom_name_and_activity(self, db, activity, settings):
        source = await make_project(db, name="Maple Court")
        await make_task(db, source, title="Intro call")
        service = ProjectService(db, activity, settings)

        copy, copy_result = await service.duplicate_project(source.id, name="Oak Ridge")
        await activity.drain()

        assert copy.name == "Oak Ridge"
        assert copy_result.tasks_created == 1
        entry = (
            await db.execute(select(ActivityLog).where(ActivityLog.project_id == copy.id))
        ).scalar_one()
        assert entry.action == "project_duplicated"
        assert entry.details["source_project_name"] == "Maple Court"
        assert entry.details["tasks_copied"] == 1

    async def test_unknown_project(self, client, db):
        response = await client.post(f"/api/v1/projects/{uuid4()}/duplicate", headers=STAFF_HEADERS)
        assert response.status_code == 404
