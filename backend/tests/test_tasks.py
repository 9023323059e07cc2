"""Tests for task mutations: completion stamps, bulk actions, reordering and stage advancement."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import STAFF_HEADERS, make_project, make_task
from onboardhub.exceptions import NotFoundError, ValidationError
from onboardhub.models import ActivityLog, Stage, Task
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.tasks import TaskService, completion_actor


def test_completion_actor_fallbacks():
    assert completion_actor("pat@example.com", "lee@example.com") == "pat@example.com"
    assert completion_actor(None, "lee@example.com") == "lee@example.com"
    assert completion_actor() == "system"


class TestUpdateTask:
    async def test_completion_stamps_time_and_actor(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project, assignee_email="lee@example.com")

        updated = await TaskService(db, activity).update_task(project.id, task.id, {"status": "completed"})

        assert updated.status == "completed"
        assert updated.completed_at is not None
        assert updated.completed_by == "lee@example.com"

    async def test_explicit_completed_by_wins(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project, assignee_email="lee@example.com")

        updated = await TaskService(db, activity).update_task(
            project.id, task.id, {"status": "completed", "completed_by": "pat@example.com"}
        )
        assert updated.completed_by == "pat@example.com"

    async def test_partial_update_leaves_other_fields(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project, description="keep me")

        updated = await TaskService(db, activity).update_task(project.id, task.id, {"title": "Renamed"})

        assert updated.title == "Renamed"
        assert updated.description == "keep me"
        assert updated.completed_at is None

    async def test_completed_by_alone_is_rejected(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project)

        with pytest.raises(ValidationError):
            await TaskService(db, activity).update_task(project.id, task.id, {"completed_by": "mallory"})

        await db.refresh(task)
        assert task.status == "pending"
        assert task.completed_by is None

    async def test_completed_by_dropped_when_not_completing(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project)

        updated = await TaskService(db, activity).update_task(
            project.id, task.id, {"title": "Renamed", "completed_by": "mallory"}
        )

        assert updated.title == "Renamed"
        assert updated.status == "pending"
        assert updated.completed_by is None
        assert updated.completed_at is None

    async def test_failed_activity_write_does_not_fail_update(self, db):
        def broken_session_factory():
            raise RuntimeError("activity store unavailable")

        broken = ActivityLogger(broken_session_factory)
        project = await make_project(db)
        task = await make_task(db, project)

        updated = await TaskService(db, broken).update_task(project.id, task.id, {"status": "completed"})
        await broken.drain()

        assert updated.status == "completed"
        await db.refresh(task)
        assert task.status == "completed"
        logged = await db.execute(select(ActivityLog.id).where(ActivityLog.project_id == project.id))
        assert logged.scalars().all() == []

    async def test_unknown_fields_only(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project)
        with pytest.raises(ValidationError):
            await TaskService(db, activity).update_task(project.id, task.id, {"public_token": "x"})

    async def test_task_of_other_project(self, db, activity):
        project = await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        task = await make_task(db, other)
        with pytest.raises(NotFoundError):
            await TaskService(db, activity).update_task(project.id, task.id, {"status": "completed"})

    async def test_stage_must_belong_to_project(self, db, activity):
        project = await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        foreign_stage = Stage(project_id=other.id, name="Elsewhere", order_index=0)
        db.add(foreign_stage)
        await db.commit()
        task = await make_task(db, project)
        with pytest.raises(NotFoundError):
            await TaskService(db, activity).update_task(project.id, task.id, {"stage_id": foreign_stage.id})


class TestStageAdvance:
    async def test_last_done_task_completes_stage_and_activates_next(self, db, activity):
        project = await make_project(db)
        first = Stage(project_id=project.id, name="Kickoff", order_index=0, status="active")
        second = Stage(project_id=project.id, name="Documents", order_index=1, status="pending")
        db.add_all([first, second])
        await db.commit()
        done = await make_task(db, project, title="Skipped one", status="skipped", stage_id=first.id)
        last = await make_task(db, project, title="Last", stage_id=first.id, order_index=1)
        assert done.stage_id == first.id

        await TaskService(db, activity).update_task(project.id, last.id, {"status": "completed"})

        await db.refresh(first)
        await db.refresh(second)
        assert first.status == "completed"
        assert second.status == "active"

    async def test_stage_stays_open_with_pending_work(self, db, activity):
        project = await make_project(db)
        stage = Stage(project_id=project.id, name="Kickoff", order_index=0, status="active")
        db.add(stage)
        await db.commit()
        a = await make_task(db, project, title="A", stage_id=stage.id)
        await make_task(db, project, title="B", stage_id=stage.id, order_index=1)

        await TaskService(db, activity).update_task(project.id, a.id, {"status": "completed"})

        await db.refresh(stage)
        assert stage.status == "active"


class TestBulkOperations:
    async def test_bulk_delete_skips_unknown_ids(self, db, activity):
        project = await make_project(db)
        task = await make_task(db, project)

        result = await TaskService(db, activity).bulk_delete(project.id, [task.id, uuid4()])

        assert result.requested == 2
        assert result.succeeded == 1
        assert result.failed == []
        remaining = await db.execute(select(Task.id).where(Task.project_id == project.id))
        assert remaining.scalars().all() == []

    async def test_bulk_complete_ignores_other_projects(self, db, activity):
        project = await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        mine = await make_task(db, project)
        foreign = await make_task(db, other)

        result = await TaskService(db, activity).bulk_complete(
            project.id, [mine.id, foreign.id], actor="pat@example.com"
        )

        assert result.succeeded == 1
        await db.refresh(mine)
        await db.refresh(foreign)
        assert mine.status == "completed"
        assert mine.completed_by == "pat@example.com"
        assert foreign.status == "pending"

    async def test_bulk_complete_falls_back_to_each_assignee(self, db, activity):
        project = await make_project(db)
        assigned = await make_task(db, project, title="A", assignee_email="lee@example.com")
        unassigned = await make_task(db, project, title="B", order_index=1)

        result = await TaskService(db, activity).bulk_complete(project.id, [assigned.id, unassigned.id])

        assert result.succeeded == 2
        await db.refresh(assigned)
        await db.refresh(unassigned)
        assert assigned.completed_by == "lee@example.com"
        assert unassigned.completed_by == "system"
        assert assigned.completed_at is not None

    async def test_bulk_endpoint(self, client, db):
        project = await make_project(db)
        a = await make_task(db, project, title="A")
        b = await make_task(db, project, title="B", order_index=1)

        response = await client.post(
            f"/api/v1/projects/{project.id}/tasks/bulk",
            json={"action": "complete", "task_ids": [str(a.id), str(b.id)]},
            headers=STAFF_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["succeeded"] == 2

        response = await client.post(
            f"/api/v1/projects/{project.id}/tasks/bulk",
            json={"action": "archive", "task_ids": [str(a.id)]},
            headers=STAFF_HEADERS,
        )
        assert response.status_code == 422


class TestReorder:
    async def test_skips_malformed_entries(self, client, db):
        project = await make_project(db)
        a = await make_task(db, project, title="A", order_index=0)
        b = await make_task(db, project, title="B", order_index=1)

        response = await client.put(
            f"/api/v1/projects/{project.id}/tasks/reorder",
            json={
                "tasks": [
                    {"id": str(a.id), "order_index": 5},
                    {"id": str(b.id), "order_index": "first"},
                    {"id": "not-a-uuid", "order_index": 2},
                    {"order_index": 3},
                ]
            },
            headers=STAFF_HEADERS,
        )
        assert response.status_code == 200
        assert response.json() == {"updated": 1}

        await db.refresh(a)
        await db.refresh(b)
        assert a.order_index == 5
        assert b.order_index == 1

    async def test_ids_of_other_projects_are_not_moved(self, db, activity):
        project = await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        foreign = await make_task(db, other, order_index=0)

        updated = await TaskService(db, activity).reorder(project.id, [{"id": foreign.id, "order_index": 9}])

        assert updated == 0
        await db.refresh(foreign)
        assert foreign.order_index == 0


class TestStaffTaskEndpoints:
    async def test_requires_staff_key(self, client, db):
        project = await make_project(db)
        response = await client.get(f"/api/v1/projects/{project.id}/tasks")
        assert response.status_code == 401

    async def test_create_appends_order_index(self, client, db):
        project = await make_project(db)
        await make_task(db, project, order_index=4)

        response = await client.post(
            f"/api/v1/projects/{project.id}/tasks",
            json={"title": "Collect keys", "visibility": "external"},
            headers=STAFF_HEADERS,
        )
        assert response.status_code == 201
        assert response.json()["order_index"] == 5
        assert response.json()["status"] == "pending"

    async def test_delete_missing_task(self, client, db):
        project = await make_project(db)
        response = await client.delete(
            f"/api/v1/projects/{project.id}/tasks/{uuid4()}", headers=STAFF_HEADERS
        )
        assert response.status_code == 404
