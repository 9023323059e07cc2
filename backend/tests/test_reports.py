"""Tests for dashboard statistics and the health and pipeline reports."""

from datetime import date, datetime, timedelta, timezone

from conftest import STAFF_HEADERS, make_project, make_task
from onboardhub.models import Signature, Stage
from onboardhub.services.reports import ReportService, health_status, recent_months

TODAY = date(2026, 5, 4)
NOW = datetime(2026, 5, 4, 12, tzinfo=timezone.utc)


def days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def test_health_thresholds():
    assert health_status(progress=80, days_active=60, overdue_count=0) == "healthy"
    assert health_status(progress=49, days_active=15, overdue_count=0) == "at_risk"
    assert health_status(progress=90, days_active=2, overdue_count=1) == "at_risk"
    assert health_status(progress=24, days_active=31, overdue_count=0) == "critical"
    assert health_status(progress=100, days_active=1, overdue_count=4) == "critical"


def test_recent_months_cross_year_boundary():
    assert recent_months(date(2026, 2, 15)) == [
        (2025, 9),
        (2025, 10),
        (2025, 11),
        (2025, 12),
        (2026, 1),
        (2026, 2),
    ]


class TestDashboardStats:
    async def test_counts(self, db):
        busy = await make_project(db, name="Busy", public_token="b" * 32)
        await make_project(db, name="Empty", public_token="e" * 32)
        done_fast = await make_project(
            db,
            name="Fast",
            public_token="f" * 32,
            status="completed",
            started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            completed_at=datetime(2026, 1, 11, tzinfo=timezone.utc),
        )
        await make_project(
            db,
            name="Slow",
            public_token="s" * 32,
            status="completed",
            started_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
            completed_at=datetime(2026, 2, 22, tzinfo=timezone.utc),
        )

        await make_task(db, busy, title="Intro call", status="completed")
        await make_task(
            db,
            busy,
            title="Upload lease",
            requires_file_upload=True,
            due_date=TODAY - timedelta(days=3),
        )
        await make_task(db, busy, title="Upload insurance", status="skipped", requires_file_upload=True)
        # Tasks of projects that are not active are left out
        await make_task(db, done_fast, title="Archived", due_date=TODAY - timedelta(days=30))

        db.add_all(
            [
                Signature(project_id=busy.id, signer_name="Pat", status="pending"),
                Signature(project_id=busy.id, signer_name="Lee", status="signed"),
                Signature(project_id=done_fast.id, signer_name="Sam", status="sent"),
            ]
        )
        await db.commit()

        stats = await ReportService(db).dashboard_stats(today=TODAY)

        assert stats == {
            "total_projects": 4,
            "active_projects": 2,
            "completed_projects": 2,
            "avg_completion_days": 15.5,
            "pending_signatures": 2,
            "pending_uploads": 1,
            "overdue_tasks": 1,
            "pending_tasks": 1,
            "avg_completion_percent": 33,
        }

    async def test_empty(self, db):
        stats = await ReportService(db).dashboard_stats(today=TODAY)
        assert stats["total_projects"] == 0
        assert stats["avg_completion_days"] is None
        assert stats["avg_completion_percent"] == 0

    async def test_endpoint_requires_staff(self, client, db):
        response = await client.get("/api/v1/stats")
        assert response.status_code == 401

        response = await client.get("/api/v1/stats", headers=STAFF_HEADERS)
        assert response.status_code == 200
        assert response.json()["total_projects"] == 0


class TestHealthReport:
    async def test_classified_and_worst_first(self, db):
        healthy = await make_project(db, name="Healthy", public_token="h" * 32, started_at=days_ago(5))
        stalled = await make_project(db, name="Stalled", public_token="s" * 32, started_at=days_ago(40))
        late = await make_project(db, name="Late", public_token="l" * 32, started_at=days_ago(5))
        await make_project(db, name="Paused", public_token="p" * 32, status="paused", started_at=days_ago(90))

        await make_task(db, healthy, status="completed")
        for idx in range(4):
            await make_task(db, stalled, title=f"Step {idx}", order_index=idx)
        await make_task(db, late, title="Done", status="completed")
        await make_task(db, late, title="Missed", due_date=TODAY - timedelta(days=1))

        report = await ReportService(db).project_health(today=TODAY, now=NOW)

        assert [(r["name"], r["health"]) for r in report] == [
            ("Stalled", "critical"),
            ("Late", "at_risk"),
            ("Healthy", "healthy"),
        ]
        stalled_row = report[0]
        assert stalled_row["days_active"] == 40
        assert stalled_row["progress"] == 0
        assert stalled_row["total_tasks"] == 4
        assert report[1]["overdue_count"] == 1
        assert report[1]["progress"] == 50

    async def test_endpoint(self, client, db):
        await make_project(db)
        response = await client.get("/api/v1/reports/health", headers=STAFF_HEADERS)
        assert response.status_code == 200
        assert [r["health"] for r in response.json()] == ["healthy"]


class TestPipelineReport:
    async def test_status_timeline_and_stages(self, db):
        shipped = await make_project(
            db,
            name="Shipped",
            public_token="s" * 32,
            status="completed",
            started_at=datetime(2026, 1, 10, tzinfo=timezone.utc),
            completed_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
        )
        running = await make_project(
            db,
            name="Running",
            public_token="r" * 32,
            started_at=datetime(2026, 5, 1, tzinfo=timezone.utc),
        )
        await make_project(
            db,
            name="Idea",
            public_token="i" * 32,
            status="draft",
            created_at=datetime(2025, 11, 1, tzinfo=timezone.utc),
        )

        db.add_all(
            [
                Stage(project_id=shipped.id, name="Kickoff", order_index=0),
                Stage(project_id=shipped.id, name="Launch", order_index=1),
                Stage(project_id=running.id, name="Kickoff", order_index=0),
            ]
        )
        await db.commit()
        await make_task(db, shipped, title="A", status="completed")
        await make_task(db, shipped, title="B", status="completed")
        await make_task(db, running, title="A", status="completed")
        await make_task(db, running, title="B")

        report = await ReportService(db).pipeline(today=TODAY)

        assert report["by_status"] == {
            "draft": 1,
            "active": 1,
            "paused": 0,
            "completed": 1,
            "cancelled": 0,
        }

        timeline = report["completion_timeline"]
        assert [m["month"] for m in timeline] == [
            "Dec 2025",
            "Jan 2026",
            "Feb 2026",
            "Mar 2026",
            "Apr 2026",
            "May 2026",
        ]
        assert [m["started"] for m in timeline] == [0, 1, 0, 0, 0, 1]
        assert [m["completed"] for m in timeline] == [0, 0, 0, 1, 0, 0]

        assert report["stage_distribution"] == [
            {"stage_name": "Kickoff", "project_count": 2, "avg_progress": 75},
            {"stage_name": "Launch", "project_count": 1, "avg_progress": 100},
        ]

    async def test_endpoint(self, client, db):
        response = await client.get("/api/v1/reports/pipeline", headers=STAFF_HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert len(body["completion_timeline"]) == 6
        assert body["stage_distribution"] == []
