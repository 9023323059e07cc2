"""Tests for the progress aggregator."""

from uuid import uuid4

from onboardhub.services.progress import (
    Progress,
    compute_overall_progress,
    compute_project_progress,
    compute_stage_progress,
    percent_complete,
)


def task(status="pending", visibility="external", stage_id=None):
    return {"status": status, "visibility": visibility, "stage_id": stage_id}


class TestPercentComplete:
    def test_empty_is_zero(self):
        assert percent_complete(0, 0) == 0

    def test_rounds_halves_up(self):
        assert percent_complete(1, 8) == 13  # 12.5
        assert percent_complete(1, 3) == 33
        assert percent_complete(2, 3) == 67

    def test_bounds(self):
        assert percent_complete(0, 5) == 0
        assert percent_complete(5, 5) == 100


class TestProjectProgress:
    def test_counts_external_tasks_only(self):
        tasks = [
            task("completed"),
            task("pending"),
            task("completed", visibility="internal"),
            task("pending", visibility="internal"),
        ]
        assert compute_project_progress(tasks) == Progress(percent=50, completed=1, total=2)

    def test_skipped_is_not_completed(self):
        progress = compute_project_progress([task("skipped"), task("completed")])
        assert progress.completed == 1
        assert progress.percent == 50

    def test_no_external_tasks(self):
        progress = compute_project_progress([task("completed", visibility="internal")])
        assert progress == Progress(percent=0, completed=0, total=0)

    def test_order_does_not_change_result(self):
        tasks = [
            task("completed"),
            task("pending"),
            task("completed", visibility="internal"),
            task("completed"),
            task("skipped"),
            task("pending"),
            task("completed"),
        ]
        expected = compute_project_progress(tasks)
        assert expected == Progress(percent=50, completed=3, total=6)
        for shift in range(1, len(tasks)):
            assert compute_project_progress(tasks[shift:] + tasks[:shift]) == expected
        assert compute_project_progress(list(reversed(tasks))) == expected

    def test_accepts_objects(self):
        class Row:
            status = "completed"
            visibility = "external"

        assert compute_project_progress([Row()]).percent == 100


class TestStageProgress:
    def test_includes_internal_tasks(self):
        stage_id = uuid4()
        tasks = [
            task("completed", visibility="internal", stage_id=stage_id),
            task("pending", visibility="external", stage_id=stage_id),
            task("completed", stage_id=uuid4()),
            task("completed", stage_id=None),
        ]
        assert compute_stage_progress(stage_id, tasks) == Progress(percent=50, completed=1, total=2)

    def test_empty_stage(self):
        assert compute_stage_progress(uuid4(), [task("completed")]).total == 0


def test_overall_progress_ignores_visibility():
    tasks = [task("completed"), task("completed", visibility="internal"), task("pending")]
    assert compute_overall_progress(tasks) == Progress(percent=67, completed=2, total=3)
