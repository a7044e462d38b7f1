import pytest
from datetime import date
from typing import Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.core.exceptions import InvalidDateException, StoreUnavailableException
from taskgraph.core.utils import DateUtils
from taskgraph.models.project import Project
from taskgraph.models.task import Task, TaskMarker, TaskStatus
from taskgraph.schemas.activity import ActivityEvent
from taskgraph.schemas.project import ProjectCreate
from taskgraph.schemas.task import TaskCreate
from taskgraph.services.interfaces import AuditSink
from taskgraph.services.task_engine import TaskEngine


def due_day(task: Task) -> Optional[date]:
    """Calendar day of a task's due date in UTC."""
    if task.due_date is None:
        return None
    return DateUtils.to_utc(task.due_date).date()


async def make_project(engine: TaskEngine, anchor: Optional[date]) -> Project:
    return await engine.create_project(ProjectCreate(name="Board meeting", anchor_date=anchor))


async def add_task(engine: TaskEngine, project: Project, title: str, **fields) -> Task:
    return await engine.create_task(TaskCreate(title=title, project_id=project.id, **fields))


class FailingAudit(AuditSink):
    """Audit sink whose store write always fails."""

    async def record(self, event: ActivityEvent):
        raise OperationalError("INSERT INTO activity_logs", {}, Exception("disk I/O error"))


class TestAnchorPropagation:
    """Offset tasks follow the project anchor date."""

    @pytest.mark.asyncio
    async def test_offsets_applied_on_creation(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        before = await add_task(task_engine, project, "Send agenda", days_from_meeting=-5)
        after = await add_task(task_engine, project, "Send minutes", days_from_meeting=3)

        assert due_day(before) == date(2025, 1, 5)
        assert due_day(after) == date(2025, 1, 13)

    @pytest.mark.asyncio
    async def test_anchor_change_redates_offset_tasks(self, task_engine: TaskEngine):
        """The worked example: A at -5, B at +3 below A, anchor moved to Feb 1."""
        project = await make_project(task_engine, date(2025, 1, 10))
        task_a = await add_task(task_engine, project, "A", days_from_meeting=-5)
        task_b = await add_task(
            task_engine, project, "B", days_from_meeting=3, parent_task_id=task_a.id
        )

        result = await task_engine.update_project_anchor_date(project.id, date(2025, 2, 1))

        assert result.updated_task_count == 2
        assert due_day(task_a) == date(2025, 1, 27)
        assert due_day(task_b) == date(2025, 2, 4)
        assert DateUtils.to_utc(project.anchor_date).date() == date(2025, 2, 1)

    @pytest.mark.asyncio
    async def test_due_dates_pinned_to_reference_hour(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 6, 1))
        task = await add_task(task_engine, project, "Print packets", days_from_meeting=-2)

        assert DateUtils.to_utc(task.due_date).hour == 12

    @pytest.mark.asyncio
    async def test_anchor_change_is_idempotent(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        task = await add_task(task_engine, project, "Book room", days_from_meeting=-14)

        first = await task_engine.update_project_anchor_date(project.id, date(2025, 3, 1))
        second = await task_engine.update_project_anchor_date(project.id, date(2025, 3, 1))

        assert first.updated_task_count == 1
        assert second.updated_task_count == 0
        assert due_day(task) == date(2025, 2, 15)

    @pytest.mark.asyncio
    async def test_tasks_without_offset_untouched(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        fixed = await add_task(
            task_engine, project, "Annual filing", due_date="2025-04-15T12:00:00+00:00"
        )

        await task_engine.update_project_anchor_date(project.id, date(2025, 2, 1))

        assert due_day(fixed) == date(2025, 4, 15)

    @pytest.mark.asyncio
    async def test_anchor_task_follows_anchor_date(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        meeting = await add_task(
            task_engine, project, "Meeting", marker=TaskMarker.ANCHOR
        )
        assert due_day(meeting) == date(2025, 1, 10)

        result = await task_engine.update_project_anchor_date(project.id, "2025-02-01")

        assert due_day(meeting) == date(2025, 2, 1)
        assert meeting.id in result.updated_task_ids

    @pytest.mark.asyncio
    async def test_moving_anchor_task_moves_project(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        meeting = await add_task(
            task_engine, project, "Meeting", marker=TaskMarker.ANCHOR
        )
        prep = await add_task(task_engine, project, "Prep", days_from_meeting=-3)

        result = await task_engine.update_task_due_date(meeting.id, date(2025, 1, 20))

        assert DateUtils.to_utc(project.anchor_date).date() == date(2025, 1, 20)
        assert due_day(meeting) == date(2025, 1, 20)
        assert due_day(prep) == date(2025, 1, 17)
        assert result.updated_task_count == 1


class TestReviewPropagation:
    """Dependents of the review task are dated from it."""

    @pytest.mark.asyncio
    async def test_review_move_redates_dependents_by_type(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        review = await add_task(
            task_engine, project, "Board review", marker=TaskMarker.REVIEW,
            due_date="2025-01-01T12:00:00+00:00",
        )
        corrections = await add_task(
            task_engine, project, "Corrections", task_type="corrections",
            depends_on_task_id=review.id,
        )
        sealed = await add_task(
            task_engine, project, "Seal packet", task_type="packet_sealed",
            depends_on_task_id=review.id,
        )
        other = await add_task(
            task_engine, project, "Notify", depends_on_task_id=review.id
        )

        assert due_day(corrections) == date(2025, 1, 2)

        result = await task_engine.update_task_due_date(review.id, date(2025, 1, 20))

        assert result.updated_task_count == 3
        assert due_day(corrections) == date(2025, 1, 21)
        assert due_day(sealed) == date(2025, 1, 23)
        assert due_day(other) == date(2025, 1, 21)

    @pytest.mark.asyncio
    async def test_offset_takes_precedence_over_review(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        review = await add_task(
            task_engine, project, "Board review", marker=TaskMarker.REVIEW,
            due_date="2025-01-01T12:00:00+00:00",
        )
        both = await add_task(
            task_engine, project, "Both drivers", days_from_meeting=4,
            depends_on_task_id=review.id,
        )

        await task_engine.update_task_due_date(review.id, date(2025, 1, 20))

        assert due_day(both) == date(2025, 1, 14)

    @pytest.mark.asyncio
    async def test_anchor_change_cascades_through_review(self, task_engine: TaskEngine):
        project = await make_project(task_engine, date(2025, 1, 10))
        review = await add_task(
            task_engine, project, "Board review", marker=TaskMarker.REVIEW,
            days_from_meeting=-7,
        )
        sealed = await add_task(
            task_engine, project, "Seal packet", task_type="packet_sealed",
            depends_on_task_id=review.id,
        )
        assert due_day(sealed) == date(2025, 1, 6)

        result = await task_engine.update_project_anchor_date(project.id, date(2025, 2, 1))

        assert due_day(review) == date(2025, 1, 25)
        assert due_day(sealed) == date(2025, 1, 28)
        assert result.updated_task_count == 2


class TestDateErrors:
    """Bad dates are refused before anything is written."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_value", ["2025-13-45", "not-a-date", "1800-01-01", None])
    async def test_invalid_anchor_rejected(self, task_engine: TaskEngine, bad_value):
        project = await make_project(task_engine, date(2025, 1, 10))
        task = await add_task(task_engine, project, "Prep", days_from_meeting=-1)

        with pytest.raises(InvalidDateException):
            await task_engine.update_project_anchor_date(project.id, bad_value)

        assert due_day(task) == date(2025, 1, 9)
        assert DateUtils.to_utc(project.anchor_date).date() == date(2025, 1, 10)

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back_everything(self, test_db: AsyncSession):
        engine = TaskEngine(test_db)
        project = await make_project(engine, date(2025, 1, 10))
        task = await add_task(engine, project, "Prep", days_from_meeting=-1)

        failing = TaskEngine(test_db, audit=FailingAudit())
        with pytest.raises(StoreUnavailableException) as exc_info:
            await failing.update_project_anchor_date(project.id, date(2025, 5, 5))

        assert exc_info.value.details["retryable"] is True
        await test_db.refresh(task)
        await test_db.refresh(project)
        assert due_day(task) == date(2025, 1, 9)
        assert DateUtils.to_utc(project.anchor_date).date() == date(2025, 1, 10)
        assert task.status == TaskStatus.TODO

    @pytest.mark.asyncio
    async def test_project_without_anchor_keeps_offsets_undated(
        self, task_engine: TaskEngine
    ):
        project = await make_project(task_engine, None)
        task = await add_task(task_engine, project, "Prep", days_from_meeting=-1)

        assert task.due_date is None
        assert await task_engine.propagator.propagate_offsets(project.id) == []
