import pytest
from datetime import date
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.core.exceptions import CycleDetectedException, NotFoundException
from taskgraph.models.project import Project
from taskgraph.models.task import Task, TaskStatus
from taskgraph.schemas.project import ProjectCreate
from taskgraph.schemas.task import TaskCreate
from taskgraph.services.activity_service import ActivityService
from taskgraph.services.task_engine import TaskEngine


async def make_project(engine: TaskEngine) -> Project:
    return await engine.create_project(
        ProjectCreate(name="Quarterly review", anchor_date=date(2025, 1, 10))
    )


async def add_task(
    engine: TaskEngine, project: Project, title: str, parent: Task = None
) -> Task:
    return await engine.create_task(
        TaskCreate(
            title=title,
            project_id=project.id,
            parent_task_id=parent.id if parent else None,
        )
    )


class TestDownwardCascade:
    """Completing or reopening a task carries down to its subtree."""

    @pytest.mark.asyncio
    async def test_completing_root_completes_every_descendant(
        self, task_engine: TaskEngine
    ):
        project = await make_project(task_engine)
        root = await add_task(task_engine, project, "Prepare packet")
        child = await add_task(task_engine, project, "Collect reports", root)
        grandchild = await add_task(task_engine, project, "Finance report", child)
        sibling = await add_task(task_engine, project, "Legal report", child)

        await task_engine.set_task_status(child.id, TaskStatus.IN_PROGRESS)
        await task_engine.set_task_status(sibling.id, TaskStatus.CANCELLED)

        result = await task_engine.set_task_status(root.id, TaskStatus.COMPLETED)

        for task in (root, child, grandchild, sibling):
            assert task.status == TaskStatus.COMPLETED
            assert task.completed_at is not None
        assert set(result.cascaded_task_ids) == {child.id, grandchild.id, sibling.id}
        assert result.previous_status == TaskStatus.TODO

    @pytest.mark.asyncio
    async def test_reopening_root_reopens_descendants(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        root = await add_task(task_engine, project, "Prepare packet")
        child = await add_task(task_engine, project, "Collect reports", root)

        await task_engine.set_task_status(root.id, TaskStatus.COMPLETED)
        await task_engine.set_task_status(root.id, TaskStatus.TODO)

        assert root.status == TaskStatus.TODO
        assert child.status == TaskStatus.TODO
        assert child.completed_at is None

    @pytest.mark.asyncio
    async def test_open_parent_set_to_todo_keeps_completed_children(
        self, task_engine: TaskEngine
    ):
        project = await make_project(task_engine)
        parent = await add_task(task_engine, project, "Prepare packet")
        done = await add_task(task_engine, project, "Collect reports", parent)
        open_child = await add_task(task_engine, project, "Finance report", parent)

        await task_engine.set_task_status(done.id, TaskStatus.COMPLETED)
        assert parent.status == TaskStatus.TODO

        result = await task_engine.set_task_status(parent.id, TaskStatus.TODO)

        assert done.status == TaskStatus.COMPLETED
        assert done.completed_at is not None
        assert open_child.status == TaskStatus.TODO
        assert result.cascaded_task_ids == []

    @pytest.mark.asyncio
    async def test_in_progress_back_to_todo_keeps_completed_children(
        self, task_engine: TaskEngine
    ):
        project = await make_project(task_engine)
        parent = await add_task(task_engine, project, "Prepare packet")
        done = await add_task(task_engine, project, "Collect reports", parent)
        await add_task(task_engine, project, "Finance report", parent)

        await task_engine.set_task_status(done.id, TaskStatus.COMPLETED)
        await task_engine.set_task_status(parent.id, TaskStatus.IN_PROGRESS)
        result = await task_engine.set_task_status(parent.id, TaskStatus.TODO)

        assert parent.status == TaskStatus.TODO
        assert done.status == TaskStatus.COMPLETED
        assert result.cascaded_task_ids == []

    @pytest.mark.asyncio
    async def test_cancelling_does_not_cascade(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        root = await add_task(task_engine, project, "Prepare packet")
        child = await add_task(task_engine, project, "Collect reports", root)

        result = await task_engine.set_task_status(root.id, TaskStatus.CANCELLED)

        assert root.status == TaskStatus.CANCELLED
        assert child.status == TaskStatus.TODO
        assert result.cascaded_task_ids == []


class TestUpwardCascade:
    """Parents follow their children."""

    @pytest.mark.asyncio
    async def test_parent_completes_after_last_child(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        parent = await add_task(task_engine, project, "Send invitations")
        first = await add_task(task_engine, project, "Board", parent)
        second = await add_task(task_engine, project, "Guests", parent)
        third = await add_task(task_engine, project, "Press", parent)

        await task_engine.set_task_status(second.id, TaskStatus.COMPLETED)
        assert parent.status == TaskStatus.TODO

        await task_engine.set_task_status(first.id, TaskStatus.COMPLETED)
        assert parent.status == TaskStatus.TODO

        result = await task_engine.set_task_status(third.id, TaskStatus.COMPLETED)
        assert parent.status == TaskStatus.COMPLETED
        assert result.cascaded_task_ids == [parent.id]

    @pytest.mark.asyncio
    async def test_completion_climbs_several_levels(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        root = await add_task(task_engine, project, "Meeting logistics")
        middle = await add_task(task_engine, project, "Venue", root)
        leaf = await add_task(task_engine, project, "Sign contract", middle)

        result = await task_engine.set_task_status(leaf.id, TaskStatus.COMPLETED)

        assert middle.status == TaskStatus.COMPLETED
        assert root.status == TaskStatus.COMPLETED
        assert result.cascaded_task_ids == [middle.id, root.id]

    @pytest.mark.asyncio
    async def test_reopening_leaf_reopens_every_ancestor(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        root = await add_task(task_engine, project, "Meeting logistics")
        middle = await add_task(task_engine, project, "Venue", root)
        leaf = await add_task(task_engine, project, "Sign contract", middle)
        other = await add_task(task_engine, project, "Catering", root)

        await task_engine.set_task_status(root.id, TaskStatus.COMPLETED)
        result = await task_engine.set_task_status(leaf.id, TaskStatus.TODO)

        assert leaf.status == TaskStatus.TODO
        assert middle.status == TaskStatus.TODO
        assert root.status == TaskStatus.TODO
        assert other.status == TaskStatus.COMPLETED
        assert result.cascaded_task_ids == [middle.id, root.id]

    @pytest.mark.asyncio
    async def test_in_progress_reopens_completed_parent(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        parent = await add_task(task_engine, project, "Minutes")
        child = await add_task(task_engine, project, "Draft", parent)

        await task_engine.set_task_status(child.id, TaskStatus.COMPLETED)
        assert parent.status == TaskStatus.COMPLETED

        await task_engine.set_task_status(child.id, TaskStatus.IN_PROGRESS)
        assert child.status == TaskStatus.IN_PROGRESS
        assert parent.status == TaskStatus.TODO


class TestCascadeBehaviour:
    """Worked example, idempotence, audit trail and corrupt hierarchies."""

    @pytest.mark.asyncio
    async def test_worked_example(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        task_a = await task_engine.create_task(
            TaskCreate(title="A", project_id=project.id, days_from_meeting=-5)
        )
        task_b = await task_engine.create_task(
            TaskCreate(
                title="B",
                project_id=project.id,
                days_from_meeting=3,
                parent_task_id=task_a.id,
            )
        )

        await task_engine.update_project_anchor_date(project.id, date(2025, 2, 1))
        completed = await task_engine.set_task_status(task_b.id, TaskStatus.COMPLETED)

        assert task_b.status == TaskStatus.COMPLETED
        assert task_a.status == TaskStatus.COMPLETED
        assert completed.cascaded_task_ids == [task_a.id]

        reopened = await task_engine.set_task_status(task_b.id, TaskStatus.TODO)

        assert task_b.status == TaskStatus.TODO
        assert task_a.status == TaskStatus.TODO
        assert reopened.cascaded_task_ids == [task_a.id]

    @pytest.mark.asyncio
    async def test_reapplying_same_status_changes_nothing(self, task_engine: TaskEngine):
        project = await make_project(task_engine)
        root = await add_task(task_engine, project, "Prepare packet")
        child = await add_task(task_engine, project, "Collect reports", root)

        await task_engine.set_task_status(root.id, TaskStatus.COMPLETED)
        completed_at = child.completed_at

        result = await task_engine.set_task_status(root.id, TaskStatus.COMPLETED)

        assert result.cascaded_task_ids == []
        assert child.status == TaskStatus.COMPLETED
        assert child.completed_at == completed_at

    @pytest.mark.asyncio
    async def test_cascaded_changes_are_audited(
        self, test_db: AsyncSession, task_engine: TaskEngine
    ):
        project = await make_project(task_engine)
        parent = await add_task(task_engine, project, "Minutes")
        child = await add_task(task_engine, project, "Draft", parent)

        await task_engine.set_task_status(child.id, TaskStatus.COMPLETED, "user-42")

        activity = ActivityService(test_db)
        own = await activity.list_for_entity(child.id)
        cascaded = await activity.list_for_entity(parent.id)

        assert len(own) == 1
        assert own[0].is_cascade is False
        assert own[0].actor_id == "user-42"
        assert len(cascaded) == 1
        assert cascaded[0].is_cascade is True
        assert cascaded[0].triggered_by_task_id == child.id
        assert cascaded[0].details["to"] == "completed"

    @pytest.mark.asyncio
    async def test_cycle_aborts_without_writes(
        self, test_db: AsyncSession, task_engine: TaskEngine
    ):
        project = await make_project(task_engine)
        first = await add_task(task_engine, project, "First")
        second = await add_task(task_engine, project, "Second", first)

        # Corrupt the hierarchy behind the store's back
        first.parent_task_id = second.id
        await test_db.commit()

        with pytest.raises(CycleDetectedException):
            await task_engine.set_task_status(first.id, TaskStatus.COMPLETED)

        await test_db.refresh(first)
        await test_db.refresh(second)
        assert first.status == TaskStatus.TODO
        assert second.status == TaskStatus.TODO

    @pytest.mark.asyncio
    async def test_dangling_parent_ends_upward_walk(
        self, test_db: AsyncSession, task_engine: TaskEngine
    ):
        project = await make_project(task_engine)
        orphan = await add_task(task_engine, project, "Orphan")

        # Parent row removed behind the store's back
        orphan.parent_task_id = uuid4()
        await test_db.commit()

        assert await task_engine.store.get_ancestors(orphan) == []
        result = await task_engine.set_task_status(orphan.id, TaskStatus.COMPLETED)

        assert orphan.status == TaskStatus.COMPLETED
        assert result.cascaded_task_ids == []

    @pytest.mark.asyncio
    async def test_missing_task_raises_not_found(self, task_engine: TaskEngine):
        with pytest.raises(NotFoundException):
            await task_engine.set_task_status(uuid4(), TaskStatus.COMPLETED)
