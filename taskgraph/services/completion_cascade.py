import logging
from dataclasses import dataclass, field
from typing import Optional, List, Set, AsyncIterator
from uuid import UUID

from taskgraph.core.exceptions import CycleDetectedException
from taskgraph.models.task import Task, TaskStatus
from taskgraph.schemas.activity import ActivityEvent
from taskgraph.services.interfaces import AuditSink
from taskgraph.services.task_graph_store import TaskGraphStore

logger = logging.getLogger(__name__)


@dataclass
class StatusChangeResult:
    task: Task
    previous_status: TaskStatus
    cascaded_task_ids: List[UUID] = field(default_factory=list)


class CompletionCascadeEngine:
    """
    Propagates completion through the parent/child hierarchy.

    Completing a task completes its whole subtree, then completes each
    ancestor whose children are now all completed. Un-completing a task
    (completed back to todo) reopens its whole subtree and every completed
    ancestor. Any other move to todo or in_progress only reopens completed
    ancestors, so completed subtasks of an open task are left alone.
    Cancelling never cascades.

    Tasks already in the target state are not written again but are still
    walked through, so re-running a completion on the same task repairs a
    partly applied cascade and otherwise changes nothing.
    """

    def __init__(self, store: TaskGraphStore, audit: AuditSink):
        self.store = store
        self.audit = audit

    async def set_task_status(
        self, task_id: UUID, new_status: TaskStatus, actor_id: Optional[str] = None
    ) -> StatusChangeResult:
        """
        Apply a user's status change and its cascade.
        :param task_id: UUID of the task the user changed.
        :param new_status: Status chosen by the user.
        :param actor_id: Who made the change.
        :return: StatusChangeResult with the IDs of cascaded tasks.
        :raises CycleDetectedException: If the hierarchy loops.
        """
        task = await self.store.get_task(task_id)
        previous = task.status

        if await self.store.set_status(task.id, new_status):
            await self._record(task, previous, new_status, actor_id, trigger=None)

        cascaded: List[UUID] = []
        if new_status == TaskStatus.COMPLETED:
            await self._cascade_down(task, TaskStatus.COMPLETED, actor_id, cascaded)
            await self._complete_ancestors(task, actor_id, cascaded)
        elif new_status == TaskStatus.TODO and previous == TaskStatus.COMPLETED:
            await self._cascade_down(task, TaskStatus.TODO, actor_id, cascaded)
            await self._reopen_ancestors(task, actor_id, cascaded)
        elif new_status in (TaskStatus.TODO, TaskStatus.IN_PROGRESS):
            await self._reopen_ancestors(task, actor_id, cascaded)

        if cascaded:
            logger.info(
                f"Task {task.id} {previous.value} -> {new_status.value} "
                f"cascaded to {len(cascaded)} task(s)"
            )
        return StatusChangeResult(
            task=task, previous_status=previous, cascaded_task_ids=cascaded
        )

    async def _walk_descendants(self, root: Task) -> AsyncIterator[Task]:
        """Pre-order walk below ``root``, guarded against loops"""
        visited: Set[UUID] = {root.id}
        stack = list(reversed(await self.store.get_children(root.id)))
        while stack:
            node = stack.pop()
            if node.id in visited:
                logger.error(
                    f"Cycle in task hierarchy below {root.id}: {node.id} revisited"
                )
                raise CycleDetectedException(node.id)
            visited.add(node.id)
            yield node
            stack.extend(reversed(await self.store.get_children(node.id)))

    async def _cascade_down(
        self, root: Task, status: TaskStatus, actor_id: Optional[str], cascaded: List[UUID]
    ) -> None:
        async for node in self._walk_descendants(root):
            previous = node.status
            if await self.store.set_status(node.id, status):
                await self._record(node, previous, status, actor_id, trigger=root)
                cascaded.append(node.id)

    async def _complete_ancestors(
        self, task: Task, actor_id: Optional[str], cascaded: List[UUID]
    ) -> None:
        for parent in await self.store.get_ancestors(task):
            children = await self.store.get_children(parent.id)
            if not all(child.is_completed for child in children):
                return
            previous = parent.status
            if await self.store.set_status(parent.id, TaskStatus.COMPLETED):
                await self._record(
                    parent, previous, TaskStatus.COMPLETED, actor_id, trigger=task
                )
                cascaded.append(parent.id)

    async def _reopen_ancestors(
        self, task: Task, actor_id: Optional[str], cascaded: List[UUID]
    ) -> None:
        for parent in await self.store.get_ancestors(task):
            if parent.status != TaskStatus.COMPLETED:
                return
            await self.store.set_status(parent.id, TaskStatus.TODO)
            await self._record(
                parent, TaskStatus.COMPLETED, TaskStatus.TODO, actor_id, trigger=task
            )
            cascaded.append(parent.id)

    async def _record(
        self,
        task: Task,
        previous: TaskStatus,
        status: TaskStatus,
        actor_id: Optional[str],
        trigger: Optional[Task],
    ) -> None:
        await self.audit.record(
            ActivityEvent(
                action="task_status_changed",
                entity_id=task.id,
                actor_id=actor_id,
                is_cascade=trigger is not None,
                triggered_by_task_id=trigger.id if trigger is not None else None,
                details={
                    "title": task.title,
                    "from": previous.value,
                    "to": status.value,
                },
            )
        )
