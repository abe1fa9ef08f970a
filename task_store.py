"""Client-side cache of the signed-in user's tasks.

Every mutation waits for the server and then stores what the server returned,
so the cache only ever holds server-confirmed state. Each operation is
tracked as ``idle -> pending -> settled | failed``.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterable, List, Optional

import pydantic

from errors import BulkDeleteError, NotFoundError, ValidationError, field_message
from schemas import TASK_UPDATE_FIELDS, TaskOut, TaskUpdate
from task_query import TaskFilter, TaskPage, TaskSort, query_tasks

logger = logging.getLogger(__name__)

STATUS_CYCLE = {"pending": "in-progress", "in-progress": "completed", "completed": "pending"}


class OperationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"


_TRANSITIONS = {
    OperationState.IDLE: {OperationState.PENDING},
    OperationState.PENDING: {OperationState.SETTLED, OperationState.FAILED},
    OperationState.SETTLED: {OperationState.PENDING},
    OperationState.FAILED: {OperationState.PENDING},
}


class Operation:
    def __init__(self, key: str):
        self.key = key
        self.state = OperationState.IDLE
        self.error: Optional[Exception] = None

    def _move(self, new_state: OperationState):
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"{self.key}: cannot go from {self.state.value} to {new_state.value}")
        self.state = new_state

    def start(self):
        self._move(OperationState.PENDING)
        self.error = None

    def settle(self):
        self._move(OperationState.SETTLED)

    def fail(self, error: Exception):
        self._move(OperationState.FAILED)
        self.error = error

    @property
    def pending(self) -> bool:
        return self.state is OperationState.PENDING


class TaskStore:
    def __init__(self, api, max_workers: int = 8):
        self.api = api
        self.max_workers = max_workers
        self._tasks: List[TaskOut] = []
        self._operations: Dict[str, Operation] = {}
        # status a task had before toggle_complete marked it completed
        self._reopen_status: Dict[int, str] = {}
        self._lock = threading.RLock()

    # state

    @property
    def tasks(self) -> List[TaskOut]:
        with self._lock:
            return list(self._tasks)

    def get(self, task_id: int) -> Optional[TaskOut]:
        with self._lock:
            return next((t for t in self._tasks if t.id == task_id), None)

    def operation(self, key: str) -> Operation:
        with self._lock:
            if key not in self._operations:
                self._operations[key] = Operation(key)
            return self._operations[key]

    @contextmanager
    def _track(self, key: str):
        op = self.operation(key)
        if op.pending:
            raise RuntimeError(f"{key} is already in progress")
        op.start()
        try:
            yield op
        except Exception as exc:
            op.fail(exc)
            logger.debug("%s failed: %s", key, exc)
            raise
        op.settle()

    def _put(self, task: TaskOut):
        with self._lock:
            for i, existing in enumerate(self._tasks):
                if existing.id == task.id:
                    self._tasks[i] = task
                    return
            self._tasks.append(task)

    def _drop(self, task_ids: Iterable[int]):
        ids = set(task_ids)
        with self._lock:
            self._tasks = [t for t in self._tasks if t.id not in ids]
            for task_id in ids:
                self._reopen_status.pop(task_id, None)

    def _require(self, task_id: int) -> TaskOut:
        task = self.get(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    # operations

    def refresh(self) -> List[TaskOut]:
        with self._track("refresh"):
            tasks = self.api.list_all_tasks()
            with self._lock:
                self._tasks = list({t.id: t for t in tasks}.values())
                known = {t.id for t in self._tasks}
                self._reopen_status = {k: v for k, v in self._reopen_status.items() if k in known}
        return self.tasks

    def add(self, draft: dict) -> TaskOut:
        with self._track("add"):
            task = self.api.create_task(draft)
            self._put(task)
        return task

    def update(self, task_id: int, fields: dict) -> TaskOut:
        unknown = set(fields) - set(TASK_UPDATE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self._track(f"update:{task_id}"):
            current = self._require(task_id)
            try:
                requested = TaskUpdate.model_validate(fields).changes()
            except pydantic.ValidationError as exc:
                raise ValidationError(details=[field_message(e) for e in exc.errors()]) from exc
            changed = {k: v for k, v in requested.items() if getattr(current, k) != v}
            if not changed:
                return current
            body = TaskUpdate.model_validate(changed).model_dump(by_alias=True, mode="json", exclude_unset=True)
            try:
                task = self.api.update_task(task_id, body)
            except NotFoundError:
                self._drop([task_id])
                raise
            self._put(task)
        return task

    def toggle_status(self, task_id: int) -> TaskOut:
        current = self._require(task_id)
        return self.update(task_id, {"status": STATUS_CYCLE.get(current.status, "pending")})

    def toggle_complete(self, task_id: int) -> TaskOut:
        current = self._require(task_id)
        if current.completed:
            next_status = self._reopen_status.get(task_id, "pending")
        else:
            next_status = "completed"
        task = self.update(task_id, {"status": next_status})
        with self._lock:
            if next_status == "completed":
                self._reopen_status[task_id] = current.status
            else:
                self._reopen_status.pop(task_id, None)
        return task

    def remove(self, task_id: int):
        with self._track(f"remove:{task_id}"):
            try:
                self.api.delete_task(task_id)
            except NotFoundError:
                # already gone on the server
                self._drop([task_id])
                raise
            self._drop([task_id])

    def remove_many(self, task_ids: Iterable[int]) -> List[int]:
        """Delete concurrently, best effort.

        Deleted and already-missing ids leave the cache; ids that failed for
        other reasons stay. Any failure raises ``BulkDeleteError`` after the
        cache has been updated.
        """
        ids = list(dict.fromkeys(task_ids))
        with self._track("remove_many"):
            if not ids:
                return []
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as pool:
                futures = {task_id: pool.submit(self.api.delete_task, task_id) for task_id in ids}

            deleted, failed, gone = [], {}, []
            for task_id, future in futures.items():
                exc = future.exception()
                if exc is None:
                    deleted.append(task_id)
                    continue
                failed[task_id] = exc
                if isinstance(exc, NotFoundError):
                    gone.append(task_id)

            self._drop(deleted + gone)
            if failed:
                logger.warning("Bulk delete: %d deleted, %d failed", len(deleted), len(failed))
                raise BulkDeleteError(deleted, failed)
        return deleted

    def view(
        self,
        task_filter: Optional[TaskFilter] = None,
        task_sort: Optional[TaskSort] = None,
        page: int = 1,
        page_size: int = 9,
    ) -> TaskPage:
        return query_tasks(self.tasks, task_filter, task_sort, page, page_size)
