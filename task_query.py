"""Filtering, sorting and pagination of task collections.

Used by the list endpoint on the server and by ``TaskStore.view`` on the
client, so both sides agree on what a page of tasks looks like.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from schemas import Pagination, TaskOut, as_utc

SORT_KEYS = ("createdAt", "dueDate", "priority", "title")
SORT_ORDERS = ("asc", "desc")
PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TaskFilter:
    search: str = ""
    status: Optional[str] = None
    priority: Optional[str] = None

    def matches(self, task: TaskOut) -> bool:
        if self.search and self.search.lower() not in task.title.lower():
            return False
        if self.status not in (None, "", "all") and task.status != self.status:
            return False
        if self.priority not in (None, "", "all") and task.priority != self.priority:
            return False
        return True


@dataclass(frozen=True)
class TaskSort:
    sort_by: str = "createdAt"
    sort_order: str = "desc"

    def __post_init__(self):
        if self.sort_by not in SORT_KEYS:
            raise ValueError(f"Invalid sort key: {self.sort_by!r}")
        if self.sort_order not in SORT_ORDERS:
            raise ValueError(f"Invalid sort order: {self.sort_order!r}")


@dataclass(frozen=True)
class TaskPage:
    tasks: List[TaskOut]
    page: int
    limit: int
    total_count: int
    total_pages: int

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict:
        return Pagination(
            page=self.page,
            limit=self.limit,
            total_count=self.total_count,
            total_pages=self.total_pages,
            has_next_page=self.has_next_page,
            has_prev_page=self.has_prev_page,
        ).model_dump(by_alias=True)


def _sort_key(sort_by: str):
    if sort_by == "title":
        return lambda t: t.title.casefold()
    if sort_by == "priority":
        return lambda t: PRIORITY_RANK.get(t.priority, 0)
    if sort_by == "dueDate":
        # undated tasks go last when ascending
        return lambda t: as_utc(t.due_date) if t.due_date is not None else _FAR_FUTURE
    return lambda t: as_utc(t.created_at)


def filter_tasks(tasks: Sequence[TaskOut], task_filter: TaskFilter) -> List[TaskOut]:
    return [t for t in tasks if task_filter.matches(t)]


def sort_tasks(tasks: Sequence[TaskOut], task_sort: TaskSort) -> List[TaskOut]:
    """Stable ascending sort; descending is its exact reverse."""
    ordered = sorted(tasks, key=_sort_key(task_sort.sort_by))
    if task_sort.sort_order == "desc":
        ordered.reverse()
    return ordered


def paginate(tasks: Sequence[TaskOut], page: int = 1, limit: int = 9) -> TaskPage:
    """Slice one page out of ``tasks``.

    Out-of-range page numbers are clamped into ``1..total_pages``; an empty
    collection is page 1 of 0.
    """
    if limit < 1:
        raise ValueError("Page size must be at least 1")
    total = len(tasks)
    total_pages = math.ceil(total / limit)
    page = max(1, min(page, total_pages or 1))
    start = (page - 1) * limit
    return TaskPage(
        tasks=list(tasks[start:start + limit]),
        page=page,
        limit=limit,
        total_count=total,
        total_pages=total_pages,
    )


def query_tasks(
    tasks: Sequence[TaskOut],
    task_filter: Optional[TaskFilter] = None,
    task_sort: Optional[TaskSort] = None,
    page: int = 1,
    limit: int = 9,
) -> TaskPage:
    filtered = filter_tasks(tasks, task_filter or TaskFilter())
    ordered = sort_tasks(filtered, task_sort or TaskSort())
    return paginate(ordered, page, limit)
