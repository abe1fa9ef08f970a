# tests/test_task_query.py

from datetime import datetime, timedelta, timezone

import pytest

from schemas import TaskOut
from task_query import TaskFilter, TaskSort, filter_tasks, paginate, query_tasks, sort_tasks

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_task(task_id, title="Task", status="pending", priority="medium", created=0, due=None):
    return TaskOut(
        id=task_id,
        title=title,
        status=status,
        priority=priority,
        due_date=T0 + timedelta(days=due) if due is not None else None,
        owner_id=1,
        created_at=T0 + timedelta(hours=created),
        updated_at=T0 + timedelta(hours=created),
    )


@pytest.fixture()
def tasks():
    return [
        make_task(1, "Write report", "pending", "high", created=1, due=5),
        make_task(2, "Buy milk", "completed", "low", created=2),
        make_task(3, "review REPORT draft", "in-progress", "high", created=3, due=2),
        make_task(4, "Call plumber", "pending", "medium", created=4, due=9),
        make_task(5, "Archive reports", "completed", "high", created=5),
    ]


def ids(tasks):
    return [t.id for t in tasks]


def test_search_is_case_insensitive_substring_on_title(tasks):
    assert ids(filter_tasks(tasks, TaskFilter(search="report"))) == [1, 3, 5]


def test_all_means_no_filter(tasks):
    assert ids(filter_tasks(tasks, TaskFilter(status="all", priority="all"))) == [1, 2, 3, 4, 5]


@pytest.mark.parametrize(
    "task_filter",
    [
        TaskFilter(search="report", status="completed"),
        TaskFilter(priority="high", status="pending"),
        TaskFilter(search="r", priority="high"),
        TaskFilter(search="nothing-matches"),
        TaskFilter(status="in-progress", priority="all"),
    ],
)
def test_filter_keeps_exactly_the_tasks_matching_every_predicate(tasks, task_filter):
    result = filter_tasks(tasks, task_filter)

    for task in tasks:
        matches = (
            task_filter.search.lower() in task.title.lower()
            and task_filter.status in (None, "all", task.status)
            and task_filter.priority in (None, "all", task.priority)
        )
        assert (task in result) == matches
    assert ids(result) == sorted(ids(result))


def test_priority_sort_is_stable_for_equal_ranks(tasks):
    result = sort_tasks(tasks, TaskSort("priority", "asc"))
    assert ids(result) == [2, 4, 1, 3, 5]


@pytest.mark.parametrize("sort_by", ["createdAt", "dueDate", "priority", "title"])
def test_descending_is_exact_reverse_of_ascending(tasks, sort_by):
    asc = sort_tasks(tasks, TaskSort(sort_by, "asc"))
    desc = sort_tasks(tasks, TaskSort(sort_by, "desc"))
    assert ids(desc) == list(reversed(ids(asc)))


def test_tasks_without_due_date_go_last_ascending_and_first_descending(tasks):
    assert ids(sort_tasks(tasks, TaskSort("dueDate", "asc"))) == [3, 1, 4, 2, 5]
    assert ids(sort_tasks(tasks, TaskSort("dueDate", "desc"))) == [5, 2, 4, 1, 3]


def test_title_sort_ignores_case(tasks):
    assert ids(sort_tasks(tasks, TaskSort("title", "asc"))) == [5, 2, 4, 3, 1]


def test_invalid_sort_config_is_rejected():
    with pytest.raises(ValueError):
        TaskSort("owner", "asc")
    with pytest.raises(ValueError):
        TaskSort("title", "sideways")


def test_pages_do_not_overlap_and_reconstruct_the_sequence(tasks):
    ordered = sort_tasks(tasks, TaskSort("createdAt", "desc"))
    first = paginate(ordered, 1, 2)
    pages = [paginate(ordered, n, 2) for n in range(1, first.total_pages + 1)]

    assert first.total_pages == 3
    assert [ids(p.tasks) for p in pages] == [[5, 4], [3, 2], [1]]
    assert sum((p.tasks for p in pages), []) == ordered


def test_page_numbers_are_clamped(tasks):
    beyond = paginate(tasks, 10, 2)
    assert beyond.page == 3
    assert ids(beyond.tasks) == [5]
    assert not beyond.has_next_page

    below = paginate(tasks, 0, 2)
    assert below.page == 1
    assert ids(below.tasks) == [1, 2]
    assert not below.has_prev_page


def test_empty_collection_is_page_one_of_zero():
    page = paginate([], 3, 9)
    assert page.tasks == []
    assert page.page == 1
    assert page.total_pages == 0
    assert page.pagination() == {
        "page": 1,
        "limit": 9,
        "totalCount": 0,
        "totalPages": 0,
        "hasNextPage": False,
        "hasPrevPage": False,
    }


def test_page_size_must_be_positive(tasks):
    with pytest.raises(ValueError):
        paginate(tasks, 1, 0)


def test_query_tasks_filters_sorts_then_pages(tasks):
    page = query_tasks(tasks, TaskFilter(priority="high"), TaskSort("dueDate", "asc"), page=1, limit=2)
    assert ids(page.tasks) == [3, 1]
    assert page.total_count == 3
    assert page.has_next_page
