# tests/test_analytics.py

from datetime import datetime, timedelta, timezone

from analytics import compute_analytics
from schemas import TaskOut

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def task(task_id, status="pending", priority="medium", created_days_ago=0, updated_days_ago=0, due_in_days=None):
    return TaskOut(
        id=task_id,
        title=f"task {task_id}",
        status=status,
        priority=priority,
        owner_id=1,
        created_at=NOW - timedelta(days=created_days_ago),
        updated_at=NOW - timedelta(days=updated_days_ago),
        due_date=NOW + timedelta(days=due_in_days) if due_in_days is not None else None,
    )


def test_empty_task_list():
    stats = compute_analytics([], now=NOW)
    assert stats["totalTasks"] == 0
    assert stats["successRate"] == 0
    assert stats["recentTasks"] == []
    assert stats["productivityTrend"] == []


def test_counts_and_time_windows():
    tasks = [
        task(1, "completed", "high", created_days_ago=40, updated_days_ago=2),
        task(2, "completed", "low", created_days_ago=20, updated_days_ago=2),
        task(3, "pending", "high", created_days_ago=3, due_in_days=-1),
        task(4, "in-progress", "medium", created_days_ago=1, due_in_days=3),
        task(5, "completed", "medium", created_days_ago=60, updated_days_ago=45, due_in_days=-10),
    ]

    stats = compute_analytics(tasks, now=NOW)

    assert stats["totalTasks"] == 5
    assert stats["completedTasks"] == 3
    assert stats["pendingTasks"] == 1
    assert stats["inProgressTasks"] == 1
    assert stats["successRate"] == 60
    assert stats["tasksByPriority"] == {"high": 2, "medium": 2, "low": 1}
    # completed tasks are never overdue
    assert stats["overdueTasks"] == 1
    assert stats["tasksDueSoon"] == 1
    assert stats["thisWeek"] == {"created": 2, "completed": 2}
    assert stats["thisMonth"] == {"created": 2, "completed": 2}
    assert stats["productivityTrend"] == [{"date": "2026-10-16", "completed": 2}]
    assert [t["id"] for t in stats["recentTasks"]] == [4, 3, 2, 1, 5]
