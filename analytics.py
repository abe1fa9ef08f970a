"""Profile statistics, computed from a user's tasks at read time."""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from schemas import TaskOut, TASK_PRIORITIES, as_utc

OPEN_STATUSES = ("pending", "in-progress")
RECENT_LIMIT = 10
TREND_DAYS = 30


def compute_analytics(tasks: Sequence[TaskOut], now: Optional[datetime] = None) -> dict:
    now = as_utc(now) if now else datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)
    week_ahead = now + timedelta(days=7)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    trend_start = now - timedelta(days=TREND_DAYS)

    by_status = Counter(t.status for t in tasks)
    by_priority = Counter(t.priority for t in tasks)
    total = len(tasks)
    completed = [t for t in tasks if t.completed]
    open_tasks = [t for t in tasks if t.status in OPEN_STATUSES]

    # updatedAt of a completed task stands in for its completion time
    trend = Counter(
        t.updated_at.date().isoformat() for t in completed if t.updated_at >= trend_start
    )
    recent = sorted(tasks, key=lambda t: t.created_at, reverse=True)[:RECENT_LIMIT]

    return {
        "totalTasks": total,
        "completedTasks": by_status["completed"],
        "pendingTasks": by_status["pending"],
        "inProgressTasks": by_status["in-progress"],
        "overdueTasks": sum(1 for t in open_tasks if t.due_date and t.due_date < now),
        "successRate": round(len(completed) / total * 100) if total else 0,
        "tasksByPriority": {p: by_priority[p] for p in reversed(TASK_PRIORITIES)},
        "thisWeek": {
            "created": sum(1 for t in tasks if t.created_at >= week_ago),
            "completed": sum(1 for t in completed if t.updated_at >= week_ago),
        },
        "thisMonth": {
            "created": sum(1 for t in tasks if t.created_at >= month_start),
            "completed": sum(1 for t in completed if t.updated_at >= month_start),
        },
        "tasksDueSoon": sum(1 for t in open_tasks if t.due_date and now <= t.due_date <= week_ahead),
        "recentTasks": [t.to_json() for t in recent],
        "productivityTrend": [{"date": day, "completed": trend[day]} for day in sorted(trend)],
    }
