"""Schedule and WBS summary statistics for dashboards and the `stats` command."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from wbs_gantt.models import Level, Status, WorkItem
from wbs_gantt.rollup import is_delayed


def work_days(start: date | None, end: date | None) -> int | None:
    """Inclusive calendar days from start to end, at least 1."""
    if start is None or end is None:
        return None
    return max(1, (end - start).days + 1)


@dataclass(frozen=True)
class ScheduleStats:
    total_days: int
    weekend_days: int
    holiday_days: int
    workable_days: int
    elapsed_days: int
    remaining_days: int


def schedule_stats(
    start: date | None,
    end: date | None,
    today: date,
    holidays: Iterable[date] = (),
) -> ScheduleStats | None:
    """Calendar breakdown of a project window. None without both dates.

    Holidays only count when they fall on a weekday inside the window.
    """
    if start is None or end is None:
        return None
    total = max(0, (end - start).days + 1)
    weekend = 0
    day = start
    while day <= end:
        if day.weekday() >= 5:
            weekend += 1
        day += timedelta(days=1)
    holiday = sum(
        1 for h in set(holidays) if start <= h <= end and h.weekday() < 5
    )

    if today < start:
        elapsed = 0
    elif today >= end:
        elapsed = total
    else:
        elapsed = (today - start).days + 1

    if today >= end:
        remaining = 0
    elif today < start:
        remaining = total
    else:
        remaining = (end - today).days

    return ScheduleStats(
        total_days=total,
        weekend_days=weekend,
        holiday_days=holiday,
        workable_days=total - weekend - holiday,
        elapsed_days=elapsed,
        remaining_days=remaining,
    )


@dataclass(frozen=True)
class WBSStats:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    holding: int = 0
    cancelled: int = 0
    delayed: int = 0
    overall_progress: float = 0.0


def _walk(roots: Iterable[WorkItem]):
    for root in roots:
        yield from root.all_nodes()


def wbs_stats(roots: Iterable[WorkItem], today: date) -> WBSStats:
    """Status counts and weighted progress over LEVEL4 work units."""
    counts = {status: 0 for status in Status}
    delayed = 0
    weighted = 0
    weights = 0
    for item in _walk(roots):
        if item.level != Level.LEVEL4:
            continue
        counts[item.status] += 1
        weight = item.weight or 1
        weighted += item.progress * weight
        weights += weight
        if is_delayed(item, today):
            delayed += 1
    return WBSStats(
        total=sum(counts.values()),
        completed=counts[Status.COMPLETED],
        in_progress=counts[Status.IN_PROGRESS],
        pending=counts[Status.PENDING],
        holding=counts[Status.HOLDING],
        cancelled=counts[Status.CANCELLED],
        delayed=delayed,
        overall_progress=weighted / weights if weights else 0.0,
    )


@dataclass
class AssigneeStats:
    person_id: str
    total: int = 0
    completed: int = 0
    item_ids: list[str] = field(default_factory=list)
    _progress_sum: int = field(default=0, repr=False)

    @property
    def average_progress(self) -> float:
        return self._progress_sum / self.total if self.total else 0.0


def assignee_stats(roots: Iterable[WorkItem]) -> dict[str, AssigneeStats]:
    """Per-person workload over every item that lists the person."""
    result: dict[str, AssigneeStats] = {}
    for item in _walk(roots):
        for person_id in item.assignees:
            entry = result.setdefault(person_id, AssigneeStats(person_id))
            entry.total += 1
            entry.item_ids.append(item.id)
            entry._progress_sum += item.progress
            if item.status == Status.COMPLETED:
                entry.completed += 1
    return result
