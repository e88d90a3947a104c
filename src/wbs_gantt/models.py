"""Data models for the WBS scheduling core."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum, IntEnum


class Level(IntEnum):
    """WBS level. The value is the depth: LEVEL1 is a root, LEVEL4 a work unit."""

    LEVEL1 = 1
    LEVEL2 = 2
    LEVEL3 = 3
    LEVEL4 = 4

    @classmethod
    def parse(cls, value: str | int | Level) -> Level:
        """Accept 'LEVEL3', '3' or 3."""
        if isinstance(value, Level):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip().upper()
        if text.isdigit():
            return cls(int(text))
        return cls[text]


MIN_LEVEL = Level.LEVEL1
MAX_LEVEL = Level.LEVEL4


class Status(Enum):
    """Stored work item status."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    HOLDING = "HOLDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DisplayStatus(Enum):
    """Status shown to the user; DELAYED is derived, never stored."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    HOLDING = "HOLDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DELAYED = "DELAYED"


class WeightMode(Enum):
    """How LEVEL1 weights combine into project progress."""

    NORMALIZE = "normalize"  # divide by the actual weight sum
    LITERAL = "literal"  # divide by 100, may exceed 100


CLOSED_STATUSES = frozenset({Status.COMPLETED, Status.CANCELLED})

STATUS_ICONS = {
    DisplayStatus.PENDING: "○",
    DisplayStatus.IN_PROGRESS: "◐",
    DisplayStatus.HOLDING: "◌",
    DisplayStatus.COMPLETED: "●",
    DisplayStatus.CANCELLED: "⊘",
    DisplayStatus.DELAYED: "◆",
}

LEVEL_NAMES = {
    Level.LEVEL1: "Phase",
    Level.LEVEL2: "Stage",
    Level.LEVEL3: "Activity",
    Level.LEVEL4: "Work unit",
}

DATE_FORMAT_PRESETS: dict[str, str] = {
    "YYYY-MM-DD": "%Y-%m-%d",
    "MM/DD/YYYY": "%m/%d/%Y",
    "DD/MM/YYYY": "%d/%m/%Y",
    "DD.MM.YYYY": "%d.%m.%Y",
    "YYYY/MM/DD": "%Y/%m/%d",
    "MMM DD, YYYY": "%b %d, %Y",
    "MM-DD": "%m-%d",
}
DEFAULT_DATE_FORMAT = "YYYY-MM-DD"


def format_date(d: date | None, date_format: str = DEFAULT_DATE_FORMAT) -> str:
    """Format a date for display. Returns empty string for None."""
    if d is None:
        return ""
    fmt = DATE_FORMAT_PRESETS.get(date_format)
    if fmt is None:
        return d.isoformat()
    return d.strftime(fmt)


def parse_date(value: str | date | None) -> date | None:
    """Parse an ISO date (a datetime string is cut at 'T'). Empty → None."""
    if value is None or isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    return date.fromisoformat(text.split("T", 1)[0])


@dataclass(frozen=True)
class Person:
    """A person who can be assigned to work items."""

    id: str
    name: str
    email: str = ""


# Fields that only the tree may change.
STRUCTURAL_FIELDS = frozenset({"id", "parent_id", "level", "code", "children"})

# Fields derived from children on non-leaf items.
DERIVED_FIELDS = frozenset({"planned_start", "planned_end", "progress"})


@dataclass(frozen=True)
class WorkItem:
    """A single node in the WBS tree. Immutable; use dataclasses.replace() to edit."""

    name: str
    level: Level
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    parent_id: str | None = None
    code: str = ""
    description: str = ""
    planned_start: date | None = None
    planned_end: date | None = None
    actual_start: date | None = None
    actual_end: date | None = None
    progress: int = 0
    weight: int = 1
    status: Status = Status.PENDING
    assignees: tuple[str, ...] = ()
    deliverable_name: str = ""
    deliverable_link: str = ""
    children: tuple[WorkItem, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def with_child(self, child: WorkItem) -> WorkItem:
        """Return a new node with an additional child."""
        return replace(self, children=(*self.children, child))

    def replace_child(self, old_id: str, new_child: WorkItem) -> WorkItem:
        """Return a new node with a specific child replaced."""
        new_children = tuple(
            new_child if c.id == old_id else c for c in self.children
        )
        return replace(self, children=new_children)

    def all_nodes(self) -> list[WorkItem]:
        """Return a flat list of this node and all descendants."""
        result = [self]
        for child in self.children:
            result.extend(child.all_nodes())
        return result

    def max_depth_below(self) -> int:
        """Number of levels below this node (0 for a leaf)."""
        if not self.children:
            return 0
        return 1 + max(c.max_depth_below() for c in self.children)

    def shifted(self, delta: int) -> WorkItem:
        """Return the subtree with every level shifted by delta."""
        if delta == 0:
            return self
        return replace(
            self,
            level=Level(int(self.level) + delta),
            children=tuple(c.shifted(delta) for c in self.children),
        )

    @property
    def duration_days(self) -> int | None:
        """Inclusive planned duration, None without both dates."""
        if self.planned_start is None or self.planned_end is None:
            return None
        return (self.planned_end - self.planned_start).days + 1


@dataclass
class ProjectConfig:
    """Project-level configuration stored in .wbs-gantt/config.toml."""

    name: str = ""
    project_id: str = "default"
    date_format: str = DEFAULT_DATE_FORMAT
    weight_mode: WeightMode = WeightMode.NORMALIZE
    zoom_levels: list[int] = field(default_factory=lambda: [1, 2, 3, 4, 6])
    zoom_index: int = 2
    expand_level: int = 2

    @property
    def cell_width(self) -> int:
        """Terminal cells per day at the current zoom."""
        if not self.zoom_levels:
            return 1
        index = max(0, min(self.zoom_index, len(self.zoom_levels) - 1))
        return max(1, int(self.zoom_levels[index]))


# ── Record form (repository boundary) ──────────────────────────


def item_to_record(item: WorkItem, order: int = 0) -> dict:
    """Flatten a WorkItem (without children) into a JSON-compatible dict."""
    return {
        "id": item.id,
        "parentId": item.parent_id,
        "code": item.code,
        "level": item.level.name,
        "order": order,
        "name": item.name,
        "description": item.description,
        "plannedStart": item.planned_start.isoformat() if item.planned_start else None,
        "plannedEnd": item.planned_end.isoformat() if item.planned_end else None,
        "actualStart": item.actual_start.isoformat() if item.actual_start else None,
        "actualEnd": item.actual_end.isoformat() if item.actual_end else None,
        "progress": item.progress,
        "weight": item.weight,
        "status": item.status.value,
        "assigneeIds": list(item.assignees),
        "deliverableName": item.deliverable_name,
        "deliverableLink": item.deliverable_link,
    }


def item_from_record(record: dict) -> WorkItem:
    """Build a childless WorkItem from a record produced by item_to_record."""
    kwargs = {
        "name": str(record.get("name", "")),
        "level": Level.parse(record.get("level", "LEVEL1")),
        "parent_id": record.get("parentId") or None,
        "code": str(record.get("code", "") or ""),
        "description": str(record.get("description", "") or ""),
        "planned_start": parse_date(record.get("plannedStart")),
        "planned_end": parse_date(record.get("plannedEnd")),
        "actual_start": parse_date(record.get("actualStart")),
        "actual_end": parse_date(record.get("actualEnd")),
        "progress": int(record.get("progress", 0) or 0),
        "weight": int(record.get("weight", 1) or 1),
        "status": Status(record.get("status", "PENDING") or "PENDING"),
        "assignees": tuple(str(a) for a in record.get("assigneeIds", []) or []),
        "deliverable_name": str(record.get("deliverableName", "") or ""),
        "deliverable_link": str(record.get("deliverableLink", "") or ""),
    }
    if record.get("id"):
        kwargs["id"] = str(record["id"])
    return WorkItem(**kwargs)
