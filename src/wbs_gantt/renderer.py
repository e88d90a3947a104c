"""Tree view contract: visible rows, expansion state, user intents.

Nothing in this module mutates a tree. Views turn rows into widgets or rich
tables and report what the user asked for as ``TreeIntent`` values.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Iterable

from rich.table import Table
from rich.text import Text

from wbs_gantt import theme
from wbs_gantt.models import (
    STATUS_ICONS,
    DisplayStatus,
    WorkItem,
    format_date,
)
from wbs_gantt.rollup import delay_days, display_status

PROGRESS_BAR_WIDTH = 8


@dataclass(frozen=True)
class TreeRow:
    item: WorkItem
    depth: int
    has_children: bool
    expanded: bool
    display_status: DisplayStatus
    delay_days: int = 0


def flatten_visible(
    roots: Iterable[WorkItem], expanded: set[str] | frozenset[str], today: date
) -> list[TreeRow]:
    """Rows in display order. Collapsed subtrees are never walked."""
    rows: list[TreeRow] = []

    def _walk(nodes: Iterable[WorkItem], depth: int) -> None:
        for node in nodes:
            is_open = node.id in expanded
            rows.append(
                TreeRow(
                    item=node,
                    depth=depth,
                    has_children=bool(node.children),
                    expanded=is_open and bool(node.children),
                    display_status=display_status(node, today),
                    delay_days=delay_days(node, today),
                )
            )
            if node.children and is_open:
                _walk(node.children, depth + 1)

    _walk(roots, 0)
    return rows


class ExpansionState:
    """Client-local set of expanded item ids."""

    def __init__(self, expanded: Iterable[str] = ()) -> None:
        self._expanded: set[str] = set(expanded)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._expanded

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._expanded)

    def toggle(self, item_id: str) -> bool:
        """Flip one item; returns whether it is now expanded."""
        if item_id in self._expanded:
            self._expanded.discard(item_id)
            return False
        self._expanded.add(item_id)
        return True

    def expand(self, item_id: str) -> None:
        self._expanded.add(item_id)

    def collapse(self, item_id: str) -> None:
        self._expanded.discard(item_id)

    def expand_all(self, roots: Iterable[WorkItem]) -> None:
        for root in roots:
            self._expanded.update(n.id for n in root.all_nodes() if n.children)

    def collapse_all(self) -> None:
        self._expanded.clear()

    def expand_to_level(self, roots: Iterable[WorkItem], level: int) -> None:
        """Show everything down to ``level`` (1 shows only roots)."""
        self._expanded.clear()
        for root in roots:
            for node in root.all_nodes():
                if node.children and int(node.level) < level:
                    self._expanded.add(node.id)

    def reveal(self, ancestors: Iterable[WorkItem]) -> None:
        """Expand every ancestor so an item becomes visible."""
        self._expanded.update(a.id for a in ancestors)

    def prune(self, existing_ids: Iterable[str]) -> None:
        """Forget ids that are no longer in the tree."""
        self._expanded.intersection_update(existing_ids)


class Intent(Enum):
    TOGGLE_EXPAND = "toggle_expand"
    SELECT = "select"
    CHECK = "check"
    REQUEST_EDIT = "request_edit"
    REQUEST_DELETE = "request_delete"
    REQUEST_PROMOTE = "request_promote"
    REQUEST_DEMOTE = "request_demote"
    REQUEST_PROGRESS_CHANGE = "request_progress_change"


@dataclass(frozen=True)
class TreeIntent:
    kind: Intent
    item_id: str
    value: Any = None


def filter_by_assignee(roots: Iterable[WorkItem], person_id: str) -> tuple[WorkItem, ...]:
    """Items assigned to ``person_id``, plus the ancestor path down to each."""

    def _filter(nodes: Iterable[WorkItem]) -> list[WorkItem]:
        kept: list[WorkItem] = []
        for node in nodes:
            children = _filter(node.children)
            if person_id in node.assignees or children:
                kept.append(replace(node, children=tuple(children)))
        return kept

    return tuple(_filter(roots))


# ── rich output ──


def progress_cell(progress: int, bar_width: int = PROGRESS_BAR_WIDTH, is_dark: bool = True) -> Text:
    progress = max(0, min(100, progress))
    filled = max(1, round(bar_width * progress / 100)) if progress > 0 else 0
    text = Text()
    text.append(f"{progress:>3}% ", style="bold")
    text.append("█" * filled, style=theme.progress_color(progress).resolve(is_dark))
    text.append("░" * (bar_width - filled), style="dim")
    return text


def status_cell(row: TreeRow, is_dark: bool = True) -> Text:
    status = row.display_status
    label = f"{STATUS_ICONS[status]} {status.value}"
    if row.delay_days:
        label += f" +{row.delay_days}d"
    return Text(label, style=theme.STATUS_COLORS[status].resolve(is_dark))


def title_cell(row: TreeRow, is_dark: bool = True, checked: bool = False) -> Text:
    if row.has_children:
        fold = "▼ " if row.expanded else "▶ "
    else:
        fold = "  "
    text = Text("  " * row.depth)
    if checked:
        text.append("✓ ", style=theme.CHECK_MARK.resolve(is_dark))
    text.append(fold)
    text.append(row.item.code + " ", style=theme.LEVEL_COLORS[row.item.level].resolve(is_dark))
    text.append(row.item.name)
    return text


def render_tree_table(
    rows: Iterable[TreeRow],
    people: dict[str, str] | None = None,
    date_format: str = "YYYY-MM-DD",
    title: str | None = None,
    is_dark: bool = True,
) -> Table:
    """A rich Table of tree rows for terminal output."""
    people = people or {}
    table = Table(title=title, show_lines=False, expand=False)
    table.add_column("WBS", no_wrap=True)
    table.add_column("Level", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Start", no_wrap=True)
    table.add_column("End", no_wrap=True)
    table.add_column("Progress", no_wrap=True)
    table.add_column("Weight", justify="right")
    table.add_column("Assignees")
    for row in rows:
        item = row.item
        table.add_row(
            title_cell(row, is_dark),
            item.level.name,
            status_cell(row, is_dark),
            format_date(item.planned_start, date_format),
            format_date(item.planned_end, date_format),
            progress_cell(item.progress, is_dark=is_dark),
            str(item.weight) if item.level == 1 else "",
            ", ".join(people.get(p, p) for p in item.assignees),
        )
    return table
