"""Optimistic editing session over a repository.

Every operation mutates the in-memory tree first, notifies change listeners,
and then schedules a commit task that replays the difference against the
repository. Commits run one after another. When a commit fails, the steps the
repository already accepted are reverted with inverse calls, exactly that
operation is undone locally, ancestors are rolled up again, and failure
listeners receive a ``RepositoryRejected``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import date
from typing import Any, Awaitable, Callable, Iterable

from wbs_gantt.errors import (
    DerivedFieldError,
    InvalidLevel,
    RepositoryRejected,
    WBSError,
)
from wbs_gantt.gantt import DragCommit, DragMode, GanttDragController
from wbs_gantt.level_editor import EditResult, LevelEditor
from wbs_gantt.models import (
    DERIVED_FIELDS,
    STRUCTURAL_FIELDS,
    DisplayStatus,
    Level,
    Person,
    Status,
    WeightMode,
    WorkItem,
    item_from_record,
)
from wbs_gantt.repository import ItemRepository, PersonDirectory, TaskRegistry
from wbs_gantt.rollup import (
    delay_days,
    display_status,
    project_progress,
    recompute,
    rollup_all,
)
from wbs_gantt.tree import WBSTree

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset(f.name for f in dataclass_fields(WorkItem)) - STRUCTURAL_FIELDS


@dataclass(frozen=True)
class CommitStep:
    """One repository call. ``fields`` is the full record for a create and
    only the changed keys for an update."""

    kind: str  # "create" | "update" | "delete"
    item_id: str
    fields: dict = field(default_factory=dict)


def plan_commit(before: dict[str, dict], after: dict[str, dict]) -> list[CommitStep]:
    """Repository calls that turn the ``before`` records into ``after``.

    Creates come first, parents before children; then updates; then deletes,
    deepest first. Both inputs are in tree pre-order (see ``WBSTree.records``).
    """
    steps: list[CommitStep] = []
    for item_id, record in after.items():
        if item_id not in before:
            steps.append(CommitStep("create", item_id, dict(record)))
    for item_id, record in after.items():
        old = before.get(item_id)
        if old is None:
            continue
        changed = {k: v for k, v in record.items() if old.get(k) != v}
        if changed:
            steps.append(CommitStep("update", item_id, changed))
    for item_id in reversed(list(before)):
        if item_id not in after:
            steps.append(CommitStep("delete", item_id))
    return steps


@dataclass
class Mutation:
    """A locally applied operation and its pending repository commit."""

    description: str
    result: Any = None
    task: asyncio.Future | None = None

    @property
    def pending(self) -> bool:
        return self.task is not None and not self.task.done()

    async def committed(self) -> bool:
        """Wait for the commit. False means it was rejected and rolled back."""
        if self.task is None:
            return True
        return await self.task


ChangeListener = Callable[[], None]
FailureListener = Callable[[RepositoryRejected], None]


class WBSSession:
    def __init__(
        self,
        repository: ItemRepository,
        project_id: str = "default",
        *,
        registry: TaskRegistry | None = None,
        directory: PersonDirectory | None = None,
        weight_mode: WeightMode = WeightMode.NORMALIZE,
        today: Callable[[], date] = date.today,
        cell_width: int = 1,
    ) -> None:
        self.repository = repository
        self.project_id = project_id
        if registry is None and isinstance(repository, TaskRegistry):
            registry = repository
        if directory is None and isinstance(repository, PersonDirectory):
            directory = repository
        self.registry = registry
        self.directory = directory
        self.weight_mode = weight_mode
        self.today = today

        self.tree = WBSTree()
        self.editor = LevelEditor(self.tree)
        self.drag = GanttDragController(self.tree, cell_width, today)
        self.people: list[Person] = []

        self._change_listeners: list[ChangeListener] = []
        self._failure_listeners: list[FailureListener] = []
        self._commit_lock = asyncio.Lock()
        self._aliases: dict[str, str] = {}
        self._pending: set[asyncio.Future] = set()

    # ── Listeners ──

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    def add_failure_listener(self, listener: FailureListener) -> None:
        self._failure_listeners.append(listener)

    def _notify_change(self) -> None:
        for listener in list(self._change_listeners):
            listener()

    def _notify_failure(self, error: RepositoryRejected) -> None:
        for listener in list(self._failure_listeners):
            listener(error)

    # ── Loading and queries ──

    async def load(self) -> None:
        """Hydrate the tree from the repository and roll it up once."""
        items = await self.repository.load(self.project_id)
        self.tree.restore(WBSTree.from_items(items).roots)
        rollup_all(self.tree)
        self._aliases.clear()
        if self.directory is not None:
            self.people = await self.directory.list(self.project_id)
        logger.info("loaded %d items for project %s", len(self.tree), self.project_id)
        self._notify_change()

    def resolve(self, item_id: str) -> str:
        """Current id of an item whose id the repository may have replaced."""
        seen = set()
        while item_id in self._aliases and item_id not in seen:
            seen.add(item_id)
            item_id = self._aliases[item_id]
        return item_id

    @property
    def people_by_id(self) -> dict[str, Person]:
        return {p.id: p for p in self.people}

    def project_progress(self) -> float:
        return project_progress(self.tree.roots, self.weight_mode)

    def display_status(self, item_id: str) -> DisplayStatus:
        return display_status(self.tree.get(item_id), self.today())

    def delay_days(self, item_id: str) -> int:
        return delay_days(self.tree.get(item_id), self.today())

    async def flush(self) -> None:
        """Wait until every scheduled commit has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Structural operations ──

    def add_child(self, parent_id: str | None, level: Level | str | int, name: str = "", **fields: Any) -> Mutation:
        return self._apply(
            f"add {name or 'item'}",
            lambda: self.editor.add_child(parent_id, level, name, **fields),
            self._undo_add,
        )

    def add_sibling(self, item_id: str, name: str = "", **fields: Any) -> Mutation:
        return self._apply(
            f"add {name or 'item'}",
            lambda: self.editor.add_sibling(item_id, name, **fields),
            self._undo_add,
        )

    def promote(self, item_id: str) -> Mutation:
        return self._apply(
            f"promote {self._label(item_id)}",
            lambda: self.editor.promote(item_id),
            self._undo_move,
        )

    def demote(self, item_id: str) -> Mutation:
        return self._apply(
            f"demote {self._label(item_id)}",
            lambda: self.editor.demote(item_id),
            self._undo_move,
        )

    def reorder(self, item_id: str, direction: int) -> Mutation:
        return self._apply(
            f"move {self._label(item_id)}",
            lambda: self.editor.reorder(item_id, direction),
            self._undo_move,
        )

    def delete(self, item_id: str) -> Mutation:
        """Cascade-delete; task links of removed items are dropped after the commit."""
        removed: list[str] = []

        async def _unlink() -> None:
            if self.registry is not None and removed:
                await self.registry.unlink([self.resolve(i) for i in removed])

        def _mutate() -> EditResult:
            result = self.editor.delete(item_id)
            removed.extend(result.removed_ids)
            return result

        return self._apply(f"delete {self._label(item_id)}", _mutate, self._undo_delete, after_commit=_unlink)

    # ── Field edits ──

    def update_fields(self, item_id: str, **fields: Any) -> Mutation:
        """Edit non-structural fields. Derived fields are only editable on leaves."""
        item = self.tree.get(item_id)
        fields = self._validate_fields(item, fields)

        def _mutate() -> WorkItem:
            self.tree.update_fields(item_id, **fields)
            recompute(self.tree, {a.id for a in self.tree.ancestors_of(item_id)})
            return self.tree.get(item_id)

        names = tuple(fields)
        return self._apply(
            f"edit {self._label(item_id)}",
            _mutate,
            lambda _result: lambda: self._undo_fields(item.id, item, names),
        )

    def set_progress(self, item_id: str, progress: int) -> Mutation:
        return self.update_fields(item_id, progress=progress)

    def _validate_fields(self, item: WorkItem, fields: dict[str, Any]) -> dict[str, Any]:
        structural = STRUCTURAL_FIELDS.intersection(fields)
        if structural:
            raise ValueError(f"structural fields cannot be edited: {', '.join(sorted(structural))}")
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")
        derived = DERIVED_FIELDS.intersection(fields)
        if derived and not item.is_leaf:
            raise DerivedFieldError(
                f"{', '.join(sorted(derived))} of {item.code} are derived from its children"
            )
        fields = dict(fields)
        if "progress" in fields:
            progress = int(fields["progress"])
            if not 0 <= progress <= 100:
                raise ValueError(f"progress must be between 0 and 100, got {progress}")
            fields["progress"] = progress
        if "weight" in fields:
            weight = int(fields["weight"])
            if not 1 <= weight <= 100:
                raise ValueError(f"weight must be between 1 and 100, got {weight}")
            fields["weight"] = weight
        if "status" in fields and not isinstance(fields["status"], Status):
            fields["status"] = Status(str(fields["status"]).upper())
        if "assignees" in fields:
            fields["assignees"] = tuple(dict.fromkeys(str(a) for a in fields["assignees"]))
        start = fields.get("planned_start", item.planned_start)
        end = fields.get("planned_end", item.planned_end)
        if start is not None and end is not None and start > end:
            raise ValueError(f"planned start {start} is after planned end {end}")
        return fields

    # ── Drag ──

    def begin_drag(self, item_id: str, mode: DragMode, origin_x: float) -> None:
        self.drag.begin(item_id, mode, origin_x)

    def drag_to(self, pointer_x: float) -> tuple[date, date]:
        return self.drag.update(pointer_x)

    def cancel_drag(self) -> None:
        self.drag.cancel()

    def set_cell_width(self, cell_width: int) -> None:
        """Scale used by the next drag; a drag in progress keeps its own."""
        self.drag.cell_width = cell_width

    def end_drag(self, in_bounds: bool = True) -> Mutation | None:
        """Release the pointer. Returns None when nothing changed."""
        if not in_bounds:
            self.drag.cancel()
            return None
        label = self._label(self.drag.item_id) if self.drag.item_id else "item"
        mutation = self._apply(f"reschedule {label}", self.drag.commit, self._undo_drag)
        return mutation if mutation.result is not None else None

    # ── Tasks ──

    def register_task(self, item_id: str) -> Mutation:
        """Register a LEVEL4 work unit with the task registry."""
        item = self.tree.get(item_id)
        if item.level != Level.LEVEL4:
            raise InvalidLevel(f"only {Level.LEVEL4.name} items can be registered as tasks")
        if self.registry is None:
            raise RuntimeError("no task registry configured")
        description = f"register {self._label(item_id)}"
        mutation = Mutation(description, item)
        mutation.task = self._schedule(self._register(description, item.id))
        return mutation

    async def _register(self, description: str, item_id: str) -> bool:
        async with self._commit_lock:
            current = self.resolve(item_id)
            try:
                if current not in self.tree:
                    raise RepositoryRejected(f"{description}: item no longer exists")
                ok = await self.registry.register_as_task(self.tree.get(current))
                if not ok:
                    raise RepositoryRejected(f"{description} was rejected")
            except Exception as e:
                error = self._as_rejection(description, e)
                logger.error("%s failed: %s", description, e)
                self._notify_failure(error)
                return False
        logger.info("%s", description)
        return True

    # ── Commit machinery ──

    def _label(self, item_id: str) -> str:
        item = self.tree.get(item_id)
        return f"{item.code} {item.name}".strip()

    def _schedule(self, coro: Awaitable[bool]) -> asyncio.Future:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _apply(
        self,
        description: str,
        mutate: Callable[[], Any],
        make_undo: Callable[[Any], Callable[[], set[str]]],
        after_commit: Callable[[], Awaitable[None]] | None = None,
    ) -> Mutation:
        snapshot = self.tree.snapshot()
        before = self.tree.records()
        result = mutate()
        plan = plan_commit(before, self.tree.records())
        mutation = Mutation(description, result)
        if not plan:
            return mutation
        self._notify_change()
        undo = make_undo(result)
        mutation.task = self._schedule(
            self._commit(description, plan, before, undo, snapshot, after_commit)
        )
        return mutation

    async def _commit(
        self,
        description: str,
        plan: list[CommitStep],
        before: dict[str, dict],
        undo: Callable[[], set[str]],
        snapshot: tuple[WorkItem, ...],
        after_commit: Callable[[], Awaitable[None]] | None,
    ) -> bool:
        async with self._commit_lock:
            applied: list[CommitStep] = []
            try:
                for step in plan:
                    await self._run_step(step)
                    applied.append(step)
            except Exception as e:
                error = self._as_rejection(description, e)
                logger.error("commit of %s failed: %s; rolling back", description, e)
                await self._revert_steps(description, applied, before)
                self._rollback(description, undo, snapshot)
                self._notify_failure(error)
                return False
            logger.debug("committed %s in %d steps", description, len(plan))

            if after_commit is not None:
                try:
                    await after_commit()
                except Exception as e:
                    logger.error("cleanup after %s failed: %s", description, e)
                    self._notify_failure(self._as_rejection(f"cleanup after {description}", e))
        return True

    @staticmethod
    def _as_rejection(description: str, error: Exception) -> RepositoryRejected:
        if isinstance(error, RepositoryRejected):
            return error
        rejection = RepositoryRejected(f"{description} failed: {error}")
        rejection.__cause__ = error
        return rejection

    async def _run_step(self, step: CommitStep) -> None:
        item_id = self.resolve(step.item_id)
        fields = dict(step.fields)
        if fields.get("parentId"):
            fields["parentId"] = self.resolve(fields["parentId"])

        if step.kind == "create":
            fields["id"] = item_id
            created = await self.repository.create(item_from_record(fields), order=int(fields.get("order", 0)))
            if created is None:
                raise RepositoryRejected(f"create of {item_id} was rejected")
            if created.id != item_id:
                self._aliases[item_id] = created.id
                if item_id in self.tree:
                    self.tree.rekey(item_id, created.id)
                    self._notify_change()
        elif step.kind == "update":
            if not await self.repository.update(item_id, fields):
                raise RepositoryRejected(f"update of {item_id} was rejected")
        elif step.kind == "delete":
            if not await self.repository.delete(item_id):
                raise RepositoryRejected(f"delete of {item_id} was rejected")
        else:
            raise ValueError(f"unknown commit step: {step.kind}")

    @staticmethod
    def _inverse(step: CommitStep, before: dict[str, dict]) -> CommitStep:
        if step.kind == "create":
            return CommitStep("delete", step.item_id)
        if step.kind == "update":
            old = before[step.item_id]
            return CommitStep("update", step.item_id, {k: old.get(k) for k in step.fields})
        return CommitStep("create", step.item_id, dict(before[step.item_id]))

    async def _revert_steps(self, description: str, applied: list[CommitStep], before: dict[str, dict]) -> None:
        """Undo the accepted steps of a failed commit, newest first.

        Deletes ran deepest first, so their re-creates run parents first.
        """
        for step in reversed(applied):
            try:
                await self._run_step(self._inverse(step, before))
            except Exception as e:
                logger.error(
                    "could not revert %s of %s after failed %s: %s", step.kind, step.item_id, description, e
                )

    def _rollback(self, description: str, undo: Callable[[], set[str]], snapshot: tuple[WorkItem, ...]) -> None:
        try:
            affected = undo()
        except WBSError as e:
            logger.error("could not undo %s: %s; restoring the earlier tree", description, e)
            self.tree.restore(snapshot)
            rollup_all(self.tree)
            self._apply_aliases()
            self._notify_change()
            return
        self._restore_leaf_values(snapshot, affected)
        recompute(self.tree, affected)
        self._apply_aliases()
        logger.info("rolled back %s", description)
        self._notify_change()

    def _apply_aliases(self) -> None:
        """Re-key restored items the repository re-created under new ids."""
        for old_id in list(self._aliases):
            new_id = self.resolve(old_id)
            if old_id in self.tree and new_id not in self.tree:
                self.tree.rekey(old_id, new_id)

    def _restore_leaf_values(self, snapshot: tuple[WorkItem, ...], ids: Iterable[str]) -> None:
        """Give items that are leaves again the dates and progress they had before."""
        old = {n.id: n for root in snapshot for n in root.all_nodes()}
        for item_id in ids:
            if item_id not in old or item_id not in self.tree:
                continue
            node = self.tree.get(item_id)
            if node.is_leaf:
                prev = old[item_id]
                self.tree.update_fields(
                    item_id,
                    planned_start=prev.planned_start,
                    planned_end=prev.planned_end,
                    progress=prev.progress,
                )

    # ── Inverses ──

    def _undo_add(self, result: EditResult) -> Callable[[], set[str]]:
        def _undo() -> set[str]:
            current = self.resolve(result.item_id)
            if current not in self.tree:
                return set()
            return self.tree.remove(current)

        return _undo

    def _undo_delete(self, result: EditResult) -> Callable[[], set[str]]:
        def _undo() -> set[str]:
            parent_id = result.previous_parent_id
            if parent_id is not None:
                parent_id = self.resolve(parent_id)
            affected = self.tree.insert(parent_id, result.removed_subtree, result.previous_index)
            return affected | {n.id for n in result.removed_subtree.all_nodes()}

        return _undo

    def _undo_move(self, result: EditResult) -> Callable[[], set[str]]:
        def _undo() -> set[str]:
            if result.previous_index is None:
                return set()
            parent_id = result.previous_parent_id
            if parent_id is not None:
                parent_id = self.resolve(parent_id)
            return self.tree.move(self.resolve(result.item_id), parent_id, result.previous_index)

        return _undo

    def _undo_drag(self, commit: DragCommit | None) -> Callable[[], set[str]]:
        def _undo() -> set[str]:
            if commit is None:
                return set()
            current = self.resolve(commit.item_id)
            if current not in self.tree:
                return set()
            self.tree.update_fields(
                current, planned_start=commit.previous_start, planned_end=commit.previous_end
            )
            return {a.id for a in self.tree.ancestors_of(current)}

        return _undo

    def _undo_fields(self, item_id: str, previous: WorkItem, names: Iterable[str]) -> set[str]:
        current = self.resolve(item_id)
        if current not in self.tree:
            return set()
        self.tree.update_fields(current, **{name: getattr(previous, name) for name in names})
        return {a.id for a in self.tree.ancestors_of(current)}
