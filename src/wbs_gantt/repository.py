"""Collaborator interfaces and the two bundled adapters.

``update`` receives partial fields in record form (see ``item_to_record``).
A repository signals failure either by returning False or by raising.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Iterable, Protocol, runtime_checkable

from wbs_gantt.config import CONFIG_DIR
from wbs_gantt.errors import RepositoryRejected
from wbs_gantt.models import Level, Person, WorkItem, item_from_record, item_to_record

logger = logging.getLogger(__name__)

STORE_FILE = "store.json"
STORE_VERSION = 1


@runtime_checkable
class ItemRepository(Protocol):
    async def load(self, project_id: str) -> list[WorkItem]: ...

    async def update(self, item_id: str, fields: dict[str, Any]) -> bool: ...

    async def create(self, item: WorkItem, order: int = 0) -> WorkItem: ...

    async def delete(self, item_id: str) -> bool: ...


@runtime_checkable
class TaskRegistry(Protocol):
    async def register_as_task(self, item: WorkItem) -> bool: ...

    async def unlink(self, item_ids: Iterable[str]) -> None: ...


@runtime_checkable
class PersonDirectory(Protocol):
    async def list(self, project_id: str) -> list[Person]: ...


def _sorted_records(records: Iterable[dict]) -> list[dict]:
    return sorted(records, key=lambda r: int(r.get("order", 0) or 0))


class _RecordStore:
    """Record bookkeeping shared by the adapters."""

    def __init__(self) -> None:
        self.records: dict[str, dict] = {}
        self.people: list[Person] = []
        self.tasks: dict[str, dict] = {}

    def items(self) -> list[WorkItem]:
        return [item_from_record(r) for r in _sorted_records(self.records.values())]

    def apply_update(self, item_id: str, fields: dict[str, Any]) -> bool:
        record = self.records.get(item_id)
        if record is None:
            return False
        record.update({k: v for k, v in fields.items() if k != "id"})
        return True

    def apply_create(self, item: WorkItem, order: int) -> WorkItem:
        item_id = item.id
        if not item_id or item_id in self.records:
            item_id = str(uuid.uuid4())
        record = item_to_record(item, order)
        record["id"] = item_id
        self.records[item_id] = record
        return item_from_record(record)

    def apply_delete(self, item_id: str) -> bool:
        return self.records.pop(item_id, None) is not None

    def register(self, item: WorkItem) -> bool:
        if item.level != Level.LEVEL4 or item.id not in self.records:
            return False
        self.tasks[item.id] = {
            "itemId": item.id,
            "title": f"[{item.code}] {item.name}",
            "description": item.description or f"Created from WBS work unit {item.code}",
            "assigneeIds": list(item.assignees),
            "dueDate": item.planned_end.isoformat() if item.planned_end else None,
        }
        return True

    def unlink(self, item_ids: Iterable[str]) -> None:
        for item_id in item_ids:
            self.tasks.pop(item_id, None)


class InMemoryItemRepository(_RecordStore):
    """Repository, task registry and person directory held in memory."""

    def __init__(self, items: Iterable[WorkItem] = (), people: Iterable[Person] = ()) -> None:
        super().__init__()
        siblings: dict[str | None, int] = {}
        for item in items:
            order = siblings.get(item.parent_id, 0)
            siblings[item.parent_id] = order + 1
            self.records[item.id] = item_to_record(item, order)
        self.people = list(people)

    async def load(self, project_id: str) -> list[WorkItem]:
        return self.items()

    async def update(self, item_id: str, fields: dict[str, Any]) -> bool:
        return self.apply_update(item_id, fields)

    async def create(self, item: WorkItem, order: int = 0) -> WorkItem:
        return self.apply_create(item, order)

    async def delete(self, item_id: str) -> bool:
        return self.apply_delete(item_id)

    async def register_as_task(self, item: WorkItem) -> bool:
        return self.register(item)

    async def unlink(self, item_ids: Iterable[str]) -> None:
        super().unlink(item_ids)

    async def list(self, project_id: str) -> list[Person]:
        return list(self.people)


class JsonFileRepository(_RecordStore):
    """Project store in {project_dir}/.wbs-gantt/store.json.

    Every mutation rewrites the file atomically (temp file + rename) after
    copying the previous version to store.json.bak.
    """

    def __init__(self, project_dir: Path, backup: bool = True) -> None:
        super().__init__()
        self.project_dir = project_dir
        self.path = project_dir / CONFIG_DIR / STORE_FILE
        self.backup = backup
        self._lock = asyncio.Lock()
        self._loaded = False

    # ── File I/O ──

    def read(self) -> None:
        if not self.path.exists():
            self.records, self.people, self.tasks = {}, [], {}
            self._loaded = True
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RepositoryRejected(f"cannot read {self.path}: {e}") from e
        self.records = {str(r["id"]): r for r in data.get("items", []) if isinstance(r, dict) and r.get("id")}
        self.people = [
            Person(id=str(p["id"]), name=str(p.get("name", "")), email=str(p.get("email", "")))
            for p in data.get("people", [])
            if isinstance(p, dict) and p.get("id")
        ]
        self.tasks = {str(t["itemId"]): t for t in data.get("tasks", []) if isinstance(t, dict) and t.get("itemId")}
        self._loaded = True

    def dump(self) -> str:
        data = {
            "version": STORE_VERSION,
            "items": _sorted_records(self.records.values()),
            "people": [{"id": p.id, "name": p.name, "email": p.email} for p in self.people],
            "tasks": list(self.tasks.values()),
        }
        return json.dumps(data, ensure_ascii=False, indent=2) + "\n"

    def write(self) -> None:
        content = self.dump()
        target = self.path
        target.parent.mkdir(parents=True, exist_ok=True)

        if self.backup and target.exists():
            bak_path = target.with_suffix(target.suffix + ".bak")
            try:
                bak_path.write_text(target.read_text(encoding="utf-8"), encoding="utf-8")
            except OSError:
                logger.warning("could not back up %s", target)

        fd, tmp_path = tempfile.mkstemp(dir=target.parent, suffix=".tmp", prefix=".wbs-gantt-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def save_all(self, items: Iterable[WorkItem], people: Iterable[Person] | None = None) -> None:
        """Replace the stored items (each subtree in pre-order) and write the file."""
        self.records = {}
        for root_order, root in enumerate(items):
            self._put_subtree(root, root_order)
        if people is not None:
            self.people = list(people)
        self._loaded = True
        self.write()

    def _put_subtree(self, node: WorkItem, order: int) -> None:
        self.records[node.id] = item_to_record(node, order)
        for i, child in enumerate(node.children):
            self._put_subtree(child, i)

    async def _mutate(self, fn, *args):
        async with self._lock:
            if not self._loaded:
                await asyncio.to_thread(self.read)
            result = fn(*args)
            if result is not False:
                await asyncio.to_thread(self.write)
            return result

    # ── Protocol ──

    async def load(self, project_id: str) -> list[WorkItem]:
        async with self._lock:
            await asyncio.to_thread(self.read)
            return self.items()

    async def update(self, item_id: str, fields: dict[str, Any]) -> bool:
        return await self._mutate(self.apply_update, item_id, fields)

    async def create(self, item: WorkItem, order: int = 0) -> WorkItem:
        return await self._mutate(self.apply_create, item, order)

    async def delete(self, item_id: str) -> bool:
        return await self._mutate(self.apply_delete, item_id)

    async def register_as_task(self, item: WorkItem) -> bool:
        return await self._mutate(self.register, item)

    async def unlink(self, item_ids: Iterable[str]) -> None:
        await self._mutate(super().unlink, list(item_ids))

    async def list(self, project_id: str) -> list[Person]:
        async with self._lock:
            if not self._loaded:
                await asyncio.to_thread(self.read)
            return list(self.people)
