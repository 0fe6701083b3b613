"""Local persistent store that emulates backend semantics for mock mode.

Records are kept per owner as JSON lists in a KeyValueStore
(``taskgate:<owner>:<collection>``). Every public operation first sleeps for
a configurable per-operation latency and then, with a small independent
probability, raises a synthetic ``NetworkError``, so the gateway's retry
path is exercised exactly as with a real transport.
"""

import asyncio
import json
import logging
import math
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from taskgate.domain.errors import NetworkError, ValidationError
from taskgate.domain.interfaces.key_value_store import KeyValueStore
from taskgate.domain.models.common import (
    DEFAULT_OWNER, DESCRIPTION_MAX_LENGTH, FEEDBACK_COMMENT_MAX_LENGTH,
    PRIORITY_RANK, TITLE_MAX_LENGTH, CategoryId, DueBucket, FeedbackId,
    OwnerId, Priority, SortKey, SortOrder, StorageKey, TaskId,
)
from taskgate.domain.models.records import (
    Category, Feedback, Settings, Task, User, parse_datetime, to_iso, utc_now,
)
from taskgate.domain.models.wire import (
    CategoryChanges, CategoryDraft, FeedbackDraft, TaskChanges, TaskDraft, TaskQuery,
)

logger = logging.getLogger(__name__)

# --- Simulation Configuration ---
DEFAULT_FAULT_RATE = 0.05

# Artificial round-trip times in seconds, per operation
DEFAULT_LATENCIES: Dict[str, float] = {
    "send_code": 1.0,
    "verify_code": 1.5,
    "refresh_session": 0.5,
    "logout": 0.5,
    "list_tasks": 0.8,
    "get_task": 0.8,
    "create_task": 1.0,
    "update_task": 0.8,
    "delete_task": 0.6,
    "bulk_update": 0.8,
    "search_tasks": 0.8,
    "list_categories": 0.6,
    "create_category": 0.8,
    "update_category": 0.7,
    "delete_category": 0.6,
    "get_settings": 0.4,
    "update_settings": 0.6,
    "submit_feedback": 1.0,
    "list_feedback": 0.6,
    "export_backup": 2.0,
    "restore_backup": 3.0,
}
DEFAULT_OPERATION_LATENCY = 0.5

BACKUP_VERSION = "1.0.0"

DEFAULT_CATEGORIES = (
    {"id": "cat_1", "name": "Work", "color": "#FF5722", "icon": "briefcase"},
    {"id": "cat_2", "name": "Personal", "color": "#4CAF50", "icon": "account"},
    {"id": "cat_3", "name": "Shopping", "color": "#2196F3", "icon": "cart"},
)


@dataclass
class TaskSlice:
    """One page of filtered tasks plus counts over the whole filtered set."""
    tasks: List[Task]
    page: int
    limit: int
    total: int
    total_pages: int


def storage_key(owner_id: str, collection: str) -> StorageKey:
    return StorageKey(f"taskgate:{owner_id}:{collection}")


def default_id_factory(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class SimulatedBackendStore:
    """CRUD and query engine over tasks, categories, feedback, settings and users."""

    def __init__(
        self,
        storage: KeyValueStore,
        fault_rate: float = DEFAULT_FAULT_RATE,
        latency_scale: float = 1.0,
        latencies: Optional[Dict[str, float]] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[str], str] = default_id_factory,
    ):
        """Initializes the simulated store.

        Args:
            storage: Key/value primitive holding the JSON collections.
            fault_rate: Probability (0..1) that an operation raises NetworkError.
            latency_scale: Multiplier applied to every latency (0 disables sleeping).
            latencies: Per-operation latency overrides in seconds.
            rng: Random source for fault injection (seed it for determinism).
            sleep: Awaitable sleep used for latency.
            clock: Returns the current aware datetime.
            id_factory: Builds a candidate id from a prefix ('task', 'category', ...).
        """
        if not 0.0 <= fault_rate <= 1.0:
            raise ValueError(f"fault_rate must be within [0, 1], got {fault_rate}")
        self.storage = storage
        self.fault_rate = fault_rate
        self.latency_scale = latency_scale
        self.latencies = {**DEFAULT_LATENCIES, **(latencies or {})}
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._id_factory = id_factory
        self._seeded_owners: Set[str] = set()
        logger.info(
            f"SimulatedBackendStore initialized: fault_rate={fault_rate}, latency_scale={latency_scale}"
        )

    # --- Simulation ---

    async def simulate(self, operation: str) -> None:
        """Applies artificial latency, then maybe raises a synthetic fault."""
        latency = self.latencies.get(operation, DEFAULT_OPERATION_LATENCY) * self.latency_scale
        if latency > 0:
            await self._sleep(latency)
        if self.fault_rate > 0 and self._rng.random() < self.fault_rate:
            logger.debug(f"Injecting synthetic fault into '{operation}'")
            raise NetworkError(f"Network error: Failed to {operation.replace('_', ' ')}")

    def now(self) -> datetime:
        return self._clock()

    # --- Raw collection access ---

    async def _load(self, owner_id: str, collection: str) -> List[Dict[str, Any]]:
        raw = await self.storage.get(storage_key(owner_id, collection))
        if not raw:
            return []
        return json.loads(raw)

    async def _save(self, owner_id: str, collection: str, items: List[Dict[str, Any]]) -> None:
        await self.storage.set(storage_key(owner_id, collection), json.dumps(items))

    async def _load_tasks(self, owner_id: str) -> List[Task]:
        return [Task.from_dict(item) for item in await self._load(owner_id, "tasks")]

    async def _save_tasks(self, owner_id: str, tasks: Iterable[Task]) -> None:
        await self._save(owner_id, "tasks", [task.to_dict() for task in tasks])

    async def _load_categories(self, owner_id: str) -> List[Category]:
        return [Category.from_dict(item) for item in await self._load(owner_id, "categories")]

    async def _save_categories(self, owner_id: str, categories: Iterable[Category]) -> None:
        await self._save(owner_id, "categories", [category.to_dict() for category in categories])

    def _new_id(self, prefix: str, taken: Iterable[str]) -> str:
        existing = set(taken)
        candidate = self._id_factory(prefix)
        while candidate in existing:
            candidate = self._id_factory(prefix)
        return candidate

    def _touch(self, previous: datetime) -> datetime:
        # updated_at never moves backwards, even if the clock does
        return max(self._clock(), previous)

    # --- Bootstrap ---

    async def ensure_seeded(self, owner_id: str = DEFAULT_OWNER) -> None:
        """Seeds default categories and settings for an owner with none. Idempotent."""
        if owner_id in self._seeded_owners:
            return
        if not await self._load(owner_id, "categories"):
            now = self._clock()
            seeded = [
                Category(
                    id=CategoryId(item["id"]), name=item["name"], color=item["color"], icon=item["icon"],
                    owner_id=OwnerId(owner_id), created_at=now, updated_at=now,
                )
                for item in DEFAULT_CATEGORIES
            ]
            await self._save_categories(owner_id, seeded)
            logger.info(f"Seeded {len(seeded)} default categories for owner '{owner_id}'")
        if await self.storage.get(storage_key(owner_id, "settings")) is None:
            await self.storage.set(storage_key(owner_id, "settings"), json.dumps(Settings().to_dict()))
            logger.info(f"Seeded default settings for owner '{owner_id}'")
        self._seeded_owners.add(owner_id)

    # --- Validation ---

    @staticmethod
    def _validate_title(title: Optional[str]) -> str:
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValidationError("Task title is required", field="title")
        if len(cleaned) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Task title must be at most {TITLE_MAX_LENGTH} characters", field="title")
        return cleaned

    @staticmethod
    def _validate_description(description: Optional[str]) -> str:
        text = description or ""
        if len(text.strip()) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Task description must be at most {DESCRIPTION_MAX_LENGTH} characters", field="description"
            )
        return text

    @staticmethod
    def _validate_priority(priority: Any) -> Priority:
        try:
            return Priority(priority)
        except ValueError:
            raise ValidationError(f"Invalid priority: {priority!r}", field="priority") from None

    # --- Tasks ---

    async def list_tasks(self, owner_id: str, query: Optional[TaskQuery] = None) -> TaskSlice:
        """Filters, sorts and paginates an owner's tasks."""
        query = (query or TaskQuery()).validated()
        await self.ensure_seeded(owner_id)
        await self.simulate("list_tasks")

        tasks = self.filter_tasks(await self._load_tasks(owner_id), query)
        tasks = self.sort_tasks(tasks, query.sort_by, query.sort_order)

        total = len(tasks)
        total_pages = math.ceil(total / query.limit) if total else 0
        start = (query.page - 1) * query.limit
        return TaskSlice(
            tasks=tasks[start:start + query.limit],
            page=query.page,
            limit=query.limit,
            total=total,
            total_pages=total_pages,
        )

    async def all_tasks(self, owner_id: str, operation: str = "list_tasks") -> List[Task]:
        await self.ensure_seeded(owner_id)
        await self.simulate(operation)
        return await self._load_tasks(owner_id)

    def filter_tasks(self, tasks: List[Task], query: TaskQuery) -> List[Task]:
        query = query.validated()
        now = self._clock()
        needle = (query.search or "").strip().lower()
        priority = query.priority
        result = []
        for task in tasks:
            if needle and needle not in f"{task.title}\n{task.description}".lower():
                continue
            if priority is not None and task.priority != priority:
                continue
            if query.completed is not None and task.completed != query.completed:
                continue
            if query.category_id and task.category_id != query.category_id:
                continue
            if query.due is not None and not self._in_bucket(task, query.due, now):
                continue
            result.append(task)
        return result

    @staticmethod
    def _in_bucket(task: Task, bucket: DueBucket, now: datetime) -> bool:
        if task.due_date is None:
            return False
        if bucket == DueBucket.OVERDUE:
            return task.is_overdue(now)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        span = timedelta(days=1) if bucket == DueBucket.TODAY else timedelta(days=7)
        return start_of_day <= task.due_date < start_of_day + span

    @staticmethod
    def sort_tasks(tasks: List[Task], sort_by: Optional[SortKey] = None, sort_order: Optional[SortOrder] = None) -> List[Task]:
        """Sorts tasks; newest-created first when no key is given.

        Ties keep insertion order (reversed for descending), and tasks without a
        due date always sort last when sorting by due date.
        """
        requested = TaskQuery(sort_by=sort_by, sort_order=sort_order).validated()
        key = requested.sort_by or SortKey.CREATED_AT
        order = requested.sort_order or SortOrder.DESC
        descending = order == SortOrder.DESC

        indexed = list(enumerate(tasks))
        missing: List[Any] = []
        if key == SortKey.DUE_DATE:
            missing = [pair for pair in indexed if pair[1].due_date is None]
            indexed = [pair for pair in indexed if pair[1].due_date is not None]

        def sort_value(task: Task) -> Any:
            if key == SortKey.TITLE:
                return task.title.lower()
            if key == SortKey.PRIORITY:
                return PRIORITY_RANK[task.priority]
            if key == SortKey.DUE_DATE:
                return task.due_date
            if key == SortKey.UPDATED_AT:
                return task.updated_at
            return task.created_at

        indexed.sort(key=lambda pair: (sort_value(pair[1]), pair[0]), reverse=descending)
        return [task for _, task in indexed] + [task for _, task in missing]

    async def get_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        await self.ensure_seeded(owner_id)
        await self.simulate("get_task")
        for task in await self._load_tasks(owner_id):
            if task.id == task_id:
                return task
        return None

    async def create_task(self, owner_id: str, draft: TaskDraft) -> Task:
        title = self._validate_title(draft.title)
        description = self._validate_description(draft.description)
        priority = self._validate_priority(draft.priority)
        await self.ensure_seeded(owner_id)
        await self.simulate("create_task")

        tasks = await self._load_tasks(owner_id)
        now = self._clock()
        task = Task(
            id=TaskId(self._new_id("task", (t.id for t in tasks))),
            title=title,
            description=description,
            priority=priority,
            category_id=draft.category_id,
            owner_id=OwnerId(owner_id),
            due_date=parse_datetime(draft.due_date),
            created_at=now,
            updated_at=now,
            tags=list(draft.tags),
        )
        tasks.append(task)
        await self._save_tasks(owner_id, tasks)
        logger.debug(f"Created task {task.id} for owner '{owner_id}'")
        return task

    def _apply_task_changes(self, task: Task, changes: TaskChanges) -> None:
        if changes.title is not None:
            task.title = self._validate_title(changes.title)
        if changes.description is not None:
            task.description = self._validate_description(changes.description)
        if changes.priority is not None:
            task.priority = self._validate_priority(changes.priority)
        if changes.category_id is not None:
            task.category_id = changes.category_id
        if changes.due_date is not None:
            task.due_date = parse_datetime(changes.due_date)
        if changes.completed is not None:
            task.completed = changes.completed
        if changes.tags is not None:
            task.tags = list(changes.tags)
        if changes.notes is not None:
            task.notes = changes.notes
        task.updated_at = self._touch(task.updated_at)

    async def update_task(self, owner_id: str, task_id: str, changes: TaskChanges, operation: str = "update_task") -> Optional[Task]:
        """Applies a partial update; returns None if the task does not exist."""
        await self.ensure_seeded(owner_id)
        await self.simulate(operation)
        tasks = await self._load_tasks(owner_id)
        for task in tasks:
            if task.id == task_id:
                self._apply_task_changes(task, changes)
                await self._save_tasks(owner_id, tasks)
                return task
        return None

    async def delete_task(self, owner_id: str, task_id: str) -> bool:
        """Hard-deletes a task; returns whether it existed."""
        await self.ensure_seeded(owner_id)
        await self.simulate("delete_task")
        tasks = await self._load_tasks(owner_id)
        remaining = [task for task in tasks if task.id != task_id]
        if len(remaining) == len(tasks):
            return False
        await self._save_tasks(owner_id, remaining)
        return True

    async def bulk_update(self, owner_id: str, task_ids: List[str], changes: TaskChanges) -> int:
        """Applies the same changes to every listed task; returns how many matched."""
        await self.ensure_seeded(owner_id)
        await self.simulate("bulk_update")
        wanted = set(task_ids)
        tasks = await self._load_tasks(owner_id)
        count = 0
        for task in tasks:
            if task.id in wanted:
                self._apply_task_changes(task, changes)
                count += 1
        if count:
            await self._save_tasks(owner_id, tasks)
        return count

    async def bulk_delete(self, owner_id: str, task_ids: List[str]) -> int:
        await self.ensure_seeded(owner_id)
        await self.simulate("bulk_update")
        wanted = set(task_ids)
        tasks = await self._load_tasks(owner_id)
        remaining = [task for task in tasks if task.id not in wanted]
        removed = len(tasks) - len(remaining)
        if removed:
            await self._save_tasks(owner_id, remaining)
        return removed

    # --- Categories ---

    async def list_categories(self, owner_id: str) -> List[Category]:
        await self.ensure_seeded(owner_id)
        await self.simulate("list_categories")
        return await self._load_categories(owner_id)

    async def category_index(self, owner_id: str) -> Dict[str, Category]:
        """Categories by id, read without simulated latency (used for reshaping)."""
        await self.ensure_seeded(owner_id)
        return {category.id: category for category in await self._load_categories(owner_id)}

    async def create_category(self, owner_id: str, draft: CategoryDraft) -> Category:
        name = (draft.name or "").strip()
        if not name:
            raise ValidationError("Category name is required", field="name")
        await self.ensure_seeded(owner_id)
        await self.simulate("create_category")
        categories = await self._load_categories(owner_id)
        now = self._clock()
        category = Category(
            id=CategoryId(self._new_id("category", (c.id for c in categories))),
            name=name,
            color=draft.color,
            icon=draft.icon,
            owner_id=OwnerId(owner_id),
            created_at=now,
            updated_at=now,
        )
        categories.append(category)
        await self._save_categories(owner_id, categories)
        return category

    async def update_category(self, owner_id: str, category_id: str, changes: CategoryChanges) -> Optional[Category]:
        if changes.name is not None and not changes.name.strip():
            raise ValidationError("Category name is required", field="name")
        await self.ensure_seeded(owner_id)
        await self.simulate("update_category")
        categories = await self._load_categories(owner_id)
        for category in categories:
            if category.id == category_id:
                if changes.name is not None:
                    category.name = changes.name.strip()
                if changes.color is not None:
                    category.color = changes.color
                if changes.icon is not None:
                    category.icon = changes.icon
                category.updated_at = self._touch(category.updated_at)
                await self._save_categories(owner_id, categories)
                return category
        return None

    async def delete_category(self, owner_id: str, category_id: str) -> bool:
        """Deletes a category. Tasks referencing it are left untouched."""
        await self.ensure_seeded(owner_id)
        await self.simulate("delete_category")
        categories = await self._load_categories(owner_id)
        remaining = [category for category in categories if category.id != category_id]
        if len(remaining) == len(categories):
            return False
        await self._save_categories(owner_id, remaining)
        return True

    # --- Feedback ---

    async def list_feedback(self, owner_id: str) -> List[Feedback]:
        await self.ensure_seeded(owner_id)
        await self.simulate("list_feedback")
        return [Feedback.from_dict(item) for item in await self._load(owner_id, "feedback")]

    async def add_feedback(self, owner_id: str, draft: FeedbackDraft) -> Feedback:
        if not 1 <= int(draft.rating) <= 5:
            raise ValidationError("Rating must be between 1 and 5", field="rating")
        if len(draft.comment or "") > FEEDBACK_COMMENT_MAX_LENGTH:
            raise ValidationError(
                f"Comment must be at most {FEEDBACK_COMMENT_MAX_LENGTH} characters", field="comment"
            )
        await self.ensure_seeded(owner_id)
        await self.simulate("submit_feedback")
        items = await self._load(owner_id, "feedback")
        feedback = Feedback(
            id=FeedbackId(self._new_id("feedback", (item["id"] for item in items))),
            owner_id=OwnerId(owner_id),
            rating=int(draft.rating),
            comment=draft.comment or "",
            category=draft.category,
            created_at=self._clock(),
        )
        items.append(feedback.to_dict())
        await self._save(owner_id, "feedback", items)
        return feedback

    # --- Settings ---

    async def get_settings(self, owner_id: str) -> Settings:
        await self.ensure_seeded(owner_id)
        await self.simulate("get_settings")
        raw = await self.storage.get(storage_key(owner_id, "settings"))
        return Settings.from_dict(json.loads(raw)) if raw else Settings()

    async def update_settings(self, owner_id: str, settings: Settings) -> Settings:
        await self.ensure_seeded(owner_id)
        await self.simulate("update_settings")
        await self.storage.set(storage_key(owner_id, "settings"), json.dumps(settings.to_dict()))
        return settings

    # --- Users (mock sign-in) ---

    async def get_or_create_user(self, phone: str) -> User:
        """Returns the mock user registered for ``phone``, creating it on first sign-in."""
        key = StorageKey("taskgate:users")
        raw = await self.storage.get(key)
        users = [User.from_dict(item) for item in json.loads(raw)] if raw else []
        for user in users:
            if user.phone == phone:
                return user
        user = User(id=f"user_{len(users) + 1}", phone=phone, name="Demo User", email="demo@example.com")
        users.append(user)
        await self.storage.set(key, json.dumps([u.to_dict() for u in users]))
        logger.info(f"Registered mock user {user.id}")
        return user

    # --- Backup & maintenance ---

    async def export_backup(self, owner_id: str) -> str:
        """Serializes all of an owner's collections into one JSON document."""
        await self.ensure_seeded(owner_id)
        await self.simulate("export_backup")
        settings_raw = await self.storage.get(storage_key(owner_id, "settings"))
        document = {
            "version": BACKUP_VERSION,
            "backupDate": to_iso(self._clock()),
            "ownerId": owner_id,
            "tasks": await self._load(owner_id, "tasks"),
            "categories": await self._load(owner_id, "categories"),
            "feedback": await self._load(owner_id, "feedback"),
            "settings": json.loads(settings_raw) if settings_raw else None,
        }
        return json.dumps(document)

    async def restore_backup(self, owner_id: str, backup_json: str) -> Dict[str, int]:
        """Replaces an owner's collections with those in a backup document.

        Raises:
            ValidationError: If the document is not valid JSON, has duplicate
                ids, or holds records that cannot be parsed.
        """
        try:
            document = json.loads(backup_json)
        except ValueError as e:
            raise ValidationError(f"Invalid backup data: {e}", field="backup") from e
        if not isinstance(document, dict):
            raise ValidationError("Invalid backup data: expected an object", field="backup")

        parsers = {"tasks": Task.from_dict, "categories": Category.from_dict, "feedback": Feedback.from_dict}
        restored: Dict[str, List[Dict[str, Any]]] = {}
        for collection, parse in parsers.items():
            items = document.get(collection)
            if items is None:
                continue
            try:
                records = [parse(item) for item in items]
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"Invalid {collection} in backup: {e}", field=collection) from e
            ids = [record.id for record in records]
            if len(ids) != len(set(ids)):
                raise ValidationError(f"Duplicate ids in backup {collection}", field=collection)
            for record in records:
                record.owner_id = OwnerId(owner_id)
            restored[collection] = [record.to_dict() for record in records]

        await self.simulate("restore_backup")
        for collection, items in restored.items():
            await self._save(owner_id, collection, items)
        if isinstance(document.get("settings"), dict):
            settings = Settings.from_dict(document["settings"])
            await self.storage.set(storage_key(owner_id, "settings"), json.dumps(settings.to_dict()))
        counts = {collection: len(items) for collection, items in restored.items()}
        logger.info(f"Restored backup for owner '{owner_id}': {counts}")
        return counts

    async def clear_all(self, owner_id: str) -> None:
        """Removes every collection of an owner; the next operation re-seeds."""
        await self.storage.delete_many(await self.storage.keys(storage_key(owner_id, "")))
        self._seeded_owners.discard(owner_id)
        logger.info(f"Cleared all simulated data for owner '{owner_id}'")
