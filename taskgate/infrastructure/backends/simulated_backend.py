"""Mock-mode backend: serves the TaskBackend contract from the simulated store.

Native store records are reshaped here into the wire models the real API
returns; category references are denormalized into an embedded name/color.
"""

import logging
import time
from collections import Counter
from typing import Dict, List, Optional

from taskgate.domain.errors import AuthenticationError, NotFoundError, ValidationError
from taskgate.domain.interfaces.backend import TaskBackend
from taskgate.domain.models.common import (
    DEFAULT_OWNER, BulkAction, CategoryId, OwnerId, Priority, TaskId,
)
from taskgate.domain.models.records import Category, Feedback, Settings, Task
from taskgate.domain.models.wire import (
    UNCATEGORIZED, Analytics, BulkOperationRequest, BulkOperationResult, CategoryChanges,
    CategoryDraft, CategoryRef, CategoryView, FeedbackDraft, FeedbackView,
    OperationResult, Pagination, SearchResult, SendCodeResponse, TaskChanges,
    TaskDraft, TaskPage, TaskQuery, TaskView, VerifyCodeResponse,
)
from taskgate.infrastructure.backends.simulated_store import SimulatedBackendStore
from taskgate.infrastructure.storage.credential_store import CredentialStore

logger = logging.getLogger(__name__)

MOCK_VERIFICATION_CODE = "123456"
MOCK_CODE_TTL_SECONDS = 300
MOCK_TOKEN_TTL_SECONDS = 3600
MOCK_REFRESH_PREFIX = "mock_refresh_"


def task_to_view(task: Task, categories: Dict[str, Category]) -> TaskView:
    category = categories.get(task.category_id) if task.category_id else None
    ref = CategoryRef(id=category.id, name=category.name, color=category.color) if category else UNCATEGORIZED
    return TaskView(
        id=task.id,
        title=task.title,
        description=task.description,
        priority=task.priority,
        category=ref,
        completed=task.completed,
        due_date=task.due_date,
        created_at=task.created_at,
        updated_at=task.updated_at,
        tags=list(task.tags),
    )


def category_to_view(category: Category) -> CategoryView:
    return CategoryView(
        id=category.id, name=category.name, color=category.color, icon=category.icon, created_at=category.created_at
    )


def feedback_to_view(feedback: Feedback) -> FeedbackView:
    return FeedbackView(
        id=feedback.id,
        rating=feedback.rating,
        comment=feedback.comment,
        category=feedback.category,
        created_at=feedback.created_at,
    )


class SimulatedBackend(TaskBackend):
    """TaskBackend implementation over a SimulatedBackendStore."""

    name = "mock"

    def __init__(self, store: SimulatedBackendStore, credentials: Optional[CredentialStore] = None, owner_id: OwnerId = DEFAULT_OWNER):
        """Initializes the mock backend.

        Args:
            store: The simulated store holding the records.
            credentials: Used to scope records to the signed-in user; when
                absent (or signed out) records belong to ``owner_id``.
            owner_id: Fallback owner.
        """
        self.store = store
        self.credentials = credentials
        self.default_owner = owner_id
        logger.info("SimulatedBackend initialized.")

    async def _owner(self) -> str:
        if self.credentials is not None:
            session = await self.credentials.load()
            if session is not None and session.user.id:
                return session.user.id
        return self.default_owner

    async def _view(self, task: Task, owner: str) -> TaskView:
        return task_to_view(task, await self.store.category_index(owner))

    # --- Auth ---

    async def send_code(self, phone: str) -> SendCodeResponse:
        if not phone or not phone.strip():
            raise ValidationError("Phone number is required", field="phone")
        await self.store.simulate("send_code")
        logger.info(f"Mock verification code issued for {phone}")
        return SendCodeResponse(success=True, message="OTP sent successfully", expires_in_seconds=MOCK_CODE_TTL_SECONDS)

    async def verify_code(self, phone: str, code: str) -> VerifyCodeResponse:
        await self.store.simulate("verify_code")
        if code != MOCK_VERIFICATION_CODE:
            return VerifyCodeResponse(success=False, message="Invalid OTP code")
        user = await self.store.get_or_create_user(phone)
        token = f"mock_token_{int(time.time() * 1000)}"
        return VerifyCodeResponse(
            success=True,
            message="Login successful",
            access_token=token,
            refresh_token=f"{MOCK_REFRESH_PREFIX}{token}",
            expires_in_seconds=MOCK_TOKEN_TTL_SECONDS,
            user=user,
        )

    async def refresh_session(self, refresh_token: str) -> VerifyCodeResponse:
        await self.store.simulate("refresh_session")
        if not refresh_token or not refresh_token.startswith(MOCK_REFRESH_PREFIX):
            raise AuthenticationError("Invalid refresh token")
        token = f"mock_token_{int(time.time() * 1000)}"
        return VerifyCodeResponse(
            success=True,
            message="Token refreshed",
            access_token=token,
            refresh_token=f"{MOCK_REFRESH_PREFIX}{token}",
            expires_in_seconds=MOCK_TOKEN_TTL_SECONDS,
        )

    async def logout(self) -> OperationResult:
        await self.store.simulate("logout")
        return OperationResult(success=True, message="Logged out successfully")

    # --- Tasks ---

    async def list_tasks(self, query: TaskQuery) -> TaskPage:
        owner = await self._owner()
        page = await self.store.list_tasks(owner, query)
        categories = await self.store.category_index(owner)
        return TaskPage(
            tasks=[task_to_view(task, categories) for task in page.tasks],
            pagination=Pagination(page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages),
        )

    async def get_task(self, task_id: TaskId) -> TaskView:
        owner = await self._owner()
        task = await self.store.get_task(owner, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return await self._view(task, owner)

    async def create_task(self, draft: TaskDraft) -> TaskView:
        owner = await self._owner()
        task = await self.store.create_task(owner, draft)
        return await self._view(task, owner)

    async def update_task(self, task_id: TaskId, changes: TaskChanges) -> TaskView:
        owner = await self._owner()
        task = await self.store.update_task(owner, task_id, changes)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return await self._view(task, owner)

    async def delete_task(self, task_id: TaskId) -> OperationResult:
        owner = await self._owner()
        if not await self.store.delete_task(owner, task_id):
            raise NotFoundError(f"Task {task_id} not found")
        return OperationResult(success=True, message="Task deleted successfully")

    async def complete_task(self, task_id: TaskId) -> TaskView:
        owner = await self._owner()
        task = await self.store.update_task(owner, task_id, TaskChanges(completed=True))
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return await self._view(task, owner)

    async def bulk_operation(self, request: BulkOperationRequest) -> BulkOperationResult:
        owner = await self._owner()
        action = BulkAction(request.operation)
        if action == BulkAction.DELETE:
            count = await self.store.bulk_delete(owner, list(request.task_ids))
        else:
            count = await self.store.bulk_update(owner, list(request.task_ids), TaskChanges(completed=True))
        return BulkOperationResult(updated_count=count, message=f"Successfully {action.value}d {count} tasks")

    async def search_tasks(self, query: str, fuzzy: bool = False) -> SearchResult:
        owner = await self._owner()
        tasks = await self.store.all_tasks(owner, operation="search_tasks")
        needle = query.strip().lower()
        if fuzzy:
            terms = needle.split()
            matched = [t for t in tasks if all(term in f"{t.title} {t.description}".lower() for term in terms)]
        else:
            matched = [t for t in tasks if needle in f"{t.title}\n{t.description}".lower()]
        matched = self.store.sort_tasks(matched)
        categories = await self.store.category_index(owner)
        return SearchResult(tasks=[task_to_view(t, categories) for t in matched], total=len(matched))

    async def get_analytics(self) -> Analytics:
        owner = await self._owner()
        tasks = await self.store.all_tasks(owner)
        categories = await self.store.category_index(owner)
        now = self.store.now()

        total = len(tasks)
        completed = sum(1 for t in tasks if t.completed)
        by_priority = {priority.value: 0 for priority in Priority}
        by_priority.update(Counter(t.priority.value for t in tasks))
        by_category = []
        for category in categories.values():
            in_category = [t for t in tasks if t.category_id == category.id]
            by_category.append({
                "categoryId": category.id,
                "name": category.name,
                "count": len(in_category),
                "completed": sum(1 for t in in_category if t.completed),
            })
        return Analytics(
            total=total,
            completed=completed,
            pending=total - completed,
            overdue=sum(1 for t in tasks if t.is_overdue(now)),
            by_priority=by_priority,
            completion_rate=(completed / total * 100) if total else 0.0,
            by_category=by_category,
        )

    # --- Categories ---

    async def list_categories(self) -> List[CategoryView]:
        owner = await self._owner()
        return [category_to_view(c) for c in await self.store.list_categories(owner)]

    async def create_category(self, draft: CategoryDraft) -> CategoryView:
        owner = await self._owner()
        return category_to_view(await self.store.create_category(owner, draft))

    async def update_category(self, category_id: CategoryId, changes: CategoryChanges) -> CategoryView:
        owner = await self._owner()
        category = await self.store.update_category(owner, category_id, changes)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category_to_view(category)

    async def delete_category(self, category_id: CategoryId) -> OperationResult:
        owner = await self._owner()
        if not await self.store.delete_category(owner, category_id):
            raise NotFoundError(f"Category {category_id} not found")
        return OperationResult(success=True, message="Category deleted successfully")

    # --- Feedback ---

    async def submit_feedback(self, draft: FeedbackDraft) -> FeedbackView:
        owner = await self._owner()
        return feedback_to_view(await self.store.add_feedback(owner, draft))

    async def list_feedback(self) -> List[FeedbackView]:
        owner = await self._owner()
        return [feedback_to_view(f) for f in await self.store.list_feedback(owner)]

    # --- Settings & lifecycle ---

    async def get_settings(self) -> Optional[Settings]:
        return await self.store.get_settings(await self._owner())

    async def update_settings(self, settings: Settings) -> OperationResult:
        await self.store.update_settings(await self._owner(), settings)
        return OperationResult(success=True, message="Settings updated successfully")

    async def initialize(self) -> None:
        await self.store.ensure_seeded(await self._owner())

    async def export_backup(self) -> str:
        return await self.store.export_backup(await self._owner())

    async def restore_backup(self, backup_json: str) -> Dict[str, int]:
        return await self.store.restore_backup(await self._owner(), backup_json)

    async def clear_all(self) -> None:
        await self.store.clear_all(await self._owner())
