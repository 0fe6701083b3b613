"""Interface for task backends.

Defines the single contract the gateway routes to. The simulated backend and
the real HTTP backend both implement it and return the same wire models, so
the gateway can switch between them without callers noticing.
"""

import abc
from typing import Dict, List, Optional

from taskgate.domain.errors import ApiError
from taskgate.domain.models.common import CategoryId, TaskId
from taskgate.domain.models.records import Settings
from taskgate.domain.models.wire import (
    Analytics, BulkOperationRequest, BulkOperationResult, CategoryChanges,
    CategoryDraft, CategoryView, FeedbackDraft, FeedbackView, OperationResult,
    SearchResult, SendCodeResponse, TaskChanges, TaskDraft, TaskPage, TaskQuery,
    TaskView, VerifyCodeResponse,
)


class TaskBackend(abc.ABC):
    """Abstract Base Class for a backend serving task-management operations.

    Implementations raise ``taskgate.domain.errors.ApiError`` subclasses on
    failure; transient failures must be ``NetworkError`` (or a subclass) or a
    ``ServerError`` so the retry engine can classify them.
    """

    name: str = "backend"

    # --- Auth ---

    @abc.abstractmethod
    async def send_code(self, phone: str) -> SendCodeResponse:
        """Requests a one-time login code for ``phone``."""
        pass

    @abc.abstractmethod
    async def verify_code(self, phone: str, code: str) -> VerifyCodeResponse:
        """Exchanges a login code for tokens.

        Returns:
            A VerifyCodeResponse; a rejected code yields ``success=False``
            rather than an exception.
        """
        pass

    @abc.abstractmethod
    async def refresh_session(self, refresh_token: str) -> VerifyCodeResponse:
        """Exchanges a refresh token for a new access/refresh token pair.

        Raises:
            AuthenticationError: If the refresh token is rejected.
        """
        pass

    @abc.abstractmethod
    async def logout(self) -> OperationResult:
        """Invalidates the current session on the backend side."""
        pass

    # --- Tasks ---

    @abc.abstractmethod
    async def list_tasks(self, query: TaskQuery) -> TaskPage:
        pass

    @abc.abstractmethod
    async def get_task(self, task_id: TaskId) -> TaskView:
        """Raises NotFoundError if the task does not exist."""
        pass

    @abc.abstractmethod
    async def create_task(self, draft: TaskDraft) -> TaskView:
        pass

    @abc.abstractmethod
    async def update_task(self, task_id: TaskId, changes: TaskChanges) -> TaskView:
        pass

    @abc.abstractmethod
    async def delete_task(self, task_id: TaskId) -> OperationResult:
        pass

    @abc.abstractmethod
    async def complete_task(self, task_id: TaskId) -> TaskView:
        pass

    @abc.abstractmethod
    async def bulk_operation(self, request: BulkOperationRequest) -> BulkOperationResult:
        pass

    @abc.abstractmethod
    async def search_tasks(self, query: str, fuzzy: bool = False) -> SearchResult:
        pass

    @abc.abstractmethod
    async def get_analytics(self) -> Analytics:
        pass

    # --- Categories ---

    @abc.abstractmethod
    async def list_categories(self) -> List[CategoryView]:
        pass

    @abc.abstractmethod
    async def create_category(self, draft: CategoryDraft) -> CategoryView:
        pass

    @abc.abstractmethod
    async def update_category(self, category_id: CategoryId, changes: CategoryChanges) -> CategoryView:
        pass

    @abc.abstractmethod
    async def delete_category(self, category_id: CategoryId) -> OperationResult:
        pass

    # --- Feedback ---

    @abc.abstractmethod
    async def submit_feedback(self, draft: FeedbackDraft) -> FeedbackView:
        pass

    @abc.abstractmethod
    async def list_feedback(self) -> List[FeedbackView]:
        pass

    # --- Settings ---

    async def get_settings(self) -> Optional[Settings]:
        """Returns stored settings; backends without a settings endpoint return None."""
        return None

    async def update_settings(self, settings: Settings) -> OperationResult:
        return OperationResult(success=False, message=f"Settings not supported by the {self.name} backend")

    # --- Backup & maintenance ---

    async def export_backup(self) -> str:
        """Serializes the caller's data into a JSON backup document."""
        raise ApiError(f"Backups are not supported by the {self.name} backend")

    async def restore_backup(self, backup_json: str) -> Dict[str, int]:
        """Replaces the caller's data with a backup; returns counts per collection."""
        raise ApiError(f"Backups are not supported by the {self.name} backend")

    async def clear_all(self) -> None:
        raise ApiError(f"Clearing data is not supported by the {self.name} backend")

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Prepares the backend (seeding, connection setup). Idempotent."""
        return None

    async def close(self) -> None:
        """Releases resources held by the backend."""
        return None
