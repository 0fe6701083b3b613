"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), calls the Gateway and
renders results through the UserInterface. Typed gateway errors are turned
into user-facing messages here; every handler returns True on success so the
CLI can set its exit code.
"""

import logging
from pathlib import Path
from typing import List, Optional

from taskgate.core.gateway import Gateway
from taskgate.domain.errors import ApiError, ErrorKind, RetryExhaustedError
from taskgate.domain.interfaces.key_value_store import KeyValueStore
from taskgate.domain.interfaces.user_interface import UserInterface
from taskgate.domain.models.common import BulkAction, GatewayMode, StorageKey, TaskId
from taskgate.domain.models.wire import CategoryDraft, FeedbackDraft, TaskDraft, TaskQuery
from taskgate.infrastructure.filesystem.backup_files import BackupFileStore

logger = logging.getLogger(__name__)

MODE_PREFERENCE_KEY = StorageKey("taskgate:preferences:mode")

ERROR_MESSAGES = {
    ErrorKind.NETWORK: "The service could not be reached. Please check your connection and try again.",
    ErrorKind.TIMEOUT: "The request timed out. Please try again.",
    ErrorKind.AUTHENTICATION: "You are not signed in or your session has expired. Run 'taskgate login'.",
    ErrorKind.AUTHORIZATION: "You are not allowed to perform this action.",
    ErrorKind.SERVER: "The service is having problems. Please try again later.",
}


def describe_error(error: ApiError) -> str:
    """User-facing text for a gateway error."""
    if isinstance(error, RetryExhaustedError):
        base = ERROR_MESSAGES.get(error.last_kind, str(error.last_error))
        return f"{base} (gave up after {error.attempts} attempt(s))"
    if error.kind in (ErrorKind.VALIDATION, ErrorKind.NOT_FOUND, ErrorKind.UNKNOWN):
        return error.message
    return ERROR_MESSAGES.get(error.kind, error.message)


class CommandHandler:
    """Handles incoming commands and delegates to the Gateway."""

    def __init__(
        self,
        gateway: Gateway,
        ui: UserInterface,
        backup_files: Optional[BackupFileStore] = None,
        preferences: Optional[KeyValueStore] = None,
    ):
        """Initializes the CommandHandler.

        Args:
            gateway: Data-access entry point.
            ui: Output/input surface.
            backup_files: Disk I/O for backup export/import.
            preferences: Key/value store where the chosen mode is remembered.
        """
        self.gateway = gateway
        self.ui = ui
        self.backup_files = backup_files or BackupFileStore()
        self.preferences = preferences

    def _fail(self, action: str, error: ApiError) -> bool:
        logger.error(f"{action} failed: {error!r}")
        self.ui.display_error(f"{action} failed: {describe_error(error)}")
        return False

    # --- Session ---

    async def handle_login(self, phone: str, code: Optional[str] = None) -> bool:
        """Sends a code to ``phone`` and verifies it (prompting if not given)."""
        logger.info("Handling 'login' command")
        try:
            sent = await self.gateway.send_code(phone)
            if not sent.success:
                self.ui.display_error(sent.message or "Could not send the verification code.")
                return False
            self.ui.display_info(f"{sent.message} The code expires in {sent.expires_in_seconds // 60} minute(s).")
            if code is None:
                code = self.ui.get_prompt("Verification code:").strip()
            result = await self.gateway.verify_code(phone, code)
        except ApiError as e:
            return self._fail("Login", e)

        if not result.success:
            self.ui.display_error(result.message or "Verification failed.")
            return False
        name = result.user.name if result.user and result.user.name else phone
        self.ui.display_info(f"Signed in as {name}.")
        return True

    async def handle_logout(self) -> bool:
        result = await self.gateway.logout()
        self.ui.display_info(result.message)
        return True

    async def handle_status(self) -> bool:
        status = await self.gateway.get_auth_status()
        lines = [f"Mode: {status.mode}", f"State: {status.state.value}"]
        if status.user is not None:
            lines.append(f"User: {status.user.name or status.user.id} ({status.user.phone})")
        if status.expires_at is not None:
            lines.append(f"Token expires: {status.expires_at.isoformat()}")
        self.ui.display_output("\n".join(lines), title="Status")
        return True

    async def handle_set_mode(self, mode: str) -> bool:
        try:
            self.gateway.set_mode(mode)
        except ValueError:
            self.ui.display_error(f"Unknown mode '{mode}'. Choose one of: {', '.join(m.value for m in GatewayMode)}.")
            return False
        if self.preferences is not None:
            await self.preferences.set(MODE_PREFERENCE_KEY, self.gateway.mode.value)
        self.ui.display_info(f"Now using {self.gateway.mode.value} mode.")
        return True

    # --- Tasks ---

    async def handle_list_tasks(self, query: TaskQuery) -> bool:
        try:
            page = await self.gateway.list_tasks(query)
        except ApiError as e:
            return self._fail("Listing tasks", e)
        self.ui.display_task_page(page)
        return True

    async def handle_add_task(self, draft: TaskDraft) -> bool:
        try:
            task = await self.gateway.create_task(draft)
        except ApiError as e:
            return self._fail("Creating the task", e)
        self.ui.display_info(f"Created task {task.id}: {task.title}")
        return True

    async def handle_show_task(self, task_id: str) -> bool:
        try:
            task = await self.gateway.get_task(TaskId(task_id))
        except ApiError as e:
            return self._fail("Loading the task", e)
        self.ui.display_task(task)
        return True

    async def handle_complete_tasks(self, task_ids: List[str]) -> bool:
        try:
            if len(task_ids) == 1:
                task = await self.gateway.complete_task(TaskId(task_ids[0]))
                self.ui.display_info(f"Completed: {task.title}")
            else:
                result = await self.gateway.bulk_operation(BulkAction.COMPLETE, [TaskId(t) for t in task_ids])
                self.ui.display_info(result.message or f"Completed {result.updated_count} task(s).")
        except ApiError as e:
            return self._fail("Completing tasks", e)
        return True

    async def handle_delete_tasks(self, task_ids: List[str], confirm: bool = True) -> bool:
        if confirm and not self.ui.ask_yes_no_question(f"Delete {len(task_ids)} task(s)?"):
            self.ui.display_info("Nothing deleted.")
            return True
        try:
            if len(task_ids) == 1:
                result = await self.gateway.delete_task(TaskId(task_ids[0]))
                self.ui.display_info(result.message)
            else:
                bulk = await self.gateway.bulk_operation(BulkAction.DELETE, [TaskId(t) for t in task_ids])
                self.ui.display_info(bulk.message or f"Deleted {bulk.updated_count} task(s).")
        except ApiError as e:
            return self._fail("Deleting tasks", e)
        return True

    async def handle_search(self, text: str, fuzzy: bool = False) -> bool:
        try:
            result = await self.gateway.search_tasks(text, fuzzy=fuzzy)
        except ApiError as e:
            return self._fail("Search", e)
        if not result.tasks:
            self.ui.display_info(f"No tasks match '{text}'.")
            return True
        for task in result.tasks:
            self.ui.display_task(task)
        self.ui.display_info(f"{result.total} match(es).")
        return True

    async def handle_stats(self) -> bool:
        try:
            analytics = await self.gateway.get_analytics()
        except ApiError as e:
            return self._fail("Loading statistics", e)
        self.ui.display_analytics(analytics)
        return True

    # --- Categories ---

    async def handle_list_categories(self) -> bool:
        try:
            categories = await self.gateway.list_categories()
        except ApiError as e:
            return self._fail("Listing categories", e)
        self.ui.display_categories(categories)
        return True

    async def handle_add_category(self, draft: CategoryDraft) -> bool:
        try:
            category = await self.gateway.create_category(draft)
        except ApiError as e:
            return self._fail("Creating the category", e)
        self.ui.display_info(f"Created category {category.id}: {category.name}")
        return True

    async def handle_delete_category(self, category_id: str) -> bool:
        try:
            result = await self.gateway.delete_category(category_id)
        except ApiError as e:
            return self._fail("Deleting the category", e)
        self.ui.display_info(result.message)
        return True

    # --- Feedback ---

    async def handle_feedback(self, draft: FeedbackDraft) -> bool:
        try:
            await self.gateway.submit_feedback(draft)
        except ApiError as e:
            return self._fail("Sending feedback", e)
        self.ui.display_info("Thanks for your feedback!")
        return True

    async def handle_list_feedback(self) -> bool:
        try:
            entries = await self.gateway.list_feedback()
        except ApiError as e:
            return self._fail("Loading feedback", e)
        if not entries:
            self.ui.display_info("No feedback submitted yet.")
            return True
        lines = [f"{'★' * entry.rating}{'☆' * (5 - entry.rating)}  [{entry.category}] {entry.comment}" for entry in entries]
        self.ui.display_output("\n".join(lines), title="Feedback")
        return True

    # --- Backup ---

    async def handle_export(self, file_path: Path) -> bool:
        try:
            document = await self.gateway.export_backup()
        except ApiError as e:
            return self._fail("Backup", e)
        written = await self.backup_files.write_backup(file_path, document)
        self.ui.display_info(f"Backup written to {written}")
        return True

    async def handle_import(self, file_path: Path) -> bool:
        try:
            document = await self.backup_files.read_backup(file_path)
        except FileNotFoundError as e:
            self.ui.display_error(str(e))
            return False
        try:
            counts = await self.gateway.restore_backup(document)
        except ApiError as e:
            return self._fail("Restore", e)
        summary = ", ".join(f"{count} {name}" for name, count in counts.items()) or "nothing"
        self.ui.display_info(f"Restored {summary}.")
        return True

    async def handle_clear_all(self, confirm: bool = True) -> bool:
        if confirm and not self.ui.ask_yes_no_question("Erase all tasks, categories and feedback?"):
            self.ui.display_info("Nothing erased.")
            return True
        try:
            await self.gateway.clear_all()
        except ApiError as e:
            return self._fail("Erasing data", e)
        self.ui.display_info("All data erased; defaults are restored on next use.")
        return True
