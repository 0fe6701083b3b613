"""Gateway: the single entry point for task-management data access.

Routes every logical operation to the backend of the active mode (simulated
or real HTTP), runs it under the retry engine, and recovers once from an
authentication failure by refreshing the access token and replaying the
call. Callers always receive the same wire models, whichever mode served
the request.
"""

import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from taskgate.core.auth_session import AuthSession, AuthState, AuthStatus, TokenRefreshCoordinator
from taskgate.domain.errors import ApiError, AuthenticationError, ValidationError
from taskgate.domain.events.api_events import (
    ApiCallFailed, ApiCallInitiated, ApiCallSucceeded, DomainEvent,
    EventListener, ModeSwitched, TokenRefreshTriggered,
)
from taskgate.domain.interfaces.backend import TaskBackend
from taskgate.domain.interfaces.key_value_store import KeyValueStore
from taskgate.domain.models.common import BulkAction, CategoryId, GatewayMode, TaskId
from taskgate.domain.models.records import Session, Settings
from taskgate.domain.models.wire import (
    Analytics, BulkOperationRequest, BulkOperationResult, CategoryChanges,
    CategoryDraft, CategoryView, FeedbackDraft, FeedbackView, OperationResult,
    SearchResult, SendCodeResponse, TaskChanges, TaskDraft, TaskPage, TaskQuery,
    TaskView, VerifyCodeResponse,
)
from taskgate.infrastructure.backends.http_backend import HttpBackend
from taskgate.infrastructure.backends.simulated_backend import SimulatedBackend
from taskgate.infrastructure.backends.simulated_store import SimulatedBackendStore
from taskgate.infrastructure.resilience.retry_policy import (
    RetryOutcome, RetryPolicy, RetryPolicyEngine, is_retryable,
)
from taskgate.infrastructure.storage.credential_store import CredentialStore
from taskgate.infrastructure.storage.disk_store import DiskKeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _kind_of(error: BaseException) -> str:
    return error.kind.value if isinstance(error, ApiError) else type(error).__name__


class Gateway:
    """Dual-mode client presenting one contract over the mock and real backends."""

    def __init__(
        self,
        backends: Dict[GatewayMode, TaskBackend],
        credentials: CredentialStore,
        engine: Optional[RetryPolicyEngine] = None,
        mode: GatewayMode = GatewayMode.MOCK,
        event_listener: Optional[EventListener] = None,
        auth_session: Optional[AuthSession] = None,
    ):
        """Initializes the Gateway.

        Args:
            backends: One backend per mode; the mock and real datasets are
                independent and never synchronized.
            credentials: Store holding the persisted session.
            engine: Retry engine carrying the process-wide default policy.
            mode: Initial mode.
            event_listener: Optional receiver for domain events.
            auth_session: Sign-in state machine (created if not given).
        """
        mode = GatewayMode(mode)
        if mode not in backends:
            raise ValueError(f"No backend configured for mode '{mode.value}'")
        self.backends = dict(backends)
        self.credentials = credentials
        self.engine = engine or RetryPolicyEngine(event_listener=event_listener)
        self._mode = mode
        self._event_listener = event_listener
        self.auth = auth_session or AuthSession(credentials)
        self.refresher = TokenRefreshCoordinator()
        logger.info(f"Gateway initialized in {mode.value} mode with backends: {[m.value for m in self.backends]}")

    # --- Mode ---

    @property
    def mode(self) -> GatewayMode:
        return self._mode

    @property
    def backend(self) -> TaskBackend:
        return self.backends[self._mode]

    def set_mode(self, mode: Union[GatewayMode, str]) -> None:
        """Switches the active backend. Data is not migrated between modes."""
        new_mode = GatewayMode(mode)
        if new_mode not in self.backends:
            raise ValueError(f"No backend configured for mode '{new_mode.value}'")
        if new_mode == self._mode:
            return
        previous = self._mode
        self._mode = new_mode
        logger.info(f"Gateway mode switched: {previous.value} -> {new_mode.value}")
        self._dispatch(ModeSwitched(previous=previous.value, current=new_mode.value))

    # --- Internals ---

    def _dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self._event_listener is not None:
            try:
                self._event_listener(event)
            except Exception as e:
                logger.error(f"Event listener failed for {type(event).__name__}: {e}", exc_info=True)

    def _terminal_error(self, outcome: RetryOutcome, policy: RetryPolicy) -> BaseException:
        # Non-transient failures surface as themselves; transient ones as exhausted retries
        last = outcome.last_error
        if last is not None and not is_retryable(last, policy, outcome.attempts):
            return last
        return outcome.error

    async def _call(
        self,
        operation: str,
        action: Callable[[TaskBackend], Awaitable[T]],
        recover_auth: bool = True,
    ) -> T:
        """Runs ``action`` against the active backend under the retry engine.

        On an AuthenticationError (and when ``recover_auth`` is set) the token
        is refreshed once and the action replayed exactly once, unretried.
        """
        mode = self._mode
        backend = self.backends[mode]
        policy = self.engine.default_policy
        self._dispatch(ApiCallInitiated(mode=mode.value, operation=operation))
        started = time.perf_counter()

        outcome = await self.engine.execute(lambda: action(backend), policy=policy, operation_name=operation)
        if outcome.success:
            self._dispatch(ApiCallSucceeded(
                mode=mode.value, operation=operation, attempts=outcome.attempts,
                latency_ms=(time.perf_counter() - started) * 1000,
            ))
            return outcome.result

        error = outcome.last_error
        if recover_auth and isinstance(error, AuthenticationError):
            await self._recover_session(operation, backend)
            try:
                result = await action(backend)
            except Exception as e:
                logger.error(f"Replay of '{operation}' after token refresh failed: {e}")
                self._dispatch(ApiCallFailed(
                    mode=mode.value, operation=operation, error_kind=_kind_of(e), error_message=str(e), attempts=outcome.attempts + 1,
                ))
                raise
            self._dispatch(ApiCallSucceeded(
                mode=mode.value, operation=operation, attempts=outcome.attempts + 1,
                latency_ms=(time.perf_counter() - started) * 1000,
            ))
            return result

        terminal = self._terminal_error(outcome, policy)
        self._dispatch(ApiCallFailed(
            mode=mode.value, operation=operation, error_kind=_kind_of(terminal), error_message=str(terminal), attempts=outcome.attempts,
        ))
        raise terminal

    async def _recover_session(self, operation: str, backend: TaskBackend) -> Session:
        """Refreshes the access token once; concurrent callers share one refresh."""
        logger.info(f"'{operation}' was rejected as unauthenticated; refreshing the access token.")
        self._dispatch(TokenRefreshTriggered(operation=operation))

        async def refresh() -> Session:
            refresh_token = await self.credentials.refresh_token()
            try:
                if not refresh_token:
                    raise AuthenticationError("No refresh token available")
                response = await backend.refresh_session(refresh_token)
                return await self.auth.apply_refresh(response)
            except Exception as e:
                logger.warning(f"Token refresh failed, clearing stored credentials: {e}")
                await self.auth.sign_out(AuthState.LOGGED_OUT)
                raise AuthenticationError("Authentication failed") from e

        try:
            session = await self.refresher.run(refresh)
        except AuthenticationError:
            self._dispatch(TokenRefreshTriggered(operation=operation, succeeded=False))
            raise
        self._dispatch(TokenRefreshTriggered(operation=operation, succeeded=True))
        return session

    # --- Auth ---

    async def send_code(self, phone: str) -> SendCodeResponse:
        response = await self._call("send_code", lambda b: b.send_code(phone), recover_auth=False)
        if response.success:
            self.auth.mark_code_sent(phone)
        return response

    async def verify_code(self, phone: str, code: str) -> VerifyCodeResponse:
        """Verifies a login code; a rejected code is returned, not raised."""
        if not self.auth.awaiting_code_for(phone):
            return VerifyCodeResponse(success=False, message="Request a verification code for this phone number first")
        response = await self._call("verify_code", lambda b: b.verify_code(phone, code), recover_auth=False)
        if response.success:
            await self.auth.complete_sign_in(phone, response)
        else:
            logger.info(f"Verification code rejected: {response.message}")
        return response

    async def logout(self) -> OperationResult:
        """Signs out. Local credentials are cleared even if the backend call fails."""
        try:
            await self._call("logout", lambda b: b.logout(), recover_auth=False)
        except ApiError as e:
            logger.warning(f"Remote logout failed, signing out locally: {e}")
        finally:
            await self.auth.sign_out()
        return OperationResult(success=True, message="Logged out successfully")

    async def get_auth_status(self) -> AuthStatus:
        session = await self.credentials.load()
        return AuthStatus(
            state=await self.auth.current(),
            mode=self._mode.value,
            user=session.user if session else None,
            expires_at=session.expires_at if session else None,
        )

    # --- Tasks ---

    async def list_tasks(self, query: Optional[TaskQuery] = None) -> TaskPage:
        query = query or TaskQuery()
        return await self._call("list_tasks", lambda b: b.list_tasks(query))

    async def get_task(self, task_id: TaskId) -> TaskView:
        return await self._call("get_task", lambda b: b.get_task(task_id))

    async def create_task(self, draft: TaskDraft) -> TaskView:
        return await self._call("create_task", lambda b: b.create_task(draft))

    async def update_task(self, task_id: TaskId, changes: TaskChanges) -> TaskView:
        return await self._call("update_task", lambda b: b.update_task(task_id, changes))

    async def delete_task(self, task_id: TaskId) -> OperationResult:
        return await self._call("delete_task", lambda b: b.delete_task(task_id))

    async def complete_task(self, task_id: TaskId) -> TaskView:
        return await self._call("complete_task", lambda b: b.complete_task(task_id))

    async def bulk_operation(self, operation: Union[BulkAction, str], task_ids: List[TaskId]) -> BulkOperationResult:
        try:
            request = BulkOperationRequest(operation=BulkAction(operation), task_ids=list(task_ids))
        except ValueError:
            raise ValidationError(f"Unsupported bulk operation: {operation!r}", field="operation") from None
        return await self._call("bulk_operation", lambda b: b.bulk_operation(request))

    async def search_tasks(self, query: str, fuzzy: bool = False) -> SearchResult:
        return await self._call("search_tasks", lambda b: b.search_tasks(query, fuzzy))

    async def get_analytics(self) -> Analytics:
        return await self._call("get_analytics", lambda b: b.get_analytics())

    # --- Categories ---

    async def list_categories(self) -> List[CategoryView]:
        return await self._call("list_categories", lambda b: b.list_categories())

    async def create_category(self, draft: CategoryDraft) -> CategoryView:
        return await self._call("create_category", lambda b: b.create_category(draft))

    async def update_category(self, category_id: CategoryId, changes: CategoryChanges) -> CategoryView:
        return await self._call("update_category", lambda b: b.update_category(category_id, changes))

    async def delete_category(self, category_id: CategoryId) -> OperationResult:
        return await self._call("delete_category", lambda b: b.delete_category(category_id))

    # --- Feedback ---

    async def submit_feedback(self, draft: FeedbackDraft) -> FeedbackView:
        return await self._call("submit_feedback", lambda b: b.submit_feedback(draft))

    async def list_feedback(self) -> List[FeedbackView]:
        return await self._call("list_feedback", lambda b: b.list_feedback())

    # --- Settings ---

    async def get_settings(self) -> Optional[Settings]:
        return await self._call("get_settings", lambda b: b.get_settings())

    async def update_settings(self, settings: Settings) -> OperationResult:
        return await self._call("update_settings", lambda b: b.update_settings(settings))

    # --- Backup & lifecycle ---

    async def export_backup(self) -> str:
        return await self._call("export_backup", lambda b: b.export_backup())

    async def restore_backup(self, backup_json: str) -> Dict[str, int]:
        return await self._call("restore_backup", lambda b: b.restore_backup(backup_json))

    async def clear_all(self) -> None:
        """Erases the signed-in user's data on the active backend."""
        await self._call("clear_all", lambda b: b.clear_all())

    async def initialize(self) -> None:
        """Prepares the active backend (seeds mock data on first use)."""
        await self.backend.initialize()

    async def close(self) -> None:
        for backend in self.backends.values():
            await backend.close()


def create_backend(
    mode: Union[GatewayMode, str],
    credentials: CredentialStore,
    store: Optional[SimulatedBackendStore] = None,
    base_url: Optional[str] = None,
    timeout: float = 10.0,
    transport: Any = None,
) -> TaskBackend:
    """Builds the backend for one mode."""
    mode = GatewayMode(mode)
    if mode == GatewayMode.MOCK:
        if store is None:
            raise ValueError("A SimulatedBackendStore is required for mock mode")
        return SimulatedBackend(store, credentials=credentials)
    if not base_url:
        raise ValueError("A base URL is required for real mode")
    return HttpBackend(base_url, credentials, timeout=timeout, transport=transport)


def create_gateway(
    api_settings: Any,
    mock_settings: Any,
    storage: Optional[KeyValueStore] = None,
    event_listener: Optional[EventListener] = None,
    engine: Optional[RetryPolicyEngine] = None,
    transport: Any = None,
) -> Gateway:
    """Wires a Gateway from loaded configuration.

    Args:
        api_settings: ``ApiSettings`` (base URL, timeout, retry defaults, mode).
        mock_settings: ``MockSettings`` (fault rate, latency scale, storage dir).
        storage: Key/value primitive; a DiskKeyValueStore under
            ``mock_settings.storage_dir`` when omitted.
        event_listener: Optional receiver for domain events.
        engine: Retry engine; built from ``api_settings`` when omitted.
        transport: Optional httpx transport for the real backend.
    """
    if storage is None:
        storage = DiskKeyValueStore(Path(mock_settings.storage_dir))
    credentials = CredentialStore(storage)
    store = SimulatedBackendStore(
        storage,
        fault_rate=mock_settings.fault_rate,
        latency_scale=mock_settings.latency_scale,
    )
    backends = {
        GatewayMode.MOCK: create_backend(GatewayMode.MOCK, credentials, store=store),
        GatewayMode.REAL: create_backend(
            GatewayMode.REAL, credentials, base_url=api_settings.base_url,
            timeout=api_settings.timeout, transport=transport,
        ),
    }
    if engine is None:
        engine = RetryPolicyEngine(RetryPolicy.from_api_settings(api_settings), event_listener=event_listener)
    mode = GatewayMode.MOCK if api_settings.mock_mode else GatewayMode.REAL
    return Gateway(backends, credentials, engine=engine, mode=mode, event_listener=event_listener)
