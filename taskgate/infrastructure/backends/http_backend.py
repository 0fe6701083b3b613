"""Real-mode backend speaking the task API over HTTP (httpx).

Implements the TaskBackend interface against ``{base_url}/...`` with bearer
token auth taken from the CredentialStore. Library exceptions and error
responses are translated into the ``taskgate.domain.errors`` hierarchy here,
so the retry engine and the gateway only ever see typed errors.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar
from urllib.parse import quote

import httpx

from taskgate.domain.errors import (
    ApiError, AuthenticationError, NetworkError, RequestTimeoutError,
    ValidationError, error_from_status,
)
from taskgate.domain.interfaces.backend import TaskBackend
from taskgate.domain.models.common import CategoryId, TaskId
from taskgate.domain.models.wire import (
    Analytics, BulkOperationRequest, BulkOperationResult, CategoryChanges,
    CategoryDraft, CategoryView, FeedbackDraft, FeedbackView, OperationResult,
    SearchResult, SendCodeResponse, TaskChanges, TaskDraft, TaskPage, TaskQuery,
    TaskView, VerifyCodeResponse,
)
from taskgate.infrastructure.storage.credential_store import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

T = TypeVar("T")


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class HttpBackend(TaskBackend):
    """TaskBackend implementation using an ``httpx.AsyncClient``."""

    name = "real"

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initializes the HTTP backend.

        Args:
            base_url: API root, e.g. ``https://api.todoapp.com/v1``.
            credentials: Source of the bearer token.
            timeout: Per-attempt timeout in seconds.
            transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        logger.info(f"HttpBackend initialized for {self.base_url} (timeout={timeout}s)")

    @property
    def client(self) -> httpx.AsyncClient:
        """The shared AsyncClient, created on first use."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        authenticated: bool = True,
    ) -> Dict[str, Any]:
        """Sends one request and returns the decoded JSON envelope.

        Raises:
            RequestTimeoutError: The attempt exceeded the configured timeout.
            NetworkError: The request could not be delivered.
            ApiError: A subclass matching the error response status.
        """
        headers = {}
        if authenticated:
            token = await self.credentials.access_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        logger.debug(f"HTTP {method} {path} params={params}")
        try:
            response = await self.client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timeout: {method} {path}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error occurred: {e}") from e

        try:
            payload = response.json() if response.content else {}
        except ValueError as e:
            if response.is_error:
                payload = {}
            else:
                raise ApiError(f"Malformed response body from {method} {path}", status_code=response.status_code) from e
        if not isinstance(payload, dict):
            payload = {"data": payload}

        if response.is_error:
            error_body = payload.get("error") if isinstance(payload.get("error"), dict) else {}
            message = error_body.get("message") or payload.get("message") or f"HTTP error! status: {response.status_code}"
            logger.debug(f"HTTP {method} {path} failed with {response.status_code}: {message}")
            raise error_from_status(response.status_code, message, field=error_body.get("field"))

        return payload

    @staticmethod
    def _data(payload: Dict[str, Any]) -> Any:
        return payload.get("data", payload)

    @staticmethod
    def _parse(parser: Callable[[Any], T], data: Any, what: str) -> T:
        """Builds a response model, reporting missing or mistyped fields as an ApiError."""
        try:
            return parser(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Unparseable response body for {what}: {e!r}")
            raise ApiError(f"Malformed response body for {what}: {e!r}") from e

    @classmethod
    def _acknowledgement(cls, payload: Dict[str, Any], default_message: str) -> OperationResult:
        if not payload:
            return OperationResult(success=True, message=default_message)
        result = cls._parse(OperationResult.from_wire, payload, "acknowledgement")
        return OperationResult(success=result.success, message=result.message or default_message)

    # --- Auth ---

    async def send_code(self, phone: str) -> SendCodeResponse:
        payload = await self._request("POST", "/auth/login", json={"phoneNumber": phone}, authenticated=False)
        return self._parse(SendCodeResponse.from_wire, payload, "POST /auth/login")

    async def verify_code(self, phone: str, code: str) -> VerifyCodeResponse:
        try:
            payload = await self._request(
                "POST", "/auth/verify-otp", json={"phoneNumber": phone, "otp": code}, authenticated=False
            )
        except (ValidationError, AuthenticationError) as e:
            # A rejected code is an expected outcome, not a failure of the call
            return VerifyCodeResponse(success=False, message=e.message)
        return self._parse(VerifyCodeResponse.from_wire, payload, "POST /auth/verify-otp")

    async def refresh_session(self, refresh_token: str) -> VerifyCodeResponse:
        payload = await self._request(
            "POST", "/auth/refresh", json={"refreshToken": refresh_token}, authenticated=False
        )
        result = self._parse(VerifyCodeResponse.from_wire, payload, "POST /auth/refresh")
        if not result.success or not result.access_token:
            raise AuthenticationError("Token refresh was rejected")
        return result

    async def logout(self) -> OperationResult:
        payload = await self._request("POST", "/auth/logout")
        return self._acknowledgement(payload, "Logged out successfully")

    # --- Tasks ---

    async def list_tasks(self, query: TaskQuery) -> TaskPage:
        payload = await self._request("GET", "/tasks", params=query.to_params())
        return self._parse(TaskPage.from_wire, self._data(payload), "GET /tasks")

    async def get_task(self, task_id: TaskId) -> TaskView:
        path = f"/tasks/{_segment(task_id)}"
        payload = await self._request("GET", path)
        return self._parse(TaskView.from_wire, self._data(payload), f"GET {path}")

    async def create_task(self, draft: TaskDraft) -> TaskView:
        payload = await self._request("POST", "/tasks", json=draft.to_wire())
        return self._parse(TaskView.from_wire, self._data(payload), "POST /tasks")

    async def update_task(self, task_id: TaskId, changes: TaskChanges) -> TaskView:
        path = f"/tasks/{_segment(task_id)}"
        payload = await self._request("PUT", path, json=changes.to_wire())
        return self._parse(TaskView.from_wire, self._data(payload), f"PUT {path}")

    async def delete_task(self, task_id: TaskId) -> OperationResult:
        payload = await self._request("DELETE", f"/tasks/{_segment(task_id)}")
        return self._acknowledgement(payload, "Task deleted successfully")

    async def complete_task(self, task_id: TaskId) -> TaskView:
        path = f"/tasks/{_segment(task_id)}/complete"
        payload = await self._request("PATCH", path)
        return self._parse(TaskView.from_wire, self._data(payload), f"PATCH {path}")

    async def bulk_operation(self, request: BulkOperationRequest) -> BulkOperationResult:
        payload = await self._request("POST", "/tasks/bulk", json=request.to_wire())
        return self._parse(BulkOperationResult.from_wire, self._data(payload), "POST /tasks/bulk")

    async def search_tasks(self, query: str, fuzzy: bool = False) -> SearchResult:
        params = {"q": query, "fields": "title,description", "fuzzy": "true" if fuzzy else "false"}
        payload = await self._request("GET", "/tasks/search", params=params)
        return self._parse(SearchResult.from_wire, self._data(payload), "GET /tasks/search")

    async def get_analytics(self) -> Analytics:
        payload = await self._request("GET", "/tasks/analytics")
        return self._parse(Analytics.from_wire, self._data(payload), "GET /tasks/analytics")

    # --- Categories ---

    async def list_categories(self) -> List[CategoryView]:
        payload = await self._request("GET", "/categories")
        return self._parse(
            lambda items: [CategoryView.from_wire(item) for item in items or []],
            self._data(payload), "GET /categories",
        )

    async def create_category(self, draft: CategoryDraft) -> CategoryView:
        payload = await self._request("POST", "/categories", json=draft.to_wire())
        return self._parse(CategoryView.from_wire, self._data(payload), "POST /categories")

    async def update_category(self, category_id: CategoryId, changes: CategoryChanges) -> CategoryView:
        path = f"/categories/{_segment(category_id)}"
        payload = await self._request("PUT", path, json=changes.to_wire())
        return self._parse(CategoryView.from_wire, self._data(payload), f"PUT {path}")

    async def delete_category(self, category_id: CategoryId) -> OperationResult:
        payload = await self._request("DELETE", f"/categories/{_segment(category_id)}")
        return self._acknowledgement(payload, "Category deleted successfully")

    # --- Feedback ---

    async def submit_feedback(self, draft: FeedbackDraft) -> FeedbackView:
        payload = await self._request("POST", "/feedback", json=draft.to_wire())
        return self._parse(FeedbackView.from_wire, self._data(payload), "POST /feedback")

    async def list_feedback(self) -> List[FeedbackView]:
        payload = await self._request("GET", "/feedback")
        return self._parse(
            lambda items: [FeedbackView.from_wire(item) for item in items or []],
            self._data(payload), "GET /feedback",
        )

    # --- Lifecycle ---

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed HTTP client.")
        self._client = None
