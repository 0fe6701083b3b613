import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from taskgate.domain.errors import (
    ApiError, AuthenticationError, AuthorizationError, NetworkError,
    NotFoundError, RequestTimeoutError, ServerError, ValidationError,
)
from taskgate.domain.models.common import BulkAction, Priority, SortKey
from taskgate.domain.models.records import Session, User
from taskgate.domain.models.wire import UNCATEGORIZED, BulkOperationRequest, TaskDraft, TaskQuery
from taskgate.infrastructure.backends.http_backend import HttpBackend

BASE_URL = "https://api.example.test/v1"

TASK_JSON = {
    "id": "t1",
    "title": "Write tests",
    "description": "",
    "priority": "high",
    "category": {"id": "cat_1", "name": "Work", "color": "#FF5722"},
    "completed": False,
    "createdAt": "2024-05-15T12:00:00Z",
    "updatedAt": "2024-05-15T12:00:00Z",
}


class Recorder:
    """httpx handler that records requests and replies from a callable."""

    def __init__(self, reply):
        self.reply = reply
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.reply(request)


def make_backend(credentials, reply):
    recorder = Recorder(reply)
    backend = HttpBackend(BASE_URL, credentials, timeout=5.0, transport=httpx.MockTransport(recorder))
    return backend, recorder


async def sign_in(credentials, token="access-1"):
    user = User(id="u1", phone="+15550001", name="Test")
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    await credentials.save(Session(user=user, access_token=token, refresh_token="refresh-1", expires_at=expires))


async def test_requests_carry_the_bearer_token(credentials):
    await sign_in(credentials)
    backend, recorder = make_backend(
        credentials, lambda r: httpx.Response(200, json={"success": True, "data": TASK_JSON})
    )

    view = await backend.get_task("t1")

    request = recorder.requests[0]
    assert request.headers["Authorization"] == "Bearer access-1"
    assert request.url.path == "/v1/tasks/t1"
    assert view.title == "Write tests"
    assert view.priority == Priority.HIGH
    assert view.category.name == "Work"
    await backend.close()


async def test_signed_out_requests_have_no_authorization_header(credentials):
    backend, recorder = make_backend(
        credentials, lambda r: httpx.Response(200, json={"success": True, "data": []})
    )

    assert await backend.list_categories() == []
    assert "Authorization" not in recorder.requests[0].headers


async def test_list_tasks_sends_query_parameters(credentials):
    body = {"success": True, "data": {"tasks": [TASK_JSON], "pagination": {"page": 2, "limit": 5, "total": 6, "totalPages": 2}}}
    backend, recorder = make_backend(credentials, lambda r: httpx.Response(200, json=body))

    page = await backend.list_tasks(TaskQuery(page=2, limit=5, completed=False, sort_by=SortKey.DUE_DATE))

    params = recorder.requests[0].url.params
    assert (params["page"], params["limit"], params["completed"], params["sortBy"]) == ("2", "5", "false", "dueDate")
    assert page.pagination.total_pages == 2
    assert [t.id for t in page.tasks] == ["t1"]


async def test_ids_are_escaped_in_paths(credentials):
    backend, recorder = make_backend(
        credentials, lambda r: httpx.Response(200, json={"success": True, "data": TASK_JSON})
    )
    await backend.complete_task("a/b")
    assert recorder.requests[0].url.raw_path == b"/v1/tasks/a%2Fb/complete"
    assert recorder.requests[0].method == "PATCH"


async def test_create_and_bulk_send_wire_bodies(credentials):
    def reply(request):
        if request.url.path.endswith("/bulk"):
            return httpx.Response(200, json={"success": True, "data": {"updatedCount": 2, "message": "ok"}})
        return httpx.Response(201, json={"success": True, "data": TASK_JSON})

    backend, recorder = make_backend(credentials, reply)

    await backend.create_task(TaskDraft(title="Write tests", priority=Priority.HIGH, category_id="cat_1"))
    result = await backend.bulk_operation(BulkOperationRequest(BulkAction.COMPLETE, ["t1", "t2"]))

    created = json.loads(recorder.requests[0].content)
    assert created["title"] == "Write tests"
    assert created["categoryId"] == "cat_1"
    assert json.loads(recorder.requests[1].content) == {"operation": "complete", "taskIds": ["t1", "t2"]}
    assert result.updated_count == 2


@pytest.mark.parametrize("status, error_type", [
    (401, AuthenticationError),
    (403, AuthorizationError),
    (404, NotFoundError),
    (422, ValidationError),
    (500, ServerError),
    (503, ServerError),
    (408, RequestTimeoutError),
])
async def test_error_statuses_map_to_typed_errors(credentials, status, error_type):
    backend, _ = make_backend(
        credentials, lambda r: httpx.Response(status, json={"success": False, "error": {"message": "nope"}})
    )

    with pytest.raises(error_type) as exc_info:
        await backend.get_task("t1")
    assert exc_info.value.message == "nope"
    assert exc_info.value.status_code == status


async def test_validation_errors_keep_the_field(credentials):
    body = {"success": False, "error": {"message": "Title is required", "field": "title"}}
    backend, _ = make_backend(credentials, lambda r: httpx.Response(422, json=body))

    with pytest.raises(ValidationError) as exc_info:
        await backend.create_task(TaskDraft(title=""))
    assert exc_info.value.field == "title"


async def test_error_without_body_uses_the_status(credentials):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(502, text="Bad gateway"))

    with pytest.raises(ServerError) as exc_info:
        await backend.get_analytics()
    assert str(exc_info.value) == "HTTP error! status: 502"


async def test_rate_limit_keeps_its_status(credentials):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(429, json={"message": "slow down"}))

    with pytest.raises(ApiError) as exc_info:
        await backend.list_feedback()
    assert exc_info.value.status_code == 429


async def test_malformed_success_body_is_an_error(credentials):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, text="<html>"))

    with pytest.raises(ApiError):
        await backend.get_task("t1")


@pytest.mark.parametrize("call, body", [
    (lambda backend: backend.get_task("t1"), {"success": True, "data": {"id": "t1", "title": "x"}}),
    (lambda backend: backend.list_tasks(TaskQuery()), {"success": True, "data": {"tasks": [{"title": "x"}]}}),
    (lambda backend: backend.list_categories(), {"success": True, "data": [{"id": "cat_1"}]}),
    (lambda backend: backend.list_feedback(), {"success": True, "data": [{"id": "f1", "rating": "great"}]}),
    (lambda backend: backend.create_task(TaskDraft(title="x")), {"success": True, "data": {**TASK_JSON, "priority": "urgent"}}),
    (lambda backend: backend.get_analytics(), {"success": True, "data": "not an object"}),
])
async def test_incomplete_success_bodies_are_api_errors(credentials, call, body):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, json=body))

    with pytest.raises(ApiError) as exc_info:
        await call(backend)
    assert exc_info.value.message.startswith("Malformed response body")


async def test_unknown_query_values_fail_before_sending(credentials):
    backend, recorder = make_backend(credentials, lambda r: httpx.Response(200, json={"success": True, "data": {}}))

    with pytest.raises(ValidationError) as exc_info:
        await backend.list_tasks(TaskQuery(priority="urgent"))

    assert exc_info.value.field == "priority"
    assert recorder.requests == []


@pytest.mark.parametrize("task_json", [
    {key: value for key, value in TASK_JSON.items() if key != "category"},
    {**TASK_JSON, "category": None},
])
async def test_tasks_without_a_category_show_the_placeholder(credentials, task_json):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, json={"success": True, "data": task_json}))

    view = await backend.get_task("t1")

    assert view.category == UNCATEGORIZED


async def test_category_reference_without_a_name_uses_placeholder_name(credentials):
    task_json = {**TASK_JSON, "category": None, "categoryId": "cat_9"}
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, json={"success": True, "data": task_json}))

    view = await backend.get_task("t1")

    assert (view.category.id, view.category.name, view.category.color) == ("cat_9", UNCATEGORIZED.name, UNCATEGORIZED.color)


async def test_timeouts_become_request_timeout_errors(credentials):
    def reply(request):
        raise httpx.ReadTimeout("timed out", request=request)

    backend, _ = make_backend(credentials, reply)

    with pytest.raises(RequestTimeoutError):
        await backend.list_categories()


async def test_transport_failures_become_network_errors(credentials):
    def reply(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend, _ = make_backend(credentials, reply)

    with pytest.raises(NetworkError) as exc_info:
        await backend.list_categories()
    assert str(exc_info.value).startswith("Network error occurred")


# --- Auth ---

async def test_send_code(credentials):
    body = {"success": True, "data": {"message": "OTP sent successfully", "expiresIn": 300}}
    backend, recorder = make_backend(credentials, lambda r: httpx.Response(200, json=body))

    sent = await backend.send_code("+15550001")

    assert json.loads(recorder.requests[0].content) == {"phoneNumber": "+15550001"}
    assert (sent.success, sent.expires_in_seconds) == (True, 300)


async def test_rejected_code_is_a_typed_failure(credentials):
    body = {"success": False, "error": {"message": "Invalid OTP code"}}
    backend, _ = make_backend(credentials, lambda r: httpx.Response(400, json=body))

    result = await backend.verify_code("+15550001", "000000")

    assert result.success is False
    assert result.message == "Invalid OTP code"


async def test_verify_success_returns_tokens_and_user(credentials):
    body = {
        "success": True,
        "data": {
            "token": "tok", "refreshToken": "ref", "expiresIn": 3600,
            "user": {"id": "u1", "phoneNumber": "+15550001", "name": "Ann"},
        },
    }
    backend, recorder = make_backend(credentials, lambda r: httpx.Response(200, json=body))

    result = await backend.verify_code("+15550001", "123456")

    assert json.loads(recorder.requests[0].content) == {"phoneNumber": "+15550001", "otp": "123456"}
    assert (result.access_token, result.refresh_token, result.expires_in_seconds) == ("tok", "ref", 3600)
    assert result.user.id == "u1"


async def test_refresh_rejected_raises_authentication_error(credentials):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, json={"success": False}))

    with pytest.raises(AuthenticationError):
        await backend.refresh_session("ref")


async def test_logout_posts_with_token(credentials):
    await sign_in(credentials)
    backend, recorder = make_backend(credentials, lambda r: httpx.Response(200, json={"success": True}))

    result = await backend.logout()

    assert recorder.requests[0].url.path == "/v1/auth/logout"
    assert recorder.requests[0].headers["Authorization"] == "Bearer access-1"
    assert result.success
    assert result.message == "Logged out successfully"


async def test_logout_reports_the_server_message(credentials):
    body = {"success": True, "message": "See you soon"}
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, json=body))

    result = await backend.logout()

    assert (result.success, result.message) == (True, "See you soon")


async def test_delete_without_a_body_is_acknowledged(credentials):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(204))

    result = await backend.delete_task("t1")

    assert (result.success, result.message) == (True, "Task deleted successfully")


async def test_search_sends_fields_and_fuzzy_flag(credentials):
    body = {"success": True, "data": {"tasks": [TASK_JSON], "total": 1}}
    backend, recorder = make_backend(credentials, lambda r: httpx.Response(200, json=body))

    result = await backend.search_tasks("tests", fuzzy=True)

    params = recorder.requests[0].url.params
    assert (params["q"], params["fields"], params["fuzzy"]) == ("tests", "title,description", "true")
    assert result.total == 1


async def test_close_is_idempotent(credentials):
    backend, _ = make_backend(credentials, lambda r: httpx.Response(200, json={"success": True, "data": []}))
    await backend.list_categories()
    await backend.close()
    await backend.close()
    # A closed backend reconnects on next use
    assert await backend.list_categories() == []
