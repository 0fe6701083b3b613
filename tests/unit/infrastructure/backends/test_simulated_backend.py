from datetime import timedelta

import pytest

from taskgate.domain.errors import AuthenticationError, NotFoundError, ValidationError
from taskgate.domain.models.common import BulkAction, Priority
from taskgate.domain.models.records import Session, User
from taskgate.domain.models.wire import (
    UNCATEGORIZED, BulkOperationRequest, CategoryDraft, FeedbackDraft, TaskDraft, TaskQuery, TaskView,
)
from taskgate.infrastructure.backends.simulated_backend import MOCK_REFRESH_PREFIX, MOCK_VERIFICATION_CODE


async def test_tasks_embed_their_category(mock_backend):
    view = await mock_backend.create_task(TaskDraft(title="Ship release", category_id="cat_1"))

    assert isinstance(view, TaskView)
    assert view.category.id == "cat_1"
    assert view.category.name == "Work"
    assert view.category.color == "#FF5722"


async def test_deleted_category_shows_as_uncategorized(mock_backend):
    view = await mock_backend.create_task(TaskDraft(title="Orphan", category_id="cat_2"))

    await mock_backend.delete_category("cat_2")
    reloaded = await mock_backend.get_task(view.id)

    assert reloaded.category == UNCATEGORIZED


async def test_task_without_category_is_uncategorized(mock_backend):
    view = await mock_backend.create_task(TaskDraft(title="Loose"))
    assert view.category.name == "Uncategorized"


async def test_list_tasks_returns_pagination(mock_backend):
    for i in range(3):
        await mock_backend.create_task(TaskDraft(title=f"t{i}"))

    page = await mock_backend.list_tasks(TaskQuery(limit=2))

    assert len(page.tasks) == 2
    assert (page.pagination.total, page.pagination.total_pages) == (3, 2)


@pytest.mark.parametrize("call", [
    lambda b: b.get_task("task_missing"),
    lambda b: b.delete_task("task_missing"),
    lambda b: b.complete_task("task_missing"),
    lambda b: b.delete_category("cat_missing"),
])
async def test_missing_records_raise_not_found(mock_backend, call):
    with pytest.raises(NotFoundError):
        await call(mock_backend)


async def test_complete_task(mock_backend):
    view = await mock_backend.create_task(TaskDraft(title="Finish me"))
    done = await mock_backend.complete_task(view.id)
    assert done.completed is True


async def test_bulk_operations_report_counts(mock_backend):
    ids = [(await mock_backend.create_task(TaskDraft(title=f"t{i}"))).id for i in range(3)]

    completed = await mock_backend.bulk_operation(BulkOperationRequest(BulkAction.COMPLETE, ids[:2]))
    deleted = await mock_backend.bulk_operation(BulkOperationRequest(BulkAction.DELETE, ids))

    assert completed.updated_count == 2
    assert completed.message == "Successfully completed 2 tasks"
    assert deleted.updated_count == 3
    assert deleted.message == "Successfully deleted 3 tasks"


async def test_search_plain_and_fuzzy(mock_backend):
    await mock_backend.create_task(TaskDraft(title="Quarterly report", description="finance numbers"))
    await mock_backend.create_task(TaskDraft(title="Report bug"))

    plain = await mock_backend.search_tasks("report")
    fuzzy = await mock_backend.search_tasks("numbers quarterly", fuzzy=True)
    none = await mock_backend.search_tasks("numbers quarterly")

    assert plain.total == 2
    assert [t.title for t in fuzzy.tasks] == ["Quarterly report"]
    assert none.total == 0


async def test_analytics(mock_backend, clock):
    await mock_backend.create_task(TaskDraft(title="a", priority=Priority.HIGH, category_id="cat_1"))
    await mock_backend.create_task(
        TaskDraft(title="b", priority=Priority.HIGH, due_date=clock() - timedelta(days=1))
    )
    done = await mock_backend.create_task(TaskDraft(title="c", priority=Priority.LOW, category_id="cat_1"))
    await mock_backend.complete_task(done.id)

    analytics = await mock_backend.get_analytics()

    assert (analytics.total, analytics.completed, analytics.pending) == (3, 1, 2)
    assert analytics.overdue == 1
    assert analytics.by_priority == {"low": 1, "medium": 0, "high": 2}
    assert analytics.completion_rate == pytest.approx(100 / 3)
    work = next(entry for entry in analytics.by_category if entry["categoryId"] == "cat_1")
    assert (work["count"], work["completed"]) == (2, 1)


async def test_analytics_with_no_tasks(mock_backend):
    analytics = await mock_backend.get_analytics()
    assert analytics.total == 0
    assert analytics.completion_rate == 0.0


async def test_categories_and_feedback(mock_backend):
    created = await mock_backend.create_category(CategoryDraft(name="Errands"))
    names = [c.name for c in await mock_backend.list_categories()]
    assert names == ["Work", "Personal", "Shopping", "Errands"]
    assert created.icon == "folder"

    await mock_backend.submit_feedback(FeedbackDraft(rating=5, comment="Nice"))
    assert [f.comment for f in await mock_backend.list_feedback()] == ["Nice"]


# --- Auth ---

async def test_send_code_requires_a_phone(mock_backend):
    with pytest.raises(ValidationError):
        await mock_backend.send_code("  ")


async def test_verify_with_the_fixed_code_issues_tokens(mock_backend):
    sent = await mock_backend.send_code("+15550001")
    result = await mock_backend.verify_code("+15550001", MOCK_VERIFICATION_CODE)

    assert sent.success and sent.expires_in_seconds == 300
    assert result.success
    assert result.access_token.startswith("mock_token_")
    assert result.refresh_token == MOCK_REFRESH_PREFIX + result.access_token
    assert result.user.phone == "+15550001"


async def test_verify_with_a_wrong_code_is_a_typed_failure(mock_backend):
    result = await mock_backend.verify_code("+15550001", "000000")
    assert result.success is False
    assert result.message == "Invalid OTP code"
    assert result.access_token == ""


async def test_refresh_accepts_only_mock_refresh_tokens(mock_backend):
    refreshed = await mock_backend.refresh_session(MOCK_REFRESH_PREFIX + "mock_token_1")
    assert refreshed.success and refreshed.access_token

    with pytest.raises(AuthenticationError):
        await mock_backend.refresh_session("something_else")


async def test_records_are_scoped_to_the_signed_in_user(mock_backend, credentials, clock):
    await mock_backend.create_task(TaskDraft(title="Anonymous task"))

    user = User(id="user_9", phone="+15550009", name="Nine")
    await credentials.save(Session(user=user, access_token="t", refresh_token="r", expires_at=clock() + timedelta(hours=1)))

    page = await mock_backend.list_tasks(TaskQuery())
    assert page.tasks == []

    await credentials.clear()
    page = await mock_backend.list_tasks(TaskQuery())
    assert [t.title for t in page.tasks] == ["Anonymous task"]


async def test_backup_and_clear_all(mock_backend):
    await mock_backend.create_task(TaskDraft(title="Backed up"))
    document = await mock_backend.export_backup()

    await mock_backend.clear_all()
    assert (await mock_backend.list_tasks(TaskQuery())).pagination.total == 0

    counts = await mock_backend.restore_backup(document)
    assert counts["tasks"] == 1
    assert [t.title for t in (await mock_backend.list_tasks(TaskQuery())).tasks] == ["Backed up"]
