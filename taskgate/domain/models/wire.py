"""Wire-shaped request and response models.

Both backends return these, so callers of the gateway never learn which mode
served a request. ``from_wire`` parses the JSON payloads of the real API;
the simulated backend builds the same objects from native records.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from taskgate.domain.errors import ValidationError
from taskgate.domain.models.common import (
    BulkAction, CategoryId, DueBucket, Priority, SortKey, SortOrder, TaskId,
)
from taskgate.domain.models.records import User, parse_datetime, to_iso

# --- Requests ---


def _choice(enum_type: Type[Enum], value: Any, field_name: str) -> Any:
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValidationError(f"Invalid {field_name}: {value!r} (expected one of: {allowed})", field=field_name) from None


@dataclass
class TaskQuery:
    """Filters, sorting and pagination for list_tasks."""
    page: int = 1
    limit: int = 20
    priority: Optional[Priority] = None
    completed: Optional[bool] = None
    category_id: Optional[CategoryId] = None
    search: Optional[str] = None
    due: Optional[DueBucket] = None
    sort_by: Optional[SortKey] = None
    sort_order: Optional[SortOrder] = None

    def validated(self) -> "TaskQuery":
        """Returns a copy with enum fields coerced.

        Raises:
            ValidationError: A page or limit below 1, or an unknown enum value
                (tagged with the offending field).
        """
        if self.page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if self.limit < 1:
            raise ValidationError("limit must be >= 1", field="limit")
        return replace(
            self,
            priority=_choice(Priority, self.priority, "priority"),
            due=_choice(DueBucket, self.due, "due"),
            sort_by=_choice(SortKey, self.sort_by, "sort_by"),
            sort_order=_choice(SortOrder, self.sort_order, "sort_order"),
        )

    def to_params(self) -> Dict[str, str]:
        """Query-string parameters for the HTTP API (unset filters omitted)."""
        query = self.validated()
        params: Dict[str, str] = {"page": str(query.page), "limit": str(query.limit)}
        if query.priority is not None:
            params["priority"] = query.priority.value
        if query.completed is not None:
            params["completed"] = "true" if query.completed else "false"
        if query.category_id:
            params["categoryId"] = query.category_id
        if query.search:
            params["search"] = query.search
        if query.due is not None:
            params["due"] = query.due.value
        if query.sort_by is not None:
            params["sortBy"] = query.sort_by.value
        if query.sort_order is not None:
            params["sortOrder"] = query.sort_order.value
        return params


@dataclass
class TaskDraft:
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    category_id: Optional[CategoryId] = None
    due_date: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "priority": Priority(self.priority).value,
            "categoryId": self.category_id,
        }
        if self.due_date is not None:
            payload["dueDate"] = to_iso(self.due_date)
        if self.tags:
            payload["tags"] = list(self.tags)
        return payload


@dataclass
class TaskChanges:
    """Partial task update; ``None`` means "leave unchanged"."""
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    category_id: Optional[CategoryId] = None
    due_date: Optional[datetime] = None
    completed: Optional[bool] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.title is not None:
            payload["title"] = self.title
        if self.description is not None:
            payload["description"] = self.description
        if self.priority is not None:
            payload["priority"] = Priority(self.priority).value
        if self.category_id is not None:
            payload["categoryId"] = self.category_id
        if self.due_date is not None:
            payload["dueDate"] = to_iso(self.due_date)
        if self.completed is not None:
            payload["completed"] = self.completed
        if self.tags is not None:
            payload["tags"] = list(self.tags)
        if self.notes is not None:
            payload["notes"] = self.notes
        return payload


@dataclass
class CategoryDraft:
    name: str
    color: str = "#9E9E9E"
    icon: str = "folder"

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "color": self.color, "icon": self.icon}


@dataclass
class CategoryChanges:
    name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return {k: v for k, v in (("name", self.name), ("color", self.color), ("icon", self.icon)) if v is not None}


@dataclass
class FeedbackDraft:
    rating: int
    comment: str
    category: str = "general"

    def to_wire(self) -> Dict[str, Any]:
        return {"rating": self.rating, "comment": self.comment, "category": self.category}


@dataclass
class BulkOperationRequest:
    operation: BulkAction
    task_ids: List[TaskId]

    def to_wire(self) -> Dict[str, Any]:
        return {"operation": BulkAction(self.operation).value, "taskIds": list(self.task_ids)}


# --- Responses ---


@dataclass
class CategoryRef:
    """Category denormalized into a task response."""
    id: Optional[str]
    name: str
    color: str

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> "CategoryRef":
        if not data:
            return UNCATEGORIZED
        return cls(
            id=data.get("id"),
            name=data.get("name") or UNCATEGORIZED.name,
            color=data.get("color") or UNCATEGORIZED.color,
        )


# Shown for tasks whose category was deleted or never set
UNCATEGORIZED = CategoryRef(id=None, name="Uncategorized", color="#9E9E9E")


@dataclass
class TaskView:
    id: TaskId
    title: str
    description: str
    priority: Priority
    category: CategoryRef
    completed: bool
    created_at: datetime
    updated_at: datetime
    due_date: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "TaskView":
        category = data.get("category")
        if category is None and data.get("categoryId"):
            category = {"id": data["categoryId"]}
        return cls(
            id=TaskId(str(data["id"])),
            title=data.get("title", ""),
            description=data.get("description") or "",
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            category=CategoryRef.from_wire(category),
            completed=bool(data.get("completed", False)),
            due_date=parse_datetime(data.get("dueDate")),
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
            tags=list(data.get("tags") or []),
        )


@dataclass
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Pagination":
        return cls(
            page=int(data.get("page", 1)),
            limit=int(data.get("limit", 20)),
            total=int(data.get("total", 0)),
            total_pages=int(data.get("totalPages", 0)),
        )


@dataclass
class TaskPage:
    tasks: List[TaskView]
    pagination: Pagination

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "TaskPage":
        return cls(
            tasks=[TaskView.from_wire(item) for item in data.get("tasks", [])],
            pagination=Pagination.from_wire(data.get("pagination") or {}),
        )


@dataclass
class CategoryView:
    id: CategoryId
    name: str
    color: str
    created_at: datetime
    icon: str = "folder"

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "CategoryView":
        return cls(
            id=CategoryId(str(data["id"])),
            name=data.get("name", ""),
            color=data.get("color", ""),
            icon=data.get("icon") or "folder",
            created_at=parse_datetime(data["createdAt"]),
        )


@dataclass
class FeedbackView:
    id: str
    rating: int
    comment: str
    category: str
    created_at: datetime

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "FeedbackView":
        return cls(
            id=str(data["id"]),
            rating=int(data["rating"]),
            comment=data.get("comment", ""),
            category=data.get("category", ""),
            created_at=parse_datetime(data["createdAt"]),
        )


@dataclass
class OperationResult:
    """Generic acknowledgement (delete, logout, settings update)."""
    success: bool
    message: str

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "OperationResult":
        message = data.get("message") or (data.get("data") or {}).get("message", "")
        return cls(success=bool(data.get("success", False)), message=message)


@dataclass
class SendCodeResponse:
    success: bool
    message: str
    expires_in_seconds: int

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "SendCodeResponse":
        body = data.get("data") or {}
        return cls(
            success=bool(data.get("success", False)),
            message=body.get("message", ""),
            expires_in_seconds=int(body.get("expiresIn", 0)),
        )


@dataclass
class VerifyCodeResponse:
    """Outcome of a code verification.

    A rejected code is reported with ``success=False`` and a user-facing
    ``message``; it is not raised.
    """
    success: bool
    message: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_in_seconds: int = 0
    user: Optional[User] = None

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "VerifyCodeResponse":
        body = data.get("data") or {}
        user = body.get("user")
        return cls(
            success=bool(data.get("success", False)),
            message=data.get("message") or body.get("message", ""),
            access_token=body.get("token", ""),
            refresh_token=body.get("refreshToken", ""),
            expires_in_seconds=int(body.get("expiresIn", 0)),
            user=User.from_dict(user) if user else None,
        )


@dataclass
class BulkOperationResult:
    updated_count: int
    message: str = ""

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "BulkOperationResult":
        return cls(updated_count=int(data.get("updatedCount", 0)), message=data.get("message", ""))


@dataclass
class SearchResult:
    tasks: List[TaskView]
    total: int

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "SearchResult":
        tasks = [TaskView.from_wire(item) for item in data.get("tasks", [])]
        return cls(tasks=tasks, total=int(data.get("total", len(tasks))))


@dataclass
class Analytics:
    total: int
    completed: int
    pending: int
    overdue: int
    by_priority: Dict[str, int]
    completion_rate: float
    by_category: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Analytics":
        return cls(
            total=int(data.get("total", 0)),
            completed=int(data.get("completed", 0)),
            pending=int(data.get("pending", 0)),
            overdue=int(data.get("overdue", 0)),
            by_priority=dict(data.get("byPriority") or {}),
            completion_rate=float(data.get("completionRate", 0.0)),
            by_category=list(data.get("byCategory") or []),
        )
