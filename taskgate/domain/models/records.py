"""Native records held by the simulated backend store and the credential store.

These are the store-side shapes (category referenced by id). The gateway
never hands them to callers directly; they are reshaped into the wire models
in ``taskgate.domain.models.wire`` first.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from taskgate.domain.models.common import (
    CategoryId, FeedbackId, OwnerId, Priority, SortKey, SortOrder, TaskId,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parses an ISO-8601 string (``Z`` suffix accepted) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Task:
    """A to-do item owned by a single user."""
    id: TaskId
    title: str
    description: str
    priority: Priority
    category_id: Optional[CategoryId]
    owner_id: OwnerId
    created_at: datetime
    updated_at: datetime
    completed: bool = False
    due_date: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    notes: str = ""

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date is not None and not self.completed and self.due_date < now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "categoryId": self.category_id,
            "ownerId": self.owner_id,
            "completed": self.completed,
            "dueDate": to_iso(self.due_date),
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "tags": list(self.tags),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=TaskId(data["id"]),
            title=data["title"],
            description=data.get("description", ""),
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            category_id=data.get("categoryId"),
            owner_id=OwnerId(data.get("ownerId", "default")),
            completed=bool(data.get("completed", False)),
            due_date=parse_datetime(data.get("dueDate")),
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
            tags=list(data.get("tags") or []),
            notes=data.get("notes") or "",
        )


@dataclass
class Category:
    """A user-defined grouping for tasks."""
    id: CategoryId
    name: str
    color: str
    icon: str
    owner_id: OwnerId
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "ownerId": self.owner_id,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=CategoryId(data["id"]),
            name=data["name"],
            color=data.get("color", "#9E9E9E"),
            icon=data.get("icon", "folder"),
            owner_id=OwnerId(data.get("ownerId", "default")),
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
        )


@dataclass
class Feedback:
    id: FeedbackId
    owner_id: OwnerId
    rating: int
    comment: str
    category: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "rating": self.rating,
            "comment": self.comment,
            "category": self.category,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feedback":
        return cls(
            id=FeedbackId(data["id"]),
            owner_id=OwnerId(data.get("ownerId", "default")),
            rating=int(data["rating"]),
            comment=data.get("comment", ""),
            category=data.get("category", "general"),
            created_at=parse_datetime(data["createdAt"]),
        )


@dataclass
class Settings:
    """Per-owner application preferences (mock mode only)."""
    notifications: bool = True
    sound: bool = True
    vibration: bool = True
    auto_backup: bool = True
    theme: str = "auto"
    language: str = "en"
    currency: str = "USD"
    timezone: str = "UTC"
    reminder_minutes: int = 15
    default_priority: Priority = Priority.MEDIUM
    default_category: Optional[CategoryId] = CategoryId("cat_1")
    auto_complete: bool = True
    show_completed_tasks: bool = True
    sort_by: SortKey = SortKey.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["default_priority"] = self.default_priority.value
        data["sort_by"] = self.sort_by.value
        data["sort_order"] = self.sort_order.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "default_priority" in known:
            known["default_priority"] = Priority(known["default_priority"])
        if "sort_by" in known:
            known["sort_by"] = SortKey(known["sort_by"])
        if "sort_order" in known:
            known["sort_order"] = SortOrder(known["sort_order"])
        return cls(**known)


@dataclass
class User:
    id: str
    phone: str
    name: str
    email: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "phone": self.phone, "name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data.get("id", "")),
            phone=data.get("phone") or data.get("phoneNumber") or "",
            name=data.get("name", ""),
            email=data.get("email") or "",
        )


@dataclass
class Session:
    """An authenticated user plus the tokens that prove it.

    Only the credential store persists this record.
    """
    user: User
    access_token: str
    refresh_token: str
    expires_at: datetime

    def expires_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        current = now or utc_now()
        return (self.expires_at - current).total_seconds() <= seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user.to_dict(),
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": to_iso(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            user=User.from_dict(data.get("user") or {}),
            access_token=data["accessToken"],
            refresh_token=data["refreshToken"],
            expires_at=parse_datetime(data["expiresAt"]),
        )
