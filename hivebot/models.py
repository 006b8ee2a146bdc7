from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class Step(str, Enum):
    NONE = "none"
    AWAITING_PARTICIPATION = "awaiting_participation"
    CATEGORY_SELECTION = "category_selection"
    TOOL_SELECTION = "tool_selection"
    CUSTOM_DETAILS = "custom_details"
    CLOSED = "closed"


class Outcome(str, Enum):
    ADVANCED = "advanced"
    UPDATED = "updated"
    REJECTED = "rejected"
    CLOSED = "closed"
    IGNORED = "ignored"
    EXPIRED = "expired"


@dataclass(slots=True)
class Draft:
    participated: bool | None = None
    categories: list[str] = field(default_factory=list)
    tools: list[str] = field(default_factory=list)
    custom_tools: list[str] = field(default_factory=list)
    custom_details: str | None = None
    pending_other_tool: str | None = None


@dataclass(slots=True)
class Session:
    user_id: int
    step: Step
    week_start: date
    draft: Draft = field(default_factory=Draft)
    display_name: str | None = None
    started_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class Transition:
    outcome: Outcome
    step: Step
    session: Session | None = None


@dataclass(slots=True)
class WeeklyResponse:
    user_id: int
    week_start_date: date
    participated: bool
    categories: list[str] = field(default_factory=list)
    tools: list[str] = field(default_factory=list)
    custom_tools: list[str] = field(default_factory=list)
    custom_details: str | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class ResponseFilter:
    week_start_date: date | None = None
    participated: bool | None = None
    category: str | None = None
    tool: str | None = None
    user_id: int | None = None


@dataclass(slots=True)
class AuditEvent:
    action: str
    user_id: int | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None


@dataclass(slots=True)
class UserRecord:
    user_id: int
    display_name: str | None
    is_active: bool
    opt_out: bool
    created_at: str | None = None


@dataclass(slots=True)
class BatchSummary:
    kind: str
    week_start_date: date
    target_count: int
    success_count: int
    error_count: int

    def as_details(self) -> dict[str, Any]:
        return {
            "targetCount": self.target_count,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "weekStartDate": self.week_start_date.isoformat(),
        }


@dataclass(slots=True)
class Button:
    label: str
    data: str


@dataclass(slots=True)
class OutgoingMessage:
    text: str
    buttons: list[list[Button]] = field(default_factory=list)
