from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from casework.domain.stages import (
    FollowUpStatus,
    OutcomeFinalStatus,
    OutreachMethod,
    OutreachOutcomeStatus,
    PlanItemCategory,
    PlanItemPriority,
    PlanItemStatus,
    PreferredContactMethod,
    ProjectStatus,
)


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    description: str
    status: ProjectStatus
    start_date: str
    target_end_date: str
    color: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ChecklistItem:
    id: str
    label: str
    checked: bool


@dataclass(frozen=True)
class PlanItem:
    id: str
    project_id: str
    title: str
    description: str
    category: PlanItemCategory
    status: PlanItemStatus
    due_date: str | None
    priority: PlanItemPriority
    checklist: tuple[ChecklistItem, ...]
    notes: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ContactCategory:
    id: str
    name: str
    color: str
    tags: tuple[str, ...]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class Contact:
    id: str
    category_id: str
    organization: str
    contact_name: str
    role: str
    phone: str
    email: str
    mailing_address: str
    website_url: str
    preferred_method: PreferredContactMethod
    tags: tuple[str, ...]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class OutreachAction:
    id: str
    contact_id: str
    date: str
    method: OutreachMethod
    summary: str
    artifacts_sent: tuple[str, ...]
    linked_artifact_version: str | None
    outcome_status: OutreachOutcomeStatus
    next_follow_up_date: str | None
    created_at: str


@dataclass(frozen=True)
class FollowUpItem:
    id: str
    contact_id: str
    outreach_action_id: str | None
    due_date: str
    status: FollowUpStatus
    notes: str
    created_at: str


@dataclass(frozen=True)
class OutcomeRecord:
    id: str
    contact_id: str
    final_status: OutcomeFinalStatus
    date_closed: str
    reason: str
    lesson_learned: str
    referred_contact_id: str | None
    created_at: str


def record_to_dict(record: Any) -> dict[str, Any]:
    """Plain JSON-ready mapping for a record, in field declaration order."""
    return _plain(asdict(record))


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
