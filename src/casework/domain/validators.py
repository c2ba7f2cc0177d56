"""Boundary parsers turning untrusted mappings into typed records.

Every ``parse_*`` function is pure: it never mutates its input and either
returns a fully-typed, trimmed record or raises ``ValidationError`` naming
each violated field.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from casework.domain.models import (
    ChecklistItem,
    Contact,
    ContactCategory,
    FollowUpItem,
    OutcomeRecord,
    OutreachAction,
    PlanItem,
    Project,
)
from casework.domain.rules import (
    MISSING,
    ValidationError,
    check_bool,
    check_date,
    check_datetime,
    check_enum,
    check_id,
    check_optional_date,
    check_optional_id,
    check_string_list,
    check_text,
    require_mapping,
)
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


def parse_project(raw: Any) -> Project:
    data = require_mapping(raw, "Project")
    errors: list[str] = []
    project = Project(
        id=check_id(data.get("id", MISSING), "id", errors),
        name=check_text(data.get("name", MISSING), "name", errors, required=True),
        description=check_text(data.get("description", MISSING), "description", errors),
        status=check_enum(data.get("status", MISSING), ProjectStatus, "status", errors),
        start_date=check_date(data.get("start_date", MISSING), "start_date", errors),
        target_end_date=check_date(
            data.get("target_end_date", MISSING), "target_end_date", errors
        ),
        color=check_text(data.get("color", MISSING), "color", errors, required=True),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
        updated_at=check_datetime(data.get("updated_at", MISSING), "updated_at", errors),
    )
    _raise_if(errors, "Project")
    return project


def parse_checklist_item(raw: Any, field: str = "checklist") -> ChecklistItem:
    errors: list[str] = []
    item = _checklist_item(raw, field, errors)
    _raise_if(errors, "ChecklistItem")
    return item


def parse_plan_item(raw: Any) -> PlanItem:
    data = require_mapping(raw, "PlanItem")
    errors: list[str] = []
    checklist_raw = data.get("checklist", MISSING)
    checklist: tuple[ChecklistItem, ...] = ()
    if isinstance(checklist_raw, (list, tuple)):
        checklist = tuple(
            _checklist_item(entry, f"checklist[{idx}]", errors)
            for idx, entry in enumerate(checklist_raw)
        )
    else:
        errors.append("checklist: must be a list")

    item = PlanItem(
        id=check_id(data.get("id", MISSING), "id", errors),
        project_id=check_id(data.get("project_id", MISSING), "project_id", errors),
        title=check_text(data.get("title", MISSING), "title", errors, required=True),
        description=check_text(data.get("description", MISSING), "description", errors),
        category=check_enum(data.get("category", MISSING), PlanItemCategory, "category", errors),
        status=check_enum(data.get("status", MISSING), PlanItemStatus, "status", errors),
        due_date=check_optional_date(data.get("due_date", MISSING), "due_date", errors),
        priority=check_enum(data.get("priority", MISSING), PlanItemPriority, "priority", errors),
        checklist=checklist,
        notes=check_text(data.get("notes", MISSING), "notes", errors),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
        updated_at=check_datetime(data.get("updated_at", MISSING), "updated_at", errors),
    )
    _raise_if(errors, "PlanItem")
    return item


def parse_contact_category(raw: Any) -> ContactCategory:
    data = require_mapping(raw, "ContactCategory")
    errors: list[str] = []
    category = ContactCategory(
        id=check_id(data.get("id", MISSING), "id", errors),
        name=check_text(data.get("name", MISSING), "name", errors, required=True),
        color=check_text(data.get("color", MISSING), "color", errors, required=True),
        tags=check_string_list(data.get("tags", MISSING), "tags", errors),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
        updated_at=check_datetime(data.get("updated_at", MISSING), "updated_at", errors),
    )
    _raise_if(errors, "ContactCategory")
    return category


def parse_contact(raw: Any) -> Contact:
    data = require_mapping(raw, "Contact")
    errors: list[str] = []

    def text(field: str) -> str:
        return check_text(data.get(field, MISSING), field, errors)

    contact = Contact(
        id=check_id(data.get("id", MISSING), "id", errors),
        category_id=check_id(data.get("category_id", MISSING), "category_id", errors),
        organization=text("organization"),
        contact_name=text("contact_name"),
        role=text("role"),
        phone=text("phone"),
        email=text("email"),
        mailing_address=text("mailing_address"),
        website_url=text("website_url"),
        preferred_method=check_enum(
            data.get("preferred_method", MISSING),
            PreferredContactMethod,
            "preferred_method",
            errors,
        ),
        tags=check_string_list(data.get("tags", MISSING), "tags", errors),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
        updated_at=check_datetime(data.get("updated_at", MISSING), "updated_at", errors),
    )
    _raise_if(errors, "Contact")
    return contact


def parse_outreach_action(raw: Any) -> OutreachAction:
    data = require_mapping(raw, "OutreachAction")
    errors: list[str] = []
    action = OutreachAction(
        id=check_id(data.get("id", MISSING), "id", errors),
        contact_id=check_id(data.get("contact_id", MISSING), "contact_id", errors),
        date=check_datetime(data.get("date", MISSING), "date", errors),
        method=check_enum(data.get("method", MISSING), OutreachMethod, "method", errors),
        summary=check_text(data.get("summary", MISSING), "summary", errors),
        artifacts_sent=check_string_list(
            data.get("artifacts_sent", MISSING), "artifacts_sent", errors, identifiers=True
        ),
        linked_artifact_version=check_optional_id(
            data.get("linked_artifact_version", MISSING), "linked_artifact_version", errors
        ),
        outcome_status=check_enum(
            data.get("outcome_status", MISSING), OutreachOutcomeStatus, "outcome_status", errors
        ),
        next_follow_up_date=check_optional_date(
            data.get("next_follow_up_date", MISSING), "next_follow_up_date", errors
        ),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
    )
    _raise_if(errors, "OutreachAction")
    return action


def parse_follow_up_item(raw: Any) -> FollowUpItem:
    data = require_mapping(raw, "FollowUpItem")
    errors: list[str] = []
    follow_up = FollowUpItem(
        id=check_id(data.get("id", MISSING), "id", errors),
        contact_id=check_id(data.get("contact_id", MISSING), "contact_id", errors),
        outreach_action_id=check_optional_id(
            data.get("outreach_action_id", MISSING), "outreach_action_id", errors
        ),
        due_date=check_date(data.get("due_date", MISSING), "due_date", errors),
        status=check_enum(data.get("status", MISSING), FollowUpStatus, "status", errors),
        notes=check_text(data.get("notes", MISSING), "notes", errors),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
    )
    _raise_if(errors, "FollowUpItem")
    return follow_up


def parse_outcome_record(raw: Any) -> OutcomeRecord:
    data = require_mapping(raw, "OutcomeRecord")
    errors: list[str] = []
    outcome = OutcomeRecord(
        id=check_id(data.get("id", MISSING), "id", errors),
        contact_id=check_id(data.get("contact_id", MISSING), "contact_id", errors),
        final_status=check_enum(
            data.get("final_status", MISSING), OutcomeFinalStatus, "final_status", errors
        ),
        date_closed=check_date(data.get("date_closed", MISSING), "date_closed", errors),
        reason=check_text(data.get("reason", MISSING), "reason", errors),
        lesson_learned=check_text(data.get("lesson_learned", MISSING), "lesson_learned", errors),
        referred_contact_id=check_optional_id(
            data.get("referred_contact_id", MISSING), "referred_contact_id", errors
        ),
        created_at=check_datetime(data.get("created_at", MISSING), "created_at", errors),
    )
    _raise_if(errors, "OutcomeRecord")
    return outcome


def _checklist_item(raw: Any, field: str, errors: list[str]) -> ChecklistItem:
    if not isinstance(raw, Mapping):
        errors.append(f"{field}: must be an object")
        return ChecklistItem(id="", label="", checked=False)
    return ChecklistItem(
        id=check_id(raw.get("id", MISSING), f"{field}.id", errors),
        label=check_text(raw.get("label", MISSING), f"{field}.label", errors, required=True),
        checked=check_bool(raw.get("checked", MISSING), f"{field}.checked", errors),
    )


def _raise_if(errors: list[str], subject: str) -> None:
    if errors:
        raise ValidationError(errors, subject)
