from __future__ import annotations

from enum import Enum


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    ON_HOLD = "OnHold"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"


class PlanItemStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    DROPPED = "Dropped"


class PlanItemCategory(str, Enum):
    RESEARCH = "Research"
    DRAFTING = "Drafting"
    OUTREACH = "Outreach"
    EVIDENCE = "Evidence"
    ADMIN = "Admin"
    OTHER = "Other"


class PlanItemPriority(str, Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    CRITICAL = "Critical"


class PreferredContactMethod(str, Enum):
    CALL = "Call"
    EMAIL = "Email"
    MAIL = "Mail"
    FORM = "Form"
    COMBO = "Combo"


class OutreachMethod(str, Enum):
    CALL = "Call"
    EMAIL = "Email"
    MAIL = "Mail"
    MEETING = "Meeting"
    OTHER = "Other"


class OutreachOutcomeStatus(str, Enum):
    NONE = "None"
    WAITING = "Waiting"
    POSITIVE = "Positive"
    NEGATIVE = "Negative"
    REFERRED_ELSEWHERE = "ReferredElsewhere"


class FollowUpStatus(str, Enum):
    OPEN = "Open"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class OutcomeFinalStatus(str, Enum):
    NO_RESPONSE = "NoResponse"
    DECLINED = "Declined"
    NOT_FIT = "NotFit"
    COMPLETED_HELP = "CompletedHelp"
    OTHER = "Other"


class AuditEntityType(str, Enum):
    PROJECT = "Project"
    PLAN_ITEM = "PlanItem"
    CONTACT_CATEGORY = "ContactCategory"
    CONTACT = "Contact"
    OUTREACH_ACTION = "OutreachAction"
    FOLLOW_UP_ITEM = "FollowUpItem"
    OUTCOME_RECORD = "OutcomeRecord"


class ChangeType(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    TEMPLATE_LOAD = "TemplateLoad"
    CHECKLIST_TOGGLE = "ChecklistToggle"

