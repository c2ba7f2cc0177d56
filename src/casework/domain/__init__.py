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
from casework.domain.rules import IntegrityGuardError, MissingReferenceError, ValidationError

__all__ = [
    "ChecklistItem",
    "Contact",
    "ContactCategory",
    "FollowUpItem",
    "IntegrityGuardError",
    "MissingReferenceError",
    "OutcomeRecord",
    "OutreachAction",
    "PlanItem",
    "Project",
    "ValidationError",
]
