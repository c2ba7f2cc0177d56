from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from casework.domain import rules
from casework.domain.stages import PlanItemCategory, PlanItemPriority


@dataclass(frozen=True)
class TemplateStep:
    title: str
    description: str
    category: PlanItemCategory
    priority: PlanItemPriority
    day_offset: int


MDCR_TEMPLATE_NAME = "MDCR template preload"

# Eleven-day MDCR appeal buildout; offsets are days after the start date.
MDCR_TEMPLATE: tuple[TemplateStep, ...] = (
    TemplateStep("Collect core documents", "Gather CPS, medical, police records",
                 PlanItemCategory.EVIDENCE, PlanItemPriority.HIGH, 0),
    TemplateStep("Initial timeline draft", "Start chronology of key events",
                 PlanItemCategory.DRAFTING, PlanItemPriority.NORMAL, 0),
    TemplateStep("Identify misconduct flags", "Scan documents for potential violations",
                 PlanItemCategory.RESEARCH, PlanItemPriority.HIGH, 1),
    TemplateStep("Draft appeal outline", "High-level structure for MDCR appeal",
                 PlanItemCategory.DRAFTING, PlanItemPriority.HIGH, 2),
    TemplateStep("Refine timeline", "Add details & corroborations",
                 PlanItemCategory.DRAFTING, PlanItemPriority.NORMAL, 3),
    TemplateStep("Evidence packet assembly", "Compile supporting exhibits",
                 PlanItemCategory.EVIDENCE, PlanItemPriority.HIGH, 4),
    TemplateStep("First draft appeal letter", "Write narrative and legal basis",
                 PlanItemCategory.DRAFTING, PlanItemPriority.CRITICAL, 5),
    TemplateStep("Review & edit draft", "Iterate for clarity & impact",
                 PlanItemCategory.DRAFTING, PlanItemPriority.HIGH, 6),
    TemplateStep("Legal rule cross-check", "Validate citations & policies",
                 PlanItemCategory.RESEARCH, PlanItemPriority.HIGH, 7),
    TemplateStep("Finalize evidence packet", "Ensure completeness & labeling",
                 PlanItemCategory.EVIDENCE, PlanItemPriority.HIGH, 8),
    TemplateStep("Finalize appeal letter", "Polish language, ensure accuracy",
                 PlanItemCategory.DRAFTING, PlanItemPriority.CRITICAL, 9),
    TemplateStep("Submission prep", "Confirm submission process & contacts",
                 PlanItemCategory.ADMIN, PlanItemPriority.NORMAL, 10),
)


def expand_template(
    project_id: str, start_date: str, steps: tuple[TemplateStep, ...] = MDCR_TEMPLATE
) -> list[dict[str, object]]:
    """Plan item inputs for ``steps``, due on ``start_date`` plus each offset."""
    start = rules.parse_date(start_date, "start_date")
    if start is None:
        raise rules.ValidationError(["start_date: must be YYYY-MM-DD"])
    return [
        {
            "project_id": project_id,
            "title": step.title,
            "description": step.description,
            "category": step.category.value,
            "priority": step.priority.value,
            "due_date": (start + timedelta(days=step.day_offset)).isoformat(),
            "checklist": [],
            "notes": "",
        }
        for step in steps
    ]
