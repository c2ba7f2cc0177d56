from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any

from casework.domain.models import FollowUpItem, PlanItem
from casework.domain.stages import PlanItemStatus
from casework.services.outreach import OutreachService
from casework.services.plan import PlanService


@dataclass(frozen=True)
class ProjectProgressSummary:
    project_id: str
    name: str
    done: int
    total: int
    percent: int
    overdue_items: int


@dataclass(frozen=True)
class OutreachSummary:
    contacts: int
    open_follow_ups: int
    waiting_outreach: int
    outcomes_recorded: int
    overdue_follow_ups: int


@dataclass(frozen=True)
class DailySummary:
    date: str
    projects: list[ProjectProgressSummary]
    outreach: OutreachSummary

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_daily_summary(plan: PlanService, outreach: OutreachService, date: str) -> DailySummary:
    """Read-only roll-up of both services as of ``date`` (YYYY-MM-DD)."""
    overdue_by_project = Counter(item.project_id for item in overdue_plan_items(plan, date))
    projects = []
    for project in plan.projects:
        progress = plan.project_progress(project.id)
        projects.append(
            ProjectProgressSummary(
                project_id=project.id,
                name=project.name,
                done=progress.done,
                total=progress.total,
                percent=progress.percent,
                overdue_items=overdue_by_project[project.id],
            )
        )

    metrics = outreach.summary_metrics()
    return DailySummary(
        date=date,
        projects=projects,
        outreach=OutreachSummary(
            contacts=metrics.contacts,
            open_follow_ups=metrics.open_follow_ups,
            waiting_outreach=metrics.waiting_outreach,
            outcomes_recorded=metrics.outcomes_recorded,
            overdue_follow_ups=len(overdue_follow_ups(outreach, date)),
        ),
    )


def overdue_plan_items(plan: PlanService, date: str) -> list[PlanItem]:
    """Plan items due before ``date`` that are not done. Dropped items still count."""
    return [
        item
        for item in plan.plan_items
        if item.due_date is not None
        and item.due_date < date
        and item.status is not PlanItemStatus.DONE
    ]


def overdue_follow_ups(outreach: OutreachService, date: str) -> list[FollowUpItem]:
    return [f for f in outreach.open_follow_ups(date) if f.due_date < date]
