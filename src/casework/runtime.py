"""Runtime core: opens both services against one workspace and runs ticks.

A tick is a read-only daily summary plus first-sighting overdue flags, each
written once to the audit log. Flags already in the log are reloaded on open,
so separate runs never flag the same item twice. The loop that calls ``tick``
on an interval lives with the caller.
"""

from __future__ import annotations

import logging

from casework.config import StoreConfig
from casework.domain.models import record_to_dict
from casework.domain.stages import AuditEntityType, ChangeType
from casework.services.events import AuditEvent, EventLogger, read_events
from casework.services.outreach import OutreachService
from casework.services.plan import PlanService
from casework.services.summary import (
    DailySummary,
    build_daily_summary,
    overdue_follow_ups,
    overdue_plan_items,
)
from casework.services.utils import Clock, IdGenerator

logger = logging.getLogger(__name__)

OVERDUE_FLAG_DETAIL = "Overdue detected (first tick flag)"
FOLLOW_UP_FLAG_DETAIL = "Follow-up overdue detected (first tick flag)"


class RuntimeNotOpenError(RuntimeError):
    pass


class CaseworkRuntime:
    def __init__(self, store: StoreConfig, *, id_gen: IdGenerator, clock: Clock) -> None:
        self.store = store
        self._id_gen = id_gen
        self._clock = clock
        self._plan: PlanService | None = None
        self._outreach: OutreachService | None = None
        self._events: EventLogger | None = None
        self._flagged_plan_items: set[str] = set()
        self._flagged_follow_ups: set[str] = set()

    def open(self) -> CaseworkRuntime:
        self._events = EventLogger(path=self.store.audit_path, id_gen=self._id_gen, clock=self._clock)
        self._plan = PlanService.load(
            self.store.plan_path, id_gen=self._id_gen, clock=self._clock, audit=self._events
        )
        self._outreach = OutreachService.load(
            self.store.outreach_path, id_gen=self._id_gen, clock=self._clock, audit=self._events
        )
        self._load_flags()
        logger.info(
            "Runtime opened: %d projects, %d contacts.",
            len(self._plan.projects),
            len(self._outreach.contacts),
        )
        return self

    def _load_flags(self) -> None:
        """Rebuild the first-sighting sets from flags already in the audit log."""
        for record in read_events(self.store.audit_path):
            detail = record.get("detail")
            if detail == OVERDUE_FLAG_DETAIL:
                self._flagged_plan_items.add(record["entity_id"])
            elif detail == FOLLOW_UP_FLAG_DETAIL:
                self._flagged_follow_ups.add(record["entity_id"])

    @property
    def plan(self) -> PlanService:
        if self._plan is None:
            raise RuntimeNotOpenError("Runtime is not open.")
        return self._plan

    @property
    def outreach(self) -> OutreachService:
        if self._outreach is None:
            raise RuntimeNotOpenError("Runtime is not open.")
        return self._outreach

    def tick(self, current_date: str) -> DailySummary:
        if self._events is None:
            raise RuntimeNotOpenError("Runtime is not open.")
        summary = build_daily_summary(self.plan, self.outreach, current_date)

        for item in overdue_plan_items(self.plan, current_date):
            if item.id in self._flagged_plan_items:
                continue
            self._flagged_plan_items.add(item.id)
            self._events.log(
                AuditEvent(
                    entity_type=AuditEntityType.PLAN_ITEM,
                    change_type=ChangeType.UPDATE,
                    entity_id=item.id,
                    project_id=item.project_id,
                    after=record_to_dict(item),
                    detail=OVERDUE_FLAG_DETAIL,
                )
            )

        for follow_up in overdue_follow_ups(self.outreach, current_date):
            if follow_up.id in self._flagged_follow_ups:
                continue
            self._flagged_follow_ups.add(follow_up.id)
            self._events.log(
                AuditEvent(
                    entity_type=AuditEntityType.FOLLOW_UP_ITEM,
                    change_type=ChangeType.UPDATE,
                    entity_id=follow_up.id,
                    after=record_to_dict(follow_up),
                    detail=FOLLOW_UP_FLAG_DETAIL,
                )
            )
        return summary

    def shutdown(self) -> None:
        if self._plan is not None:
            self._plan.persist()
        if self._outreach is not None:
            self._outreach.persist()
        logger.info("Runtime shut down; snapshots flushed.")
