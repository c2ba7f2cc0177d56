"""Master plan service: projects, plan items, checklists and template preload.

The service owns its collections. Every mutation parses its input, stages
the next collection set, hands it to the persister, and only then swaps it
into memory, so a failed call leaves the service unchanged. Audit events
are written after the swap.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from casework.domain import validators
from casework.domain.models import PlanItem, Project, record_to_dict
from casework.domain.rules import (
    MissingReferenceError,
    ValidationError,
    reject_unknown_fields,
    require_mapping,
)
from casework.domain.stages import (
    AuditEntityType,
    ChangeType,
    PlanItemPriority,
    PlanItemStatus,
    ProjectStatus,
)
from casework.services.events import AuditEvent, AuditSink, NullEventLogger
from casework.services.templates import (
    MDCR_TEMPLATE,
    MDCR_TEMPLATE_NAME,
    TemplateStep,
    expand_template,
)
from casework.services.utils import Clock, IdGenerator
from casework.store.snapshot import (
    PLAN_LAYOUT,
    NullPersister,
    Persister,
    SnapshotPersister,
    load_snapshot,
)

DEFAULT_PROJECT_COLOR = "#888888"
CASCADE_DETAIL = "Cascade delete due to project removal"

PROJECT_UPDATABLE = frozenset(
    {"name", "description", "status", "start_date", "target_end_date", "color"}
)
PLAN_ITEM_UPDATABLE = frozenset(
    {"title", "description", "category", "status", "due_date", "priority", "checklist", "notes"}
)


@dataclass(frozen=True)
class PlanItemFilter:
    project_id: str | None = None
    status: Collection[str] | None = None
    category: Collection[str] | None = None
    priority: Collection[str] | None = None
    due_before: str | None = None
    due_after: str | None = None


@dataclass(frozen=True)
class ProjectProgress:
    total: int
    done: int
    percent: int


class PlanService:
    def __init__(
        self,
        *,
        id_gen: IdGenerator,
        clock: Clock,
        persister: Persister | None = None,
        audit: AuditSink | None = None,
        projects: Iterable[Project] = (),
        plan_items: Iterable[PlanItem] = (),
    ) -> None:
        self._id_gen = id_gen
        self._clock = clock
        self._persister = persister or NullPersister()
        self._audit = audit or NullEventLogger()
        self._projects: dict[str, Project] = {p.id: p for p in projects}
        self._plan_items: dict[str, PlanItem] = {pi.id: pi for pi in plan_items}

    @classmethod
    def load(
        cls,
        path: Path,
        *,
        id_gen: IdGenerator,
        clock: Clock,
        audit: AuditSink | None = None,
    ) -> PlanService:
        """Hydrate from a snapshot file and persist back to it after each change."""
        snapshot = load_snapshot(path, PLAN_LAYOUT, clock)
        persister = SnapshotPersister(
            path=Path(path), layout=PLAN_LAYOUT, clock=clock, version=snapshot.version
        )
        return cls(
            id_gen=id_gen,
            clock=clock,
            persister=persister,
            audit=audit,
            projects=snapshot.collections["projects"],
            plan_items=snapshot.collections["plan_items"],
        )

    @property
    def projects(self) -> list[Project]:
        return list(self._projects.values())

    @property
    def plan_items(self) -> list[PlanItem]:
        return list(self._plan_items.values())

    def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    def get_plan_item(self, plan_item_id: str) -> PlanItem | None:
        return self._plan_items.get(plan_item_id)

    def persist(self) -> None:
        self._persister.persist(self._collections(self._projects, self._plan_items))

    # Projects

    def create_project(self, data: Mapping[str, Any]) -> Project:
        data = require_mapping(data, "Project")
        now = self._clock()
        project = validators.parse_project(
            {
                "id": self._id_gen(),
                "name": data.get("name"),
                "description": data.get("description", ""),
                "status": ProjectStatus.ACTIVE.value,
                "start_date": data.get("start_date"),
                "target_end_date": data.get("target_end_date"),
                "color": data.get("color") or DEFAULT_PROJECT_COLOR,
                "created_at": now,
                "updated_at": now,
            }
        )
        projects = {**self._projects, project.id: project}
        self._commit(projects, self._plan_items)
        self._emit(AuditEntityType.PROJECT, ChangeType.CREATE, project.id, after=record_to_dict(project))
        return project

    def update_project(self, project_id: str, changes: Mapping[str, Any]) -> Project | None:
        current = self._projects.get(project_id)
        if current is None:
            return None
        changes = require_mapping(changes, "Project")
        reject_unknown_fields(changes, PROJECT_UPDATABLE, "Project")
        updated = validators.parse_project(
            {**record_to_dict(current), **changes, "updated_at": self._clock()}
        )
        projects = {**self._projects, project_id: updated}
        self._commit(projects, self._plan_items)
        self._emit(
            AuditEntityType.PROJECT,
            ChangeType.UPDATE,
            project_id,
            before=record_to_dict(current),
            after=record_to_dict(updated),
        )
        return updated

    def delete_project(self, project_id: str) -> bool:
        """Remove a project and cascade to every plan item that belongs to it."""
        current = self._projects.get(project_id)
        if current is None:
            return False
        removed = [pi for pi in self._plan_items.values() if pi.project_id == project_id]
        projects = {pid: p for pid, p in self._projects.items() if pid != project_id}
        plan_items = {
            iid: pi for iid, pi in self._plan_items.items() if pi.project_id != project_id
        }
        self._commit(projects, plan_items)
        self._emit(
            AuditEntityType.PROJECT, ChangeType.DELETE, project_id, before=record_to_dict(current)
        )
        for item in removed:
            self._emit(
                AuditEntityType.PLAN_ITEM,
                ChangeType.DELETE,
                item.id,
                project_id=project_id,
                before=record_to_dict(item),
                detail=CASCADE_DETAIL,
            )
        return True

    # Plan items

    def create_plan_item(self, data: Mapping[str, Any]) -> PlanItem:
        data = require_mapping(data, "PlanItem")
        now = self._clock()
        checklist = data.get("checklist") or []
        if isinstance(checklist, (list, tuple)):
            checklist = [self._checklist_entry(entry, keep_state=False) for entry in checklist]
        item = validators.parse_plan_item(
            {
                "id": self._id_gen(),
                "project_id": data.get("project_id"),
                "title": data.get("title"),
                "description": data.get("description", ""),
                "category": data.get("category"),
                "status": PlanItemStatus.NOT_STARTED.value,
                "due_date": data.get("due_date"),
                "priority": data.get("priority", PlanItemPriority.NORMAL.value),
                "checklist": checklist,
                "notes": data.get("notes") or "",
                "created_at": now,
                "updated_at": now,
            }
        )
        if item.project_id not in self._projects:
            raise MissingReferenceError(f"Project not found: {item.project_id}")
        plan_items = {**self._plan_items, item.id: item}
        self._commit(self._projects, plan_items)
        self._emit(
            AuditEntityType.PLAN_ITEM,
            ChangeType.CREATE,
            item.id,
            project_id=item.project_id,
            after=record_to_dict(item),
        )
        return item

    def update_plan_item(self, plan_item_id: str, changes: Mapping[str, Any]) -> PlanItem | None:
        """Apply supplied fields; a supplied checklist replaces the whole list."""
        current = self._plan_items.get(plan_item_id)
        if current is None:
            return None
        changes = dict(require_mapping(changes, "PlanItem"))
        reject_unknown_fields(changes, PLAN_ITEM_UPDATABLE, "PlanItem")
        if isinstance(changes.get("checklist"), (list, tuple)):
            changes["checklist"] = [
                self._checklist_entry(entry, keep_state=True) for entry in changes["checklist"]
            ]
        updated = validators.parse_plan_item(
            {**record_to_dict(current), **changes, "updated_at": self._clock()}
        )
        plan_items = {**self._plan_items, plan_item_id: updated}
        self._commit(self._projects, plan_items)
        self._emit(
            AuditEntityType.PLAN_ITEM,
            ChangeType.UPDATE,
            plan_item_id,
            project_id=updated.project_id,
            before=record_to_dict(current),
            after=record_to_dict(updated),
        )
        return updated

    def delete_plan_item(self, plan_item_id: str) -> bool:
        current = self._plan_items.get(plan_item_id)
        if current is None:
            return False
        plan_items = {iid: pi for iid, pi in self._plan_items.items() if iid != plan_item_id}
        self._commit(self._projects, plan_items)
        self._emit(
            AuditEntityType.PLAN_ITEM,
            ChangeType.DELETE,
            plan_item_id,
            project_id=current.project_id,
            before=record_to_dict(current),
        )
        return True

    def toggle_checklist_item(self, plan_item_id: str, checklist_item_id: str, checked: bool) -> bool:
        item = self._plan_items.get(plan_item_id)
        if item is None:
            return False
        index = next((i for i, c in enumerate(item.checklist) if c.id == checklist_item_id), None)
        if index is None:
            return False
        if not isinstance(checked, bool):
            raise ValidationError(["checked: must be boolean"], "ChecklistItem")
        before = item.checklist[index]
        after = replace(before, checked=checked)
        checklist = item.checklist[:index] + (after,) + item.checklist[index + 1 :]
        updated = replace(item, checklist=checklist, updated_at=self._clock())
        plan_items = {**self._plan_items, plan_item_id: updated}
        self._commit(self._projects, plan_items)
        self._emit(
            AuditEntityType.PLAN_ITEM,
            ChangeType.CHECKLIST_TOGGLE,
            plan_item_id,
            project_id=updated.project_id,
            before=record_to_dict(before),
            after=record_to_dict(after),
            detail="Checklist item toggled",
        )
        return True

    def preload_template(
        self,
        project_id: str,
        start_date: str,
        steps: tuple[TemplateStep, ...] = MDCR_TEMPLATE,
    ) -> list[PlanItem]:
        if project_id not in self._projects:
            raise MissingReferenceError(f"Project not found: {project_id}")
        inputs = expand_template(project_id, start_date, steps)
        created = [self.create_plan_item(data) for data in inputs]
        for item in created:
            self._emit(
                AuditEntityType.PLAN_ITEM,
                ChangeType.TEMPLATE_LOAD,
                item.id,
                project_id=project_id,
                after=record_to_dict(item),
                detail=MDCR_TEMPLATE_NAME,
            )
        return created

    # Queries

    def filter_plan_items(self, criteria: PlanItemFilter | None = None) -> list[PlanItem]:
        criteria = criteria or PlanItemFilter()
        statuses = _values(criteria.status)
        categories = _values(criteria.category)
        priorities = _values(criteria.priority)
        bounded = criteria.due_before is not None or criteria.due_after is not None
        matches: list[PlanItem] = []
        for item in self._plan_items.values():
            if criteria.project_id is not None and item.project_id != criteria.project_id:
                continue
            if statuses is not None and item.status.value not in statuses:
                continue
            if categories is not None and item.category.value not in categories:
                continue
            if priorities is not None and item.priority.value not in priorities:
                continue
            if bounded:
                if item.due_date is None:
                    continue
                if criteria.due_before is not None and item.due_date > criteria.due_before:
                    continue
                if criteria.due_after is not None and item.due_date < criteria.due_after:
                    continue
            matches.append(item)
        return matches

    def project_progress(self, project_id: str) -> ProjectProgress:
        items = [pi for pi in self._plan_items.values() if pi.project_id == project_id]
        total = len(items)
        done = sum(1 for pi in items if pi.status is PlanItemStatus.DONE)
        percent = 0 if total == 0 else math.floor(done * 100 / total + 0.5)
        return ProjectProgress(total=total, done=done, percent=percent)

    # Internals

    def _checklist_entry(self, entry: Any, *, keep_state: bool) -> Any:
        if isinstance(entry, str):
            entry = {"label": entry}
        if not isinstance(entry, Mapping):
            return entry
        return {
            "id": (entry.get("id") if keep_state else None) or self._id_gen(),
            "label": entry.get("label"),
            "checked": entry.get("checked", False) if keep_state else False,
        }

    def _commit(self, projects: dict[str, Project], plan_items: dict[str, PlanItem]) -> None:
        self._persister.persist(self._collections(projects, plan_items))
        self._projects = projects
        self._plan_items = plan_items

    @staticmethod
    def _collections(
        projects: dict[str, Project], plan_items: dict[str, PlanItem]
    ) -> dict[str, list[Any]]:
        return {"projects": list(projects.values()), "plan_items": list(plan_items.values())}

    def _emit(
        self, entity_type: AuditEntityType, change_type: ChangeType, entity_id: str, **fields: Any
    ) -> None:
        self._audit.log(
            AuditEvent(entity_type=entity_type, change_type=change_type, entity_id=entity_id, **fields)
        )


def _values(selection: Collection[str] | None) -> set[str] | None:
    if selection is None:
        return None
    return {item.value if isinstance(item, Enum) else item for item in selection}
