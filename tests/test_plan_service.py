import itertools
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from casework.domain.rules import MissingReferenceError, ValidationError
from casework.domain.stages import ChangeType, PlanItemPriority, PlanItemStatus
from casework.services.events import AuditWriteError, EventLogger
from casework.services.plan import CASCADE_DETAIL, PlanItemFilter, PlanService
from casework.services.templates import MDCR_TEMPLATE_NAME


def _ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


def _clock():
    ticks = itertools.count()
    start = datetime(2025, 11, 13, 9, 0, tzinfo=UTC)
    return lambda: (start + timedelta(seconds=next(ticks))).strftime("%Y-%m-%dT%H:%M:%SZ")


class _Recorder:
    def __init__(self) -> None:
        self.events = []

    def log(self, event) -> None:
        self.events.append(event)


class _FailingPersister:
    def persist(self, collections) -> None:
        raise OSError("disk full")


def _service(**kwargs) -> PlanService:
    return PlanService(id_gen=_ids(), clock=_clock(), **kwargs)


def _project(plan: PlanService, name: str = "MDCR Appeal"):
    return plan.create_project(
        {"name": name, "start_date": "2025-11-13", "target_end_date": "2025-11-24"}
    )


def _item(plan: PlanService, project_id: str, **overrides):
    data = {"project_id": project_id, "title": "Draft appeal outline", "category": "Drafting"}
    data.update(overrides)
    return plan.create_plan_item(data)


def test_new_project_has_zero_progress() -> None:
    plan = _service()
    project = _project(plan)
    progress = plan.project_progress(project.id)
    assert (progress.total, progress.done, progress.percent) == (0, 0, 0)
    assert project.status.value == "Active"
    assert project.color == "#888888"
    assert project.created_at == project.updated_at


def test_create_plan_item_forces_not_started() -> None:
    plan = _service()
    project = _project(plan)
    item = _item(plan, project.id, status="Done")
    assert item.status is PlanItemStatus.NOT_STARTED
    assert item.priority is PlanItemPriority.NORMAL
    assert item.due_date is None


def test_create_plan_item_issues_fresh_checklist_entries() -> None:
    plan = _service()
    project = _project(plan)
    item = _item(
        plan,
        project.id,
        checklist=["Police report", {"id": "given", "label": "Medical records", "checked": True}],
    )
    assert [c.label for c in item.checklist] == ["Police report", "Medical records"]
    assert all(not c.checked for c in item.checklist)
    assert "given" not in {c.id for c in item.checklist}


def test_create_plan_item_requires_existing_project() -> None:
    recorder = _Recorder()
    plan = _service(audit=recorder)
    with pytest.raises(MissingReferenceError):
        _item(plan, "missing-project")
    assert plan.plan_items == []
    assert recorder.events == []


def test_delete_project_cascades_with_n_plus_one_events() -> None:
    recorder = _Recorder()
    plan = _service(audit=recorder)
    project = _project(plan)
    other = _project(plan, "Other")
    for title in ("One", "Two", "Three"):
        _item(plan, project.id, title=title)
    survivor = _item(plan, other.id)
    recorder.events.clear()

    assert plan.delete_project(project.id) is True

    assert plan.plan_items == [survivor]
    assert len(recorder.events) == 4
    assert recorder.events[0].entity_id == project.id
    assert all(e.change_type is ChangeType.DELETE for e in recorder.events)
    assert all(e.detail == CASCADE_DETAIL for e in recorder.events[1:])


def test_missing_ids_are_not_errors() -> None:
    plan = _service()
    assert plan.update_project("nope", {"name": "x"}) is None
    assert plan.delete_project("nope") is False
    assert plan.update_plan_item("nope", {"title": "x"}) is None
    assert plan.delete_plan_item("nope") is False
    assert plan.toggle_checklist_item("nope", "nope", True) is False


def test_update_project_touches_only_supplied_fields() -> None:
    recorder = _Recorder()
    plan = _service(audit=recorder)
    project = _project(plan)
    updated = plan.update_project(project.id, {"status": "OnHold"})
    assert updated.status.value == "OnHold"
    assert updated.name == project.name
    assert updated.updated_at > project.updated_at
    event = recorder.events[-1]
    assert event.change_type is ChangeType.UPDATE
    assert event.before["status"] == "Active"
    assert event.after["status"] == "OnHold"


def test_update_rejects_immutable_fields() -> None:
    plan = _service()
    project = _project(plan)
    with pytest.raises(ValidationError) as excinfo:
        plan.update_project(project.id, {"id": "other", "created_at": "2020-01-01T00:00:00Z"})
    assert excinfo.value.errors == ["created_at: cannot be updated", "id: cannot be updated"]
    assert plan.get_project(project.id) == project


def test_update_plan_item_replaces_checklist() -> None:
    plan = _service()
    project = _project(plan)
    item = _item(plan, project.id, checklist=["Old step", "Dropped step"])
    kept = item.checklist[0]

    updated = plan.update_plan_item(
        item.id,
        {"checklist": [{"id": kept.id, "label": "Old step", "checked": True}, "New step"]},
    )

    assert len(updated.checklist) == 2
    assert updated.checklist[0].id == kept.id
    assert updated.checklist[0].checked is True
    assert updated.checklist[1].label == "New step"
    assert updated.checklist[1].id not in {c.id for c in item.checklist}
    assert updated.checklist[1].checked is False


def test_toggle_emits_checklist_toggle_event() -> None:
    recorder = _Recorder()
    plan = _service(audit=recorder)
    project = _project(plan)
    item = _item(plan, project.id, checklist=["File appeal"])
    entry = item.checklist[0]

    assert plan.toggle_checklist_item(item.id, entry.id, True) is True
    assert plan.toggle_checklist_item(item.id, "unknown", True) is False

    event = recorder.events[-1]
    assert event.change_type is ChangeType.CHECKLIST_TOGGLE
    assert event.before == {"id": entry.id, "label": "File appeal", "checked": False}
    assert event.after == {"id": entry.id, "label": "File appeal", "checked": True}


def test_toggle_survives_reload(tmp_path: Path) -> None:
    path = tmp_path / "master_plan.snapshot.json"
    plan = PlanService.load(path, id_gen=_ids(), clock=_clock())
    project = _project(plan)
    item = _item(plan, project.id, checklist=["File appeal"])
    plan.toggle_checklist_item(item.id, item.checklist[0].id, True)

    reloaded = PlanService.load(path, id_gen=_ids(), clock=_clock())
    stored = reloaded.get_plan_item(item.id)
    assert stored.checklist[0].id == item.checklist[0].id
    assert stored.checklist[0].checked is True
    assert stored.updated_at > stored.created_at


def test_mdcr_template_preload(tmp_path: Path) -> None:
    recorder = _Recorder()
    plan = PlanService.load(
        tmp_path / "master_plan.snapshot.json", id_gen=_ids(), clock=_clock(), audit=recorder
    )
    project = _project(plan)
    items = plan.preload_template(project.id, "2025-11-13")

    assert len(items) == 12
    assert [i.due_date for i in items] == [
        "2025-11-13",
        "2025-11-13",
        "2025-11-14",
        "2025-11-15",
        "2025-11-16",
        "2025-11-17",
        "2025-11-18",
        "2025-11-19",
        "2025-11-20",
        "2025-11-21",
        "2025-11-22",
        "2025-11-23",
    ]
    progress = plan.project_progress(project.id)
    assert (progress.total, progress.done, progress.percent) == (12, 0, 0)

    loads = [e for e in recorder.events if e.change_type is ChangeType.TEMPLATE_LOAD]
    assert len(loads) == 12
    assert all(e.detail == MDCR_TEMPLATE_NAME for e in loads)


def test_preload_unknown_project_fails() -> None:
    plan = _service()
    with pytest.raises(MissingReferenceError):
        plan.preload_template("missing", "2025-11-13")


def test_progress_rounds_to_nearest() -> None:
    plan = _service()
    project = _project(plan)
    items = [_item(plan, project.id, title=str(n)) for n in range(3)]
    plan.update_plan_item(items[0].id, {"status": "Done"})
    assert plan.project_progress(project.id).percent == 33
    plan.update_plan_item(items[1].id, {"status": "Done"})
    assert plan.project_progress(project.id).percent == 67


def test_filter_due_bounds_are_inclusive_and_skip_undated() -> None:
    plan = _service()
    project = _project(plan)
    early = _item(plan, project.id, title="Early", due_date="2025-11-10", priority="High")
    mid = _item(plan, project.id, title="Mid", due_date="2025-11-15")
    undated = _item(plan, project.id, title="Undated")

    assert plan.filter_plan_items() == [early, mid, undated]
    assert plan.filter_plan_items(PlanItemFilter(due_before="2025-11-15")) == [early, mid]
    assert plan.filter_plan_items(PlanItemFilter(due_after="2025-11-15")) == [mid]
    assert plan.filter_plan_items(PlanItemFilter(priority={PlanItemPriority.HIGH})) == [early]
    assert plan.filter_plan_items(PlanItemFilter(status={"Done"})) == []
    assert plan.filter_plan_items(PlanItemFilter(project_id="other")) == []


def test_failed_persist_leaves_memory_unchanged() -> None:
    recorder = _Recorder()
    plan = _service(persister=_FailingPersister(), audit=recorder)
    with pytest.raises(OSError):
        _project(plan)
    assert plan.projects == []
    assert recorder.events == []


def test_validation_failure_leaves_memory_unchanged() -> None:
    plan = _service()
    project = _project(plan)
    with pytest.raises(ValidationError):
        _item(plan, project.id, category="Nope", due_date="13/11/2025")
    assert plan.plan_items == []


def test_audit_failure_after_save(tmp_path: Path) -> None:
    path = tmp_path / "master_plan.snapshot.json"
    audit = EventLogger(path=tmp_path, id_gen=_ids(), clock=_clock())
    plan = PlanService.load(path, id_gen=_ids(), clock=_clock(), audit=audit)

    with pytest.raises(AuditWriteError) as excinfo:
        _project(plan)

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert [p["id"] for p in saved["projects"]] == [excinfo.value.entity_id]
    assert len(plan.projects) == 1
