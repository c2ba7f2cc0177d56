import itertools
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from casework.domain.rules import IntegrityGuardError, MissingReferenceError, ValidationError
from casework.domain.stages import (
    ChangeType,
    FollowUpStatus,
    OutreachOutcomeStatus,
    PreferredContactMethod,
)
from casework.services.outreach import CONTACT_CASCADE_DETAIL, OutreachService


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


def _service(**kwargs) -> OutreachService:
    return OutreachService(id_gen=_ids(), clock=_clock(), **kwargs)


def _contact(outreach: OutreachService, category_name: str = "Media", **overrides):
    category = outreach.create_category({"name": category_name, "color": "#336699"})
    data = {
        "category_id": category.id,
        "organization": "Detroit Free Press",
        "contact_name": "News desk",
        "preferred_method": "Email",
    }
    data.update(overrides)
    return category, outreach.create_contact(data)


def _action(outreach: OutreachService, contact_id: str, **overrides):
    data = {"contact_id": contact_id, "method": "Email", "summary": "Sent intro packet"}
    data.update(overrides)
    return outreach.record_outreach_action(data)


def test_media_scenario_defaults_outcome_status() -> None:
    outreach = _service()
    category, contact = _contact(outreach)
    action = _action(outreach, contact.id)

    assert contact.category_id == category.id
    assert contact.preferred_method is PreferredContactMethod.EMAIL
    assert action.outcome_status is OutreachOutcomeStatus.NONE
    assert action.date == action.created_at
    metrics = outreach.summary_metrics()
    assert metrics.contacts == 1
    assert metrics.waiting_outreach == 0


def test_waiting_actions_are_counted() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    waiting = _action(outreach, contact.id, outcome_status="Waiting")
    _action(outreach, contact.id, outcome_status="Positive")
    assert outreach.outstanding_waiting_responses() == [waiting]
    assert outreach.summary_metrics().waiting_outreach == 1


def test_contact_requires_existing_category() -> None:
    outreach = _service()
    with pytest.raises(MissingReferenceError):
        outreach.create_contact(
            {"category_id": "missing", "organization": "Org", "preferred_method": "Call"}
        )
    assert outreach.contacts == []


def test_delete_category_guarded_by_contacts() -> None:
    outreach = _service()
    category, contact = _contact(outreach)
    with pytest.raises(IntegrityGuardError):
        outreach.delete_category(category.id)
    assert outreach.categories == [category]
    assert outreach.contacts == [contact]


def test_delete_empty_category() -> None:
    recorder = _Recorder()
    outreach = _service(audit=recorder)
    category = outreach.create_category({"name": "Legal aid", "color": "#000000"})
    assert outreach.delete_category(category.id) is True
    assert outreach.delete_category(category.id) is False
    assert recorder.events[-1].change_type is ChangeType.DELETE


def test_delete_contact_cascades_actions() -> None:
    recorder = _Recorder()
    outreach = _service(audit=recorder)
    _, contact = _contact(outreach)
    first = _action(outreach, contact.id)
    second = _action(outreach, contact.id)
    recorder.events.clear()

    assert outreach.delete_contact(contact.id) is True

    assert outreach.contacts == []
    assert outreach.outreach_actions == []
    assert [e.entity_id for e in recorder.events] == [contact.id, first.id, second.id]
    assert [e.detail for e in recorder.events[1:]] == [CONTACT_CASCADE_DETAIL] * 2


def test_delete_contact_guarded_by_follow_up() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    action = _action(outreach, contact.id)
    outreach.create_follow_up({"contact_id": contact.id, "due_date": "2025-11-20"})
    with pytest.raises(IntegrityGuardError):
        outreach.delete_contact(contact.id)
    assert outreach.contacts == [contact]
    assert outreach.outreach_actions == [action]


def test_delete_contact_guarded_by_referral() -> None:
    outreach = _service()
    category, referred = _contact(outreach)
    other = outreach.create_contact(
        {"category_id": category.id, "organization": "ACLU", "preferred_method": "Form"}
    )
    outreach.record_outcome(
        {
            "contact_id": other.id,
            "final_status": "NotFit",
            "date_closed": "2025-11-20",
            "referred_contact_id": referred.id,
        }
    )
    with pytest.raises(IntegrityGuardError):
        outreach.delete_contact(referred.id)


def test_follow_up_references_must_exist() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    with pytest.raises(MissingReferenceError):
        outreach.create_follow_up({"contact_id": "missing", "due_date": "2025-11-20"})
    with pytest.raises(MissingReferenceError):
        outreach.create_follow_up(
            {"contact_id": contact.id, "outreach_action_id": "missing", "due_date": "2025-11-20"}
        )
    assert outreach.follow_ups == []


def test_outcome_referred_contact_must_exist() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    with pytest.raises(MissingReferenceError) as excinfo:
        outreach.record_outcome(
            {
                "contact_id": contact.id,
                "final_status": "Declined",
                "date_closed": "2025-11-20",
                "referred_contact_id": "missing",
            }
        )
    assert "Referred contact not found" in str(excinfo.value)


def test_action_delete_guarded_by_follow_up() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    action = _action(outreach, contact.id)
    follow_up = outreach.create_follow_up(
        {"contact_id": contact.id, "outreach_action_id": action.id, "due_date": "2025-11-20"}
    )
    with pytest.raises(IntegrityGuardError):
        outreach.delete_outreach_action(action.id)
    assert outreach.delete_follow_up(follow_up.id) is True
    assert outreach.delete_outreach_action(action.id) is True


def test_follow_up_status_changes() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    follow_up = outreach.create_follow_up({"contact_id": contact.id, "due_date": "2025-11-20"})
    assert follow_up.status is FollowUpStatus.OPEN

    done = outreach.set_follow_up_status(follow_up.id, "Completed")
    assert done.status is FollowUpStatus.COMPLETED
    with pytest.raises(ValidationError):
        outreach.set_follow_up_status(follow_up.id, "Done")
    assert outreach.set_follow_up_status("missing", "Open") is None


def test_open_follow_ups_as_of() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    due = outreach.create_follow_up({"contact_id": contact.id, "due_date": "2025-11-15"})
    today = outreach.create_follow_up({"contact_id": contact.id, "due_date": "2025-11-16"})
    outreach.create_follow_up({"contact_id": contact.id, "due_date": "2025-11-30"})
    closed = outreach.create_follow_up({"contact_id": contact.id, "due_date": "2025-11-01"})
    outreach.set_follow_up_status(closed.id, "Cancelled")

    assert outreach.open_follow_ups("2025-11-16") == [due, today]
    with pytest.raises(ValidationError):
        outreach.open_follow_ups("Nov 16")


def test_history_sorted_by_date() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    late = _action(outreach, contact.id, date="2025-11-18T10:00:00Z")
    early = _action(outreach, contact.id, date="2025-11-14T10:00:00Z")
    assert outreach.contact_outreach_history(contact.id) == [early, late]


def test_update_contact_checks_fields_and_category() -> None:
    outreach = _service()
    _, contact = _contact(outreach)
    updated = outreach.update_contact(contact.id, {"phone": " 313-555-0100 ", "tags": ["press"]})
    assert updated.phone == "313-555-0100"
    assert updated.tags == ("press",)
    assert updated.updated_at > contact.updated_at

    with pytest.raises(ValidationError):
        outreach.update_contact(contact.id, {"created_at": "2020-01-01T00:00:00Z"})
    with pytest.raises(MissingReferenceError):
        outreach.update_contact(contact.id, {"category_id": "missing"})
    assert outreach.get_contact(contact.id) == updated


def test_state_survives_reload(tmp_path: Path) -> None:
    path = tmp_path / "outreach.snapshot.json"
    outreach = OutreachService.load(path, id_gen=_ids(), clock=_clock())
    _, contact = _contact(outreach)
    action = _action(outreach, contact.id, artifacts_sent=["letter-v1"])
    outreach.create_follow_up(
        {"contact_id": contact.id, "outreach_action_id": action.id, "due_date": "2025-11-20"}
    )

    reloaded = OutreachService.load(path, id_gen=_ids(), clock=_clock())
    assert reloaded.contacts == outreach.contacts
    assert reloaded.outreach_actions == [action]
    assert reloaded.outreach_actions[0].artifacts_sent == ("letter-v1",)
    assert reloaded.follow_ups == outreach.follow_ups


def test_secondary_updates_and_deletes() -> None:
    outreach = _service()
    category, contact = _contact(outreach)
    assert outreach.list_contacts_by_category(category.id) == [contact]

    renamed = outreach.update_category(category.id, {"name": " Press ", "tags": ["tv"]})
    assert renamed.name == "Press"
    assert renamed.tags == ("tv",)

    action = _action(outreach, contact.id)
    answered = outreach.update_outreach_action(action.id, {"outcome_status": "Positive"})
    assert answered.outcome_status is OutreachOutcomeStatus.POSITIVE
    assert answered.created_at == action.created_at

    outcome = outreach.record_outcome(
        {"contact_id": contact.id, "final_status": "CompletedHelp", "date_closed": "2025-11-21"}
    )
    assert outcome.referred_contact_id is None
    revised = outreach.update_outcome(outcome.id, {"lesson_learned": "Call first"})
    assert revised.lesson_learned == "Call first"
    assert outreach.delete_outcome(outcome.id) is True
    assert outreach.delete_outcome(outcome.id) is False
    assert outreach.summary_metrics().outcomes_recorded == 0
