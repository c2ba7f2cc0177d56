"""Outreach service: categories, contacts, outreach actions, follow-ups, outcomes.

Integrity rules:
    - a category cannot be deleted while a contact belongs to it;
    - a contact cannot be deleted while a follow-up or outcome points at it
      (including as the referred contact), or while a follow-up points at one
      of its outreach actions; its own outreach actions are cascade-deleted;
    - an outreach action cannot be deleted while a follow-up points at it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from casework.domain import rules, validators
from casework.domain.models import (
    Contact,
    ContactCategory,
    FollowUpItem,
    OutcomeRecord,
    OutreachAction,
    record_to_dict,
)
from casework.domain.rules import (
    IntegrityGuardError,
    MissingReferenceError,
    reject_unknown_fields,
    require_mapping,
)
from casework.domain.stages import (
    AuditEntityType,
    ChangeType,
    FollowUpStatus,
    OutreachOutcomeStatus,
)
from casework.services.events import AuditEvent, AuditSink, NullEventLogger
from casework.services.utils import Clock, IdGenerator
from casework.store.snapshot import (
    OUTREACH_LAYOUT,
    NullPersister,
    Persister,
    SnapshotPersister,
    load_snapshot,
)

CONTACT_CASCADE_DETAIL = "Cascade delete due to contact removal"

CATEGORY_UPDATABLE = frozenset({"name", "color", "tags"})
CONTACT_TEXT_FIELDS = (
    "organization",
    "contact_name",
    "role",
    "phone",
    "email",
    "mailing_address",
    "website_url",
)
CONTACT_UPDATABLE = frozenset({*CONTACT_TEXT_FIELDS, "category_id", "preferred_method", "tags"})
ACTION_UPDATABLE = frozenset(
    {
        "date",
        "method",
        "summary",
        "artifacts_sent",
        "linked_artifact_version",
        "outcome_status",
        "next_follow_up_date",
    }
)
FOLLOW_UP_UPDATABLE = frozenset({"outreach_action_id", "due_date", "status", "notes"})
OUTCOME_UPDATABLE = frozenset(
    {"final_status", "date_closed", "reason", "lesson_learned", "referred_contact_id"}
)


@dataclass(frozen=True)
class OutreachMetrics:
    contacts: int
    open_follow_ups: int
    waiting_outreach: int
    outcomes_recorded: int


class OutreachService:
    def __init__(
        self,
        *,
        id_gen: IdGenerator,
        clock: Clock,
        persister: Persister | None = None,
        audit: AuditSink | None = None,
        categories: Iterable[ContactCategory] = (),
        contacts: Iterable[Contact] = (),
        outreach_actions: Iterable[OutreachAction] = (),
        follow_ups: Iterable[FollowUpItem] = (),
        outcomes: Iterable[OutcomeRecord] = (),
    ) -> None:
        self._id_gen = id_gen
        self._clock = clock
        self._persister = persister or NullPersister()
        self._audit = audit or NullEventLogger()
        self._data: dict[str, dict[str, Any]] = {
            "categories": {c.id: c for c in categories},
            "contacts": {c.id: c for c in contacts},
            "outreach_actions": {a.id: a for a in outreach_actions},
            "follow_ups": {f.id: f for f in follow_ups},
            "outcomes": {o.id: o for o in outcomes},
        }

    @classmethod
    def load(
        cls,
        path: Path,
        *,
        id_gen: IdGenerator,
        clock: Clock,
        audit: AuditSink | None = None,
    ) -> OutreachService:
        snapshot = load_snapshot(path, OUTREACH_LAYOUT, clock)
        persister = SnapshotPersister(
            path=Path(path), layout=OUTREACH_LAYOUT, clock=clock, version=snapshot.version
        )
        return cls(id_gen=id_gen, clock=clock, persister=persister, audit=audit, **snapshot.collections)

    @property
    def categories(self) -> list[ContactCategory]:
        return list(self._data["categories"].values())

    @property
    def contacts(self) -> list[Contact]:
        return list(self._data["contacts"].values())

    @property
    def outreach_actions(self) -> list[OutreachAction]:
        return list(self._data["outreach_actions"].values())

    @property
    def follow_ups(self) -> list[FollowUpItem]:
        return list(self._data["follow_ups"].values())

    @property
    def outcomes(self) -> list[OutcomeRecord]:
        return list(self._data["outcomes"].values())

    def get_contact(self, contact_id: str) -> Contact | None:
        return self._data["contacts"].get(contact_id)

    def persist(self) -> None:
        self._persister.persist(self._collections(self._data))

    # Categories

    def create_category(self, data: Mapping[str, Any]) -> ContactCategory:
        data = require_mapping(data, "ContactCategory")
        now = self._clock()
        category = validators.parse_contact_category(
            {
                "id": self._id_gen(),
                "name": data.get("name"),
                "color": data.get("color"),
                "tags": data.get("tags") or [],
                "created_at": now,
                "updated_at": now,
            }
        )
        self._insert("categories", AuditEntityType.CONTACT_CATEGORY, category)
        return category

    def update_category(self, category_id: str, changes: Mapping[str, Any]) -> ContactCategory | None:
        return self._update(
            "categories",
            AuditEntityType.CONTACT_CATEGORY,
            category_id,
            changes,
            CATEGORY_UPDATABLE,
            validators.parse_contact_category,
            touch=True,
        )

    def delete_category(self, category_id: str) -> bool:
        category = self._data["categories"].get(category_id)
        if category is None:
            return False
        if any(c.category_id == category_id for c in self._data["contacts"].values()):
            raise IntegrityGuardError(
                f"Cannot delete category {category_id}: contacts still belong to it."
            )
        self._remove("categories", AuditEntityType.CONTACT_CATEGORY, category)
        return True

    # Contacts

    def create_contact(self, data: Mapping[str, Any]) -> Contact:
        data = require_mapping(data, "Contact")
        now = self._clock()
        raw: dict[str, Any] = {"id": self._id_gen(), "category_id": data.get("category_id")}
        for field in CONTACT_TEXT_FIELDS:
            raw[field] = data.get(field, "")
        raw.update(
            {
                "preferred_method": data.get("preferred_method"),
                "tags": data.get("tags") or [],
                "created_at": now,
                "updated_at": now,
            }
        )
        contact = validators.parse_contact(raw)
        self._require_category(contact.category_id)
        self._insert("contacts", AuditEntityType.CONTACT, contact)
        return contact

    def update_contact(self, contact_id: str, changes: Mapping[str, Any]) -> Contact | None:
        return self._update(
            "contacts",
            AuditEntityType.CONTACT,
            contact_id,
            changes,
            CONTACT_UPDATABLE,
            validators.parse_contact,
            touch=True,
            check=lambda contact: self._require_category(contact.category_id),
        )

    def delete_contact(self, contact_id: str) -> bool:
        """Delete a contact and cascade its outreach actions, unless guarded."""
        contact = self._data["contacts"].get(contact_id)
        if contact is None:
            return False
        actions = [a for a in self._data["outreach_actions"].values() if a.contact_id == contact_id]
        action_ids = {a.id for a in actions}
        blocked_by = [
            f.id
            for f in self._data["follow_ups"].values()
            if f.contact_id == contact_id or f.outreach_action_id in action_ids
        ]
        blocked_by += [
            o.id
            for o in self._data["outcomes"].values()
            if contact_id in (o.contact_id, o.referred_contact_id)
        ]
        if blocked_by:
            raise IntegrityGuardError(
                f"Cannot delete contact {contact_id}: referenced by follow-ups or outcomes "
                f"({', '.join(blocked_by)})."
            )
        contacts = {cid: c for cid, c in self._data["contacts"].items() if cid != contact_id}
        remaining = {
            aid: a for aid, a in self._data["outreach_actions"].items() if aid not in action_ids
        }
        self._commit(contacts=contacts, outreach_actions=remaining)
        self._emit(AuditEntityType.CONTACT, ChangeType.DELETE, contact_id, before=record_to_dict(contact))
        for action in actions:
            self._emit(
                AuditEntityType.OUTREACH_ACTION,
                ChangeType.DELETE,
                action.id,
                before=record_to_dict(action),
                detail=CONTACT_CASCADE_DETAIL,
            )
        return True

    def list_contacts_by_category(self, category_id: str) -> list[Contact]:
        return [c for c in self._data["contacts"].values() if c.category_id == category_id]

    # Outreach actions

    def record_outreach_action(self, data: Mapping[str, Any]) -> OutreachAction:
        data = require_mapping(data, "OutreachAction")
        now = self._clock()
        action = validators.parse_outreach_action(
            {
                "id": self._id_gen(),
                "contact_id": data.get("contact_id"),
                "date": data.get("date") or now,
                "method": data.get("method"),
                "summary": data.get("summary", ""),
                "artifacts_sent": data.get("artifacts_sent") or [],
                "linked_artifact_version": data.get("linked_artifact_version"),
                "outcome_status": data.get("outcome_status") or OutreachOutcomeStatus.NONE.value,
                "next_follow_up_date": data.get("next_follow_up_date"),
                "created_at": data.get("created_at") or now,
            }
        )
        self._require_contact(action.contact_id)
        self._insert("outreach_actions", AuditEntityType.OUTREACH_ACTION, action)
        return action

    def update_outreach_action(self, action_id: str, changes: Mapping[str, Any]) -> OutreachAction | None:
        return self._update(
            "outreach_actions",
            AuditEntityType.OUTREACH_ACTION,
            action_id,
            changes,
            ACTION_UPDATABLE,
            validators.parse_outreach_action,
            touch=False,
        )

    def delete_outreach_action(self, action_id: str) -> bool:
        action = self._data["outreach_actions"].get(action_id)
        if action is None:
            return False
        if any(f.outreach_action_id == action_id for f in self._data["follow_ups"].values()):
            raise IntegrityGuardError(
                f"Cannot delete outreach action {action_id}: follow-ups reference it."
            )
        self._remove("outreach_actions", AuditEntityType.OUTREACH_ACTION, action)
        return True

    # Follow-ups

    def create_follow_up(self, data: Mapping[str, Any]) -> FollowUpItem:
        data = require_mapping(data, "FollowUpItem")
        follow_up = validators.parse_follow_up_item(
            {
                "id": self._id_gen(),
                "contact_id": data.get("contact_id"),
                "outreach_action_id": data.get("outreach_action_id"),
                "due_date": data.get("due_date"),
                "status": FollowUpStatus.OPEN.value,
                "notes": data.get("notes", ""),
                "created_at": self._clock(),
            }
        )
        self._check_follow_up_refs(follow_up)
        self._insert("follow_ups", AuditEntityType.FOLLOW_UP_ITEM, follow_up)
        return follow_up

    def update_follow_up(self, follow_up_id: str, changes: Mapping[str, Any]) -> FollowUpItem | None:
        return self._update(
            "follow_ups",
            AuditEntityType.FOLLOW_UP_ITEM,
            follow_up_id,
            changes,
            FOLLOW_UP_UPDATABLE,
            validators.parse_follow_up_item,
            touch=False,
            check=self._check_follow_up_refs,
        )

    def set_follow_up_status(self, follow_up_id: str, status: str) -> FollowUpItem | None:
        return self.update_follow_up(follow_up_id, {"status": status})

    def delete_follow_up(self, follow_up_id: str) -> bool:
        follow_up = self._data["follow_ups"].get(follow_up_id)
        if follow_up is None:
            return False
        self._remove("follow_ups", AuditEntityType.FOLLOW_UP_ITEM, follow_up)
        return True

    # Outcomes

    def record_outcome(self, data: Mapping[str, Any]) -> OutcomeRecord:
        data = require_mapping(data, "OutcomeRecord")
        outcome = validators.parse_outcome_record(
            {
                "id": self._id_gen(),
                "contact_id": data.get("contact_id"),
                "final_status": data.get("final_status"),
                "date_closed": data.get("date_closed"),
                "reason": data.get("reason", ""),
                "lesson_learned": data.get("lesson_learned", ""),
                "referred_contact_id": data.get("referred_contact_id"),
                "created_at": self._clock(),
            }
        )
        self._check_outcome_refs(outcome)
        self._insert("outcomes", AuditEntityType.OUTCOME_RECORD, outcome)
        return outcome

    def update_outcome(self, outcome_id: str, changes: Mapping[str, Any]) -> OutcomeRecord | None:
        return self._update(
            "outcomes",
            AuditEntityType.OUTCOME_RECORD,
            outcome_id,
            changes,
            OUTCOME_UPDATABLE,
            validators.parse_outcome_record,
            touch=False,
            check=self._check_outcome_refs,
        )

    def delete_outcome(self, outcome_id: str) -> bool:
        outcome = self._data["outcomes"].get(outcome_id)
        if outcome is None:
            return False
        self._remove("outcomes", AuditEntityType.OUTCOME_RECORD, outcome)
        return True

    # Queries

    def open_follow_ups(self, as_of: str) -> list[FollowUpItem]:
        errors: list[str] = []
        rules.check_date(as_of, "as_of", errors)
        if errors:
            raise rules.ValidationError(errors)
        return [
            f
            for f in self._data["follow_ups"].values()
            if f.status is FollowUpStatus.OPEN and f.due_date <= as_of
        ]

    def contact_outreach_history(self, contact_id: str) -> list[OutreachAction]:
        actions = [a for a in self._data["outreach_actions"].values() if a.contact_id == contact_id]
        return sorted(actions, key=lambda a: a.date)

    def outstanding_waiting_responses(self) -> list[OutreachAction]:
        return [
            a
            for a in self._data["outreach_actions"].values()
            if a.outcome_status is OutreachOutcomeStatus.WAITING
        ]

    def summary_metrics(self) -> OutreachMetrics:
        return OutreachMetrics(
            contacts=len(self._data["contacts"]),
            open_follow_ups=sum(
                1 for f in self._data["follow_ups"].values() if f.status is FollowUpStatus.OPEN
            ),
            waiting_outreach=len(self.outstanding_waiting_responses()),
            outcomes_recorded=len(self._data["outcomes"]),
        )

    # Internals

    def _require_category(self, category_id: str) -> None:
        if category_id not in self._data["categories"]:
            raise MissingReferenceError(f"Category not found: {category_id}")

    def _require_contact(self, contact_id: str, label: str = "Contact") -> None:
        if contact_id not in self._data["contacts"]:
            raise MissingReferenceError(f"{label} not found: {contact_id}")

    def _check_follow_up_refs(self, follow_up: FollowUpItem) -> None:
        self._require_contact(follow_up.contact_id)
        action_id = follow_up.outreach_action_id
        if action_id is not None and action_id not in self._data["outreach_actions"]:
            raise MissingReferenceError(f"Outreach action not found: {action_id}")

    def _check_outcome_refs(self, outcome: OutcomeRecord) -> None:
        self._require_contact(outcome.contact_id)
        if outcome.referred_contact_id is not None:
            self._require_contact(outcome.referred_contact_id, "Referred contact")

    def _insert(self, key: str, entity_type: AuditEntityType, record: Any) -> None:
        self._commit(**{key: {**self._data[key], record.id: record}})
        self._emit(entity_type, ChangeType.CREATE, record.id, after=record_to_dict(record))

    def _update(
        self,
        key: str,
        entity_type: AuditEntityType,
        record_id: str,
        changes: Mapping[str, Any],
        allowed: frozenset[str],
        parse: Callable[[Any], Any],
        *,
        touch: bool,
        check: Callable[[Any], None] | None = None,
    ) -> Any:
        current = self._data[key].get(record_id)
        if current is None:
            return None
        changes = require_mapping(changes, entity_type.value)
        reject_unknown_fields(changes, allowed, entity_type.value)
        raw = {**record_to_dict(current), **changes}
        if touch:
            raw["updated_at"] = self._clock()
        updated = parse(raw)
        if check is not None:
            check(updated)
        self._commit(**{key: {**self._data[key], record_id: updated}})
        self._emit(
            entity_type,
            ChangeType.UPDATE,
            record_id,
            before=record_to_dict(current),
            after=record_to_dict(updated),
        )
        return updated

    def _remove(self, key: str, entity_type: AuditEntityType, record: Any) -> None:
        remaining = {rid: r for rid, r in self._data[key].items() if rid != record.id}
        self._commit(**{key: remaining})
        self._emit(entity_type, ChangeType.DELETE, record.id, before=record_to_dict(record))

    def _commit(self, **replacements: dict[str, Any]) -> None:
        staged = {**self._data, **replacements}
        self._persister.persist(self._collections(staged))
        self._data = staged

    @staticmethod
    def _collections(data: Mapping[str, dict[str, Any]]) -> dict[str, list[Any]]:
        return {key: list(records.values()) for key, records in data.items()}

    def _emit(
        self, entity_type: AuditEntityType, change_type: ChangeType, entity_id: str, **fields: Any
    ) -> None:
        self._audit.log(
            AuditEvent(entity_type=entity_type, change_type=change_type, entity_id=entity_id, **fields)
        )
