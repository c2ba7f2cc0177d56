from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, is_dataclass
from pathlib import Path
from typing import Any, Protocol

from casework.domain import validators
from casework.domain.models import record_to_dict
from casework.domain.rules import ValidationError, is_iso_datetime
from casework.services.utils import Clock

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class Collection:
    key: str
    label: str
    parse: Callable[[Any], Any]


@dataclass(frozen=True)
class SnapshotLayout:
    name: str
    collections: tuple[Collection, ...]

    @property
    def keys(self) -> list[str]:
        return [collection.key for collection in self.collections]


PLAN_LAYOUT = SnapshotLayout(
    name="master plan",
    collections=(
        Collection("projects", "Project", validators.parse_project),
        Collection("plan_items", "PlanItem", validators.parse_plan_item),
    ),
)

OUTREACH_LAYOUT = SnapshotLayout(
    name="outreach",
    collections=(
        Collection("categories", "Category", validators.parse_contact_category),
        Collection("contacts", "Contact", validators.parse_contact),
        Collection("outreach_actions", "OutreachAction", validators.parse_outreach_action),
        Collection("follow_ups", "FollowUp", validators.parse_follow_up_item),
        Collection("outcomes", "Outcome", validators.parse_outcome_record),
    ),
)


@dataclass(frozen=True)
class Snapshot:
    version: int
    updated_at: str
    collections: dict[str, list[Any]]


class SnapshotError(RuntimeError):
    pass


class Persister(Protocol):
    def persist(self, collections: Mapping[str, Sequence[Any]]) -> None: ...


class NullPersister:
    def persist(self, collections: Mapping[str, Sequence[Any]]) -> None:
        return None


@dataclass
class SnapshotPersister:
    """Writes the full collection set to ``path``, keeping the loaded version."""

    path: Path
    layout: SnapshotLayout
    clock: Clock
    version: int = SNAPSHOT_VERSION

    def persist(self, collections: Mapping[str, Sequence[Any]]) -> None:
        snapshot = Snapshot(
            version=self.version,
            updated_at=self.clock(),
            collections={key: list(collections.get(key, [])) for key in self.layout.keys},
        )
        save_snapshot(snapshot, self.path, self.layout)


def empty_snapshot(layout: SnapshotLayout, clock: Clock) -> Snapshot:
    return Snapshot(
        version=SNAPSHOT_VERSION,
        updated_at=clock(),
        collections={key: [] for key in layout.keys},
    )


def load_snapshot(path: Path, layout: SnapshotLayout, clock: Clock) -> Snapshot:
    """Read and re-validate a snapshot; a missing file is an empty dataset."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("No %s snapshot at %s; starting empty.", layout.name, path)
        return empty_snapshot(layout, clock)
    except UnicodeDecodeError as exc:
        raise SnapshotError(f"Failed to load {layout.name} snapshot {path}: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Failed to load {layout.name} snapshot {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SnapshotError(f"Failed to load {layout.name} snapshot {path}: root is not an object.")

    version = data.get("version", SNAPSHOT_VERSION)
    if not isinstance(version, int) or isinstance(version, bool):
        raise SnapshotError(f"Failed to load {layout.name} snapshot {path}: version must be an integer.")
    updated_at = data.get("updated_at")
    if updated_at is None:
        updated_at = clock()
    elif not is_iso_datetime(updated_at):
        raise SnapshotError(
            f"Failed to load {layout.name} snapshot {path}: updated_at must be an ISO timestamp."
        )

    raw_collections: dict[str, Any] = {}
    for key in layout.keys:
        raw = data.get(key, [])
        if not isinstance(raw, list):
            raise SnapshotError(f"Failed to load {layout.name} snapshot {path}: {key} must be a list.")
        raw_collections[key] = raw

    try:
        collections = validate_collections(raw_collections, layout)
    except ValidationError as exc:
        raise SnapshotError(f"Failed to load {layout.name} snapshot {path}: {exc}") from exc
    return Snapshot(version=version, updated_at=updated_at, collections=collections)


def save_snapshot(snapshot: Snapshot, path: Path, layout: SnapshotLayout) -> None:
    collections = validate_collections(snapshot.collections, layout)
    payload: dict[str, Any] = {"version": snapshot.version, "updated_at": snapshot.updated_at}
    for key in layout.keys:
        payload[key] = [record_to_dict(record) for record in collections[key]]
    atomic_write_text(Path(path), json.dumps(payload, indent=2) + "\n")
    logger.debug("Saved %s snapshot to %s", layout.name, path)


def validate_collections(
    collections: Mapping[str, Sequence[Any]], layout: SnapshotLayout
) -> dict[str, list[Any]]:
    """Re-parse every record; errors carry ``Label[index]`` attribution."""
    errors: list[str] = []
    validated: dict[str, list[Any]] = {}
    for collection in layout.collections:
        records: list[Any] = []
        for idx, record in enumerate(collections.get(collection.key, [])):
            raw = record_to_dict(record) if is_dataclass(record) else record
            try:
                records.append(collection.parse(raw))
            except ValidationError as exc:
                errors.append(f"{collection.label}[{idx}] invalid: {exc}")
        validated[collection.key] = records
    if errors:
        raise ValidationError(errors)
    return validated


def atomic_write_text(path: Path, content: str) -> None:
    """Write to a unique temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except Exception:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise
