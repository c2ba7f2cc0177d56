from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from casework.domain.stages import AuditEntityType, ChangeType
from casework.services.utils import Clock, IdGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    entity_type: AuditEntityType
    change_type: ChangeType
    entity_id: str
    project_id: str | None = None
    before: Any = None
    after: Any = None
    detail: str | None = None
    id: str | None = None
    at: str | None = None


class AuditSink(Protocol):
    def log(self, event: AuditEvent) -> None: ...


class AuditWriteError(RuntimeError):
    """The change was applied and persisted, but its audit line was not written."""

    def __init__(self, event: AuditEvent, reason: str) -> None:
        self.event = event
        self.entity_id = event.entity_id
        super().__init__(
            f"Audit write failed for {event.entity_type.value} {event.entity_id} "
            f"({event.change_type.value}); change was saved: {reason}"
        )


@dataclass
class EventLogger:
    path: Path
    id_gen: IdGenerator
    clock: Clock
    enabled: bool = True

    def log(self, event: AuditEvent) -> None:
        if not self.enabled:
            return
        payload: dict[str, Any] = {
            "id": event.id or self.id_gen(),
            "at": event.at or self.clock(),
            "entity_type": event.entity_type.value,
            "change_type": event.change_type.value,
            "entity_id": event.entity_id,
        }
        for key in ("project_id", "before", "after", "detail"):
            value = getattr(event, key)
            if value is not None:
                payload[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(payload) + "\n")
        except OSError as exc:
            raise AuditWriteError(event, str(exc)) from exc


class NullEventLogger:
    def log(self, event: AuditEvent) -> None:
        return None


def read_events(path: Path) -> list[dict[str, Any]]:
    """Parsed audit records in file order; a missing log has none."""
    if not path.exists():
        return []
    records = []
    with path.open(encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable audit line %d in %s.", number, path)
                continue
            if isinstance(record, dict):
                records.append(record)
    return records
