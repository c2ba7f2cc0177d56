from __future__ import annotations

import csv
import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from openpyxl import Workbook

from casework.domain.models import record_to_dict
from casework.services.outreach import OutreachService
from casework.services.plan import PlanService


def collect_tables(plan: PlanService, outreach: OutreachService) -> dict[str, list[dict[str, Any]]]:
    """One flat table per collection, in snapshot order."""
    sources = {
        "projects": plan.projects,
        "plan_items": plan.plan_items,
        "categories": outreach.categories,
        "contacts": outreach.contacts,
        "outreach_actions": outreach.outreach_actions,
        "follow_ups": outreach.follow_ups,
        "outcomes": outreach.outcomes,
    }
    return {
        table: [_flatten(record_to_dict(record)) for record in records]
        for table, records in sources.items()
    }


def export_excel(plan: PlanService, outreach: OutreachService, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    wb = Workbook()
    wb.remove(wb.active)

    for table, rows in collect_tables(plan, outreach).items():
        ws = wb.create_sheet(title=table)
        _write_sheet(ws, rows)

    wb.save(out_path)


def export_csv_tables(plan: PlanService, outreach: OutreachService, out_dir: Path) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for table, rows in collect_tables(plan, outreach).items():
        headers = list(rows[0].keys()) if rows else []
        csv_path = out_dir / f"{table}.csv"
        with csv_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(headers)
            for row in rows:
                writer.writerow([row[h] for h in headers])
        written.append(csv_path)
    return written


def _flatten(row: dict[str, Any]) -> dict[str, Any]:
    # Spreadsheet cells hold scalars; lists (tags, checklists) go in as JSON.
    return {
        key: json.dumps(value) if isinstance(value, (list, dict)) else value
        for key, value in row.items()
    }


def _write_sheet(ws, rows: Iterable[dict[str, Any]]) -> None:
    rows = list(rows)
    if not rows:
        return
    headers = list(rows[0].keys())
    ws.append(headers)
    for row in rows:
        ws.append([row[h] for h in headers])
