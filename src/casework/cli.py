from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any

import typer

from casework import __version__
from casework.config import (
    WorkspaceError,
    ensure_workspaces_dir,
    load_workspace,
    set_current_workspace,
    workspace_config_path,
    write_workspace_config,
)
from casework.domain.models import record_to_dict
from casework.domain.rules import IntegrityGuardError, MissingReferenceError, ValidationError
from casework.runtime import CaseworkRuntime
from casework.services import exports
from casework.services.events import AuditWriteError
from casework.services.plan import PlanItemFilter
from casework.services.summary import build_daily_summary
from casework.services.utils import new_id, normalize_tags, today_iso, utc_now_iso
from casework.store.snapshot import SnapshotError

app = typer.Typer(help="Casework tracker CLI")
workspace_app = typer.Typer(help="Workspace management")
plan_app = typer.Typer(help="Master plan: projects, plan items, checklists")
outreach_app = typer.Typer(help="Outreach: contacts, actions, follow-ups, outcomes")
export_app = typer.Typer(help="Exports")

app.add_typer(workspace_app, name="workspace")
app.add_typer(plan_app, name="plan")
app.add_typer(outreach_app, name="outreach")
app.add_typer(export_app, name="export")

DOMAIN_ERRORS = (
    ValidationError,
    MissingReferenceError,
    IntegrityGuardError,
    SnapshotError,
    AuditWriteError,
)


@app.callback()
def version_callback(
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log persistence activity."),
):
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("init")
def init() -> None:
    """Initialize directories for workspaces and outputs."""
    ensure_workspaces_dir()
    Path("exports").mkdir(exist_ok=True)
    typer.echo("Initialized casework directories.")


@workspace_app.command("add")
def workspace_add(
    name: str = typer.Argument(...),
    use: bool = typer.Option(True, "--use/--no-use", help="Set as current workspace."),
    force: bool = typer.Option(
        False, "--force", help="Overwrite existing workspace config if it exists."
    ),
) -> None:
    config_path = workspace_config_path(name)
    if config_path.exists() and not force:
        raise typer.BadParameter(
            f"Workspace already exists: {config_path}. Use --force to overwrite."
        )
    config_path = write_workspace_config(name)
    if use:
        set_current_workspace(name)
    typer.echo(f"Workspace created: {config_path}")


@workspace_app.command("use")
def workspace_use(name: str = typer.Argument(...)) -> None:
    if not workspace_config_path(name).exists():
        raise typer.BadParameter(f"Workspace config not found: {workspace_config_path(name)}")
    set_current_workspace(name)
    typer.echo(f"Active workspace: {name}")


# Plan


@plan_app.command("project-create")
def project_create(
    name: str = typer.Option(..., "--name"),
    start: str = typer.Option(..., "--start", help="Start date (YYYY-MM-DD)."),
    target_end: str = typer.Option(..., "--target-end", help="Target end date (YYYY-MM-DD)."),
    description: str = typer.Option("", "--description"),
    color: str | None = typer.Option(None, "--color"),
) -> None:
    runtime = _open_runtime()
    try:
        project = runtime.plan.create_project(
            {
                "name": name,
                "description": description,
                "start_date": start,
                "target_end_date": target_end,
                "color": color,
            }
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(project))


@plan_app.command("project-list")
def project_list() -> None:
    runtime = _open_runtime()
    payload = []
    for project in runtime.plan.projects:
        progress = runtime.plan.project_progress(project.id)
        payload.append({**record_to_dict(project), "progress": asdict(progress)})
    _echo_json(payload)


@plan_app.command("project-update")
def project_update(
    project_id: str = typer.Argument(...),
    name: str | None = typer.Option(None, "--name"),
    description: str | None = typer.Option(None, "--description"),
    status: str | None = typer.Option(None, "--status"),
    start: str | None = typer.Option(None, "--start"),
    target_end: str | None = typer.Option(None, "--target-end"),
    color: str | None = typer.Option(None, "--color"),
) -> None:
    changes = _changes(
        name=name,
        description=description,
        status=status,
        start_date=start,
        target_end_date=target_end,
        color=color,
    )
    runtime = _open_runtime()
    try:
        project = runtime.plan.update_project(project_id, changes)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    if project is None:
        _exit_with_error(f"Project not found: {project_id}")
    _echo_json(record_to_dict(project))


@plan_app.command("project-delete")
def project_delete(project_id: str = typer.Argument(...)) -> None:
    runtime = _open_runtime()
    try:
        deleted = runtime.plan.delete_project(project_id)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json({"id": project_id, "deleted": deleted})


@plan_app.command("preload")
def plan_preload(
    project_id: str = typer.Argument(...),
    start: str = typer.Option(..., "--start", help="Template day-zero date (YYYY-MM-DD)."),
) -> None:
    """Seed a project with the MDCR appeal template."""
    runtime = _open_runtime()
    try:
        items = runtime.plan.preload_template(project_id, start)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json([record_to_dict(item) for item in items])


@plan_app.command("item-add")
def item_add(
    project_id: str = typer.Option(..., "--project"),
    title: str = typer.Option(..., "--title"),
    category: str = typer.Option(..., "--category"),
    due: str | None = typer.Option(None, "--due"),
    priority: str = typer.Option("Normal", "--priority"),
    description: str = typer.Option("", "--description"),
    notes: str = typer.Option("", "--notes"),
    check: Annotated[
        list[str] | None,
        typer.Option("--check", help="Checklist entry label (repeatable)."),
    ] = None,
) -> None:
    runtime = _open_runtime()
    try:
        item = runtime.plan.create_plan_item(
            {
                "project_id": project_id,
                "title": title,
                "description": description,
                "category": category,
                "due_date": due,
                "priority": priority,
                "checklist": list(check or []),
                "notes": notes,
            }
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(item))


@plan_app.command("item-update")
def item_update(
    item_id: str = typer.Argument(...),
    title: str | None = typer.Option(None, "--title"),
    description: str | None = typer.Option(None, "--description"),
    category: str | None = typer.Option(None, "--category"),
    status: str | None = typer.Option(None, "--status"),
    due: str | None = typer.Option(None, "--due"),
    priority: str | None = typer.Option(None, "--priority"),
    notes: str | None = typer.Option(None, "--notes"),
    clear_due: bool = typer.Option(False, "--clear-due", help="Remove the due date."),
) -> None:
    changes = _changes(
        title=title,
        description=description,
        category=category,
        status=status,
        due_date=due,
        priority=priority,
        notes=notes,
    )
    if clear_due:
        changes["due_date"] = None
    runtime = _open_runtime()
    try:
        item = runtime.plan.update_plan_item(item_id, changes)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    if item is None:
        _exit_with_error(f"Plan item not found: {item_id}")
    _echo_json(record_to_dict(item))


@plan_app.command("item-delete")
def item_delete(item_id: str = typer.Argument(...)) -> None:
    runtime = _open_runtime()
    try:
        deleted = runtime.plan.delete_plan_item(item_id)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json({"id": item_id, "deleted": deleted})


@plan_app.command("toggle")
def item_toggle(
    item_id: str = typer.Argument(...),
    checklist_item_id: str = typer.Argument(...),
    checked: bool = typer.Option(True, "--checked/--unchecked"),
) -> None:
    runtime = _open_runtime()
    try:
        toggled = runtime.plan.toggle_checklist_item(item_id, checklist_item_id, checked)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    if not toggled:
        _exit_with_error(f"Checklist item not found: {item_id}/{checklist_item_id}")
    _echo_json(record_to_dict(runtime.plan.get_plan_item(item_id)))


@plan_app.command("items")
def item_list(
    project_id: str | None = typer.Option(None, "--project"),
    status: Annotated[list[str] | None, typer.Option("--status")] = None,
    category: Annotated[list[str] | None, typer.Option("--category")] = None,
    priority: Annotated[list[str] | None, typer.Option("--priority")] = None,
    due_before: str | None = typer.Option(None, "--due-before"),
    due_after: str | None = typer.Option(None, "--due-after"),
) -> None:
    runtime = _open_runtime()
    criteria = PlanItemFilter(
        project_id=project_id,
        status=status or None,
        category=category or None,
        priority=priority or None,
        due_before=due_before,
        due_after=due_after,
    )
    _echo_json([record_to_dict(item) for item in runtime.plan.filter_plan_items(criteria)])


@plan_app.command("progress")
def plan_progress(project_id: str = typer.Argument(...)) -> None:
    runtime = _open_runtime()
    _echo_json(asdict(runtime.plan.project_progress(project_id)))


# Outreach


@outreach_app.command("category-create")
def category_create(
    name: str = typer.Option(..., "--name"),
    color: str = typer.Option(..., "--color"),
    tags: str | None = typer.Option(None, "--tags", help="Comma-separated tags."),
) -> None:
    runtime = _open_runtime()
    try:
        category = runtime.outreach.create_category(
            {"name": name, "color": color, "tags": normalize_tags(tags)}
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(category))


@outreach_app.command("category-delete")
def category_delete(category_id: str = typer.Argument(...)) -> None:
    runtime = _open_runtime()
    try:
        deleted = runtime.outreach.delete_category(category_id)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json({"id": category_id, "deleted": deleted})


@outreach_app.command("contact-add")
def contact_add(
    category_id: str = typer.Option(..., "--category"),
    organization: str = typer.Option(..., "--organization"),
    contact_name: str = typer.Option("", "--name"),
    role: str = typer.Option("", "--role"),
    phone: str = typer.Option("", "--phone"),
    email: str = typer.Option("", "--email"),
    mailing_address: str = typer.Option("", "--address"),
    website_url: str = typer.Option("", "--website"),
    method: str = typer.Option(..., "--method", help="Preferred contact method."),
    tags: str | None = typer.Option(None, "--tags", help="Comma-separated tags."),
) -> None:
    runtime = _open_runtime()
    try:
        contact = runtime.outreach.create_contact(
            {
                "category_id": category_id,
                "organization": organization,
                "contact_name": contact_name,
                "role": role,
                "phone": phone,
                "email": email,
                "mailing_address": mailing_address,
                "website_url": website_url,
                "preferred_method": method,
                "tags": normalize_tags(tags),
            }
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(contact))


@outreach_app.command("contact-delete")
def contact_delete(contact_id: str = typer.Argument(...)) -> None:
    runtime = _open_runtime()
    try:
        deleted = runtime.outreach.delete_contact(contact_id)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json({"id": contact_id, "deleted": deleted})


@outreach_app.command("action-record")
def action_record(
    contact_id: str = typer.Option(..., "--contact"),
    method: str = typer.Option(..., "--method"),
    summary: str = typer.Option("", "--summary"),
    date: str | None = typer.Option(None, "--date", help="ISO timestamp; defaults to now."),
    artifact: Annotated[
        list[str] | None,
        typer.Option("--artifact", help="Artifact id sent (repeatable)."),
    ] = None,
    artifact_version: str | None = typer.Option(None, "--artifact-version"),
    outcome: str | None = typer.Option(None, "--outcome", help="Outcome status."),
    next_follow_up: str | None = typer.Option(None, "--next-follow-up"),
) -> None:
    runtime = _open_runtime()
    try:
        action = runtime.outreach.record_outreach_action(
            {
                "contact_id": contact_id,
                "date": date,
                "method": method,
                "summary": summary,
                "artifacts_sent": list(artifact or []),
                "linked_artifact_version": artifact_version,
                "outcome_status": outcome,
                "next_follow_up_date": next_follow_up,
            }
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(action))


@outreach_app.command("history")
def contact_history(contact_id: str = typer.Argument(...)) -> None:
    runtime = _open_runtime()
    actions = runtime.outreach.contact_outreach_history(contact_id)
    _echo_json([record_to_dict(action) for action in actions])


@outreach_app.command("followup-add")
def followup_add(
    contact_id: str = typer.Option(..., "--contact"),
    due: str = typer.Option(..., "--due"),
    action_id: str | None = typer.Option(None, "--action"),
    notes: str = typer.Option("", "--notes"),
) -> None:
    runtime = _open_runtime()
    try:
        follow_up = runtime.outreach.create_follow_up(
            {
                "contact_id": contact_id,
                "outreach_action_id": action_id,
                "due_date": due,
                "notes": notes,
            }
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(follow_up))


@outreach_app.command("followup-status")
def followup_status(
    follow_up_id: str = typer.Argument(...),
    status: str = typer.Argument(..., help="Open, Completed or Cancelled."),
) -> None:
    runtime = _open_runtime()
    try:
        follow_up = runtime.outreach.set_follow_up_status(follow_up_id, status)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    if follow_up is None:
        _exit_with_error(f"Follow-up not found: {follow_up_id}")
    _echo_json(record_to_dict(follow_up))


@outreach_app.command("open-followups")
def open_followups(
    as_of: str | None = typer.Option(None, "--as-of", help="Defaults to today."),
) -> None:
    runtime = _open_runtime()
    try:
        follow_ups = runtime.outreach.open_follow_ups(as_of or today_iso())
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json([record_to_dict(f) for f in follow_ups])


@outreach_app.command("outcome-record")
def outcome_record(
    contact_id: str = typer.Option(..., "--contact"),
    final_status: str = typer.Option(..., "--final-status"),
    date_closed: str | None = typer.Option(None, "--date-closed", help="Defaults to today."),
    reason: str = typer.Option("", "--reason"),
    lesson: str = typer.Option("", "--lesson"),
    referred_contact_id: str | None = typer.Option(None, "--referred"),
) -> None:
    runtime = _open_runtime()
    try:
        outcome = runtime.outreach.record_outcome(
            {
                "contact_id": contact_id,
                "final_status": final_status,
                "date_closed": date_closed or today_iso(),
                "reason": reason,
                "lesson_learned": lesson,
                "referred_contact_id": referred_contact_id,
            }
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(record_to_dict(outcome))


@outreach_app.command("metrics")
def outreach_metrics() -> None:
    runtime = _open_runtime()
    _echo_json(asdict(runtime.outreach.summary_metrics()))


# Summary and runtime


@app.command("summary")
def summary(date: str | None = typer.Option(None, "--date", help="Defaults to today.")) -> None:
    """Print the read-only daily summary."""
    runtime = _open_runtime()
    try:
        daily = build_daily_summary(runtime.plan, runtime.outreach, date or today_iso())
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(daily.to_dict())


@app.command("tick")
def tick(date: str | None = typer.Option(None, "--date", help="Defaults to today.")) -> None:
    """Run one runtime tick: summary plus overdue flags in the audit log, then flush."""
    runtime = _open_runtime()
    try:
        daily = runtime.tick(date or today_iso())
        runtime.shutdown()
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    _echo_json(daily.to_dict())


@export_app.command("excel")
def export_excel(out: str = typer.Option(..., "--out")) -> None:
    runtime = _open_runtime()
    exports.export_excel(runtime.plan, runtime.outreach, Path(out))
    typer.echo(f"Exported Excel to {out}")


@export_app.command("csv")
def export_csv(out_dir: str = typer.Option(..., "--out-dir")) -> None:
    runtime = _open_runtime()
    exports.export_csv_tables(runtime.plan, runtime.outreach, Path(out_dir))
    typer.echo(f"Exported CSV tables to {out_dir}")


def _load_workspace():
    try:
        return load_workspace()
    except WorkspaceError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


def _open_runtime() -> CaseworkRuntime:
    ws = _load_workspace()
    runtime = CaseworkRuntime(ws.store, id_gen=new_id, clock=utc_now_iso)
    try:
        return runtime.open()
    except SnapshotError as exc:
        _exit_with_error(str(exc))


def _changes(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _exit_with_error(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
