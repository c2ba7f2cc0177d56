from pathlib import Path

import pytest

from casework.config import (
    WORKSPACES_DIR,
    WorkspaceError,
    _resolve_store_path,
    get_current_workspace_name,
    load_workspace,
    load_workspace_file,
    set_current_workspace,
    write_workspace_config,
)


def test_resolve_store_path_relative(tmp_path: Path) -> None:
    ws_dir = tmp_path / WORKSPACES_DIR / "demo"
    ws_dir.mkdir(parents=True)
    config_path = ws_dir / "workspace.yaml"
    config_path.write_text("workspace: demo\nstore:\n  plan_path: ./plan.json\n")

    resolved = _resolve_store_path("./plan.json", config_path)
    assert resolved == (ws_dir / "plan.json").resolve()


def test_resolve_store_path_repo_relative(tmp_path: Path) -> None:
    ws_dir = tmp_path / WORKSPACES_DIR / "demo"
    ws_dir.mkdir(parents=True)
    config_path = ws_dir / "workspace.yaml"

    resolved = _resolve_store_path("workspaces/demo/audit.log.jsonl", config_path)
    assert resolved == (tmp_path / "workspaces" / "demo" / "audit.log.jsonl").resolve()


def test_written_config_loads_with_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    write_workspace_config("demo")
    set_current_workspace("demo")

    assert get_current_workspace_name() == "demo"
    ws = load_workspace()
    ws_dir = (tmp_path / "workspaces" / "demo").resolve()
    assert ws.name == "demo"
    assert ws.store.plan_path == ws_dir / "master_plan.snapshot.json"
    assert ws.store.outreach_path == ws_dir / "outreach.snapshot.json"
    assert ws.store.audit_path == ws_dir / "audit.log.jsonl"


def test_missing_current_workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(WorkspaceError):
        get_current_workspace_name()
    with pytest.raises(WorkspaceError):
        load_workspace("ghost")


def test_invalid_store_section(tmp_path: Path) -> None:
    config_path = tmp_path / "workspace.yaml"
    config_path.write_text("workspace: demo\nstore:\n  plan_path: 12\n")
    with pytest.raises(WorkspaceError, match="store.plan_path"):
        load_workspace_file(config_path)

    config_path.write_text("workspace: demo\n")
    with pytest.raises(WorkspaceError):
        load_workspace_file(config_path)
