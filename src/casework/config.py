from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

WORKSPACES_DIR = Path("workspaces")
CURRENT_WORKSPACE_FILE = WORKSPACES_DIR / ".current"
WORKSPACE_FILENAME = "workspace.yaml"

DEFAULT_PLAN_PATH = "./master_plan.snapshot.json"
DEFAULT_OUTREACH_PATH = "./outreach.snapshot.json"
DEFAULT_AUDIT_PATH = "./audit.log.jsonl"


@dataclass(frozen=True)
class StoreConfig:
    plan_path: Path
    outreach_path: Path
    audit_path: Path


@dataclass(frozen=True)
class WorkspaceConfig:
    name: str
    store: StoreConfig
    path: Path


class WorkspaceError(RuntimeError):
    pass


def ensure_workspaces_dir() -> None:
    WORKSPACES_DIR.mkdir(parents=True, exist_ok=True)


def set_current_workspace(name: str) -> None:
    ensure_workspaces_dir()
    CURRENT_WORKSPACE_FILE.write_text(f"{name}\n", encoding="utf-8")


def get_current_workspace_name() -> str:
    if not CURRENT_WORKSPACE_FILE.exists():
        raise WorkspaceError("No active workspace. Run `casework workspace use <name>`.")
    return CURRENT_WORKSPACE_FILE.read_text(encoding="utf-8").strip()


def workspace_path(name: str) -> Path:
    return WORKSPACES_DIR / name


def workspace_config_path(name: str) -> Path:
    return workspace_path(name) / WORKSPACE_FILENAME


def load_workspace(name: str | None = None) -> WorkspaceConfig:
    if name is None:
        name = get_current_workspace_name()
    config_path = workspace_config_path(name)
    if not config_path.exists():
        raise WorkspaceError(f"Workspace config not found: {config_path}")
    return load_workspace_file(config_path, name)


def load_workspace_file(config_path: Path, name: str | None = None) -> WorkspaceConfig:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise WorkspaceError(f"Workspace config is not valid YAML: {config_path}") from exc
    if not isinstance(data, dict):
        raise WorkspaceError(f"Workspace config must be a mapping: {config_path}")
    store = _parse_store(data.get("store"), config_path)
    return WorkspaceConfig(
        name=name or str(data.get("workspace") or config_path.parent.name),
        store=store,
        path=config_path.parent,
    )


def write_workspace_config(name: str) -> Path:
    ensure_workspaces_dir()
    ws_dir = workspace_path(name)
    ws_dir.mkdir(parents=True, exist_ok=True)
    config = {
        "workspace": name,
        "store": {
            "plan_path": DEFAULT_PLAN_PATH,
            "outreach_path": DEFAULT_OUTREACH_PATH,
            "audit_path": DEFAULT_AUDIT_PATH,
        },
    }
    config_path = workspace_config_path(name)
    config_path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return config_path


def _parse_store(store_data: Any, config_path: Path) -> StoreConfig:
    if not isinstance(store_data, dict):
        raise WorkspaceError("Invalid workspace store configuration.")
    paths: dict[str, Path] = {}
    for key, default in (
        ("plan_path", DEFAULT_PLAN_PATH),
        ("outreach_path", DEFAULT_OUTREACH_PATH),
        ("audit_path", DEFAULT_AUDIT_PATH),
    ):
        resolved = _resolve_store_path(store_data.get(key, default), config_path)
        if resolved is None:
            raise WorkspaceError(f"Workspace store.{key} must be a string.")
        paths[key] = resolved
    return StoreConfig(**paths)


def _resolve_store_path(raw_value: Any, config_path: Path) -> Path | None:
    if not isinstance(raw_value, str) or not raw_value.strip():
        return None
    raw_path = Path(raw_value)
    if raw_path.is_absolute():
        return raw_path
    # Prefer paths relative to the workspace directory.
    workspace_dir = config_path.parent
    if raw_path.parts and raw_path.parts[0] == WORKSPACES_DIR.name:
        # Allow paths that already include "workspaces/..." from the repo root.
        return (workspace_dir.parent.parent / raw_path).resolve()
    return (workspace_dir / raw_path).resolve()
