"""Load optional board configuration from `.workflow_board/config.yaml`."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from .constants import CONFIG_FILE, ENV_API_TOKEN, ENV_API_URL, ENV_LOG_LEVEL, STATE_DIR_NAME
from .io_utils import _load_data_with_error
from .services.base import TaskService
from .services.http import HttpTaskService
from .services.local import LocalTaskService
from .task_engine.query import SortKey

VALID_BACKENDS = {"local", "http"}
VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def load_board_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional board config file.

    Args:
        project_dir: Directory holding `.workflow_board/`.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    if not isinstance(data, dict):
        return {}, f"{path} must contain a mapping"
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_backend_config(config: dict[str, Any]) -> dict[str, Any]:
    """Resolve the collaborator settings, applying environment overrides.

    Args:
        config: Board configuration dictionary.

    Returns:
        A dict with keys `type`, `base_url`, `token` and `timeout`. The type
        falls back to `http` when only a base URL is known, else `local`.
    """
    raw = _get_nested(config, "backend")
    raw = raw if isinstance(raw, dict) else {}

    base_url = os.environ.get(ENV_API_URL) or raw.get("base_url") or None
    token = os.environ.get(ENV_API_TOKEN) or raw.get("token") or None

    backend_type = raw.get("type")
    if backend_type not in VALID_BACKENDS:
        backend_type = "http" if base_url else "local"

    timeout = raw.get("timeout")
    try:
        timeout = float(timeout) if timeout is not None else None
    except (TypeError, ValueError):
        timeout = None

    return {"type": backend_type, "base_url": base_url, "token": token, "timeout": timeout}


def get_dashboard_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract dashboard defaults (`sort`, `show_completed`)."""
    raw = _get_nested(config, "dashboard")
    raw = raw if isinstance(raw, dict) else {}
    try:
        sort = SortKey.coerce(raw.get("sort"))
    except ValueError:
        sort = SortKey.DUE_DATE
    return {"sort": sort, "show_completed": bool(raw.get("show_completed", False))}


def get_log_level(config: dict[str, Any], default: str = "INFO") -> str:
    raw = os.environ.get(ENV_LOG_LEVEL) or _get_nested(config, "logging", "level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return default


def build_service(project_dir: Path, config: Optional[dict[str, Any]] = None) -> TaskService:
    """Pick the collaborator described by the config.

    Raises:
        ValueError: if the http backend is selected without a base URL.
    """
    backend = get_backend_config(config or {})
    if backend["type"] == "http":
        if not backend["base_url"]:
            raise ValueError(f"backend.base_url (or {ENV_API_URL}) is required for the http backend")
        return HttpTaskService(backend["base_url"], token=backend["token"], timeout=backend["timeout"])
    return LocalTaskService.for_project_dir(project_dir.resolve())
