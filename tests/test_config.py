"""Tests for board configuration (config.py)."""

from __future__ import annotations

from pathlib import Path

import pytest

from workflow_board.config import (
    build_service,
    get_backend_config,
    get_dashboard_config,
    get_log_level,
    load_board_config,
)
from workflow_board.services.http import HttpTaskService
from workflow_board.services.local import LocalTaskService
from workflow_board.task_engine.query import SortKey


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("WORKFLOW_BOARD_API_URL", "WORKFLOW_BOARD_API_TOKEN", "WORKFLOW_BOARD_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _write_config(project_dir: Path, text: str) -> None:
    state = project_dir / ".workflow_board"
    state.mkdir(exist_ok=True)
    (state / "config.yaml").write_text(text, encoding="utf-8")


class TestLoadBoardConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_board_config(tmp_path) == ({}, None)

    def test_reads_yaml(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "backend:\n  type: http\n  base_url: https://x.test/api\n")
        config, err = load_board_config(tmp_path)
        assert err is None
        assert config["backend"]["type"] == "http"

    def test_parse_error(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "backend: [broken\n")
        config, err = load_board_config(tmp_path)
        assert config == {}
        assert "YAMLError" in err


class TestGetters:
    def test_backend_defaults_to_local(self) -> None:
        assert get_backend_config({}) == {"type": "local", "base_url": None, "token": None, "timeout": None}

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKFLOW_BOARD_API_URL", "https://env.test/api")
        monkeypatch.setenv("WORKFLOW_BOARD_API_TOKEN", "tok")
        backend = get_backend_config({"backend": {"base_url": "https://file.test", "timeout": "5"}})
        assert backend == {"type": "http", "base_url": "https://env.test/api", "token": "tok", "timeout": 5.0}

    def test_dashboard(self) -> None:
        assert get_dashboard_config({}) == {"sort": SortKey.DUE_DATE, "show_completed": False}
        cfg = get_dashboard_config({"dashboard": {"sort": "priority", "show_completed": True}})
        assert cfg == {"sort": SortKey.PRIORITY, "show_completed": True}
        assert get_dashboard_config({"dashboard": {"sort": "bogus"}})["sort"] is SortKey.DUE_DATE

    def test_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert get_log_level({}) == "INFO"
        assert get_log_level({"logging": {"level": "debug"}}) == "DEBUG"
        assert get_log_level({"logging": {"level": "chatty"}}, default="WARNING") == "WARNING"
        monkeypatch.setenv("WORKFLOW_BOARD_LOG_LEVEL", "error")
        assert get_log_level({"logging": {"level": "debug"}}) == "ERROR"


@pytest.mark.anyio
class TestBuildService:
    async def test_local(self, tmp_path: Path) -> None:
        assert isinstance(build_service(tmp_path, {}), LocalTaskService)

    async def test_http(self, tmp_path: Path) -> None:
        svc = build_service(tmp_path, {"backend": {"base_url": "https://x.test/api", "token": "t"}})
        assert isinstance(svc, HttpTaskService)
        await svc.aclose()

    async def test_http_requires_url(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            build_service(tmp_path, {"backend": {"type": "http"}})
