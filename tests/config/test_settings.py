"""Tests for XpSettings: config discovery, source priority and derived paths."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import click
import pytest
from pydantic import ValidationError

from xpapi.config.discovery import find_config
from xpapi.config.models import DEFAULT_MAX_BODY_SIZE, ApiConfig, XpConfig
from xpapi.config.settings import XpSettings


class TestDefaults:
    def test_code_defaults(self, tmp_path: Path) -> None:
        settings = XpSettings.from_cli(project_root=tmp_path)
        assert settings.config_path is None
        assert settings.api.name == "Unnamed"
        assert settings.api.path == "/api"
        assert settings.api.port == 8080
        assert settings.api.max_body_size == DEFAULT_MAX_BODY_SIZE
        assert settings.handlers.autoreload is True
        assert settings.verbosity == 1
        assert settings.docs.path is None
        assert settings.handler_files is None

    def test_sections_match_root_model(self) -> None:
        assert XpConfig().api == ApiConfig()

    def test_frozen(self, tmp_path: Path) -> None:
        settings = XpSettings.from_cli(project_root=tmp_path)
        with pytest.raises(ValidationError):
            settings.verbosity = 3  # type: ignore[misc]


class TestSources:
    def test_toml_values(self, settings: XpSettings, project: Path) -> None:
        assert settings.config_path == (project / "xpapi.toml").resolve()
        assert settings.api.name == "Example"
        assert settings.api.multi is True
        assert settings.plugins.entry_points is False

    def test_env_overrides_toml(
        self, project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("XPAPI_API__PORT", "9001")
        monkeypatch.setenv("XPAPI_VERBOSITY", "3")
        settings = XpSettings.from_cli(project_root=project)
        assert settings.api.port == 9001
        assert settings.api.name == "Example"
        assert settings.verbosity == 3

    def test_cli_flags_override_everything(
        self, project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("XPAPI_QUIET", "false")
        settings = XpSettings.from_cli(project_root=project, quiet=True, json_output=True)
        assert settings.quiet is True
        assert settings.json_output is True

    def test_explicit_config_path(self, tmp_path: Path, write_py: Any) -> None:
        config = write_py(tmp_path / "conf" / "custom.toml", '[api]\nname = "Custom"\n')
        settings = XpSettings.from_cli(config_path=str(config), project_root=tmp_path)
        assert settings.api.name == "Custom"

    def test_missing_explicit_config_uses_defaults(self, tmp_path: Path) -> None:
        settings = XpSettings.from_cli(config_path=str(tmp_path / "nope.toml"))
        assert settings.config_path is None
        assert settings.api.name == "Unnamed"

    def test_invalid_toml(self, tmp_path: Path, write_py: Any) -> None:
        write_py(tmp_path / "xpapi.toml", "[api\nname = 1\n")
        with pytest.raises(click.ClickException, match="Invalid TOML"):
            XpSettings.from_cli(project_root=tmp_path)

    def test_invalid_values_rejected(self, tmp_path: Path, write_py: Any) -> None:
        write_py(tmp_path / "xpapi.toml", "[api]\nport = 70000\n")
        with pytest.raises(ValidationError):
            XpSettings.from_cli(project_root=tmp_path)


class TestDiscovery:
    def test_walks_up(self, project: Path) -> None:
        nested = project / "handlers" / "admin"
        assert find_config(nested) == (project / "xpapi.toml").resolve()

    def test_project_root_from_config(
        self, project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(project / "handlers" / "admin")
        settings = XpSettings.from_cli()
        assert settings.project_root == project.resolve()
        assert settings.handler_dir == (project / "handlers").resolve()

    def test_env_var_wins(
        self, project: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, write_py: Any
    ) -> None:
        other = write_py(tmp_path / "elsewhere" / "other.toml", '[api]\nname = "Other"\n')
        monkeypatch.setenv("XPAPI_CONFIG", str(other))
        assert find_config(project) == other

    def test_env_var_missing_file(
        self, project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("XPAPI_CONFIG", str(project / "missing.toml"))
        assert find_config(project) is None


class TestDerivedValues:
    def test_paths_resolve_against_project_root(self, settings: XpSettings, project: Path) -> None:
        root = project.resolve()
        assert settings.handler_dir == root / "handlers"
        assert settings.plugin_dir == root / "plugins"
        assert settings.dependencies_path == root / "deps.py"
        assert settings.upload_dir == root / "uploads"

    def test_absolute_paths_kept(self, tmp_path: Path, write_py: Any) -> None:
        target = (tmp_path / "abs" / "handlers").resolve()
        write_py(tmp_path / "xpapi.toml", f'[handlers]\ndir = "{target.as_posix()}"\n')
        assert XpSettings.from_cli(project_root=tmp_path).handler_dir == target

    def test_upload_dir_defaults_to_tempdir(self, tmp_path: Path) -> None:
        settings = XpSettings.from_cli(project_root=tmp_path)
        assert settings.upload_dir == Path(tempfile.gettempdir())

    def test_no_dependencies_path(self, tmp_path: Path) -> None:
        assert XpSettings.from_cli(project_root=tmp_path).dependencies_path is None

    def test_handler_files_only_without_autoload(self, tmp_path: Path, write_py: Any) -> None:
        write_py(
            tmp_path / "xpapi.toml",
            '[handlers]\nautoload = false\nfiles = ["handlers/a.py", "b.py"]\n',
        )
        settings = XpSettings.from_cli(project_root=tmp_path)
        root = tmp_path.resolve()
        assert settings.handler_files == [root / "handlers" / "a.py", root / "b.py"]

    @pytest.mark.parametrize(
        ("flags", "expected"),
        [({}, 1), ({"quiet": True}, 0), ({"verbose": True}, 3), ({"verbosity": 2}, 2)],
    )
    def test_effective_verbosity(self, tmp_path: Path, flags: dict, expected: int) -> None:
        settings = XpSettings.from_cli(project_root=tmp_path, **flags)
        assert settings.effective_verbosity == expected
