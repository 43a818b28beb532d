"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``XPAPI_*`` prefix, nested with ``__``
                    (``XPAPI_API__PORT=9000``)
  3. TOML file    — ``xpapi.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

Relative paths in the config resolve against ``project_root``: the
directory holding ``xpapi.toml``, or the working directory without one.
"""

from __future__ import annotations

import tempfile
import threading
import tomllib
from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from xpapi.config.discovery import find_config
from xpapi.config.models import (
    ApiConfig,
    DependenciesConfig,
    DocsConfig,
    HandlersConfig,
    PluginsConfig,
)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from an ``xpapi.toml`` file discovered via walk-up."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                import click

                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class XpSettings(BaseSettings):
    """Unified settings for the xpapi CLI and server.

    Stored in ``click.Context.obj`` at the CLI root level and handed to
    plugins as the ``config`` argument of the handler-mutation hook.

    Attributes:
        project_root: Directory relative paths resolve against.
        config_path: The TOML file in effect, or None.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "XPAPI_",
        "env_nested_delimiter": "__",
    }

    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML ---
    verbosity: int = Field(default=1, ge=0, le=3)
    api: ApiConfig = Field(default_factory=ApiConfig)
    handlers: HandlersConfig = Field(default_factory=HandlersConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    dependencies: DependenciesConfig = Field(default_factory=DependenciesConfig)
    docs: DocsConfig = Field(default_factory=DocsConfig)

    _toml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> XpSettings:
        """Construct settings from a CLI invocation.

        Discovers ``xpapi.toml`` via walk-up (or explicit *config_path*),
        resolves *project_root* from the config file's parent directory,
        and merges CLI flags as highest-priority overrides.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(project_root)

        resolved_root = project_root
        if resolved_root is None:
            resolved_root = toml_path.parent if toml_path else Path.cwd()

        _tls.toml_path = toml_path
        try:
            return cls(
                project_root=resolved_root.resolve(),
                config_path=toml_path,
                **cli_flags,
            )
        finally:
            _tls.toml_path = None

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def resolve(self, path: str | Path) -> Path:
        """Resolve *path* against the project root."""
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.project_root / candidate
        return candidate.resolve()

    @property
    def effective_verbosity(self) -> int:
        """``-q`` silences everything but fatal errors; ``-v`` forces debug."""
        if self.quiet:
            return 0
        if self.verbose:
            return 3
        return self.verbosity

    @property
    def handler_dir(self) -> Path:
        return self.resolve(self.handlers.dir)

    @property
    def handler_files(self) -> list[Path] | None:
        """Explicit handler files, used only when autoload is off."""
        if self.handlers.autoload:
            return None
        return [self.resolve(f) for f in self.handlers.files]

    @property
    def plugin_dir(self) -> Path:
        return self.resolve(self.plugins.dir)

    @property
    def plugin_files(self) -> list[Path]:
        return [self.resolve(f) for f in self.plugins.files]

    @property
    def dependencies_path(self) -> Path | None:
        if self.dependencies.path is None:
            return None
        return self.resolve(self.dependencies.path)

    @property
    def upload_dir(self) -> Path:
        if self.api.upload_dir is None:
            return Path(tempfile.gettempdir())
        return self.resolve(self.api.upload_dir)
