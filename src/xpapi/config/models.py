"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, xpapi.toml only contains
overrides.  A project with a ``handlers/`` directory next to its config
needs nothing but ``[api] name``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_MAX_BODY_SIZE = 2 * 1024 * 1024


class ApiConfig(BaseModel):
    """[api] section."""

    model_config = {"frozen": True}

    name: str = "Unnamed"
    path: str = "/api"
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    multi: bool = False
    max_body_size: int = Field(default=DEFAULT_MAX_BODY_SIZE, gt=0)
    upload_dir: str | None = None
    cors_origins: list[str] = Field(default_factory=list)


class HandlersConfig(BaseModel):
    """[handlers] section."""

    model_config = {"frozen": True}

    dir: str = "handlers"
    files: list[str] = Field(default_factory=list)
    autoload: bool = True
    autoreload: bool = True
    poll_interval: float = Field(default=1.0, gt=0)


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    dir: str = "plugins"
    files: list[str] = Field(default_factory=list)
    entry_points: bool = True


class DependenciesConfig(BaseModel):
    """[dependencies] section."""

    model_config = {"frozen": True}

    path: str | None = None


class DocsConfig(BaseModel):
    """[docs] section. Documentation is served only when ``path`` is set."""

    model_config = {"frozen": True}

    path: str | None = None
    css_url: str | None = None


class XpConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    verbosity: int = Field(default=1, ge=0, le=3)
    log_json: bool = False
    api: ApiConfig = Field(default_factory=ApiConfig)
    handlers: HandlersConfig = Field(default_factory=HandlersConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    dependencies: DependenciesConfig = Field(default_factory=DependenciesConfig)
    docs: DocsConfig = Field(default_factory=DocsConfig)
