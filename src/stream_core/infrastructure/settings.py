"""Store configuration.

Loads from an optional TOML file + environment variables.
Uses pydantic-settings for validation and env var overriding
(``STREAM_CORE_ROOT_PATH``, ``STREAM_CORE_VERSION_WIDTH``, ...).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stream_core.domain.clock import Clock
from stream_core.infrastructure.file_event_store import FileEventStore
from stream_core.infrastructure.serialization import EventTypeRegistry, JsonEventSerializer


class StoreSettings(BaseSettings):
    """Settings for a FileEventStore."""

    root_path: Path = Path("data")
    file_extension: str = ".json"
    version_width: int = Field(default=6, ge=1, le=18)  # digits in the version file name
    json_indent: int | None = 2  # None writes compact JSON

    model_config = SettingsConfigDict(env_prefix="STREAM_CORE_")

    @field_validator("file_extension")
    @classmethod
    def _dotted_extension(cls, value: str) -> str:
        value = value.strip()
        if not value or value == ".":
            raise ValueError("file_extension cannot be empty")
        return value if value.startswith(".") else "." + value


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> StoreSettings:
    """Load settings from TOML file + env vars.

    The TOML file may hold the keys at top level or under a ``[store]`` table.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                raw = tomli.load(f)
            data = dict(raw.get("store", raw))

    if overrides:
        data.update(overrides)

    return StoreSettings(**data)


def build_file_event_store(
    registry: EventTypeRegistry,
    settings: StoreSettings | None = None,
    clock: Clock | None = None,
) -> FileEventStore:
    """Construct a FileEventStore with a JSON serializer from settings."""
    settings = settings or StoreSettings()
    return FileEventStore(
        settings.root_path,
        JsonEventSerializer(registry, indent=settings.json_indent),
        clock=clock,
        file_extension=settings.file_extension,
        version_width=settings.version_width,
    )
