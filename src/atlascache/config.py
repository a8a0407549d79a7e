"""Lightmap settings schema and YAML loading."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic import field_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from atlascache.errors import ConfigError
from atlascache.warning_policy import KNOWN_CODES, WarningPolicy, unknown_codes

DEFAULT_CACHE_SUFFIX = ".lightmap_cache"


class PackerSettings(BaseModel):
    """Options forwarded to the atlas packer. Zero means "packer default"."""

    model_config = ConfigDict(extra="forbid")

    padding: int = Field(default=0, ge=0)
    resolution: int = Field(default=0, ge=0)
    texels_per_unit: float = Field(default=0.0, ge=0.0)
    bilinear: bool = True


class LightmapSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    generate_lightmap_uv: bool = True
    cache_suffix: str = DEFAULT_CACHE_SUFFIX
    read_cache: bool = True
    write_cache: bool = True
    packer: PackerSettings = PackerSettings()
    warn_as_error: list[str] = []
    suppress_warnings: list[str] = []

    @field_validator("cache_suffix")
    @classmethod
    def _check_suffix(cls, value: str) -> str:
        if not value.startswith(".") or len(value) < 2:
            raise ValueError(f"cache_suffix must start with '.' and name an extension, got {value!r}")
        if "/" in value or "\\" in value:
            raise ValueError(f"cache_suffix must not contain path separators, got {value!r}")
        return value

    @field_validator("warn_as_error", "suppress_warnings")
    @classmethod
    def _check_codes(cls, value: list[str]) -> list[str]:
        unknown = unknown_codes(value)
        if unknown:
            raise ValueError(f"Unknown warning code(s): {unknown} (known: {sorted(KNOWN_CODES)})")
        return value

    def warning_policy(self) -> WarningPolicy | None:
        """Build a WarningPolicy, or None when no codes are configured."""
        if not self.warn_as_error and not self.suppress_warnings:
            return None
        return WarningPolicy.from_codes(self.warn_as_error, self.suppress_warnings)


def _make_yaml() -> YAML:
    yml = YAML(typ="safe")
    yml.allow_duplicate_keys = False
    return yml


def load_settings(source: Path) -> LightmapSettings:
    """Load lightmap settings from a YAML file.

    An empty document yields the defaults.

    Raises:
        ConfigError: On read errors, invalid YAML, or schema violations.
    """
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read settings file: {e}") from e

    try:
        data = _make_yaml().load(text)
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in settings: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Settings top-level YAML value must be a mapping")

    try:
        return LightmapSettings(**data)
    except PydanticValidationError as e:
        raise ConfigError(f"Settings schema validation failed:\n{e}") from e
