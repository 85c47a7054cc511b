"""Configuration and recipe file loading."""

import json
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import ConfigError


DEFAULT_CONFIG_FILE = "puppetchefrc"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class BrowserConfig(BaseModel):
    """Browser launch and navigation settings."""
    # Original config files carry raw launch options; unknown keys are ignored
    model_config = ConfigDict(extra="ignore")

    headless: bool = Field(default=True)
    args: list[str] = Field(default_factory=list)
    slow_mo_ms: int = Field(default=0, ge=0)
    viewport_width: int = Field(default=1920, ge=1)
    viewport_height: int = Field(default=1080, ge=1)
    user_agent: Optional[str] = Field(default=None)
    navigation_timeout_ms: int = Field(default=30000, ge=0)
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = Field(
        default="networkidle"
    )


class LoggingConfig(BaseModel):
    """Diagnostic logging settings (environment variables take precedence)."""
    level: Optional[str] = Field(default=None)
    file: Optional[str] = Field(default=None)
    json_format: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return value


class RunnerConfig(BaseModel):
    """Main runner configuration."""
    model_config = ConfigDict(extra="ignore")

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigLoader:
    """Loads runner configuration and recipes from YAML/JSON files."""

    def load_config(self, path: Optional[str] = None) -> RunnerConfig:
        """
        Load runner configuration.

        With no path, the default file is used if present, otherwise defaults
        apply. An explicit path that does not exist is an error.
        """
        if path is None:
            default = Path(DEFAULT_CONFIG_FILE)
            if not default.exists():
                return RunnerConfig()
            path = default
        else:
            path = Path(path)

        data = self.load_file(path)
        try:
            return RunnerConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid runner config: {e}", config_path=str(path))
        except TypeError as e:
            raise ConfigError(f"Invalid runner config: {e}", config_path=str(path))

    def load_file(self, path: Path) -> Any:
        """Load YAML or JSON file. Files without a known suffix are tried as JSON, then YAML."""
        if not path.exists():
            raise ConfigError(f"File not found: {path}", config_path=str(path))

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read {path}: {e}", config_path=str(path))

        try:
            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                return json.loads(content)
            else:
                # puppetchefrc and friends
                try:
                    return json.loads(content)
                except json.JSONDecodeError:
                    return yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))
