# src/etch/core/config.py
"""
Configuration schema and loading for the etch server.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction and handed to the
server explicitly; nothing reads configuration lazily from globals.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

DEFAULT_CONFIGBASE = Path("/etc/etchserver")


class DatabaseSettings(BaseModel):
    """Database connection configuration for node records."""

    model_config = {"frozen": True}

    # NOTE: str rather than Path, pathlib mangles DSNs like postgresql://...
    url: str = Field(
        default="sqlite:///./etch.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class EtchSettings(BaseModel):
    """Top-level etch server configuration.

    Example YAML:
        configbase: /srv/etch
        external_timeout_seconds: 60
        database:
          url: postgresql://etch:secret@db/etch
    """

    model_config = {"frozen": True}

    configbase: Path = Field(
        default=DEFAULT_CONFIGBASE,
        description="Directory holding killswitch, nodetagger and one tree per tag",
    )
    origbase: Path | None = Field(
        default=None,
        description="Originals store (defaults to <configbase>/orig)",
    )
    external_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Deadline for nodetagger, nodegrouper, scripts and server_setup",
    )
    record_results: bool = Field(
        default=True,
        description="Persist clients, facts, originals and configs",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Process-wide log level (debug requests override per request)",
    )
    json_logs: bool = Field(default=False, description="Render logs as JSON lines")
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Node record store",
    )

    @property
    def originals_path(self) -> Path:
        """Where node-supplied originals are stored."""
        return self.origbase or self.configbase / "orig"


def load_settings(config_path: Path) -> EtchSettings:
    """Load settings from YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (ETCH_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: ETCH_DATABASE__URL for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="ETCH",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys and mixes in its own settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config: dict[str, Any] = {
        k.lower(): v
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    if isinstance(raw_config.get("database"), dict):
        raw_config["database"] = {
            k.lower(): v for k, v in raw_config["database"].items()
        }
    return EtchSettings(**raw_config)
