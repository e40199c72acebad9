import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from server_monitor.core.appliance.protocol import CredentialKind

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MONITOR_CONFIG"


class Settings(BaseSettings):
    """
    Runtime configuration.

    Sources, highest precedence first: environment, `.env`, the JSON config
    file passed to `load_settings`, field defaults.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Server Monitor Backend"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4000

    # Appliance is configured only when both host and token are set
    truenas_host: Optional[str] = None
    truenas_token: Optional[str] = None
    truenas_credential_kind: CredentialKind = CredentialKind.AUTO
    truenas_verify_ssl: bool = False

    server_hostname: Optional[str] = None
    host_root: str = "/host"
    docker_socket: str = "/var/run/docker.sock"

    collection_interval_s: float = Field(default=1.0, gt=0)
    reconnect_delay_s: float = Field(default=5.0, gt=0)
    ipmi_poll_interval_s: float = Field(default=15.0, gt=0)
    trend_capacity: int = Field(default=3600, gt=0)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def appliance_configured(self) -> bool:
        return bool(self.truenas_host and self.truenas_token)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry the JSON file, which the environment overrides
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def get_config_path() -> Path:
    """`MONITOR_CONFIG` if set, else config/monitor_config.json at the project root."""
    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[3] / "config" / "monitor_config.json"


def read_config_file(path: Path) -> Dict[str, Any]:
    """Values from a JSON config file. Missing or broken files yield no values."""
    if not path.exists():
        logger.info(f"No configuration file at {path}, using defaults and environment")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse configuration file {path}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Unable to read configuration file {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Configuration file {path} must contain a JSON object")
        return {}
    logger.info(f"Configuration loaded from {path}")
    return data


def load_settings(path: Optional[Path] = None) -> Settings:
    values = read_config_file(path if path is not None else get_config_path())
    known = {k: v for k, v in values.items() if k in Settings.model_fields}
    unknown = sorted(set(values) - set(known))
    if unknown:
        logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
    return Settings(**known)
