"""Layered application configuration: Default < Local < CLI."""

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"
LOCAL_CONFIG_PATH = Path("config/local.yaml")


class IngestionConfig(BaseModel):
    """Chunking of metadata and thumbnail lookups."""

    chunk_size: int = Field(default=50, gt=0, description="Paths per engine batch call")
    chunk_yield_s: float = Field(
        default=0.01, ge=0.0, description="Pause between ingestion chunks in seconds"
    )
    thumbnail_yield_s: float = Field(
        default=0.05, ge=0.0, description="Pause between thumbnail revalidation chunks"
    )


class StorageConfig(BaseModel):
    db_path: str = Field(
        default="data/aether_queue.db", description="SQLite file holding the session"
    )


class EngineConfig(BaseModel):
    url: str = Field(default="http://127.0.0.1:8765", description="Conversion engine base URL")
    timeout_s: float = Field(default=30.0, gt=0.0, description="Timeout for non-conversion RPCs")


class SessionConfig(BaseModel):
    auto_restore_session: Optional[bool] = Field(
        default=None,
        description="Override the stored auto-restore preference (None = use stored)",
    )


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class AppConfig(BaseModel):
    """Complete application configuration with validation."""

    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        """Create config from nested dict (YAML)."""
        return cls(**data)

    def merge_cli_overrides(self, cli_args: dict) -> "AppConfig":
        """Apply CLI overrides and return new config instance."""
        config_dict = self.model_dump()

        if cli_args.get("db_path") is not None:
            config_dict["storage"]["db_path"] = cli_args["db_path"]
        if cli_args.get("engine_url") is not None:
            config_dict["engine"]["url"] = cli_args["engine_url"]
        if cli_args.get("chunk_size") is not None:
            config_dict["ingestion"]["chunk_size"] = cli_args["chunk_size"]
        if cli_args.get("auto_restore") is not None:
            config_dict["session"]["auto_restore_session"] = cli_args["auto_restore"]
        if cli_args.get("log_level") is not None:
            config_dict["logging"]["level"] = cli_args["log_level"]

        return AppConfig.from_dict(config_dict)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Recursive merge of two dictionaries."""
    result = base.copy()
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def resolve_config(
    cli_args: Optional[Dict[str, Any]] = None,
    local_path: Path = LOCAL_CONFIG_PATH,
) -> AppConfig:
    """
    Resolve config: Default < Local < CLI

    Raises:
        pydantic.ValidationError: If the merged config is invalid
    """
    cli_args = cli_args or {}

    config_data = load_yaml(DEFAULT_CONFIG_PATH)
    config_data = merge_dicts(config_data, load_yaml(local_path))

    config = AppConfig.from_dict(config_data)
    return config.merge_cli_overrides(cli_args)
