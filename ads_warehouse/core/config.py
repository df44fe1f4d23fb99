"""
Ingestion configuration.

Settings come from a YAML file and can be overridden per process with
environment variables:

    INGESTION_COPY_THRESHOLD      copy_from_threshold
    INGESTION_STAGING_PREFIX      staging_prefix
    INGESTION_CONSERVATION_TOLERANCE  conservation_tolerance
    INGESTION_AGGREGATE           aggregate_before_load
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from ads_warehouse.utils.validation import IDENTIFIER_PATTERN

# Leaves at least 33 characters of the target name in staging table names
MAX_STAGING_PREFIX_LENGTH = 16

ENV_OVERRIDES = {
    "INGESTION_COPY_THRESHOLD": "copy_from_threshold",
    "INGESTION_STAGING_PREFIX": "staging_prefix",
    "INGESTION_CONSERVATION_TOLERANCE": "conservation_tolerance",
    "INGESTION_AGGREGATE": "aggregate_before_load",
}


class IngestionConfig(BaseModel):
    """
    Tunables of the ingestion processor.

    Attributes:
        copy_from_threshold: Batches of at least this many records use the bulk staged path
        staging_prefix: Marker placed in staging table names
        conservation_tolerance: Allowed drift of float metric totals across aggregation
        aggregate_before_load: Collapse same-key records before loading
    """

    copy_from_threshold: int = Field(5000, ge=1)
    staging_prefix: str = Field("stg", min_length=1, max_length=MAX_STAGING_PREFIX_LENGTH)
    conservation_tolerance: float = Field(0.01, ge=0)
    aggregate_before_load: bool = True

    @field_validator("staging_prefix")
    @classmethod
    def validate_staging_prefix(cls, v: str) -> str:
        if not IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"staging_prefix must be a valid SQL identifier fragment, got '{v}'")
        return v

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "copy_from_threshold": 5000,
                "staging_prefix": "stg",
                "conservation_tolerance": 0.01,
                "aggregate_before_load": True
            }
        }


class IngestionConfigLoader:
    """
    Loads IngestionConfig from a YAML file.

    Expected YAML format:
    ```yaml
    ingestion:
      copy_from_threshold: 5000
      staging_prefix: stg
      conservation_tolerance: 0.01
      aggregate_before_load: true
    ```
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to the YAML file (defaults to env var INGESTION_CONFIG).
                         Without a file only defaults and env overrides apply.
        """
        config_path = config_path or os.getenv("INGESTION_CONFIG")
        self.config_path = Path(config_path) if config_path else None
        if self.config_path is not None and not self.config_path.exists():
            raise FileNotFoundError(f"Ingestion configuration file not found: {config_path}")

    def load(self, env: dict[str, str] | None = None) -> IngestionConfig:
        """
        Load the configuration.

        Args:
            env: Environment to read overrides from (defaults to os.environ)

        Raises:
            ValueError: If the file or an override holds an invalid value
        """
        settings: dict[str, Any] = {}

        if self.config_path is not None:
            with open(self.config_path) as f:
                document = yaml.safe_load(f) or {}

            if not isinstance(document, dict):
                raise ValueError("Configuration file must contain a mapping")

            section = document.get("ingestion", {})
            if not isinstance(section, dict):
                raise ValueError("'ingestion' section must be a mapping")
            settings.update(section)

        environ = os.environ if env is None else env
        for var, field in ENV_OVERRIDES.items():
            if var in environ:
                settings[field] = environ[var]

        return IngestionConfig(**settings)


def load_ingestion_config(config_path: str | Path | None = None) -> IngestionConfig:
    return IngestionConfigLoader(config_path).load()
