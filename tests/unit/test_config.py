"""
Unit tests for ingestion configuration loading.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ads_warehouse.core.config import IngestionConfig, IngestionConfigLoader

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "ingestion.yaml"


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "ingestion.yaml"
    path.write_text(
        "ingestion:\n"
        "  copy_from_threshold: 200\n"
        "  staging_prefix: tmp\n"
        "  aggregate_before_load: false\n"
    )
    return path


@pytest.mark.unit
class TestIngestionConfig:
    """Tests for IngestionConfig"""

    def test_defaults(self):
        config = IngestionConfig()

        assert config.copy_from_threshold == 5000
        assert config.staging_prefix == "stg"
        assert config.conservation_tolerance == 0.01
        assert config.aggregate_before_load is True

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            IngestionConfig(copy_from_threshold=0)

    def test_staging_prefix_must_be_identifier(self):
        with pytest.raises(ValidationError):
            IngestionConfig(staging_prefix="stg; drop")

    def test_staging_prefix_length_capped(self):
        assert IngestionConfig(staging_prefix="s" * 16).staging_prefix == "s" * 16
        with pytest.raises(ValidationError):
            IngestionConfig(staging_prefix="s" * 17)
        with pytest.raises(ValidationError):
            IngestionConfig(staging_prefix="")

    def test_frozen(self):
        config = IngestionConfig()
        with pytest.raises(ValidationError):
            config.copy_from_threshold = 10


@pytest.mark.unit
class TestIngestionConfigLoader:
    """Tests for IngestionConfigLoader"""

    def test_load_from_yaml(self, config_file):
        config = IngestionConfigLoader(config_file).load(env={})

        assert config.copy_from_threshold == 200
        assert config.staging_prefix == "tmp"
        assert config.aggregate_before_load is False
        assert config.conservation_tolerance == 0.01

    def test_env_overrides_yaml(self, config_file):
        config = IngestionConfigLoader(config_file).load(
            env={"INGESTION_COPY_THRESHOLD": "10", "INGESTION_AGGREGATE": "true"}
        )

        assert config.copy_from_threshold == 10
        assert config.aggregate_before_load is True

    def test_no_file_uses_defaults(self, monkeypatch):
        monkeypatch.delenv("INGESTION_CONFIG", raising=False)
        config = IngestionConfigLoader().load(env={})
        assert config == IngestionConfig()

    def test_env_only(self, monkeypatch):
        monkeypatch.delenv("INGESTION_CONFIG", raising=False)
        monkeypatch.setenv("INGESTION_COPY_THRESHOLD", "42")

        assert IngestionConfigLoader().load().copy_from_threshold == 42

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            IngestionConfigLoader(tmp_path / "absent.yaml")

    def test_invalid_override_raises(self, config_file):
        with pytest.raises(ValueError):
            IngestionConfigLoader(config_file).load(env={"INGESTION_COPY_THRESHOLD": "many"})

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("ingestion:\n  - 1\n  - 2\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            IngestionConfigLoader(path).load(env={})

    def test_repository_config_file(self):
        config = IngestionConfigLoader(REPO_CONFIG).load(env={})
        assert config.copy_from_threshold == 5000
