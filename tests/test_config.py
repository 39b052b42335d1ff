"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from derank.config import load_config, load_config_with_overrides
from derank.config.schema import ColumnAliases, DetectionConfig, PipelineConfig


def test_load_valid_config():
    """Test loading valid default configuration."""
    config = load_config("config/default.yaml")

    assert isinstance(config, PipelineConfig)
    assert config.detection.sample_size == 1000
    assert config.detection.match_threshold == 0.6
    assert config.detection.seed is None
    assert config.ranks.max_genes == 10000
    assert config.aliases.stat[0] == "stat"
    assert set(config.annotation.organisms) == {"human", "mouse"}


def test_organism_namespaces_keep_order():
    """Test the base namespace stays first after YAML parsing."""
    config = load_config("config/default.yaml")
    human = config.annotation.organisms["human"]

    assert list(human.id_namespaces) == ["Entrez", "RefSeq", "Ensembl", "Symbol"]
    assert human.name_namespace == "Symbol"


def test_invalid_config_missing_field(tmp_path):
    """Test that missing required field raises ValidationError."""
    invalid_config = tmp_path / "invalid.yaml"
    invalid_config.write_text("""
duckdb_path: data/derank.duckdb
detection:
  sample_size: 100
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(invalid_config)

    assert "data_dir" in str(exc_info.value)


def test_invalid_match_threshold(tmp_path):
    """Test that a match threshold above 1 raises ValidationError."""
    invalid_config = tmp_path / "invalid_threshold.yaml"
    invalid_config.write_text(f"""
data_dir: {tmp_path / "data"}
duckdb_path: {tmp_path / "derank.duckdb"}
detection:
  match_threshold: 1.5
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(invalid_config)

    assert "match_threshold" in str(exc_info.value)


def test_invalid_sample_size():
    with pytest.raises(ValidationError):
        DetectionConfig(sample_size=0)


def test_empty_namespaces_rejected(tmp_path):
    invalid_config = tmp_path / "invalid_namespaces.yaml"
    invalid_config.write_text(f"""
data_dir: {tmp_path / "data"}
duckdb_path: {tmp_path / "derank.duckdb"}
annotation:
  organisms:
    human:
      species: human
      id_namespaces: {{}}
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(invalid_config)

    assert "at least the base namespace" in str(exc_info.value)


def test_defaults_for_optional_sections(tmp_path):
    minimal = tmp_path / "minimal.yaml"
    minimal.write_text(f"""
data_dir: {tmp_path / "data"}
duckdb_path: {tmp_path / "derank.duckdb"}
""")
    config = load_config(minimal)

    assert config.detection == DetectionConfig()
    assert config.aliases == ColumnAliases()
    assert config.annotation.organisms == {}


def test_config_hash_deterministic():
    """Test that same config produces same hash."""
    config1 = load_config("config/default.yaml")
    config2 = load_config("config/default.yaml")

    assert config1.config_hash() == config2.config_hash()


def test_config_hash_changes():
    """Test that different config produces different hash."""
    config1 = load_config("config/default.yaml")
    config2 = load_config_with_overrides(
        "config/default.yaml",
        {"detection.seed": 42},
    )

    assert config2.detection.seed == 42
    assert config1.config_hash() != config2.config_hash()


def test_top_level_override(tmp_path):
    config = load_config_with_overrides(
        "config/default.yaml",
        {"duckdb_path": str(tmp_path / "other.duckdb")},
    )

    assert config.duckdb_path == tmp_path / "other.duckdb"


def test_override_revalidated():
    with pytest.raises(ValidationError):
        load_config_with_overrides("config/default.yaml", {"ranks.max_genes": 0})


def test_config_creates_directories(tmp_path):
    """Test that loading config creates the data directory."""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(f"""
data_dir: {tmp_path / "test_data"}
duckdb_path: {tmp_path / "test.duckdb"}
""")

    config = load_config(config_file)

    assert config.data_dir.exists()
    assert Path(config.data_dir).is_dir()


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
