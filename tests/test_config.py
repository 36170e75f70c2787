"""
Tests for survey_ops.config_loader.

Tests cover:
- Dot-notation lookup with fallback to built-in defaults
- Bounding box merging
- Config file discovery order
"""

from pathlib import Path

import pytest

from survey_ops.config_loader import Config


class TestConfigGet:
    def test_value_from_file(self, config):
        assert config.get("upload.chunk_size") == 2
        assert config.get("project_name") == "Test Survey"

    def test_falls_back_to_defaults(self, config):
        assert config.get("heatmap.top_barrios") == 10
        assert config.get("migration.processed_marker") == "registros procesados"

    def test_explicit_default(self, config):
        assert config.get("not.a.key", "fallback") == "fallback"
        assert config.get("not.a.key") is None

    def test_zero_is_a_value(self, config):
        assert config.get("migration.inter_batch_delay_seconds") == 0

    def test_table_and_rpc_names(self, config):
        assert config.get_table_name("survey_responses") == "survey_responses"
        assert config.get_rpc_name("migrate_batch") == "migrate_batch_to_normalized_hybrid"
        with pytest.raises(ValueError):
            config.get_rpc_name("drop_everything")

    def test_bounding_box_partial_override(self, config):
        assert config.get_bounding_box() == {
            "west": -74.9,
            "east": -74.7,
            "south": 10.9,
            "north": 11.1,
        }

    def test_input_path_is_relative_to_config(self, config, config_file):
        assert config.get_input_path("barrio_mesh") == config_file.parent.resolve() / "geo-barranquilla.json"
        with pytest.raises(ValueError):
            config.get_input_path("unknown")


class TestConfigDiscovery:
    def test_environment_variable(self, config_file, monkeypatch):
        monkeypatch.setenv("SURVEY_CONFIG_PATH", str(config_file))
        assert Config().get("project_name") == "Test Survey"

    def test_packaged_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SURVEY_CONFIG_PATH", raising=False)
        monkeypatch.chdir(tmp_path)
        config = Config()
        assert config.config_path.name == "config.yaml"
        assert config.config_path.parent.name == "survey_ops"
        assert config.project_root == Path.cwd()
        assert config.get("migration.batch_size") == 50

    def test_project_root_override(self, config_file, tmp_path):
        config = Config(config_file, project_root_override=tmp_path / "elsewhere")
        assert config.project_root == (tmp_path / "elsewhere").resolve()
