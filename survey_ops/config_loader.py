"""
Configuration Loader for the Barrio Survey Maps Pipeline

This module provides a centralized way to load and access configuration
settings from a config.yaml file.

Usage:
    from survey_ops import Config

    config = Config()
    chunk_size = config.get("upload.chunk_size")
    bbox = config.get_bounding_box()
    mesh_path = config.get_input_path("barrio_mesh")
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger

PACKAGE_DIR = Path(__file__).parent
PACKAGED_CONFIG = PACKAGE_DIR / "config.yaml"


class Config:
    """Configuration manager for the survey pipeline."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "project_name": "Barrio Survey Maps",
        "upload": {"chunk_size": 100},
        "migration": {
            "batch_size": 50,
            "inter_batch_delay_seconds": 0.2,
            "processed_marker": "registros procesados",
        },
        "geo": {
            "bounding_box": {"west": -74.9, "east": -74.7, "south": 10.9, "north": 11.1},
        },
        "input_files": {"barrio_mesh": "data/geo-barranquilla.json"},
        "supabase": {
            "tables": {"survey_responses": "survey_responses"},
            "rpc": {
                "clear_destination": "clear_normalized_table",
                "migration_progress": "get_migration_stats",
                "migrate_batch": "migrate_batch_to_normalized_hybrid",
                "aggregate_stats": "get_heatmap_data",
                "available_categories": "get_available_categories",
            },
        },
        "heatmap": {"top_barrios": 10},
    }

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        project_root_override: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable SURVEY_CONFIG_PATH
                        2. config.yaml in current directory
                        3. the config.yaml shipped with the survey_ops package
            project_root_override: Override project root detection
        """
        if config_file is None:
            env_config = os.environ.get("SURVEY_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif PACKAGED_CONFIG.exists():
                config_file = PACKAGED_CONFIG
                logger.debug("Using packaged survey_ops/config.yaml")
            else:
                raise FileNotFoundError(
                    "No config.yaml found. Check current directory or set SURVEY_CONFIG_PATH"
                )

        self.config_path = Path(config_file).resolve()

        if project_root_override:
            self.project_root = Path(project_root_override).resolve()
            logger.debug(f"Using project root override: {self.project_root}")
        else:
            self.project_root = self._find_project_root()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            self.data = yaml.safe_load(f) or {}

    def _find_project_root(self) -> Path:
        """The packaged config resolves paths against the working directory."""
        if self.config_path.parent == PACKAGE_DIR.resolve():
            return Path.cwd()
        return self.config_path.parent

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found in config or DEFAULTS

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        for source in (self.data, self.DEFAULTS):
            value: Any = source
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    value = None
                    break
            if value is not None:
                return value

        return default

    def get_input_path(self, filename_key: str) -> Path:
        """
        Get full path to an input file, joined with the project root.

        Args:
            filename_key: Key for the filename in input_files
        """
        relative_path = self.get(f"input_files.{filename_key}")
        if not relative_path:
            raise ValueError(f"Input filename key '{filename_key}' not found in config: input_files")
        return self.project_root / relative_path

    def get_table_name(self, table_key: str) -> str:
        result = self.get(f"supabase.tables.{table_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"Table name not found or not a string: {table_key}")

    def get_rpc_name(self, rpc_key: str) -> str:
        result = self.get(f"supabase.rpc.{rpc_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"RPC function name not found or not a string: {rpc_key}")

    def get_bounding_box(self) -> Dict[str, float]:
        """Bounding box merged over the defaults, so partial overrides keep the other edges."""
        bbox = copy.deepcopy(self.DEFAULTS["geo"]["bounding_box"])
        bbox.update(self.data.get("geo", {}).get("bounding_box", {}) or {})
        return {edge: float(value) for edge, value in bbox.items()}

    def print_config_summary(self) -> None:
        """Log a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Config file: {self.config_path}")
        logger.debug(f"Upload chunk size: {self.get('upload.chunk_size')}")
        logger.debug(f"Migration batch size: {self.get('migration.batch_size')}")
        logger.debug(f"Bounding box: {self.get_bounding_box()}")
