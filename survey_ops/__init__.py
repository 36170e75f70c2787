"""
Operations package for the Barrio Survey Maps pipeline

This package centralizes all operational tools including:
- Configuration management
- Supabase store integration
- Migration orchestration
- CLI utilities

The Config class is exposed at the package level for convenient imports:
    from survey_ops import Config
"""

from .config_loader import Config

__all__ = ["Config"]
