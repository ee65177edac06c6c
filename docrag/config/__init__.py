"""Configuration loading: pydantic-settings ``Settings`` plus YAML defaults."""

from docrag.config.settings import Settings

__all__ = ["Settings"]
