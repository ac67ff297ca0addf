"""Configuration management package."""

from .settings import Config, load_config
from .defaults import DEFAULT_CONFIG

__all__ = ["Config", "load_config", "DEFAULT_CONFIG"]
