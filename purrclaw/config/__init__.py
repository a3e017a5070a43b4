"""Configuration module for purrclaw."""

from purrclaw.config.loader import get_config_path, load_config
from purrclaw.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
