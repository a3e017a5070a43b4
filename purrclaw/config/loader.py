"""Configuration loading utilities."""

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from purrclaw.config.schema import Config


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".purrclaw" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    agents = data.get("agents")
    defaults = agents.get("defaults") if isinstance(agents, dict) else None
    if isinstance(defaults, dict) and "maxToolIterations" in defaults:
        legacy = defaults.pop("maxToolIterations")
        defaults.setdefault("maxIterations", legacy)

    tools = data.get("tools")
    if isinstance(tools, dict) and "toolTimeoutMs" in tools:
        legacy_ms = tools.pop("toolTimeoutMs")
        if "toolTimeoutSeconds" not in tools and isinstance(legacy_ms, (int, float)):
            tools["toolTimeoutSeconds"] = legacy_ms / 1000
    if isinstance(tools, dict) and "restrictToWorkspace" in (tools.get("exec") or {}):
        # Moved from tools.exec to tools
        tools.setdefault("restrictToWorkspace", tools["exec"].pop("restrictToWorkspace"))

    return data
