"""
Flowserver configuration management.

A thin dotted-path accessor over a nested dict:

    config = Config({"http": {"port": 3000}})
    config.get("http.port")          # 3000
    config.set("app.name", "demo")   # creates the "app" dict
    config.merge({"http": {"host": "0.0.0.0"}})
"""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def _is_mapping(value: Any) -> bool:
    return isinstance(value, dict)


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """
    Return a new dict with source merged into target, recursing into dicts.

    Values taken from source are copied, so the result never shares nested
    containers with it.
    """
    output = dict(target)
    for key, value in source.items():
        if _is_mapping(value) and _is_mapping(output.get(key)):
            output[key] = deep_merge(output[key], value)
        else:
            output[key] = copy.deepcopy(value)
    return output


class Config:
    """Nested configuration with dotted-path access. The initial mapping is copied."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from a YAML file. A missing file gives an empty config."""
        config = cls()
        if path.exists():
            config.load_from_file(path)
        return config

    def get(self, path: str, default: Any = None) -> Any:
        """Get the value at a dotted path, or default if any segment is missing."""
        current: Any = self._data
        for part in path.split("."):
            if not _is_mapping(current) or part not in current:
                return default
            current = current[part]
        return default if current is None else current

    def set(self, path: str, value: Any) -> "Config":
        """Set the value at a dotted path, creating intermediate dicts."""
        parts = path.split(".")
        current = self._data
        for part in parts[:-1]:
            if not _is_mapping(current.get(part)):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value
        return self

    def has(self, path: str) -> bool:
        return self.get(path) is not None

    def merge(self, partial: dict[str, Any]) -> "Config":
        """Deep-merge a partial configuration into this one."""
        self._data = deep_merge(self._data, partial)
        return self

    def get_all(self) -> dict[str, Any]:
        """Snapshot of the whole configuration."""
        return copy.deepcopy(self._data)

    def load_from_file(self, path: Path | str) -> bool:
        """
        Merge a YAML file into this configuration.

        Returns:
            True if the file was loaded, False if it could not be read or
            did not contain a mapping.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return False

        if not _is_mapping(data):
            logger.error("Config file %s does not contain a mapping", path)
            return False

        self.merge(data)
        logger.debug("Loaded config from %s", path)
        return True

    def save(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._data, f, default_flow_style=False)
