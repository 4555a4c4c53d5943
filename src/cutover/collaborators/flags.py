"""Feature flag stores that replace mutation of the process environment."""

from pathlib import Path
from typing import Dict, Optional

import yaml

from cutover.collaborators.base import FeatureFlagStore
from cutover.utils.errors import ConfigurationError
from cutover.utils.logging import get_logger

logger = get_logger(__name__)


class InMemoryFeatureFlagStore(FeatureFlagStore):
    """Flags held in a dictionary for the lifetime of the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._flags: Dict[str, str] = dict(initial or {})

    def get(self, name: str) -> Optional[str]:
        return self._flags.get(name)

    def set(self, name: str, value: str) -> None:
        self._flags[name] = value

    def snapshot(self) -> Dict[str, str]:
        return dict(self._flags)


class FileFeatureFlagStore(FeatureFlagStore):
    """Flags persisted to a YAML file that the application reads at startup.

    Every write rewrites the whole file atomically.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse feature flag file {self.path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Feature flag file {self.path} must contain a mapping")
        return {str(k): str(v) for k, v in data.items()}

    def get(self, name: str) -> Optional[str]:
        return self._load().get(name)

    def set(self, name: str, value: str) -> None:
        flags = self._load()
        flags[name] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(flags, f, default_flow_style=False, sort_keys=True)
        temp_path.replace(self.path)
        logger.debug(f"Feature flag {name}={value}")

    def snapshot(self) -> Dict[str, str]:
        return self._load()
