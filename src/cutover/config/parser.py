"""YAML configuration parser for the cutover deployment engine."""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from .models import CutoverConfig

DEFAULT_CONFIG_FILE = "cutover.yaml"


class ConfigValidationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  • {location}: {msg}")

        return "\n".join(error_lines)


class Config:
    """Configuration manager for the cutover deployment engine."""

    def __init__(self, config_path: str = DEFAULT_CONFIG_FILE):
        """Initialize configuration manager.

        Args:
            config_path: Path to cutover.yaml configuration file
        """
        self.config_path = Path(config_path)
        self.data: Dict = {}
        self.settings: Optional[CutoverConfig] = None

    def load(self) -> "Config":
        """Load and validate configuration from YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(self.data, dict):
            raise ConfigValidationError(
                "Configuration validation failed with 1 error(s)",
                [{"loc": [], "msg": "Top level of the configuration must be a mapping"}],
            )

        validation_errors = self.validate()
        if validation_errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        return self

    def validate(self) -> List[Dict]:
        """Validate configuration against schema.

        Returns:
            List of validation errors (empty if valid)
        """
        try:
            self.settings = CutoverConfig(**self.data)
        except ValidationError as e:
            self.settings = None
            return [{"loc": list(error["loc"]), "msg": error["msg"]} for error in e.errors()]
        return []

    def resolve_path(self, path: str) -> Path:
        """Resolve a configured path relative to the project working directory."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.project_dir / candidate

    @property
    def project_dir(self) -> Path:
        base = self.config_path.parent
        if self.settings is None:
            return base
        return base / self.settings.project.working_dir
