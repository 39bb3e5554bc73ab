"""Two-scope settings: user (~/.envize) and project-local (./.envize)."""

import logging
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigFileError
from .exceptions import ConfigValidationError
from .models import Scope
from .models import Shell
from .utils import deep_merge

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    "shell": None,
    "reveal_chars": 4,
}


class SettingsManager:
    """Reads and writes envize settings across user and local scopes.

    Resolution order (highest to lowest priority):
    1. Local settings (project)
    2. User settings (global)
    3. Built-in defaults

    Args:
        user_path: User-scope settings file
        local_path: Local-scope settings file
    """

    def __init__(self, user_path: Path, local_path: Path):
        self.user_path = Path(user_path)
        self.local_path = Path(local_path)

    # ===== Merged Settings =====

    def get_merged_settings(self) -> dict[str, Any]:
        """Defaults overlaid with user then local settings."""
        merged = dict(DEFAULT_SETTINGS)

        user = self._read_yaml(self.user_path)
        if user:
            merged = deep_merge(merged, user)

        local = self._read_yaml(self.local_path)
        if local:
            merged = deep_merge(merged, local)

        return merged

    def get_setting(self, key: str, default: Any = None) -> Any:
        value = self.get_merged_settings().get(key)
        return default if value is None else value

    # ===== Typed Accessors =====

    def shell(self) -> Shell | None:
        """Configured shell dialect, or None to auto-detect."""
        name = self.get_setting("shell")
        if not name:
            return None
        shell = Shell.from_name(str(name))
        return None if shell is Shell.UNKNOWN else shell

    def reveal_chars(self) -> int:
        value = self.get_setting("reveal_chars", DEFAULT_SETTINGS["reveal_chars"])
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid reveal_chars setting: {value!r}")
            return DEFAULT_SETTINGS["reveal_chars"]

    # ===== Updates =====

    def set_setting(self, key: str, value: Any, scope: Scope = Scope.USER) -> None:
        """Set a setting in the given scope.

        Raises:
            ConfigValidationError: If the key is unknown or the value invalid
            ConfigFileError: If the settings file cannot be written
        """
        value = self._normalize(key, value)
        target_path = self.scope_to_path(scope)
        self._update_yaml(target_path, {key: value})
        logger.info(f"Set {key}={value!r} in {scope.value} scope")

    def unset_setting(self, key: str, scope: Scope = Scope.USER) -> bool:
        """Remove a setting from the given scope.

        Returns:
            True if removed, False if it was not set there
        """
        target_path = self.scope_to_path(scope)
        settings = self._read_yaml(target_path)

        if not settings or key not in settings:
            return False

        del settings[key]
        self._write_yaml(target_path, settings)
        logger.info(f"Removed {key} from {scope.value} scope")
        return True

    def scope_to_path(self, scope: Scope) -> Path:
        scope_map = {
            Scope.USER: self.user_path,
            Scope.LOCAL: self.local_path,
        }
        return scope_map[scope]

    # ===== Private Helpers =====

    def _normalize(self, key: str, value: Any) -> Any:
        if key not in DEFAULT_SETTINGS:
            raise ConfigValidationError(f"Unknown setting: {key}")
        if key == "shell":
            shell = Shell.from_name(str(value))
            if shell is Shell.UNKNOWN:
                raise ConfigValidationError(f"Unsupported shell: {value}")
            return shell.value
        if key == "reveal_chars":
            try:
                valid = int(value) >= 0
            except (TypeError, ValueError):
                valid = False
            if not valid:
                raise ConfigValidationError(f"reveal_chars must be a non-negative integer, got {value!r}")
            return int(value)
        return value

    def _read_yaml(self, path: Path) -> dict[str, Any] | None:
        """Read YAML file.

        Returns:
            Dictionary from YAML, or None if the file is missing or unreadable
        """
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to read settings from {path}: {e}")
            return None

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings in {path}: expected a mapping")
            return None
        return data

    def _write_yaml(self, path: Path, data: dict[str, Any]) -> None:
        """Write YAML file.

        Raises:
            ConfigFileError: If write fails
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigFileError(f"Failed to write settings to {path}: {e}") from e

    def _update_yaml(self, path: Path, updates: dict[str, Any]) -> None:
        existing = self._read_yaml(path) or {}
        self._write_yaml(path, deep_merge(existing, updates))
