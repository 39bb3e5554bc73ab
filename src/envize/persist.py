"""Cross-session persisted exports sourced by the shell wrapper."""

import logging
from collections.abc import Iterable
from collections.abc import Mapping
from pathlib import Path

import yaml

from .exceptions import ConfigFileError
from .models import Shell
from .shell import ShellGenerator

logger = logging.getLogger(__name__)

HEADER = "# Generated by envize. Do not edit; use `envize use --persist` instead."


class PersistedEnv:
    """Variables applied to every new shell session.

    The variable map lives in a YAML file. On every write the rendered
    ``active.sh`` and ``active.fish`` next to it are regenerated; the
    shell wrapper sources whichever matches the shell.

    Args:
        path: YAML file holding the persisted variable map
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def rendered_paths(self) -> dict[Shell, Path]:
        return {
            Shell.BASH: self.path.parent / "active.sh",
            Shell.FISH: self.path.parent / "active.fish",
        }

    def load(self) -> dict[str, str]:
        """Read the persisted map; missing or invalid files yield an empty map."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to read persisted variables from {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items() if value is not None}

    def write(self, variables: Mapping[str, str]) -> None:
        """Replace the persisted map."""
        self._store(dict(variables))

    def update(self, to_set: Mapping[str, str], to_unset: Iterable[str]) -> None:
        """Apply a change to the persisted map."""
        variables = self.load()
        for key in to_unset:
            variables.pop(key, None)
        variables.update(to_set)
        self._store(variables)

    def clear(self) -> None:
        """Remove the persisted map and rendered files."""
        for path in (self.path, *self.rendered_paths.values()):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise ConfigFileError(f"Failed to remove {path}: {e}") from e
        logger.info("Cleared persisted variables")

    # ===== Private Helpers =====

    def _store(self, variables: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                yaml.safe_dump(variables, f, default_flow_style=False, sort_keys=True)

            for shell, rendered in self.rendered_paths.items():
                body = ShellGenerator(shell).generate_exports(dict(sorted(variables.items())))
                rendered.write_text(f"{HEADER}\n{body}\n" if body else f"{HEADER}\n", encoding="utf-8")
        except OSError as e:
            raise ConfigFileError(f"Failed to write persisted variables to {self.path}: {e}") from e

        logger.info(f"Persisted {len(variables)} variable(s) to {self.path}")
