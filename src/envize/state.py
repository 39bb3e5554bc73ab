"""Session state store: what is active and what to restore."""

import json
import logging
import os
from collections.abc import Iterable
from collections.abc import Mapping
from pathlib import Path

from .exceptions import StateFileError
from .models import EnvVariable
from .models import StateData
from .models import utc_now

logger = logging.getLogger(__name__)


class StateStore:
    """Owns the persisted session state file.

    Every mutating method is a full read-modify-write of the file. There is
    no locking: two processes mutating at once race and the last writer
    wins.

    The snapshot records, for each tracked variable, the value it had in
    the real environment the first time envize captured it (None if it was
    unset). An entry is written once and kept until the variable stops
    being tracked, so repeated activations never overwrite the original.

    Args:
        path: State JSON file
        environ: Environment to snapshot from (default: ``os.environ``).
            Only read, never modified.
    """

    def __init__(self, path: Path, environ: Mapping[str, str] | None = None):
        self.path = Path(path)
        self.environ = os.environ if environ is None else environ

    # ===== Persistence =====

    def load(self) -> StateData:
        """Read state; a missing or invalid file yields an empty state."""
        if not self.path.exists():
            return StateData()

        try:
            with open(self.path, encoding="utf-8") as f:
                return StateData.from_dict(json.load(f))
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable state at {self.path}: {e}")
            return StateData()

    def save(self, state: StateData) -> None:
        """Overwrite the state file.

        Raises:
            StateFileError: If the file cannot be written
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateFileError(f"Failed to write state to {self.path}: {e}") from e

    # ===== Mutations =====

    def update(self, profiles: list[str], variables: Mapping[str, EnvVariable]) -> StateData:
        """Replace the active set and its variables.

        Snapshot entries are added for variables seen for the first time;
        existing entries are left untouched.
        """
        current = self.load()
        state = StateData(
            active_profiles=_unique(profiles),
            variables=dict(variables),
            snapshot=self._extend_snapshot(current.snapshot, variables),
            applied_at=utc_now(),
        )
        self.save(state)
        logger.info(f"Active profiles set to {state.active_profiles}")
        return state

    def add_profiles(self, names: list[str], variables: Mapping[str, EnvVariable]) -> StateData:
        """Append profiles to the active set and merge their variables in."""
        current = self.load()
        state = StateData(
            active_profiles=_unique(current.active_profiles + list(names)),
            variables={**current.variables, **variables},
            snapshot=self._extend_snapshot(current.snapshot, variables),
            applied_at=utc_now(),
        )
        self.save(state)
        logger.info(f"Added profiles {list(names)}; active: {state.active_profiles}")
        return state

    def remove_profiles(
        self,
        names: list[str],
        remaining_variables: Mapping[str, EnvVariable],
        keys_to_unset: Iterable[str],
    ) -> StateData:
        """Drop profiles from the active set.

        Args:
            names: Profiles to remove
            remaining_variables: Variables still provided (from ``compute_removal``)
            keys_to_unset: Variables no longer tracked; their snapshot entries
                are discarded so a later activation captures them afresh
        """
        current = self.load()
        removed = set(names)
        snapshot = dict(current.snapshot)
        for key in keys_to_unset:
            snapshot.pop(key, None)

        state = StateData(
            active_profiles=[p for p in current.active_profiles if p not in removed],
            variables=dict(remaining_variables),
            snapshot=snapshot,
            applied_at=utc_now(),
        )
        self.save(state)
        logger.info(f"Removed profiles {list(names)}; active: {state.active_profiles}")
        return state

    def clear(self) -> StateData:
        """Reset to the empty state, discarding the snapshot."""
        state = StateData()
        self.save(state)
        logger.info("Cleared session state")
        return state

    # ===== Accessors =====

    def get_active_profiles(self) -> list[str]:
        return self.load().active_profiles

    def get_variables(self) -> dict[str, EnvVariable]:
        return self.load().variables

    def get_snapshot(self) -> dict[str, str | None]:
        return self.load().snapshot

    def has_active_profiles(self) -> bool:
        return bool(self.get_active_profiles())

    # ===== Private Helpers =====

    def _extend_snapshot(self, snapshot: Mapping[str, str | None], keys: Iterable[str]) -> dict[str, str | None]:
        result = dict(snapshot)
        for key in keys:
            if key not in result:
                result[key] = self.environ.get(key)
        return result


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))
