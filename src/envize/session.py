"""Session operations: activate, extend, shrink and reset the active profile set."""

import logging
from collections.abc import Iterable
from collections.abc import Mapping

from .exceptions import ProfileNotFoundError
from .models import EnvizePaths
from .models import EnvVariable
from .models import Shell
from .models import ShellChange
from .models import StateData
from .persist import PersistedEnv
from .repository import ProfileRepository
from .resolver import ProfileResolver
from .shell import ShellGenerator
from .state import StateStore
from .utils import mask_value

logger = logging.getLogger(__name__)


class EnvSession:
    """Coordinates repository, resolver, state store and shell generator.

    Each mutating operation computes the change, renders it as shell text
    and records the new state. The calling shell applies the change by
    evaluating ``ShellChange.script``; this process never modifies its own
    environment.

    When a variable stops being provided, it is restored to its snapshot
    value if it had one before envize touched it, and unset otherwise.

    Args:
        repository: Profile source
        resolver: Profile merger
        state: Session state store
        generator: Shell text renderer
        persisted: Cross-session exports, used by ``persist=True`` operations
    """

    def __init__(
        self,
        repository: ProfileRepository,
        resolver: ProfileResolver,
        state: StateStore,
        generator: ShellGenerator,
        persisted: PersistedEnv | None = None,
    ):
        self.repository = repository
        self.resolver = resolver
        self.state = state
        self.generator = generator
        self.persisted = persisted

    @classmethod
    def from_paths(
        cls,
        paths: EnvizePaths,
        shell: Shell = Shell.BASH,
        environ: Mapping[str, str] | None = None,
    ) -> "EnvSession":
        """Build a session over the standard file layout."""
        repository = ProfileRepository(paths.global_profiles, paths.local_profiles)
        return cls(
            repository=repository,
            resolver=ProfileResolver(repository),
            state=StateStore(paths.state, environ=environ),
            generator=ShellGenerator(shell),
            persisted=PersistedEnv(paths.persisted),
        )

    # ===== Mutations =====

    def use(self, names: list[str], persist: bool = False) -> ShellChange:
        """Replace the active set with ``names``.

        Every resolved variable is exported, so a fresh shell picks up the
        full set even when the stored state already matches.

        Raises:
            ProfileNotFoundError: If any name does not resolve
        """
        names = _unique(names)
        resolved = self.resolver.resolve(names)
        current = self.state.load()

        dropped = self.resolver.diff(current.variables, resolved.variables).to_unset
        to_set = resolved.values()
        restored, to_unset = self._release(dropped, current.snapshot)

        script = self.generator.generate_commands({**restored, **to_set}, to_unset)
        new_state = self.state.update(names, resolved.variables)

        if persist:
            self._persisted().write(to_set)

        return ShellChange(
            action="use",
            profiles=names,
            active_profiles=new_state.active_profiles,
            to_set={**restored, **to_set},
            to_unset=to_unset,
            conflicts=resolved.conflicts,
            script=script,
        )

    def add(self, names: list[str], persist: bool = False) -> ShellChange:
        """Append profiles to the active set.

        Names already active are ignored. Only new or changed values are
        exported.
        """
        current = self.state.load()
        new_names = [name for name in _unique(names) if name not in current.active_profiles]
        if not new_names:
            return ShellChange(action="add", profiles=[], active_profiles=current.active_profiles)

        resolved = self.resolver.resolve(current.active_profiles + new_names)
        to_set = self.resolver.diff(current.variables, resolved.variables).to_set

        script = self.generator.generate_exports(to_set)
        new_state = self.state.add_profiles(new_names, resolved.variables)

        if persist:
            self._persisted().update(to_set, [])

        return ShellChange(
            action="add",
            profiles=new_names,
            active_profiles=new_state.active_profiles,
            to_set=to_set,
            conflicts=resolved.conflicts,
            script=script,
        )

    def remove(self, names: list[str], persist: bool = False) -> ShellChange:
        """Drop profiles from the active set.

        Names that are not active are ignored. A variable still provided by
        a remaining profile survives, re-exported if its value changed.
        """
        current = self.state.load()
        requested = set(names)
        to_remove = [name for name in current.active_profiles if name in requested]
        if not to_remove:
            return ShellChange(action="remove", profiles=[], active_profiles=current.active_profiles)

        remaining = [name for name in current.active_profiles if name not in requested]
        removal = self.resolver.compute_removal(current.variables, remaining)

        changed = {
            key: var.value for key, var in removal.to_keep.items() if current.variables[key].value != var.value
        }
        restored, to_unset = self._release(removal.to_unset, current.snapshot)

        script = self.generator.generate_commands({**changed, **restored}, to_unset)
        new_state = self.state.remove_profiles(to_remove, removal.to_keep, removal.to_unset)

        if persist:
            self._persisted().update(changed, removal.to_unset)

        return ShellChange(
            action="remove",
            profiles=to_remove,
            active_profiles=new_state.active_profiles,
            to_set={**changed, **restored},
            to_unset=to_unset,
            script=script,
        )

    def reset(self, persist: bool = False) -> ShellChange:
        """Restore every tracked variable and clear the session state.

        Variables with a recorded original value are exported with it;
        variables that did not exist before are unset.
        """
        current = self.state.load()
        restored, to_unset = self._release(current.variables, current.snapshot)

        if persist:
            self._persisted().clear()

        if not current.active_profiles and not current.variables:
            return ShellChange(action="reset", profiles=[], active_profiles=[])

        script = self.generator.generate_commands(restored, to_unset)
        self.state.clear()

        return ShellChange(
            action="reset",
            profiles=list(current.active_profiles),
            active_profiles=[],
            to_set=restored,
            to_unset=to_unset,
            script=script,
        )

    def refresh(self) -> ShellChange:
        """Re-read the active profiles from disk and re-apply them.

        Raises:
            ProfileNotFoundError: If any active profile no longer exists
        """
        current = self.state.load()
        if not current.active_profiles:
            return ShellChange(action="refresh", profiles=[], active_profiles=[])

        missing = [name for name in current.active_profiles if not self.repository.exists(name)]
        if missing:
            raise ProfileNotFoundError(missing[0], f"Some profiles no longer exist: {', '.join(missing)}")

        change = self.use(current.active_profiles)
        change.action = "refresh"
        return change

    # ===== Queries =====

    def status(self) -> StateData:
        return self.state.load()

    def which(self, variable: str) -> EnvVariable | None:
        """Active value and source of a variable, if envize set it."""
        return self.state.get_variables().get(variable)

    def explain(self, reveal_chars: int = 4) -> str:
        """Plain-text description of the current state, values masked."""
        state = self.state.load()
        lines = ["# Current Environment State (envize)", ""]

        if not state.active_profiles:
            lines.append("No envize profiles are currently active.")
            return "\n".join(lines)

        lines.append(f"Active profiles: {', '.join(state.active_profiles)}")
        lines.append("")
        lines.append("Environment variables set by envize:")
        for key in sorted(state.variables):
            var = state.variables[key]
            lines.append(f"- {key}={mask_value(var.value, reveal_chars)} (from {var.source})")
        lines.append("")
        lines.append(f"Last applied: {state.applied_at}")

        return "\n".join(lines)

    # ===== Private Helpers =====

    def _release(self, keys: Iterable[str], snapshot: Mapping[str, str | None]) -> tuple[dict[str, str], list[str]]:
        """Split keys leaving envize's control into restores and unsets."""
        restored: dict[str, str] = {}
        to_unset: list[str] = []
        for key in keys:
            original = snapshot.get(key)
            if original is None:
                to_unset.append(key)
            else:
                restored[key] = original
        return restored, to_unset

    def _persisted(self) -> PersistedEnv:
        if self.persisted is None:
            raise RuntimeError("EnvSession was created without a PersistedEnv")
        return self.persisted


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))
