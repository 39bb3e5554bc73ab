"""Profile resolution: ordered last-wins merge with conflict reporting."""

import logging
from collections.abc import Iterable
from collections.abc import Mapping

from .exceptions import ProfileNotFoundError
from .models import Conflict
from .models import EnvDiff
from .models import EnvVariable
from .models import Profile
from .models import Removal
from .models import ResolvedEnv
from .repository import ProfileRepository

logger = logging.getLogger(__name__)


class ProfileResolver:
    """Merges ordered profiles into a single variable map.

    The order of the input list is the only conflict rule: when several
    profiles set the same variable, the one appearing last wins.

    Args:
        repository: Source of profiles for name-based resolution. May be
            None when only ``resolve_profiles`` and ``diff`` are used.
    """

    def __init__(self, repository: ProfileRepository | None = None):
        self.repository = repository

    def resolve(self, names: list[str]) -> ResolvedEnv:
        """Load and merge profiles by name.

        Args:
            names: Profile names in precedence order (last wins)

        Returns:
            Merged variables and conflict report

        Raises:
            ProfileNotFoundError: On the first name that does not resolve
        """
        if self.repository is None:
            raise RuntimeError("ProfileResolver.resolve requires a repository")

        profiles = []
        for name in names:
            profile = self.repository.load(name)
            if profile is None:
                raise ProfileNotFoundError(name)
            profiles.append(profile)

        return self.resolve_profiles(profiles)

    def resolve_profiles(self, profiles: Iterable[Profile]) -> ResolvedEnv:
        """Merge already-loaded profiles in the given order."""
        variables: dict[str, EnvVariable] = {}
        provenance: dict[str, list[str]] = {}

        for profile in profiles:
            for key, value in profile.variables.items():
                provenance.setdefault(key, []).append(profile.name)
                variables[key] = EnvVariable(value=value, source=profile.name)

        conflicts = [
            Conflict(variable=key, profiles=sources, winner=sources[-1])
            for key, sources in provenance.items()
            if len(sources) > 1
        ]
        for conflict in conflicts:
            logger.debug(f"{conflict.variable} set by {', '.join(conflict.profiles)}; '{conflict.winner}' wins")

        return ResolvedEnv(variables=variables, conflicts=conflicts)

    @staticmethod
    def diff(current: Mapping[str, EnvVariable], target: Mapping[str, EnvVariable]) -> EnvDiff:
        """Minimal change that turns ``current`` into ``target``.

        Returns:
            ``to_set``: keys of ``target`` that are new or have a different value;
            ``to_unset``: keys of ``current`` missing from ``target``
        """
        to_set = {
            key: var.value for key, var in target.items() if key not in current or current[key].value != var.value
        }
        to_unset = [key for key in current if key not in target]
        return EnvDiff(to_set=to_set, to_unset=to_unset)

    def compute_removal(self, current_variables: Mapping[str, EnvVariable], remaining_names: list[str]) -> Removal:
        """Partition active variables after some profiles are removed.

        The remaining profiles are re-resolved. A variable they still provide
        is kept with its new value and source, even if a different profile
        now supplies it. Everything else is queued for unset.

        Raises:
            ProfileNotFoundError: If a remaining profile no longer exists
        """
        remaining = self.resolve(remaining_names) if remaining_names else ResolvedEnv()

        to_unset: list[str] = []
        to_keep: dict[str, EnvVariable] = {}
        for key in current_variables:
            if key in remaining.variables:
                to_keep[key] = remaining.variables[key]
            else:
                to_unset.append(key)

        return Removal(to_unset=to_unset, to_keep=to_keep)
