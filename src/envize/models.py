"""Data models for envize."""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Any


class Location(Enum):
    """Where a profile file lives.

    Local profiles belong to the current project and override global
    profiles of the same name.
    """

    GLOBAL = "global"
    LOCAL = "local"


class Scope(Enum):
    """Settings scope enumeration.

    Determines which settings file to target for write operations.
    """

    USER = "user"
    LOCAL = "local"


class Shell(Enum):
    """Supported shell dialects.

    BASH and ZSH render identically. UNKNOWN renders with bash syntax.
    """

    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str | None) -> "Shell":
        """Map a shell name or path (e.g. ``/usr/bin/zsh``) to a dialect.

        Only the executable name is considered. A login-shell ``-`` prefix
        and version suffixes such as ``bash5`` are accepted.
        """
        if not name:
            return cls.UNKNOWN
        executable = Path(name.strip()).name.lower().lstrip("-")
        for shell in (cls.BASH, cls.ZSH, cls.FISH):
            if executable.startswith(shell.value):
                return shell
        return cls.UNKNOWN


@dataclass(frozen=True)
class EnvizePaths:
    """Filesystem locations used by envize.

    Applications inject these paths; ``default_paths()`` computes the
    standard layout under ``~/.envize`` and ``./.envize``.

    Attributes:
        home: Global envize directory (typically ~/.envize)
        global_profiles: Directory of machine-wide profiles
        local_profiles: Directory of project-local profiles
        state: Session state JSON file
        persisted: Cross-session variable map (YAML)
        user_settings: User-scope settings file
        local_settings: Project-scope settings file
    """

    home: Path
    global_profiles: Path
    local_profiles: Path
    state: Path
    persisted: Path
    user_settings: Path
    local_settings: Path


@dataclass
class ProfileMetadata:
    """Header metadata parsed from ``#@description`` and ``#@tags`` lines."""

    description: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class Profile:
    """A named, file-backed set of variable assignments."""

    name: str
    path: Path
    location: Location
    metadata: ProfileMetadata = field(default_factory=ProfileMetadata)
    variables: dict[str, str] = field(default_factory=dict)


@dataclass
class ProfileSummary:
    """Listing entry for a profile."""

    name: str
    path: Path
    location: Location
    description: str
    tags: list[str]
    variable_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "location": self.location.value,
            "description": self.description,
            "tags": list(self.tags),
            "variable_count": self.variable_count,
        }


@dataclass(frozen=True)
class EnvVariable:
    """A resolved value attributed to the profile that supplied it."""

    value: str
    source: str

    def to_dict(self) -> dict[str, str]:
        return {"value": self.value, "source": self.source}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnvVariable":
        value = data["value"]
        source = data["source"]
        if not isinstance(value, str) or not isinstance(source, str):
            raise TypeError("variable value and source must be strings")
        return cls(value=value, source=source)


@dataclass
class Conflict:
    """A variable set by more than one profile in a single resolution.

    Attributes:
        variable: Variable name
        profiles: Profiles that set it, in merge order
        winner: Profile whose value was kept (last in ``profiles``)
    """

    variable: str
    profiles: list[str]
    winner: str

    def to_dict(self) -> dict[str, Any]:
        return {"variable": self.variable, "profiles": list(self.profiles), "winner": self.winner}


@dataclass
class ResolvedEnv:
    """Result of merging an ordered list of profiles."""

    variables: dict[str, EnvVariable] = field(default_factory=dict)
    conflicts: list[Conflict] = field(default_factory=list)

    def values(self) -> dict[str, str]:
        """Plain name -> value mapping."""
        return {key: var.value for key, var in self.variables.items()}


@dataclass
class EnvDiff:
    """Minimal change between two variable maps."""

    to_set: dict[str, str] = field(default_factory=dict)
    to_unset: list[str] = field(default_factory=list)


@dataclass
class Removal:
    """Outcome of removing profiles from the active set."""

    to_unset: list[str] = field(default_factory=list)
    to_keep: dict[str, EnvVariable] = field(default_factory=dict)


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StateData:
    """Persisted session state.

    Attributes:
        active_profiles: Active profile names in activation order
        variables: Last applied resolution
        snapshot: Value each tracked variable had before envize first set it,
            or None if it was unset
        applied_at: ISO-8601 timestamp of the last write
    """

    active_profiles: list[str] = field(default_factory=list)
    variables: dict[str, EnvVariable] = field(default_factory=dict)
    snapshot: dict[str, str | None] = field(default_factory=dict)
    applied_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_profiles": list(self.active_profiles),
            "variables": {key: var.to_dict() for key, var in self.variables.items()},
            "snapshot": dict(self.snapshot),
            "applied_at": self.applied_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "StateData":
        """Build state from decoded JSON.

        Raises:
            TypeError, KeyError, ValueError: If the structure is not valid state
        """
        if not isinstance(data, dict):
            raise TypeError("state must be a JSON object")

        profiles = data.get("active_profiles", [])
        if not isinstance(profiles, list) or not all(isinstance(p, str) for p in profiles):
            raise TypeError("active_profiles must be a list of strings")

        raw_variables = data.get("variables", {})
        if not isinstance(raw_variables, dict):
            raise TypeError("variables must be an object")
        variables = {key: EnvVariable.from_dict(value) for key, value in raw_variables.items()}

        snapshot = data.get("snapshot", {})
        if not isinstance(snapshot, dict):
            raise TypeError("snapshot must be an object")
        for key, value in snapshot.items():
            if value is not None and not isinstance(value, str):
                raise TypeError(f"snapshot value for {key} must be a string or null")

        applied_at = data.get("applied_at") or utc_now()

        return cls(
            active_profiles=list(profiles),
            variables=variables,
            snapshot=dict(snapshot),
            applied_at=str(applied_at),
        )


@dataclass
class ShellChange:
    """Result of a session operation.

    Attributes:
        action: Operation name (use, add, remove, reset, refresh)
        profiles: Profiles the operation acted on
        active_profiles: Active set after the operation
        to_set: Variables exported by ``script``
        to_unset: Variables unset by ``script``
        conflicts: Conflicts from the resolution, if any
        script: Shell text to evaluate in the calling shell
    """

    action: str
    profiles: list[str]
    active_profiles: list[str]
    to_set: dict[str, str] = field(default_factory=dict)
    to_unset: list[str] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    script: str = ""

    @property
    def changed(self) -> bool:
        return bool(self.to_set or self.to_unset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "profiles": list(self.profiles),
            "active_profiles": list(self.active_profiles),
            "set_variables": sorted(self.to_set),
            "unset_variables": list(self.to_unset),
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
        }
