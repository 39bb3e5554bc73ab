"""envize: composable environment variable profiles for the shell.

Profiles are ``.env`` files kept machine-wide (typically ~/.envize/profiles)
or per project (typically .envize/profiles). Any ordered combination of them
can be activated in a shell; the last profile wins on conflicts, and the
values that existed before activation are restored on reset.

The library never changes its own process environment. Every change is
returned as shell text that the calling shell evaluates (see the wrapper
installed by ``envize install``).

Public API:
    ProfileRepository: Load, list, save and delete profiles
    ProfileResolver: Merge ordered profiles, diff variable maps
    StateStore: Persisted session state with pre-activation snapshot
    ShellGenerator: Dialect-specific export/unset text and wrapper install
    EnvSession: use/add/remove/reset/refresh on top of the above
    SettingsManager: User and local YAML settings
    EnvizePaths, default_paths: File layout

Example:
    ```python
    from envize import EnvSession, Shell, default_paths

    session = EnvSession.from_paths(default_paths(), shell=Shell.BASH)
    change = session.use(["base", "staging"])
    print(change.script)  # eval this in the shell
    ```
"""

from .exceptions import ConfigError
from .exceptions import ConfigFileError
from .exceptions import ConfigValidationError
from .exceptions import EnvizeError
from .exceptions import InvalidVariableNameError
from .exceptions import ProfileError
from .exceptions import ProfileExistsError
from .exceptions import ProfileFileError
from .exceptions import ProfileNotFoundError
from .exceptions import ShellError
from .exceptions import StateFileError
from .exceptions import UnsupportedShellError
from .models import Conflict
from .models import EnvDiff
from .models import EnvizePaths
from .models import EnvVariable
from .models import Location
from .models import Profile
from .models import ProfileMetadata
from .models import ProfileSummary
from .models import Removal
from .models import ResolvedEnv
from .models import Scope
from .models import Shell
from .models import ShellChange
from .models import StateData
from .persist import PersistedEnv
from .repository import ProfileRepository
from .resolver import ProfileResolver
from .session import EnvSession
from .settings import SettingsManager
from .shell import ShellGenerator
from .state import StateStore
from .utils import deep_merge
from .utils import default_paths

__version__ = "0.1.0"

__all__ = [
    "EnvSession",
    "ProfileRepository",
    "ProfileResolver",
    "StateStore",
    "ShellGenerator",
    "PersistedEnv",
    "SettingsManager",
    "EnvizePaths",
    "default_paths",
    "deep_merge",
    "Conflict",
    "EnvDiff",
    "EnvVariable",
    "Location",
    "Profile",
    "ProfileMetadata",
    "ProfileSummary",
    "Removal",
    "ResolvedEnv",
    "Scope",
    "Shell",
    "ShellChange",
    "StateData",
    "EnvizeError",
    "ProfileError",
    "ProfileNotFoundError",
    "ProfileExistsError",
    "ProfileFileError",
    "StateFileError",
    "ShellError",
    "InvalidVariableNameError",
    "UnsupportedShellError",
    "ConfigError",
    "ConfigFileError",
    "ConfigValidationError",
]
