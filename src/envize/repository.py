"""Profile repository: reads and writes profile files in two locations."""

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from .exceptions import ProfileExistsError
from .exceptions import ProfileFileError
from .models import EnvVariable
from .models import Location
from .models import Profile
from .models import ProfileMetadata
from .models import ProfileSummary
from .utils import is_valid_variable_name
from .utils import mask_value

logger = logging.getLogger(__name__)

PROFILE_SUFFIX = ".env"

DESCRIPTION_RE = re.compile(r"^#\s*@description[:\s]+(.+)$", re.IGNORECASE)
TAGS_RE = re.compile(r"^#\s*@tags[:\s]+(.+)$", re.IGNORECASE)
PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


def parse_metadata(content: str) -> ProfileMetadata:
    """Parse ``#@description`` and ``#@tags`` header lines.

    The last description wins; tags from every ``#@tags`` line accumulate.
    """
    description = ""
    tags: list[str] = []

    for line in content.splitlines():
        stripped = line.strip()

        match = DESCRIPTION_RE.match(stripped)
        if match:
            description = match.group(1).strip()
            continue

        match = TAGS_RE.match(stripped)
        if match:
            tags.extend(tag.strip() for tag in match.group(1).split(",") if tag.strip())

    return ProfileMetadata(description=description, tags=tags)


def parse_variables(content: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines.

    Comments, blank lines, lines without ``=`` and keys that are not shell
    identifiers are skipped. Matching surrounding quotes are stripped from
    the value; no other escape processing is done.
    """
    variables: dict[str, str] = {}

    for lineno, line in enumerate(content.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        key, sep, value = stripped.partition("=")
        if not sep:
            logger.debug(f"Skipping line {lineno}: no '='")
            continue

        key = key.strip()
        value = value.strip()
        if not is_valid_variable_name(key):
            logger.debug(f"Skipping line {lineno}: invalid variable name {key!r}")
            continue

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        variables[key] = value

    return variables


def interpolate_description(description: str, variables: Mapping[str, str]) -> str:
    """Replace ``{{NAME}}`` with the profile's own variable, else leave it."""
    return PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1), m.group(0)), description)


def render_profile(metadata: ProfileMetadata, variables: Mapping[str, str]) -> str:
    """Render profile text from metadata and variables.

    Inverse of parsing. Values containing spaces or quotes, or with leading
    or trailing whitespace, are wrapped in double quotes without escaping.
    """
    lines: list[str] = []

    if metadata.description:
        lines.append(f"# @description: {metadata.description}")
    if metadata.tags:
        lines.append(f"# @tags: {', '.join(metadata.tags)}")
    if lines:
        lines.append("")

    for key, value in variables.items():
        # parse_variables strips only the outer pair; inner quotes stay literal
        if value != value.strip() or " " in value or '"' in value or "'" in value:
            lines.append(f'{key}="{value}"')
        else:
            lines.append(f"{key}={value}")

    return "\n".join(lines) + "\n"


class ProfileRepository:
    """Loads, lists, saves and deletes profiles.

    Profiles are ``<name>.env`` files in a global (machine-wide) directory
    and a local (project) directory. A local profile shadows a global
    profile of the same name.

    Args:
        global_dir: Directory of machine-wide profiles
        local_dir: Directory of project-local profiles
    """

    def __init__(self, global_dir: Path, local_dir: Path):
        self.global_dir = Path(global_dir)
        self.local_dir = Path(local_dir)

    # ===== Lookup =====

    def profile_path(self, name: str, local: bool = True) -> Path:
        """Path where a profile lives (or would be saved) in a location."""
        directory = self.local_dir if local else self.global_dir
        return directory / f"{name}{PROFILE_SUFFIX}"

    def load(self, name: str) -> Profile | None:
        """Load a profile by name, local location first.

        Returns:
            The profile, or None if it exists in neither location
        """
        local_path = self.profile_path(name, local=True)
        if local_path.is_file():
            return self.load_path(local_path, name, Location.LOCAL)

        global_path = self.profile_path(name, local=False)
        if global_path.is_file():
            return self.load_path(global_path, name, Location.GLOBAL)

        return None

    def load_path(self, path: Path, name: str, location: Location) -> Profile:
        """Load a profile from a specific file.

        An unreadable file yields a profile with empty metadata and variables.
        """
        content = self._read_text(path)
        variables = parse_variables(content)
        metadata = parse_metadata(content)
        metadata.description = interpolate_description(metadata.description, variables)

        return Profile(name=name, path=path, location=location, metadata=metadata, variables=variables)

    def exists(self, name: str) -> bool:
        return self.profile_path(name, local=True).is_file() or self.profile_path(name, local=False).is_file()

    def list_profiles(self) -> list[ProfileSummary]:
        """List profiles from both locations, local overriding global, sorted by name."""
        summaries: dict[str, ProfileSummary] = {}

        for location, directory in ((Location.GLOBAL, self.global_dir), (Location.LOCAL, self.local_dir)):
            for path in self._profile_files(directory):
                name = path.name[: -len(PROFILE_SUFFIX)]
                profile = self.load_path(path, name, location)
                summaries[name] = ProfileSummary(
                    name=name,
                    path=path,
                    location=location,
                    description=profile.metadata.description,
                    tags=profile.metadata.tags,
                    variable_count=len(profile.variables),
                )

        return [summaries[name] for name in sorted(summaries)]

    # ===== Mutation =====

    def save(self, name: str, content: str, local: bool = True) -> Path:
        """Write literal profile text.

        Raises:
            ProfileFileError: If the file cannot be written
        """
        path = self.profile_path(name, local=local)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ProfileFileError(f"Failed to write profile to {path}: {e}") from e

        logger.info(f"Saved profile '{name}' to {path}")
        return path

    def delete(self, name: str) -> bool:
        """Delete a profile, local location first.

        Returns:
            True if a file was deleted, False if the profile did not exist

        Raises:
            ProfileFileError: If the file exists but cannot be deleted
        """
        for local in (True, False):
            path = self.profile_path(name, local=local)
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as e:
                raise ProfileFileError(f"Failed to delete profile {path}: {e}") from e
            logger.info(f"Deleted profile '{name}' at {path}")
            return True

        return False

    def render(self, metadata: ProfileMetadata, variables: Mapping[str, str]) -> str:
        return render_profile(metadata, variables)

    # ===== dotenv interop =====

    def import_dotenv(
        self,
        source: Path,
        name: str,
        *,
        local: bool = True,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> Path:
        """Create a profile from an existing ``.env`` file.

        Args:
            source: Path to the ``.env`` file
            name: New profile name
            local: Save to the local location (default) or the global one
            description: Description header; defaults to the source's own header
            tags: Tags header; defaults to the source's own header

        Returns:
            Path of the saved profile

        Raises:
            ProfileExistsError: If ``name`` already resolves to a profile
            ProfileFileError: If the source cannot be read or the profile written
        """
        if self.exists(name):
            raise ProfileExistsError(f"Profile already exists: {name}")

        try:
            content = Path(source).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ProfileFileError(f"Failed to read {source}: {e}") from e

        parsed = parse_metadata(content)
        metadata = ProfileMetadata(
            description=description if description is not None else parsed.description,
            tags=list(tags) if tags is not None else parsed.tags,
        )
        return self.save(name, render_profile(metadata, parse_variables(content)), local=local)

    @staticmethod
    def export_dotenv(
        variables: Mapping[str, EnvVariable],
        reveal: bool = False,
        reveal_chars: int = 4,
    ) -> str:
        """Render resolved variables as a plain ``.env`` body.

        Values are masked unless ``reveal`` is set. Each assignment is
        preceded by a ``# from:`` comment naming its source profile.
        """
        lines: list[str] = []
        for key in sorted(variables):
            var = variables[key]
            value = var.value if reveal else mask_value(var.value, reveal_chars)
            lines.append(f"# from: {var.source}")
            lines.append(render_profile(ProfileMetadata(), {key: value}).rstrip("\n"))
        return "\n".join(lines) + ("\n" if lines else "")

    # ===== Private Helpers =====

    def _profile_files(self, directory: Path) -> list[Path]:
        if not directory.is_dir():
            return []
        return sorted(
            p
            for p in directory.iterdir()
            if p.is_file() and p.name.endswith(PROFILE_SUFFIX) and len(p.name) > len(PROFILE_SUFFIX)
        )

    def _read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read profile from {path}: {e}")
            return ""
