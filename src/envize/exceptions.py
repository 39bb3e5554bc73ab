"""Exceptions for envize."""


class EnvizeError(Exception):
    """Base exception for envize errors."""

    pass


class ProfileError(EnvizeError):
    """Base exception for profile errors."""

    pass


class ProfileNotFoundError(ProfileError):
    """Requested profile does not exist in either location."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f"Profile not found: {name}")


class ProfileExistsError(ProfileError):
    """Profile name is already taken."""

    pass


class ProfileFileError(ProfileError):
    """Error writing or deleting a profile file."""

    pass


class StateFileError(EnvizeError):
    """Error writing the session state file."""

    pass


class ShellError(EnvizeError):
    """Base exception for shell rendering errors."""

    pass


class InvalidVariableNameError(ShellError):
    """Variable name cannot be safely rendered as a shell identifier."""

    pass


class UnsupportedShellError(ShellError):
    """Operation needs a concrete shell dialect that was not detected."""

    pass


class ConfigError(EnvizeError):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Error reading or writing configuration file."""

    pass


class ConfigValidationError(ConfigError):
    """Error validating configuration data."""

    pass
