"""Utility functions for envize."""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .models import EnvizePaths
from .models import Shell

VARIABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries with overlay precedence.

    Recursively merges nested dictionaries. Non-dict values in overlay
    completely replace corresponding values in base.

    Args:
        base: Base dictionary
        overlay: Overlay dictionary (takes precedence)

    Returns:
        New merged dictionary (base and overlay are not modified)

    Examples:
        >>> deep_merge({"shell": "bash", "ui": {"reveal_chars": 4}}, {"ui": {"reveal_chars": 2}})
        {'shell': 'bash', 'ui': {'reveal_chars': 2}}

        >>> deep_merge({}, {"shell": "fish"})
        {'shell': 'fish'}
    """
    result = base.copy()

    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def sanitize_for_shell(value: str) -> str:
    """Escape a value for embedding inside single quotes.

    Each ``'`` becomes ``'\\''``: close the quote, emit an escaped quote,
    reopen. Everything else (``$``, backticks, ``\\``) is literal inside
    POSIX single quotes.

    Examples:
        >>> sanitize_for_shell("it's")
        "it'\\\\''s"
    """
    return value.replace("'", "'\\''")


def is_valid_variable_name(name: str) -> bool:
    """Whether ``name`` is a portable shell variable identifier."""
    return bool(VARIABLE_NAME_RE.match(name))


def mask_value(value: str, reveal_chars: int = 4) -> str:
    """Mask a sensitive value for display.

    Examples:
        >>> mask_value("sk-abcdef")
        'sk-a****'
        >>> mask_value("abc")
        '***'
    """
    if len(value) <= reveal_chars:
        return "*" * len(value)
    return value[:reveal_chars] + "****"


def detect_shell(environ: Mapping[str, str] | None = None) -> Shell:
    """Detect the user's shell from ``$SHELL``."""
    env = os.environ if environ is None else environ
    return Shell.from_name(env.get("SHELL", ""))


def default_paths(home: Path | None = None, cwd: Path | None = None) -> EnvizePaths:
    """Compute the standard envize layout.

    Args:
        home: Global envize directory (default: ~/.envize)
        cwd: Project directory holding ``.envize/`` (default: current directory)

    Returns:
        EnvizePaths for the given roots
    """
    home = Path(home) if home else Path.home() / ".envize"
    local = (Path(cwd) if cwd else Path.cwd()) / ".envize"
    return EnvizePaths(
        home=home,
        global_profiles=home / "profiles",
        local_profiles=local / "profiles",
        state=home / "state.json",
        persisted=home / "persisted.yaml",
        user_settings=home / "settings.yaml",
        local_settings=local / "settings.yaml",
    )


def shell_rc_path(shell: Shell, user_home: Path | None = None) -> Path | None:
    """Startup file that should carry the shell wrapper.

    Bash prefers ``.bashrc`` when present, otherwise ``.bash_profile``.
    Returns None for an unknown shell.
    """
    user_home = Path(user_home) if user_home else Path.home()

    if shell is Shell.BASH:
        bashrc = user_home / ".bashrc"
        return bashrc if bashrc.exists() else user_home / ".bash_profile"
    if shell is Shell.ZSH:
        return user_home / ".zshrc"
    if shell is Shell.FISH:
        return user_home / ".config" / "fish" / "config.fish"
    return None
