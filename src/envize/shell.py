"""Shell command generation and wrapper installation."""

import logging
from collections.abc import Iterable
from collections.abc import Mapping
from pathlib import Path

from .exceptions import InvalidVariableNameError
from .exceptions import ShellError
from .models import Shell
from .utils import is_valid_variable_name
from .utils import sanitize_for_shell

logger = logging.getLogger(__name__)

MARKER_START = "# >>> envize initialize >>>"
MARKER_END = "# <<< envize initialize <<<"

# Subcommands whose output must be evaluated in the calling shell
EVAL_COMMANDS = ("use", "add", "remove", "reset", "refresh")

POSIX_WRAPPER = """\
# envize shell function wrapper
envize() {
  case "$1" in
    %(commands)s)
      local output
      output="$(command envize "$@" --emit-shell 2>/dev/null)"
      if [ $? -eq 0 ]; then
        eval "$output"
        command envize "$@" --emit-human 1>&2
      else
        command envize "$@" 1>&2
      fi
      ;;
    *)
      command envize "$@"
      ;;
  esac
}

# Source persisted env vars if they exist
if [ -f "${ENVIZE_HOME:-$HOME/.envize}/active.sh" ]; then
  . "${ENVIZE_HOME:-$HOME/.envize}/active.sh"
fi"""

FISH_WRAPPER = """\
# envize shell function wrapper
function envize
  switch $argv[1]
    case %(commands)s
      set -l output (command envize $argv --emit-shell 2>/dev/null)
      if test $status -eq 0
        printf '%%s\\n' $output | source
        command envize $argv --emit-human 1>&2
      else
        command envize $argv 1>&2
      end
    case '*'
      command envize $argv
  end
end

# Source persisted env vars if they exist
if set -q ENVIZE_HOME
  set -g __envize_home $ENVIZE_HOME
else
  set -g __envize_home $HOME/.envize
end
if test -f "$__envize_home/active.fish"
  source "$__envize_home/active.fish"
end"""


class ShellGenerator:
    """Renders variable changes as text for one shell dialect.

    Bash and zsh share all syntax. Fish has its own. An unknown shell is
    rendered with bash syntax rather than rejected.

    Values are always single-quoted, so ``$``, backticks and ``$(...)``
    are never interpreted by the evaluating shell.

    Args:
        shell: Target dialect
    """

    def __init__(self, shell: Shell = Shell.BASH):
        self.shell = shell

    @property
    def is_fish(self) -> bool:
        return self.shell is Shell.FISH

    # ===== Commands =====

    def generate_export(self, key: str, value: str) -> str:
        """Render one assignment.

        Raises:
            InvalidVariableNameError: If ``key`` is not a shell identifier
        """
        self._check_name(key)
        if self.is_fish:
            # fish honours \\ inside single quotes
            escaped = sanitize_for_shell(value.replace("\\", "\\\\"))
            return f"set -gx {key} '{escaped}'"
        return f"export {key}='{sanitize_for_shell(value)}'"

    def generate_unset(self, key: str) -> str:
        self._check_name(key)
        if self.is_fish:
            return f"set -e {key}"
        return f"unset {key}"

    def generate_exports(self, variables: Mapping[str, str]) -> str:
        return "\n".join(self.generate_export(key, value) for key, value in variables.items())

    def generate_unsets(self, keys: Iterable[str]) -> str:
        return "\n".join(self.generate_unset(key) for key in keys)

    def generate_commands(self, to_set: Mapping[str, str], to_unset: Iterable[str]) -> str:
        """Render unsets followed by exports.

        Unsets come first so a key that is both dropped and re-applied ends
        up set.
        """
        parts = [self.generate_unsets(to_unset), self.generate_exports(to_set)]
        return "\n".join(part for part in parts if part)

    # ===== Wrapper =====

    def shell_wrapper(self) -> str:
        """Function that evaluates envize's ``--emit-shell`` output in the current shell."""
        if self.is_fish:
            return FISH_WRAPPER % {"commands": " ".join(EVAL_COMMANDS)}
        return POSIX_WRAPPER % {"commands": "|".join(EVAL_COMMANDS)}

    def full_wrapper_block(self) -> str:
        return f"{MARKER_START}\n{self.shell_wrapper()}\n{MARKER_END}"

    def is_wrapper_installed(self, content: str) -> bool:
        start = content.find(MARKER_START)
        return start != -1 and content.find(MARKER_END, start) != -1

    def remove_wrapper(self, content: str) -> str:
        """Remove the marked block, collapsing the blank lines around it.

        Content without a complete block is returned unchanged.
        """
        start = content.find(MARKER_START)
        if start == -1:
            return content
        end = content.find(MARKER_END, start)
        if end == -1:
            return content

        before = content[:start].rstrip("\n")
        after = content[end + len(MARKER_END) :].lstrip("\n")
        separator = "\n\n" if before and after else ""
        return before + separator + after

    def add_wrapper(self, content: str) -> str:
        """Insert or replace the wrapper block at the end of ``content``.

        ``add_wrapper(add_wrapper(x)) == add_wrapper(x)``.
        """
        cleaned = self.remove_wrapper(content).rstrip("\n")
        prefix = cleaned + "\n\n" if cleaned else ""
        return prefix + self.full_wrapper_block() + "\n"

    # ===== Startup file =====

    def install(self, rc_path: Path) -> bool:
        """Write the wrapper into a shell startup file.

        Returns:
            True if the block was newly added, False if an existing block
            was refreshed

        Raises:
            ShellError: If the file cannot be read or written
        """
        rc_path = Path(rc_path)
        content = self._read_rc(rc_path)
        fresh = not self.is_wrapper_installed(content)
        self._write_rc(rc_path, self.add_wrapper(content))
        logger.info(f"{'Installed' if fresh else 'Updated'} shell wrapper in {rc_path}")
        return fresh

    def uninstall(self, rc_path: Path) -> bool:
        """Remove the wrapper from a shell startup file.

        Returns:
            True if a block was removed
        """
        rc_path = Path(rc_path)
        content = self._read_rc(rc_path)
        if not self.is_wrapper_installed(content):
            return False

        stripped = self.remove_wrapper(content)
        self._write_rc(rc_path, stripped + "\n" if stripped and not stripped.endswith("\n") else stripped)
        logger.info(f"Removed shell wrapper from {rc_path}")
        return True

    # ===== Private Helpers =====

    def _check_name(self, key: str) -> None:
        if not is_valid_variable_name(key):
            raise InvalidVariableNameError(f"Invalid variable name: {key!r}")

    def _read_rc(self, path: Path) -> str:
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ShellError(f"Failed to read {path}: {e}") from e

    def _write_rc(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ShellError(f"Failed to write {path}: {e}") from e
