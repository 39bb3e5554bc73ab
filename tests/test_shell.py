"""Tests for ShellGenerator."""

import shutil
import subprocess
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from envize import InvalidVariableNameError
from envize import Shell
from envize import ShellGenerator
from envize.shell import MARKER_END
from envize.shell import MARKER_START

TRICKY_VALUES = [
    "plain",
    "with space",
    "it's",
    "''",
    "$HOME",
    "$(echo pwned)",
    "`id`",
    'double "quoted"',
    "back\\slash",
    "trailing\\",
    "semi;colon && pipe | amp &",
    "multi\nline",
    "",
]


def run_shell(executable: str, script: str, keys: list[str]) -> dict[str, str | None]:
    """Evaluate ``script`` in a real shell and report the given variables.

    Entries are NUL-separated for POSIX shells and newline-separated for
    fish, so fish values must not contain newlines.
    """
    if executable == "fish":
        separator = "\n"
        report = "; ".join(f"if set -q {k}; printf '%s=%s\\n' {k} \"${k}\"; end" for k in keys)
    else:
        separator = "\0"
        report = "; ".join(f'if [ -n "${{{k}+x}}" ]; then printf "%s=%s\\0" {k} "${k}"; fi' for k in keys)

    with TemporaryDirectory() as home:
        env = {"PATH": "/usr/local/bin:/usr/bin:/bin", "HOME": home, "PRESET": "before"}
        result = subprocess.run(
            [executable, "-c", f"{script}\n{report}"], capture_output=True, text=True, env=env, check=True
        )

    values: dict[str, str | None] = dict.fromkeys(keys)
    for entry in result.stdout.split(separator):
        if entry:
            key, _, value = entry.partition("=")
            values[key] = value
    return values


class TestCommandRendering:
    """Test export and unset rendering."""

    def test_bash_export(self):
        generator = ShellGenerator(Shell.BASH)
        assert generator.generate_export("KEY", "value") == "export KEY='value'"

    def test_bash_export_quotes(self):
        """Test single quotes are closed, escaped and reopened."""
        generator = ShellGenerator(Shell.BASH)
        assert generator.generate_export("KEY", "value'with'quotes") == "export KEY='value'\\''with'\\''quotes'"

    def test_zsh_matches_bash(self):
        bash = ShellGenerator(Shell.BASH)
        zsh = ShellGenerator(Shell.ZSH)
        for value in TRICKY_VALUES:
            assert zsh.generate_export("K", value) == bash.generate_export("K", value)
        assert zsh.generate_unset("K") == "unset K"

    def test_unknown_renders_as_bash(self):
        generator = ShellGenerator(Shell.UNKNOWN)
        assert generator.generate_export("KEY", "v") == "export KEY='v'"
        assert generator.generate_unset("KEY") == "unset KEY"

    def test_fish_export(self):
        generator = ShellGenerator(Shell.FISH)
        assert generator.generate_export("KEY", "value") == "set -gx KEY 'value'"
        assert generator.generate_export("KEY", "it's") == "set -gx KEY 'it'\\''s'"

    def test_fish_doubles_backslashes(self):
        generator = ShellGenerator(Shell.FISH)
        assert generator.generate_export("KEY", "a\\b") == "set -gx KEY 'a\\\\b'"

    def test_unset(self):
        assert ShellGenerator(Shell.BASH).generate_unset("KEY") == "unset KEY"
        assert ShellGenerator(Shell.FISH).generate_unset("KEY") == "set -e KEY"

    def test_dollar_not_expanded_in_text(self):
        """Test metacharacters appear literally inside single quotes."""
        line = ShellGenerator().generate_export("KEY", "$(rm -rf ~)")
        assert line == "export KEY='$(rm -rf ~)'"

    def test_invalid_name_rejected(self):
        generator = ShellGenerator()
        for name in ("BAD-NAME", "1ABC", "X;rm -rf /", ""):
            with pytest.raises(InvalidVariableNameError):
                generator.generate_export(name, "v")
            with pytest.raises(InvalidVariableNameError):
                generator.generate_unset(name)

    def test_generate_commands_unsets_first(self):
        generator = ShellGenerator()
        script = generator.generate_commands({"A": "1", "B": "2"}, ["C"])
        assert script == "unset C\nexport A='1'\nexport B='2'"

    def test_generate_commands_empty(self):
        generator = ShellGenerator()
        assert generator.generate_commands({}, []) == ""
        assert generator.generate_commands({"A": "1"}, []) == "export A='1'"
        assert generator.generate_commands({}, ["A"]) == "unset A"

    def test_generate_exports_order(self):
        generator = ShellGenerator(Shell.FISH)
        assert generator.generate_exports({"B": "2", "A": "1"}) == "set -gx B '2'\nset -gx A '1'"
        assert generator.generate_unsets(["X", "Y"]) == "set -e X\nset -e Y"


class TestShellRoundTrip:
    """Test generated text evaluates to the original values in real shells."""

    @pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
    def test_bash_round_trip(self):
        generator = ShellGenerator(Shell.BASH)
        variables = {f"VAR_{i}": value for i, value in enumerate(TRICKY_VALUES)}

        script = generator.generate_commands(variables, ["PRESET"])
        result = run_shell("bash", script, [*variables, "PRESET"])

        assert result == {**variables, "PRESET": None}

    @pytest.mark.skipif(shutil.which("zsh") is None, reason="zsh not installed")
    def test_zsh_round_trip(self):
        generator = ShellGenerator(Shell.ZSH)
        variables = {f"VAR_{i}": value for i, value in enumerate(TRICKY_VALUES)}

        result = run_shell("zsh", generator.generate_exports(variables), list(variables))

        assert result == variables

    @pytest.mark.skipif(shutil.which("fish") is None, reason="fish not installed")
    def test_fish_round_trip(self):
        generator = ShellGenerator(Shell.FISH)
        variables = {f"VAR_{i}": value for i, value in enumerate(TRICKY_VALUES) if "\n" not in value}

        script = generator.generate_commands(variables, ["PRESET"])
        result = run_shell("fish", script, [*variables, "PRESET"])

        assert result == {**variables, "PRESET": None}


class TestWrapperText:
    """Test wrapper block insertion and removal on text."""

    @pytest.fixture
    def generator(self):
        return ShellGenerator(Shell.BASH)

    def test_wrapper_mentions_eval_commands(self, generator):
        wrapper = generator.shell_wrapper()
        assert "use|add|remove|reset|refresh)" in wrapper
        assert "--emit-shell" in wrapper
        assert "--emit-human" in wrapper
        assert 'eval "$output"' in wrapper
        assert "active.sh" in wrapper

    def test_fish_wrapper(self):
        wrapper = ShellGenerator(Shell.FISH).shell_wrapper()
        assert "function envize" in wrapper
        assert "case use add remove reset refresh" in wrapper
        assert "printf '%s\\n' $output | source" in wrapper
        assert "active.fish" in wrapper

    def test_full_block_is_marked(self, generator):
        block = generator.full_wrapper_block()
        assert block.startswith(MARKER_START + "\n")
        assert block.endswith("\n" + MARKER_END)

    def test_add_to_empty(self, generator):
        assert generator.add_wrapper("") == generator.full_wrapper_block() + "\n"

    def test_add_appends_after_content(self, generator):
        content = "export PATH=$HOME/bin:$PATH\n"
        result = generator.add_wrapper(content)
        assert result == "export PATH=$HOME/bin:$PATH\n\n" + generator.full_wrapper_block() + "\n"
        assert generator.is_wrapper_installed(result)

    def test_add_is_idempotent(self, generator):
        """Test adding twice yields one block and identical text."""
        once = generator.add_wrapper("alias ll='ls -l'\n")
        twice = generator.add_wrapper(once)
        assert twice == once
        assert twice.count(MARKER_START) == 1
        assert twice.count(MARKER_END) == 1

    def test_add_replaces_stale_block(self, generator):
        stale = f"before\n\n{MARKER_START}\nold wrapper\n{MARKER_END}\n\nafter\n"
        result = generator.add_wrapper(stale)
        assert "old wrapper" not in result
        assert result.startswith("before\n\nafter\n\n")
        assert result.count(MARKER_START) == 1

    def test_remove_restores_surroundings(self, generator):
        content = "line one\n"
        assert generator.remove_wrapper(generator.add_wrapper(content)) == "line one"

    def test_remove_between_content(self, generator):
        content = f"top\n\n\n{MARKER_START}\nbody\n{MARKER_END}\n\nbottom\n"
        assert generator.remove_wrapper(content) == "top\n\nbottom\n"

    def test_remove_without_block_unchanged(self, generator):
        assert generator.remove_wrapper("nothing here\n") == "nothing here\n"

    def test_incomplete_block_not_detected(self, generator):
        """Test a start marker without an end marker is not a block."""
        content = f"{MARKER_START}\nhalf\n"
        assert not generator.is_wrapper_installed(content)
        assert generator.remove_wrapper(content) == content
        assert not generator.is_wrapper_installed(f"{MARKER_END}\n{MARKER_START}\n")


class TestInstall:
    """Test wrapper installation into startup files."""

    @pytest.fixture
    def rc_path(self):
        with TemporaryDirectory() as tmpdir:
            yield Path(tmpdir) / ".bashrc"

    def test_install_creates_file(self, rc_path):
        generator = ShellGenerator(Shell.BASH)

        assert generator.install(rc_path) is True
        assert rc_path.read_text() == generator.full_wrapper_block() + "\n"

    def test_install_twice_single_block(self, rc_path):
        """Test a second install refreshes rather than duplicates."""
        rc_path.write_text("export EDITOR=vim\n")
        generator = ShellGenerator(Shell.BASH)

        assert generator.install(rc_path) is True
        first = rc_path.read_text()
        assert generator.install(rc_path) is False

        assert rc_path.read_text() == first
        assert first.count(MARKER_START) == 1
        assert first.startswith("export EDITOR=vim\n\n")

    def test_uninstall(self, rc_path):
        rc_path.write_text("export EDITOR=vim\n")
        generator = ShellGenerator(Shell.BASH)
        generator.install(rc_path)

        assert generator.uninstall(rc_path) is True
        assert rc_path.read_text() == "export EDITOR=vim\n"
        assert generator.uninstall(rc_path) is False

    def test_uninstall_missing_file(self, rc_path):
        assert ShellGenerator().uninstall(rc_path) is False
        assert not rc_path.exists()

    def test_install_fish_creates_parents(self):
        with TemporaryDirectory() as tmpdir:
            rc_path = Path(tmpdir) / ".config" / "fish" / "config.fish"
            assert ShellGenerator(Shell.FISH).install(rc_path) is True
            assert "function envize" in rc_path.read_text()
