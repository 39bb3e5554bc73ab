"""Tests for ProfileRepository."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from envize import EnvVariable
from envize import Location
from envize import ProfileExistsError
from envize import ProfileMetadata
from envize import ProfileRepository
from envize.repository import interpolate_description
from envize.repository import parse_metadata
from envize.repository import parse_variables


class TestParsing:
    """Test profile text parsing."""

    def test_parse_description(self):
        """Test description header is read."""
        metadata = parse_metadata("#@description: Staging database\nKEY=1\n")
        assert metadata.description == "Staging database"

    def test_parse_description_case_and_spacing(self):
        """Test header matching is case-insensitive with optional whitespace."""
        assert parse_metadata("# @Description: spaced").description == "spaced"
        assert parse_metadata("#@DESCRIPTION:upper").description == "upper"

    def test_last_description_wins(self):
        metadata = parse_metadata("#@description: first\n#@description: second\n")
        assert metadata.description == "second"

    def test_tags_accumulate(self):
        """Test tags from several lines are trimmed and accumulated."""
        metadata = parse_metadata("#@tags: aws, prod\n#@tags:  db ,, \n")
        assert metadata.tags == ["aws", "prod", "db"]

    def test_missing_metadata(self):
        metadata = parse_metadata("KEY=value\n")
        assert metadata.description == ""
        assert metadata.tags == []

    def test_parse_simple_variables(self):
        assert parse_variables("KEY=value\nOTHER=2\n") == {"KEY": "value", "OTHER": "2"}

    def test_split_on_first_equals(self):
        assert parse_variables("URL=postgres://u:p@h/db?a=b\n") == {"URL": "postgres://u:p@h/db?a=b"}

    def test_quotes_stripped(self):
        """Test matching surrounding quotes are removed, nothing else."""
        content = "A=\"double quoted\"\nB='single quoted'\nC=\"mismatched'\nD=\"esc\\\"aped\"\n"
        assert parse_variables(content) == {
            "A": "double quoted",
            "B": "single quoted",
            "C": "\"mismatched'",
            "D": 'esc\\"aped',
        }

    def test_comments_blank_and_malformed_skipped(self):
        content = "# comment\n\n   \nnot a pair\n=novalue\nKEY=ok\n"
        assert parse_variables(content) == {"KEY": "ok"}

    def test_invalid_keys_skipped(self):
        """Test keys that are not shell identifiers are dropped."""
        content = "GOOD=1\nBAD-KEY=2\nX;touch /tmp/pwned=3\n"
        assert parse_variables(content) == {"GOOD": "1"}

    def test_empty_value(self):
        assert parse_variables("EMPTY=\nQUOTED=''\n") == {"EMPTY": "", "QUOTED": ""}

    def test_interpolate_description(self):
        assert interpolate_description("DB at {{HOST}}", {"HOST": "db.local"}) == "DB at db.local"

    def test_interpolate_leaves_unknown_placeholders(self):
        assert interpolate_description("{{MISSING}} and {{HOST}}", {"HOST": "h"}) == "{{MISSING}} and h"


class TestProfileRepository:
    """Test ProfileRepository file operations."""

    @pytest.fixture
    def dirs(self):
        """Create temporary global and local profile directories."""
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            yield root / "home" / "profiles", root / "project" / ".envize" / "profiles"

    @pytest.fixture
    def repository(self, dirs):
        return ProfileRepository(*dirs)

    def write(self, directory: Path, name: str, content: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}.env"
        path.write_text(content)
        return path

    def test_load_global_profile(self, repository, dirs):
        """Test loading a profile from the global directory."""
        global_dir, _ = dirs
        path = self.write(global_dir, "aws", "#@description: AWS {{AWS_REGION}}\n#@tags: cloud\nAWS_REGION=eu-west-1\n")

        profile = repository.load("aws")

        assert profile is not None
        assert profile.name == "aws"
        assert profile.path == path
        assert profile.location is Location.GLOBAL
        assert profile.metadata.description == "AWS eu-west-1"
        assert profile.metadata.tags == ["cloud"]
        assert profile.variables == {"AWS_REGION": "eu-west-1"}

    def test_local_overrides_global(self, repository, dirs):
        """Test local profile shadows a global one with the same name."""
        global_dir, local_dir = dirs
        self.write(global_dir, "db", "HOST=global\n")
        self.write(local_dir, "db", "HOST=local\n")

        profile = repository.load("db")

        assert profile.location is Location.LOCAL
        assert profile.variables == {"HOST": "local"}

    def test_load_missing_returns_none(self, repository):
        assert repository.load("nope") is None
        assert repository.exists("nope") is False

    def test_exists(self, repository, dirs):
        self.write(dirs[0], "here", "A=1\n")
        assert repository.exists("here") is True

    def test_unreadable_profile_degrades_to_empty(self, repository, dirs):
        """Test a file that is not valid UTF-8 loads as an empty profile."""
        global_dir, _ = dirs
        global_dir.mkdir(parents=True)
        (global_dir / "binary.env").write_bytes(b"\xff\xfe\x00KEY=\x80\n")

        profile = repository.load("binary")

        assert profile is not None
        assert profile.variables == {}
        assert profile.metadata.description == ""
        assert profile.metadata.tags == []

    def test_list_profiles(self, repository, dirs):
        """Test listing merges both locations sorted by name."""
        global_dir, local_dir = dirs
        self.write(global_dir, "zeta", "A=1\n")
        self.write(global_dir, "shared", "#@description: global one\nA=1\n")
        self.write(local_dir, "shared", "#@description: local one\nA=1\nB=2\n")
        self.write(local_dir, "alpha", "#@tags: x\n")
        (global_dir / "notes.txt").write_text("ignored")

        summaries = repository.list_profiles()

        assert [s.name for s in summaries] == ["alpha", "shared", "zeta"]
        shared = summaries[1]
        assert shared.location is Location.LOCAL
        assert shared.description == "local one"
        assert shared.variable_count == 2
        assert summaries[0].tags == ["x"]

    def test_list_profiles_empty_when_no_dirs(self, repository):
        assert repository.list_profiles() == []

    def test_save_local_creates_directories(self, repository, dirs):
        """Test saving writes literal content and creates parents."""
        _, local_dir = dirs
        path = repository.save("new", "KEY=value\n")

        assert path == local_dir / "new.env"
        assert path.read_text() == "KEY=value\n"

    def test_save_global(self, repository, dirs):
        global_dir, _ = dirs
        path = repository.save("machine", "KEY=value\n", local=False)
        assert path == global_dir / "machine.env"
        assert repository.load("machine").location is Location.GLOBAL

    def test_delete_prefers_local(self, repository, dirs):
        """Test delete removes the local copy before the global one."""
        global_dir, local_dir = dirs
        self.write(global_dir, "db", "HOST=global\n")
        self.write(local_dir, "db", "HOST=local\n")

        assert repository.delete("db") is True
        assert repository.load("db").location is Location.GLOBAL
        assert repository.delete("db") is True
        assert repository.load("db") is None

    def test_delete_missing_returns_false(self, repository):
        assert repository.delete("ghost") is False

    def test_profile_path(self, repository, dirs):
        global_dir, local_dir = dirs
        assert repository.profile_path("x") == local_dir / "x.env"
        assert repository.profile_path("x", local=False) == global_dir / "x.env"


class TestRenderAndDotenv:
    """Test profile rendering and dotenv import/export."""

    @pytest.fixture
    def repository(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            yield ProfileRepository(root / "global", root / "local")

    def test_render_round_trips_through_parser(self, repository):
        """Test rendered text parses back to the same metadata and variables."""
        metadata = ProfileMetadata(description="My profile", tags=["a", "b"])
        variables = {
            "PLAIN": "value",
            "SPACED": "hello world",
            "QUOTE": "it's",
            "DOUBLE": 'say "hi"',
            "TRAILING_DOUBLE": 'a"',
            "WRAPPED": '"x"',
            "PADDED": " edge ",
        }

        content = repository.render(metadata, variables)

        assert content.startswith("# @description: My profile\n# @tags: a, b\n\n")
        assert parse_metadata(content) == metadata
        assert parse_variables(content) == variables

    def test_render_without_metadata(self, repository):
        assert repository.render(ProfileMetadata(), {"A": "1"}) == "A=1\n"

    def test_import_dotenv(self, repository):
        """Test importing a .env file as a profile."""
        with TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / ".env"
            source.write_text("# app settings\nDEBUG=true\nSECRET='s3cr3t'\n")

            path = repository.import_dotenv(source, "app", description="App env", tags=["dev"])

        profile = repository.load("app")
        assert profile.path == path
        assert profile.location is Location.LOCAL
        assert profile.metadata.description == "App env"
        assert profile.metadata.tags == ["dev"]
        assert profile.variables == {"DEBUG": "true", "SECRET": "s3cr3t"}

    def test_render_double_quotes_not_escaped(self, repository):
        assert repository.render(ProfileMetadata(), {"MSG": 'say "hi"'}) == 'MSG="say "hi""\n'

    def test_import_keeps_double_quotes(self, repository):
        """Test quoted values survive import unchanged."""
        with TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / ".env"
            source.write_text("MSG='say \"hi\"'\nJSON={\"a\": 1}\n")

            repository.import_dotenv(source, "quoted")

        assert repository.load("quoted").variables == {"MSG": 'say "hi"', "JSON": '{"a": 1}'}

    def test_import_existing_name_rejected(self, repository):
        repository.save("app", "A=1\n")
        with TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / "app.env"
            source.write_text("B=2\n")
            with pytest.raises(ProfileExistsError):
                repository.import_dotenv(source, "app")

    def test_export_dotenv_masks_by_default(self, repository):
        variables = {"TOKEN": EnvVariable("abcdefgh", "secrets"), "A": EnvVariable("1", "base")}

        masked = repository.export_dotenv(variables)
        revealed = repository.export_dotenv(variables, reveal=True)

        assert masked == "# from: base\nA=*\n# from: secrets\nTOKEN=abcd****\n"
        assert "TOKEN=abcdefgh" in revealed

    def test_export_dotenv_empty(self, repository):
        assert repository.export_dotenv({}) == ""
