"""Unit tests for rockspec parsing and dependency entries."""

import pytest
from semantic_version import Version

from rocklock.errors import DependencySpecError, MetadataError, VersionParseError
from rocklock.metadata import is_runtime_dependency, parse_dependency_string, parse_metadata
from rocklock.version import ANY, AllOf, Compatible, Exact, GreaterOrEqual, LessThan

LUASOCKET = """
package = "luasocket"
version = "3.0-1"

source = {
   url = "https://github.com/lunarmodules/luasocket/archive/v3.0.tar.gz",
   tag = "v3.0"
}

description = {
   summary = "Network support for the Lua language",
   homepage = "https://github.com/lunarmodules/luasocket",
   license = "MIT"
}

dependencies = {
   "lua >= 5.1",
   "luafilesystem >= 1.6.0", -- for the ftp module
   -- "disabled >= 1.0",
}

build = {
   type = "builtin",
   modules = {
      socket = "src/socket.lua",
      ["socket.http"] = "src/http.lua",
      ["socket.core"] = {
         sources = { "src/luasocket.c" }
      }
   }
}
"""


class TestParseMetadata:
    """Tests for parse_metadata."""

    def test_parse_rockspec(self) -> None:
        """Test extracting every supported field."""
        metadata = parse_metadata(LUASOCKET)
        assert metadata.name == "luasocket"
        assert metadata.version == "3.0-1"
        assert metadata.source.url == "https://github.com/lunarmodules/luasocket/archive/v3.0.tar.gz"
        assert metadata.source.tag == "v3.0"
        assert metadata.source.branch is None
        assert metadata.dependencies == ["lua >= 5.1", "luafilesystem >= 1.6.0"]
        assert metadata.description == "Network support for the Lua language"
        assert metadata.homepage == "https://github.com/lunarmodules/luasocket"
        assert metadata.license == "MIT"
        assert metadata.build.type == "builtin"
        assert metadata.build.modules == {"socket": "src/socket.lua", "socket.http": "src/http.lua"}
        assert not metadata.build.needs_build

    def test_runtime_constraint_from_dependency(self) -> None:
        """Test that the lua pseudo-dependency gives the runtime constraint."""
        assert parse_metadata(LUASOCKET).runtime_constraint == ">= 5.1"

    def test_runtime_constraint_from_lua_version(self) -> None:
        """Test that an explicit lua_version wins."""
        metadata = parse_metadata(LUASOCKET + '\nlua_version = "5.4"\n')
        assert metadata.runtime_constraint == "5.4"

    def test_package_dependencies_skip_runtime(self) -> None:
        """Test that the dependency map leaves out the runtime."""
        assert parse_metadata(LUASOCKET).package_dependencies() == {"luafilesystem": ">= 1.6.0"}

    def test_package_dependencies_without_constraint(self) -> None:
        """Test that a bare dependency is recorded as "*"."""
        text = LUASOCKET.replace('"luafilesystem >= 1.6.0"', '"penlight"')
        assert parse_metadata(text).package_dependencies() == {"penlight": "*"}

    def test_single_line_dependencies_and_quotes(self) -> None:
        """Test single-quoted entries written on one line."""
        text = """
package = 'inline'
version = '1.0-1'
source = { url = 'git+https://example.test/inline.git', branch = 'main' }
dependencies = { 'lua >= 5.1', 'lpeg ~> 1.0', "penlight" }
build = { type = "make" }
"""
        metadata = parse_metadata(text)
        assert metadata.name == "inline"
        assert metadata.source.url == "git+https://example.test/inline.git"
        assert metadata.source.branch == "main"
        assert metadata.dependencies == ["lua >= 5.1", "lpeg ~> 1.0", "penlight"]
        assert metadata.build.needs_build
        assert metadata.build.to_obj() == {"type": "make", "modules": {}}

    def test_optional_tables(self) -> None:
        """Test that dependencies and build may be omitted."""
        metadata = parse_metadata('package = "a"\nversion = "1.0-1"\nsource = { url = "https://a.test/a.tar.gz" }\n')
        assert metadata.dependencies == []
        assert metadata.build.type == "builtin"
        assert metadata.description is None

    def test_lua_version_does_not_shadow_version(self) -> None:
        """Test that lua_version is not mistaken for version."""
        metadata = parse_metadata(
            'package = "a"\nlua_version = "5.1"\nversion = "2.0-1"\nsource = { url = "https://a.test/a.tar.gz" }\n'
        )
        assert metadata.version == "2.0-1"
        assert metadata.lua_version == "5.1"

    @pytest.mark.parametrize(
        "text",
        [
            'version = "1.0-1"\nsource = { url = "https://a.test" }',
            'package = "a"\nsource = { url = "https://a.test" }',
            'package = "a"\nversion = "1.0-1"\n',
            'package = "a"\nversion = "1.0-1"\nsource = { tag = "v1" }',
        ],
    )
    def test_required_fields(self, text: str) -> None:
        """Test that package, version and source.url are required."""
        with pytest.raises(MetadataError):
            parse_metadata(text)

    def test_unclosed_table(self) -> None:
        """Test that an unbalanced table is an error."""
        with pytest.raises(MetadataError, match="Unclosed"):
            parse_metadata('package = "a"\nversion = "1"\nsource = {\n url = "https://a.test"\n')


class TestDependencyStrings:
    """Tests for parsing dependency entries."""

    @pytest.mark.parametrize(
        ("entry", "expected"),
        [
            ("penlight", ("penlight", ANY)),
            ("luasocket >= 3.0", ("luasocket", GreaterOrEqual(Version("3.0.0")))),
            ("lpeg ~> 1.0", ("lpeg", Compatible(Version("1.0.0")))),
            ("lpeg~>1.0", ("lpeg", Compatible(Version("1.0.0")))),
            ("dkjson == 2.5", ("dkjson", Exact(Version("2.5.0")))),
            ("dkjson = 2.5", ("dkjson", Exact(Version("2.5.0")))),
            ("dkjson 2.5", ("dkjson", Exact(Version("2.5.0")))),
            ("lua-cjson < 2.1", ("lua-cjson", LessThan(Version("2.1.0")))),
            ("argparse > 0.6", ("argparse", GreaterOrEqual(Version("0.6.1")))),
            ("argparse <= 0.7", ("argparse", LessThan(Version("0.7.1")))),
            ("luafilesystem >= 1.6.0-1", ("luafilesystem", GreaterOrEqual(Version("1.6.0")))),
            (
                "penlight >= 1.0, < 2.0",
                ("penlight", AllOf((GreaterOrEqual(Version("1.0.0")), LessThan(Version("2.0.0"))))),
            ),
        ],
    )
    def test_parse(self, entry: str, expected: tuple) -> None:
        """Test every supported operator."""
        assert parse_dependency_string(entry) == expected

    @pytest.mark.parametrize("entry", ["", "   ", "lpeg ~= 1.0", "lpeg != 1.0", "lpeg >= abc", "lpeg >=", "lpeg >= 1,"])
    def test_unparsable_entries_are_errors(self, entry: str) -> None:
        """Test that malformed entries raise instead of being unconstrained."""
        with pytest.raises(DependencySpecError):
            parse_dependency_string(entry)

    def test_dependency_error_is_a_version_parse_error(self) -> None:
        """Test that dependency errors share the version error type."""
        with pytest.raises(VersionParseError, match="lpeg ~= 1.0"):
            parse_dependency_string("lpeg ~= 1.0")

    @pytest.mark.parametrize(
        ("entry", "expected"),
        [
            ("lua >= 5.1", True),
            ("lua ~> 5.3", True),
            ("lua>=5.1", True),
            ("lua == 5.4", True),
            ("luasocket >= 3.0", False),
            ("lua-cjson >= 2.0", False),
            ("luafilesystem", False),
            ("lua", False),
        ],
    )
    def test_runtime_dependency(self, entry: str, expected: bool) -> None:  # noqa: FBT001
        """Test that only the runtime itself with an operator is a runtime dependency."""
        assert is_runtime_dependency(entry) == expected
