"""Tests for configuration functionality."""

from pathlib import Path

import pytest

from elysium_lsp.config import (
    CONFIG_FILE_NAME,
    ClangConfig,
    Config,
    ConfigError,
    IndexingConfig,
    load_config,
    save_config,
)
from elysium_lsp.indexer import PLUGINS


class TestClangConfig:
    """Tests for ClangConfig."""

    def test_default_values(self):
        """Should default to gnu23 and the include directory."""
        config = ClangConfig()
        assert config.std == "gnu23"
        assert config.include_dir == "include"
        assert config.library_file is None
        assert config.compile_commands == "compile_commands.json"

    def test_default_args(self, tmp_path):
        """Should render -I<root>/include and -std=<std>."""
        config = ClangConfig()
        assert config.default_args(tmp_path) == [f"-I{tmp_path / 'include'}", "-std=gnu23"]

    def test_default_args_absolute_include(self, tmp_path):
        """Absolute include dirs are used as-is."""
        config = ClangConfig(std="c11", include_dir="/opt/sdk/include")
        assert config.default_args(tmp_path) == ["-I/opt/sdk/include", "-std=c11"]

    def test_validate_std_with_space(self):
        """Should reject a dialect containing whitespace."""
        config = ClangConfig(std="gnu 23")
        with pytest.raises(ConfigError, match="std"):
            config.validate()

    def test_validate_missing_library_file(self, tmp_path):
        """Should warn but not fail for a missing libclang."""
        config = ClangConfig(library_file=str(tmp_path / "libclang.so"))
        config.validate()  # Should not raise


class TestIndexingConfig:
    """Tests for IndexingConfig."""

    def test_default_values(self):
        """Both plugins are enabled, init-deps first."""
        config = IndexingConfig()
        assert config.source_extension == ".c"
        assert config.plugins == ["init-deps", "hooks"]
        assert config.fatal_parse_errors is False

    def test_known_plugins_match_registry(self):
        """Every default plugin is registered."""
        assert set(IndexingConfig().plugins) == set(PLUGINS)

    def test_validate_unknown_plugin(self):
        """Should reject plugins that do not exist."""
        config = IndexingConfig(plugins=["hooks", "tracing"])
        with pytest.raises(ConfigError, match="tracing"):
            config.validate()

    def test_validate_accepts_every_registered_plugin(self, monkeypatch):
        """Validation reads the indexer registry, including later additions."""
        monkeypatch.setitem(PLUGINS, "tracing", PLUGINS["hooks"])
        IndexingConfig(plugins=["tracing", "hooks"]).validate()

    def test_validate_no_plugins(self):
        """Should reject an empty plugin list."""
        config = IndexingConfig(plugins=[])
        with pytest.raises(ConfigError, match="plugin"):
            config.validate()

    def test_validate_extension(self):
        """Should require a leading dot."""
        config = IndexingConfig(source_extension="c")
        with pytest.raises(ConfigError, match="source_extension"):
            config.validate()


class TestConfig:
    """Tests for main Config class."""

    def test_default_values(self):
        """Should have sensible defaults."""
        config = Config()
        assert config.clang.std == "gnu23"
        assert config.indexing.plugins == ["init-deps", "hooks"]

    def test_validate(self):
        """Should validate all nested configs."""
        config = Config()
        config.validate()  # Should not raise

    def test_default_clang_args(self, tmp_path):
        """Delegates to the clang section."""
        config = Config(clang=ClangConfig(std="c17"))
        assert config.default_clang_args(tmp_path)[-1] == "-std=c17"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_defaults(self, tmp_path):
        """Should load defaults when no config file."""
        config = load_config(project_root=tmp_path)
        assert config.clang.std == "gnu23"

    def test_load_from_project_root(self, tmp_path):
        """Should pick up .elysium-lsp.yaml at the project root."""
        (tmp_path / CONFIG_FILE_NAME).write_text("""
clang:
  std: c11
  include_dir: inc
indexing:
  plugins: [hooks]
  fatal_parse_errors: true
""")
        config = load_config(project_root=tmp_path)
        assert config.clang.std == "c11"
        assert config.clang.include_dir == "inc"
        assert config.indexing.plugins == ["hooks"]
        assert config.indexing.fatal_parse_errors is True

    def test_explicit_path_wins(self, tmp_path):
        """An explicit config file replaces the project one."""
        (tmp_path / CONFIG_FILE_NAME).write_text("clang:\n  std: c11\n")
        explicit = tmp_path / "other.yaml"
        explicit.write_text("clang:\n  std: c17\n")

        config = load_config(config_path=explicit, project_root=tmp_path)

        assert config.clang.std == "c17"

    def test_malformed_file_falls_back(self, tmp_path):
        """Should warn and use defaults for unparseable YAML."""
        (tmp_path / CONFIG_FILE_NAME).write_text("clang: [unclosed\n")
        config = load_config(project_root=tmp_path)
        assert config.clang.std == "gnu23"

    def test_non_mapping_falls_back(self, tmp_path):
        """Should use defaults when the file is not a mapping."""
        (tmp_path / CONFIG_FILE_NAME).write_text("- just\n- a list\n")
        config = load_config(project_root=tmp_path)
        assert config.indexing.plugins == ["init-deps", "hooks"]

    def test_invalid_values_raise(self, tmp_path):
        """Validation errors are not swallowed."""
        (tmp_path / CONFIG_FILE_NAME).write_text("indexing:\n  plugins: [tracing]\n")
        with pytest.raises(ConfigError):
            load_config(project_root=tmp_path)

    def test_env_override_std(self, tmp_path, monkeypatch):
        """Environment variables should override config file."""
        (tmp_path / CONFIG_FILE_NAME).write_text("clang:\n  std: c11\n")
        monkeypatch.setenv("ELYSIUM_LSP_STD", "gnu17")
        config = load_config(project_root=tmp_path)
        assert config.clang.std == "gnu17"

    def test_env_override_library(self, tmp_path, monkeypatch):
        """The libclang location can come from the environment."""
        monkeypatch.setenv("ELYSIUM_LSP_LIBCLANG", "/usr/lib/libclang.so")
        config = load_config(project_root=tmp_path)
        assert config.clang.library_file == "/usr/lib/libclang.so"

    @pytest.mark.parametrize("value,expected", [("1", True), ("true", True), ("off", False)])
    def test_env_override_fatal(self, tmp_path, monkeypatch, value, expected):
        """Fatal mode accepts the usual boolean spellings."""
        monkeypatch.setenv("ELYSIUM_LSP_FATAL_PARSE_ERRORS", value)
        config = load_config(project_root=tmp_path)
        assert config.indexing.fatal_parse_errors is expected


class TestSaveConfig:
    """Tests for save_config function."""

    def test_save_and_load_roundtrip(self, tmp_path: Path):
        """Config should survive save/load roundtrip."""
        config = Config(
            clang=ClangConfig(std="c17", include_dir="inc", compile_commands="build/cc.json"),
            indexing=IndexingConfig(plugins=["hooks"], fatal_parse_errors=True),
        )
        config_path = tmp_path / "nested" / CONFIG_FILE_NAME

        save_config(config, config_path)
        loaded = load_config(config_path=config_path)

        assert loaded.to_dict() == config.to_dict()
