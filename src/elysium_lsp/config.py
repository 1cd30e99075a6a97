"""Configuration management for elysium-lsp.

Supports loading configuration from:
1. Default values
2. Config file (<project-root>/.elysium-lsp.yaml)
3. Environment variables

Configuration precedence: CLI options > env vars > config file > defaults
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .logging import get_logger

logger = get_logger("config")

CONFIG_FILE_NAME = ".elysium-lsp.yaml"

# Default values
DEFAULT_STD = "gnu23"
DEFAULT_INCLUDE_DIR = "include"
DEFAULT_COMPILE_COMMANDS = "compile_commands.json"
DEFAULT_SOURCE_EXTENSION = ".c"
DEFAULT_PLUGINS = ["init-deps", "hooks"]

MAX_CONFIG_SIZE = 1024 * 1024  # 1MB


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class ClangConfig:
    """Front-end (libclang) configuration."""

    std: str = DEFAULT_STD
    include_dir: str = DEFAULT_INCLUDE_DIR
    library_file: str | None = None
    compile_commands: str = DEFAULT_COMPILE_COMMANDS

    def default_args(self, project_root: Path) -> list[str]:
        """Arguments used for files without a compile_commands.json record."""
        include = Path(self.include_dir)
        if not include.is_absolute():
            include = project_root / include
        return [f"-I{include}", f"-std={self.std}"]

    def validate(self) -> None:
        """Raises ConfigError for values libclang would reject outright."""
        if not self.std or any(c.isspace() for c in self.std):
            raise ConfigError(f"std must be a single dialect name, got {self.std!r}")

        if not self.include_dir:
            raise ConfigError("include_dir must not be empty")

        if not self.compile_commands:
            raise ConfigError("compile_commands must not be empty")

        if self.library_file and not Path(self.library_file).exists():
            logger.warning("libclang library not found at %s", self.library_file)


@dataclass
class IndexingConfig:
    """Indexing behaviour configuration."""

    source_extension: str = DEFAULT_SOURCE_EXTENSION
    plugins: list[str] = field(default_factory=lambda: list(DEFAULT_PLUGINS))
    fatal_parse_errors: bool = False

    def validate(self) -> None:
        """Raises ConfigError for unknown plugins or a bad extension."""
        if not self.source_extension.startswith("."):
            raise ConfigError(
                f"source_extension must start with '.', got {self.source_extension!r}"
            )

        if not self.plugins:
            raise ConfigError("at least one plugin must be enabled")

        # Imported here: the indexer package reads defaults from this module
        from .indexer import PLUGINS

        unknown = [name for name in self.plugins if name not in PLUGINS]
        if unknown:
            raise ConfigError(
                f"Unknown plugin(s) {unknown}. Must be one of: {sorted(PLUGINS)}"
            )

        if len(set(self.plugins)) != len(self.plugins):
            logger.warning("Duplicate plugins in configuration: %s", self.plugins)


@dataclass
class Config:
    """Main configuration container."""

    clang: ClangConfig = field(default_factory=ClangConfig)
    indexing: IndexingConfig = field(default_factory=IndexingConfig)

    def validate(self) -> None:
        """Validate all configuration."""
        self.clang.validate()
        self.indexing.validate()

    def default_clang_args(self, project_root: Path) -> list[str]:
        return self.clang.default_args(project_root)

    def to_dict(self) -> dict[str, Any]:
        return {
            "clang": {
                "std": self.clang.std,
                "include_dir": self.clang.include_dir,
                "library_file": self.clang.library_file,
                "compile_commands": self.clang.compile_commands,
            },
            "indexing": {
                "source_extension": self.indexing.source_extension,
                "plugins": list(self.indexing.plugins),
                "fatal_parse_errors": self.indexing.fatal_parse_errors,
            },
        }


def load_config(config_path: Path | None = None, project_root: Path | None = None) -> Config:
    """
    Build the effective configuration for a project.

    An explicit ``config_path`` wins over ``<project_root>/.elysium-lsp.yaml``.
    A file that cannot be read is reported and ignored; values that fail
    validation raise ConfigError.
    """
    config = Config()

    if config_path is None and project_root is not None:
        config_path = project_root / CONFIG_FILE_NAME

    if config_path and config_path.exists():
        try:
            config = _load_config_file(config_path)
            logger.debug("Loaded config from %s", config_path)
        except Exception as e:
            logger.warning("Failed to load config from %s: %s", config_path, e)
            config = Config()

    config = _apply_env_overrides(config)

    config.validate()

    return config


def _load_config_file(config_path: Path) -> Config:
    """Load configuration from YAML file."""
    if config_path.stat().st_size > MAX_CONFIG_SIZE:
        raise ConfigError(
            f"Config file too large: {config_path.stat().st_size} > {MAX_CONFIG_SIZE}"
        )

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Config()

    if not isinstance(data, dict):
        raise ConfigError("Config file must be a YAML mapping")

    allowed_keys = {"clang", "indexing"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        logger.warning("Unknown config keys ignored: %s", unknown_keys)

    clang_data = data.get("clang") or {}
    if not isinstance(clang_data, dict):
        raise ConfigError("'clang' must be a mapping")

    library_file = clang_data.get("library_file")
    clang = ClangConfig(
        std=str(clang_data.get("std", DEFAULT_STD)),
        include_dir=str(clang_data.get("include_dir", DEFAULT_INCLUDE_DIR)),
        library_file=str(library_file) if library_file else None,
        compile_commands=str(clang_data.get("compile_commands", DEFAULT_COMPILE_COMMANDS)),
    )

    indexing_data = data.get("indexing") or {}
    if not isinstance(indexing_data, dict):
        raise ConfigError("'indexing' must be a mapping")

    plugins = indexing_data.get("plugins", DEFAULT_PLUGINS)
    if not isinstance(plugins, list):
        raise ConfigError("'indexing.plugins' must be a list")

    indexing = IndexingConfig(
        source_extension=str(indexing_data.get("source_extension", DEFAULT_SOURCE_EXTENSION)),
        plugins=[str(p) for p in plugins],
        fatal_parse_errors=bool(indexing_data.get("fatal_parse_errors", False)),
    )

    return Config(clang=clang, indexing=indexing)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    env_std = os.environ.get("ELYSIUM_LSP_STD")
    if env_std:
        config.clang.std = env_std
        logger.debug("Using C dialect from env: %s", env_std)

    env_library = os.environ.get("ELYSIUM_LSP_LIBCLANG")
    if env_library:
        config.clang.library_file = env_library
        logger.debug("Using libclang from env: %s", env_library)

    env_fatal = os.environ.get("ELYSIUM_LSP_FATAL_PARSE_ERRORS")
    if env_fatal:
        if env_fatal.lower() in ("1", "true", "yes", "on"):
            config.indexing.fatal_parse_errors = True
        elif env_fatal.lower() in ("0", "false", "no", "off"):
            config.indexing.fatal_parse_errors = False
        else:
            logger.warning("Invalid ELYSIUM_LSP_FATAL_PARSE_ERRORS: %s", env_fatal)

    return config


def save_config(config: Config, config_path: Path) -> None:
    """Write ``config`` as YAML, creating parent directories."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

    logger.info("Saved config to %s", config_path)
