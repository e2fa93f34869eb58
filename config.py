"""Configuration management for Auscult.

Reads configuration from ~/.config/auscult.toml and creates default config if needed.
"""

from pathlib import Path
from dataclasses import dataclass
import tomllib
import tomli_w

from exceptions import ConfigError


@dataclass
class Config:
    """Application configuration."""

    base_dir: Path
    db_data_dir: Path
    db_filename: str
    log_level: str
    log_dir: Path
    refresh_delay_ms: int = 500
    fallback_to_defaults: bool = True
    enable_reset: bool = False

    @property
    def db_path(self) -> Path:
        """Get the full database path (data_dir/filename)."""
        return self.db_data_dir / self.db_filename

    @classmethod
    def default(cls) -> "Config":
        """Create a Config with default values."""
        home = Path.home()
        base_dir = home / "data" / "auscult"
        return cls(
            base_dir=base_dir,
            db_data_dir=base_dir / "db",
            db_filename="auscult.db",
            log_level="INFO",
            log_dir=base_dir / "logs",
        )


def get_config_path() -> Path:
    """Get the path to the config file."""
    return Path.home() / ".config" / "auscult.toml"


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory.

    This is always relative to the code location, not configurable.
    """
    return Path(__file__).parent / "db" / "migrations"


def get_seed_file() -> Path:
    """Get the path to the bundled category seed file."""
    return Path(__file__).parent / "db" / "seed" / "categories.json"


def load_config() -> Config:
    """Load configuration from file, creating default if it doesn't exist.

    Returns:
        Config object with loaded or default values.

    Raises:
        ConfigError: If the config file is not valid TOML or has bad values.
    """
    config_path = get_config_path()

    # If config doesn't exist, create it with defaults
    if not config_path.exists():
        config = Config.default()
        _write_config(config)
        return config

    # Load existing config
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    return _parse_config(data)


def _parse_config(data: dict) -> Config:
    """Build a Config from parsed TOML, with defaults for missing values."""
    base_dir = Path(data.get("base_dir", Path.home() / "data" / "auscult"))

    db_config = data.get("database", {})
    db_data_dir = Path(db_config.get("data_dir", base_dir / "db"))
    db_filename = db_config.get("filename", "auscult.db")

    log_config = data.get("logging", {})
    log_level = log_config.get("level", "INFO")
    log_dir = Path(log_config.get("log_dir", base_dir / "logs"))

    category_config = data.get("categories", {})
    refresh_delay_ms = category_config.get("refresh_delay_ms", 500)
    fallback_to_defaults = category_config.get("fallback_to_defaults", True)

    if not isinstance(refresh_delay_ms, int) or refresh_delay_ms < 0:
        raise ConfigError(
            f"categories.refresh_delay_ms must be a non-negative integer, got {refresh_delay_ms!r}"
        )
    if not isinstance(fallback_to_defaults, bool):
        raise ConfigError(
            f"categories.fallback_to_defaults must be true or false, got {fallback_to_defaults!r}"
        )

    return Config(
        base_dir=base_dir,
        db_data_dir=db_data_dir,
        db_filename=db_filename,
        log_level=log_level,
        log_dir=log_dir,
        refresh_delay_ms=refresh_delay_ms,
        fallback_to_defaults=fallback_to_defaults,
        enable_reset=bool(data.get("enable_reset", False)),
    )


def _write_config(config: Config) -> None:
    """Write config to the config file.

    Args:
        config: Config object to write.
    """
    config_path = get_config_path()

    # Ensure config directory exists
    config_path.parent.mkdir(parents=True, exist_ok=True)

    # Convert config to TOML structure
    data = {
        "base_dir": str(config.base_dir),
        "enable_reset": config.enable_reset,
        "database": {
            "data_dir": str(config.db_data_dir),
            "filename": config.db_filename,
        },
        "logging": {
            "level": config.log_level,
            "log_dir": str(config.log_dir),
        },
        "categories": {
            "refresh_delay_ms": config.refresh_delay_ms,
            "fallback_to_defaults": config.fallback_to_defaults,
        },
    }

    # Write TOML file
    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
