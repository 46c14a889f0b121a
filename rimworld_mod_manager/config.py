"""Installer configuration persisted in the user's config directory."""

import enum
import json
import os
import sys
from pathlib import Path
from typing import Any

from .steam import find_game_dir
from .steamcmd import DEFAULT_DOWNLOAD_ATTEMPTS

CONFIG_DIR_NAME = "rrm"
CONFIG_FILENAME = "config.json"
CONFIG_ENV_VARS = ("XDG_CONFIG_HOME", "RRM_CONFIG_HOME", "CONFIG_HOME")

if sys.platform.startswith("win"):
    DEFAULT_PAGER = r"C:\Windows\System32\more.com"
else:
    DEFAULT_PAGER = "less"


class ConfigErrorCode(enum.Enum):
    CONFIG_NOT_AVAILABLE = "ConfigNotAvailable"
    CONFIG_PARSE_ERROR = "ConfigParseError"
    WRITE_CONFIG_ERROR = "WriteConfigError"


class ConfigError(Exception):
    """Raised when the config file cannot be read or written."""

    def __init__(self, code: ConfigErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code.value}: {message}")


def get_config_dir() -> Path:
    """
    Locate (and create) the config directory.

    Checked in order: $XDG_CONFIG_HOME/rrm, $RRM_CONFIG_HOME/rrm,
    $CONFIG_HOME/rrm, ~/.config/rrm (when ~/.config exists), ~/.rrm.
    """
    for var in CONFIG_ENV_VARS:
        value = os.environ.get(var)
        if value:
            config_dir = Path(value) / CONFIG_DIR_NAME
            break
    else:
        dot_config = Path.home() / ".config"
        if dot_config.exists():
            config_dir = dot_config / CONFIG_DIR_NAME
        else:
            config_dir = Path.home() / f".{CONFIG_DIR_NAME}"

    try:
        config_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(
            ConfigErrorCode.CONFIG_NOT_AVAILABLE,
            f"Could not create configuration at {config_dir}: {e}",
        )
    return config_dir


class InstallerConfig:
    """Settings shared by every command."""

    def __init__(
        self,
        config_dir: Path,
        rimworld_path: str = "",
        steamcmd_path: str = "",
        use_pager: bool = False,
        pager: str = DEFAULT_PAGER,
        max_download_attempts: int = DEFAULT_DOWNLOAD_ATTEMPTS,
    ):
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / CONFIG_FILENAME
        self.rimworld_path = rimworld_path
        self.steamcmd_path = steamcmd_path
        self.use_pager = use_pager
        self.pager = pager
        self.max_download_attempts = max_download_attempts

    @property
    def steamcmd_dir(self) -> Path:
        if self.steamcmd_path:
            return Path(self.steamcmd_path).expanduser()
        return self.config_dir / "steamcmd"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rimworld_path": self.rimworld_path,
            "steamcmd_path": self.steamcmd_path,
            "use_pager": self.use_pager,
            "pager": self.pager,
            "max_download_attempts": self.max_download_attempts,
        }

    @classmethod
    def from_dict(cls, config_dir: Path, data: dict[str, Any]) -> "InstallerConfig":
        max_attempts = int(data.get("max_download_attempts", DEFAULT_DOWNLOAD_ATTEMPTS))
        if max_attempts < 0:
            raise ValueError(f"max_download_attempts must be 0 or more, got {max_attempts}")
        return cls(
            config_dir=config_dir,
            rimworld_path=data.get("rimworld_path", ""),
            steamcmd_path=data.get("steamcmd_path", ""),
            use_pager=data.get("use_pager", False),
            pager=data.get("pager") or DEFAULT_PAGER,
            max_download_attempts=max_attempts,
        )

    @classmethod
    def load(cls, config_dir: Path | None = None) -> "InstallerConfig":
        """
        Load the config, creating a default one on first run.

        The default config points at an auto-detected RimWorld install.
        """
        config_dir = config_dir or get_config_dir()
        config_file = config_dir / CONFIG_FILENAME

        text = ""
        if config_file.exists():
            try:
                text = config_file.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigError(ConfigErrorCode.CONFIG_NOT_AVAILABLE, str(e))

        if not text.strip():
            game_dir = find_game_dir()
            config = cls(config_dir, rimworld_path=str(game_dir) if game_dir else "")
            config.save()
            return config

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(ConfigErrorCode.CONFIG_PARSE_ERROR, f"Invalid config file: {e}")
        if not isinstance(data, dict):
            raise ConfigError(ConfigErrorCode.CONFIG_PARSE_ERROR, "Config file is not a JSON object")

        try:
            return cls.from_dict(config_dir, data)
        except (TypeError, ValueError) as e:
            raise ConfigError(ConfigErrorCode.CONFIG_PARSE_ERROR, f"Invalid config value: {e}")

    def save(self) -> None:
        """Write the config file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise ConfigError(ConfigErrorCode.WRITE_CONFIG_ERROR, str(e))
