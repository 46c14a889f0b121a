"""Unit tests for rimworld_mod_manager.config module."""

import json
from unittest.mock import patch

import pytest

from rimworld_mod_manager.config import (
    CONFIG_FILENAME,
    DEFAULT_PAGER,
    ConfigError,
    ConfigErrorCode,
    InstallerConfig,
    get_config_dir,
)
from rimworld_mod_manager.steamcmd import DEFAULT_DOWNLOAD_ATTEMPTS


class TestGetConfigDir:
    """Tests for config directory resolution."""

    def test_xdg_config_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / "rrm"
        assert (tmp_path / "rrm").is_dir()

    def test_rrm_config_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setenv("RRM_CONFIG_HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / "rrm"

    def test_home_fallback(self, tmp_path, monkeypatch):
        for var in ("XDG_CONFIG_HOME", "RRM_CONFIG_HOME", "CONFIG_HOME"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path)
        assert get_config_dir() == tmp_path / ".rrm"

    def test_dot_config(self, tmp_path, monkeypatch):
        for var in ("XDG_CONFIG_HOME", "RRM_CONFIG_HOME", "CONFIG_HOME"):
            monkeypatch.delenv(var, raising=False)
        (tmp_path / ".config").mkdir()
        monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path)
        assert get_config_dir() == tmp_path / ".config" / "rrm"


class TestInstallerConfig:
    """Tests for loading and saving."""

    @patch("rimworld_mod_manager.config.find_game_dir", return_value=None)
    def test_first_run_writes_defaults(self, mock_find, tmp_path):
        config = InstallerConfig.load(tmp_path)

        assert config.rimworld_path == ""
        assert config.use_pager is False
        assert config.pager == DEFAULT_PAGER
        assert config.max_download_attempts == DEFAULT_DOWNLOAD_ATTEMPTS
        assert (tmp_path / CONFIG_FILENAME).exists()

    @patch("rimworld_mod_manager.config.find_game_dir")
    def test_first_run_detects_game(self, mock_find, tmp_path):
        mock_find.return_value = tmp_path / "RimWorld"
        config = InstallerConfig.load(tmp_path)
        assert config.rimworld_path == str(tmp_path / "RimWorld")

    def test_round_trip(self, tmp_path):
        config = InstallerConfig(tmp_path, rimworld_path="/games/RimWorld", use_pager=True, pager="bat")
        config.max_download_attempts = 0
        config.save()

        loaded = InstallerConfig.load(tmp_path)
        assert loaded.to_dict() == config.to_dict()

    def test_invalid_json(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            InstallerConfig.load(tmp_path)
        assert exc_info.value.code is ConfigErrorCode.CONFIG_PARSE_ERROR
        assert str(exc_info.value).startswith("ConfigParseError:")

    def test_not_an_object(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ConfigError):
            InstallerConfig.load(tmp_path)

    def test_missing_keys_use_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"rimworld_path": "/x"}), encoding="utf-8")
        config = InstallerConfig.load(tmp_path)
        assert config.rimworld_path == "/x"
        assert config.pager == DEFAULT_PAGER

    def test_steamcmd_dir_default(self, tmp_path):
        assert InstallerConfig(tmp_path).steamcmd_dir == tmp_path / "steamcmd"

    def test_steamcmd_dir_override(self, tmp_path):
        config = InstallerConfig(tmp_path, steamcmd_path=str(tmp_path / "custom"))
        assert config.steamcmd_dir == tmp_path / "custom"

    def test_negative_max_attempts_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(
            json.dumps({"max_download_attempts": -1}), encoding="utf-8"
        )
        with pytest.raises(ConfigError) as exc_info:
            InstallerConfig.load(tmp_path)
        assert exc_info.value.code is ConfigErrorCode.CONFIG_PARSE_ERROR
