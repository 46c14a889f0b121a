"""Unit tests for rimworld_mod_manager.local_mods module."""

import warnings
from pathlib import Path

import pytest
from bs4 import XMLParsedAsHTMLWarning

from rimworld_mod_manager.local_mods import (
    GamePath,
    GamePathError,
    read_about,
    read_dependencies,
    scan_local_mods,
)


class TestGamePath:
    """Tests for GamePath."""

    def test_missing_path(self, tmp_path):
        with pytest.raises(GamePathError, match="does not exist"):
            GamePath(tmp_path / "nope")

    def test_mods_dir(self, game_dir):
        assert GamePath(game_dir).mods_dir == game_dir / "Mods"

    def test_nested_gog_layout(self, tmp_path):
        (tmp_path / "game" / "Mods").mkdir(parents=True)
        assert GamePath(tmp_path).mods_dir == tmp_path / "game" / "Mods"

    def test_accepts_string(self, game_dir):
        assert GamePath(str(game_dir)).path == game_dir


class TestReadAbout:
    """Tests for About.xml parsing."""

    def test_basic_fields(self, tmp_path, make_mod):
        mod_dir = make_mod(
            tmp_path / "HugsLib",
            "HugsLib",
            author="UnlimitedHugs",
            description="Library mod",
            published_id="818773962",
            package_id="UnlimitedHugs.HugsLib",
        )

        record = read_about(mod_dir)

        assert record.id == 818773962
        assert record.title == "HugsLib"
        assert record.author == "UnlimitedHugs"
        assert record.description == "Library mod"
        assert record.package_id == "UnlimitedHugs.HugsLib"
        assert record.path == mod_dir

    def test_id_from_folder_name(self, tmp_path, make_mod):
        record = read_about(make_mod(tmp_path / "2009463077", "Harmony"))
        assert record.id == 2009463077

    def test_local_mod_without_id(self, tmp_path, make_mod):
        record = read_about(make_mod(tmp_path / "MyMod", "My Mod"))
        assert record.id == 0
        assert not record.is_valid

    def test_missing_about(self, tmp_path):
        (tmp_path / "Empty").mkdir()
        assert read_about(tmp_path / "Empty") is None

    def test_not_mod_metadata(self, tmp_path):
        about = tmp_path / "Odd" / "About"
        about.mkdir(parents=True)
        (about / "About.xml").write_text("<Something/>", encoding="utf-8")
        assert read_about(tmp_path / "Odd") is None


class TestDependencies:
    """Tests for <modDependencies> handling."""

    def test_workshop_url_preferred(self, tmp_path, make_mod):
        mod_dir = make_mod(
            tmp_path / "A",
            "A",
            dependencies=[
                {
                    "packageId": "brrainz.harmony",
                    "displayName": "Harmony",
                    "steamWorkshopUrl": "steam://url/CommunityFilePage/2009463077",
                },
                {"packageId": "someone.thing", "displayName": "Thing"},
                {"packageId": "someone.nameless"},
            ],
        )
        assert read_dependencies(mod_dir) == ("2009463077", "Thing", "someone.nameless")

    def test_core_and_dlc_skipped(self, tmp_path, make_mod):
        mod_dir = make_mod(
            tmp_path / "A",
            "A",
            dependencies=[
                {"packageId": "Ludeon.RimWorld", "displayName": "Core"},
                {"packageId": "Ludeon.RimWorld.Royalty", "displayName": "Royalty"},
            ],
        )
        assert read_dependencies(mod_dir) == ()

    def test_no_about(self, tmp_path):
        assert read_dependencies(tmp_path) == ()


def test_scan_sorted_by_title(game_dir, make_mod):
    mods = game_dir / "Mods"
    make_mod(mods / "1", "zeta")
    make_mod(mods / "2", "Alpha")
    make_mod(mods / "3", "beta")
    (mods / "NotAMod").mkdir()
    (mods / "stray.txt").write_text("x")

    assert [r.title for r in scan_local_mods(mods)] == ["Alpha", "beta", "zeta"]


def test_scan_missing_dir(tmp_path):
    assert scan_local_mods(tmp_path / "Mods") == []


def test_about_parsing_is_silent(tmp_path, make_mod):
    mod_dir = make_mod(tmp_path / "HugsLib", "HugsLib", published_id="818773962")

    with warnings.catch_warnings():
        warnings.simplefilter("error", XMLParsedAsHTMLWarning)
        record = read_about(mod_dir)

    assert record.title == "HugsLib"
