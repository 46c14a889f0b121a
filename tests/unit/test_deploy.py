"""Unit tests for rimworld_mod_manager.deploy module."""

import pytest

from rimworld_mod_manager.deploy import DeployError, install_item


def test_copies_item(tmp_path, make_mod):
    source = make_mod(tmp_path / "content" / "42", "Forty Two")
    (source / "Thumbs.db").write_text("junk")
    mods_dir = tmp_path / "Mods"

    dest = install_item(source, mods_dir, 42)

    assert dest == mods_dir / "42"
    assert (dest / "About" / "About.xml").exists()
    assert not (dest / "Thumbs.db").exists()
    assert not (mods_dir / ".installing_42").exists()


def test_replaces_previous_copy(tmp_path, make_mod):
    mods_dir = tmp_path / "Mods"
    old = mods_dir / "42"
    old.mkdir(parents=True)
    (old / "stale.txt").write_text("old")
    source = make_mod(tmp_path / "content" / "42", "Forty Two")

    dest = install_item(source, mods_dir, 42)

    assert not (dest / "stale.txt").exists()
    assert (dest / "About" / "About.xml").exists()


def test_missing_source(tmp_path):
    with pytest.raises(DeployError):
        install_item(tmp_path / "missing", tmp_path / "Mods", 42)
