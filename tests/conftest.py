"""Pytest configuration and shared fixtures for rimworld-mod-manager tests."""

from pathlib import Path

import pytest

from rimworld_mod_manager.mods import CandidateRecord
from rimworld_mod_manager.steamcmd import CONTENT_MARKER, SESSION_MARKERS


# ============================================================================
# SteamCMD output fixtures
# ============================================================================

SESSION_OUTPUT = "\n".join(
    [
        "Redirecting stderr to '/home/user/.steam/logs/stderr.txt'",
        "Loading Steam API...OK",
        *SESSION_MARKERS,
    ]
)


def steamcmd_output(*downloaded: int, root: str = "/tmp/steam") -> str:
    """SteamCMD stdout for a session that downloaded the given items."""
    lines = [SESSION_OUTPUT]
    for mod_id in downloaded:
        lines.append(
            f'{CONTENT_MARKER} {mod_id} to "{root}/steamapps/workshop/content/294100/{mod_id}" '
            "(1024 bytes)"
        )
    return "\n".join(lines) + "\n"


@pytest.fixture
def session_output() -> str:
    return SESSION_OUTPUT + "\n"


# ============================================================================
# Mod fixtures
# ============================================================================

@pytest.fixture
def sample_records() -> list[CandidateRecord]:
    """A small mixed listing, including an invalid record."""
    return [
        CandidateRecord(818773962, "HugsLib", "UnlimitedHugs", "Library mod for RimWorld"),
        CandidateRecord(2009463077, "Harmony", "Brrainz", "Patching library"),
        CandidateRecord(1507748539, "Hospitality", "Orion", "Guests visit your colony"),
        CandidateRecord(0, "Local Only Mod", "Someone", "Not on the workshop"),
        CandidateRecord(2879120290, "Vanilla Expanded Framework", "Oskar Potocki", "Shared code"),
    ]


def write_about(
    mod_dir: Path,
    name: str,
    author: str = "",
    description: str = "",
    published_id: str | None = None,
    dependencies: list[dict[str, str]] | None = None,
    package_id: str = "",
) -> Path:
    """Write an About/About.xml (and optionally PublishedFileId.txt) into mod_dir."""
    about_dir = mod_dir / "About"
    about_dir.mkdir(parents=True, exist_ok=True)

    deps_xml = ""
    if dependencies:
        items = []
        for dep in dependencies:
            fields = "".join(f"<{key}>{value}</{key}>" for key, value in dep.items())
            items.append(f"<li>{fields}</li>")
        deps_xml = f"<modDependencies>{''.join(items)}</modDependencies>"

    (about_dir / "About.xml").write_text(
        '<?xml version="1.0" encoding="utf-8"?>\n'
        "<ModMetaData>"
        f"<name>{name}</name>"
        f"<author>{author}</author>"
        f"<packageId>{package_id}</packageId>"
        f"<description>{description}</description>"
        f"{deps_xml}"
        "</ModMetaData>\n",
        encoding="utf-8",
    )
    if published_id is not None:
        (about_dir / "PublishedFileId.txt").write_text(published_id, encoding="utf-8")
    return mod_dir


@pytest.fixture
def game_dir(tmp_path: Path) -> Path:
    """A fake RimWorld install with an empty Mods directory."""
    game = tmp_path / "RimWorld"
    (game / "Mods").mkdir(parents=True)
    return game


@pytest.fixture
def make_output():
    return steamcmd_output


@pytest.fixture
def make_mod():
    return write_about
