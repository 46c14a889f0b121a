"""Locating the RimWorld install through the local Steam client (or common fallbacks)."""

import logging
import re
import sys
from pathlib import Path
from typing import Iterator

from .identifiers import RIMWORLD_APP_ID

logger = logging.getLogger(__name__)

STEAM_PATHS = [
    Path.home() / ".steam" / "debian-installation",
    Path.home() / ".steam" / "steam",
    Path.home() / ".local" / "share" / "Steam",
    Path.home() / "Library" / "Application Support" / "Steam",
    Path("C:/Program Files (x86)/Steam"),
    Path("C:/Program Files/Steam"),
    Path("/usr/share/steam"),
]

# GOG and manual installs
if sys.platform.startswith("win"):
    DEFAULT_GAME_PATHS = [
        Path("C:/GOG Games/RimWorld"),
        Path("C:/Program Files (x86)/GOG Galaxy/Games/RimWorld"),
    ]
elif sys.platform == "darwin":
    DEFAULT_GAME_PATHS = [
        Path("/Applications/RimWorld.app"),
        Path.home() / "Applications" / "RimWorld.app",
    ]
else:
    DEFAULT_GAME_PATHS = [
        Path.home() / "GOG Games" / "RimWorld",
        Path.home() / "Games" / "RimWorld",
    ]

# Valve KeyValues: "key"		"value"
VDF_PATH_RE = re.compile(r'"path"\s+"(?P<value>[^"]+)"')
ACF_INSTALLDIR_RE = re.compile(r'"installdir"\s+"(?P<value>[^"]+)"')

LIBRARY_FOLDERS = Path("config") / "libraryfolders.vdf"


def find_steam_root() -> Path | None:
    return next((path for path in STEAM_PATHS if (path / LIBRARY_FOLDERS).exists()), None)


def steam_libraries(steam_root: Path) -> Iterator[Path]:
    """Every existing library folder listed by the Steam client."""
    try:
        text = (steam_root / LIBRARY_FOLDERS).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug("Could not read Steam library list: %s", e)
        return

    for match in VDF_PATH_RE.finditer(text):
        # Windows paths are stored with escaped backslashes
        library = Path(match.group("value").replace("\\\\", "\\"))
        if library.is_dir():
            yield library


def find_steam_game_dir(app_id: str = RIMWORLD_APP_ID) -> Path | None:
    """Install directory of app_id according to its appmanifest."""
    steam_root = find_steam_root()
    if steam_root is None:
        return None

    for library in steam_libraries(steam_root):
        manifest = library / "steamapps" / f"appmanifest_{app_id}.acf"
        if not manifest.is_file():
            continue
        match = ACF_INSTALLDIR_RE.search(manifest.read_text(encoding="utf-8", errors="replace"))
        if match is None:
            continue
        game_dir = library / "steamapps" / "common" / match.group("value")
        if game_dir.is_dir():
            logger.debug("Found RimWorld in Steam library %s", library)
            return game_dir

    return None


def find_game_dir() -> Path | None:
    """RimWorld through Steam first, then the usual manual locations."""
    game_dir = find_steam_game_dir()
    if game_dir is not None:
        return game_dir
    return next((path for path in DEFAULT_GAME_PATHS if path.is_dir()), None)
