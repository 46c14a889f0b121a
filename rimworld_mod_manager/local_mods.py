"""Installed mods: game path validation and About.xml scanning."""

import logging
import warnings
from pathlib import Path

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from .identifiers import extract_id
from .mods import CandidateRecord

logger = logging.getLogger(__name__)

ABOUT_DIR = "About"
ABOUT_FILE = "About.xml"
PUBLISHED_ID_FILE = "PublishedFileId.txt"

# Core game and DLC are never downloadable from the workshop
BUILTIN_PACKAGE_PREFIX = "ludeon.rimworld"


class GamePathError(Exception):
    """Raised when a path is not a usable RimWorld installation."""

    pass


class GamePath:
    """A validated RimWorld installation directory."""

    def __init__(self, path: Path | str):
        expanded = Path(path).expanduser()
        if not expanded.is_dir():
            raise GamePathError(f'Path "{expanded}" does not exist')
        self.path = expanded

    @property
    def mods_dir(self) -> Path:
        # GOG builds keep the game one level down
        nested = self.path / "game" / "Mods"
        if nested.is_dir():
            return nested
        return self.path / "Mods"

    def __str__(self) -> str:
        return str(self.path)


def _child_text(parent, name: str) -> str:
    """Text of a direct child element (tag names are lower-cased by the parser)."""
    if parent is None:
        return ""
    child = parent.find(name.lower(), recursive=False)
    return child.get_text(strip=True) if child is not None else ""


def _parse_about(about_path: Path):
    try:
        text = about_path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        logger.warning("Could not read %s: %s", about_path, e)
        return None
    # html.parser lower-cases tag names, which the lookups below rely on
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(text, "html.parser")
    return soup.find("modmetadata")


def _published_id(mod_dir: Path) -> int:
    """Workshop ID from PublishedFileId.txt, else from a numeric folder name."""
    id_file = mod_dir / ABOUT_DIR / PUBLISHED_ID_FILE
    if id_file.exists():
        try:
            value = id_file.read_text(encoding="utf-8").strip()
        except OSError:
            value = ""
        if value.isdigit():
            return int(value)
    if mod_dir.name.isdigit():
        return int(mod_dir.name)
    return 0


def dependencies_from_metadata(metadata) -> tuple[str, ...]:
    """
    Dependency identifiers declared under <modDependencies>.

    A workshop link wins and yields the numeric ID; otherwise the display
    name is used so it can be searched for. Core and DLC entries are skipped.
    """
    if metadata is None:
        return ()
    block = metadata.find("moddependencies", recursive=False)
    if block is None:
        return ()

    identifiers: list[str] = []
    for item in block.find_all("li", recursive=False):
        package_id = _child_text(item, "packageId")
        if package_id.lower().startswith(BUILTIN_PACKAGE_PREFIX):
            continue

        mod_id = extract_id(_child_text(item, "steamWorkshopUrl"))
        if mod_id is not None:
            identifier = str(mod_id)
        else:
            identifier = _child_text(item, "displayName") or package_id

        if identifier and identifier not in identifiers:
            identifiers.append(identifier)

    return tuple(identifiers)


def read_about(mod_dir: Path) -> CandidateRecord | None:
    """Build a record from a mod folder's About/About.xml."""
    about_path = mod_dir / ABOUT_DIR / ABOUT_FILE
    if not about_path.exists():
        return None

    metadata = _parse_about(about_path)
    if metadata is None:
        logger.warning("No <ModMetaData> in %s", about_path)
        return None

    return CandidateRecord(
        id=_published_id(mod_dir),
        title=_child_text(metadata, "name"),
        author=_child_text(metadata, "author"),
        description=_child_text(metadata, "description"),
        dependencies=dependencies_from_metadata(metadata),
        package_id=_child_text(metadata, "packageId"),
        path=mod_dir,
    )


def read_dependencies(mod_dir: Path) -> tuple[str, ...]:
    """Dependency identifiers declared by the mod in mod_dir."""
    about_path = mod_dir / ABOUT_DIR / ABOUT_FILE
    if not about_path.exists():
        return ()
    return dependencies_from_metadata(_parse_about(about_path))


def scan_local_mods(mods_dir: Path) -> list[CandidateRecord]:
    """All mods installed under mods_dir, sorted by title."""
    if not mods_dir.is_dir():
        return []

    records = []
    for entry in sorted(mods_dir.iterdir()):
        if not entry.is_dir():
            continue
        record = read_about(entry)
        if record is not None:
            records.append(record)

    return sorted(records, key=lambda r: r.title.lower())
