"""Unpacking of the SteamCMD bootstrap bundles (zip on Windows, tar.gz elsewhere)."""

import tarfile
import zipfile
from pathlib import Path

ARCHIVE_MAGIC = {
    b"PK": "zip",
    b"\x1f\x8b": "tar.gz",
}
ARCHIVE_SUFFIXES = {
    ".zip": "zip",
    ".tar.gz": "tar.gz",
    ".tgz": "tar.gz",
}


class ExtractionError(Exception):
    """Raised when a bundle cannot be unpacked."""

    pass


def detect_archive_type(filepath: Path) -> str | None:
    """'zip' or 'tar.gz' from the leading bytes, else from the file name."""
    try:
        with open(filepath, "rb") as f:
            header = f.read(2)
    except OSError:
        header = b""

    if header in ARCHIVE_MAGIC:
        return ARCHIVE_MAGIC[header]

    name = filepath.name.lower()
    for suffix, kind in ARCHIVE_SUFFIXES.items():
        if name.endswith(suffix):
            return kind
    return None


def _check_member(root: Path, name: str) -> None:
    dest = (root / name).resolve()
    if dest != root and root not in dest.parents:
        raise ExtractionError(f"Archive member escapes target: {name}")


def _check_link(root: Path, member: tarfile.TarInfo) -> None:
    # Symlinks resolve from their own directory, hardlinks from the archive root
    if member.issym():
        target = (root / member.name).parent / member.linkname
    elif member.islnk():
        target = root / member.linkname
    else:
        return
    resolved = target.resolve()
    if resolved != root and root not in resolved.parents:
        raise ExtractionError(f"Archive link escapes target: {member.name} -> {member.linkname}")


def extract_archive(archive_path: Path, target_dir: Path) -> list[Path]:
    """
    Unpack a bundle into target_dir.

    Members or tar links resolving outside target_dir are rejected before
    anything is written. Returns the extracted regular files.
    """
    kind = detect_archive_type(archive_path)
    if kind is None:
        raise ExtractionError(f"Unknown archive type: {archive_path}")

    target_dir.mkdir(parents=True, exist_ok=True)
    root = target_dir.resolve()

    try:
        if kind == "zip":
            with zipfile.ZipFile(archive_path) as bundle:
                names = bundle.namelist()
                for name in names:
                    _check_member(root, name)
                bundle.extractall(target_dir)
            files = [name for name in names if not name.endswith("/")]
        else:
            with tarfile.open(archive_path, "r:gz") as bundle:
                members = bundle.getmembers()
                for member in members:
                    _check_member(root, member.name)
                    _check_link(root, member)
                if hasattr(tarfile, "data_filter"):
                    bundle.extractall(target_dir, members=members, filter="data")
                else:
                    bundle.extractall(target_dir, members=members)
            files = [member.name for member in members if member.isfile()]
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise ExtractionError(f"Failed to extract {archive_path}: {e}")

    return [target_dir / name for name in files]
