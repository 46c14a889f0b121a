"""Deploy downloaded workshop items into the game's Mods directory."""

import shutil
from pathlib import Path

# SteamCMD bookkeeping that never belongs in a mod folder
SKIP_PATTERNS = {".DS_Store", "Thumbs.db"}


class DeployError(Exception):
    """Raised when a downloaded item cannot be placed in the Mods directory."""

    pass


def _ignore(directory: str, names: list[str]) -> set[str]:
    return {name for name in names if name in SKIP_PATTERNS}


def install_item(source: Path, mods_dir: Path, mod_id: int) -> Path:
    """
    Copy a downloaded workshop item to <mods_dir>/<mod_id>.

    An existing copy of the same item is replaced. Returns the deployed path.
    """
    if not source.is_dir():
        raise DeployError(f"Downloaded item {mod_id} not found at {source}")

    dest = mods_dir / str(mod_id)
    staging = mods_dir / f".installing_{mod_id}"

    try:
        mods_dir.mkdir(parents=True, exist_ok=True)
        if staging.exists():
            shutil.rmtree(staging)
        shutil.copytree(source, staging, ignore=_ignore)

        if dest.is_symlink() or dest.is_file():
            dest.unlink()
        elif dest.exists():
            shutil.rmtree(dest)
        staging.rename(dest)
    except OSError as e:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
        raise DeployError(f"Failed to install item {mod_id} into {mods_dir}: {e}")

    return dest
