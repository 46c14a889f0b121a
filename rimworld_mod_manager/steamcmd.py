"""SteamCMD driver: workshop downloads, output classification and bootstrap."""

import enum
import logging
import os
import re
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from .extractor import ExtractionError, extract_archive
from .identifiers import RIMWORLD_APP_ID

logger = logging.getLogger(__name__)

# All three must be present before any download output is trusted
SESSION_MARKERS = (
    "Connecting anonymously to Steam Public...OK",
    "Waiting for client config...OK",
    "Waiting for user info...OK",
)
CONTENT_MARKER = "Success. Downloaded item"
DOWNLOAD_DIRECTIVE = "+workshop_download_item"

EXHAUSTED_SENTINEL = "Error: Failed to install"
ADMIN_MAX_ATTEMPTS = 5
DEFAULT_DOWNLOAD_ATTEMPTS = 10

DOWNLOADED_ITEM_RE = re.compile(r'Success\. Downloaded item (?P<id>\d+) to "(?P<path>[^"]+)"')

STEAMCMD_BASE_URL = "https://steamcdn-a.akamaihd.net/client/installer"
STEAMCMD_ARCHIVES = {
    "linux": "steamcmd_linux.tar.gz",
    "darwin": "steamcmd_osx.tar.gz",
    "win32": "steamcmd.zip",
}
STEAMCMD_BINARIES = {
    "linux": "steamcmd.sh",
    "darwin": "steamcmd",
    "win32": "steamcmd.exe",
}

RetryCallback = Callable[[int, str], None]


class SteamCMDError(Exception):
    """Base exception for SteamCMD failures."""

    pass


class SteamCMDNotFound(SteamCMDError):
    """Raised when the SteamCMD process cannot be spawned at all."""

    pass


class SteamCMDInstallError(SteamCMDError):
    """Raised when SteamCMD cannot be fetched or unpacked."""

    pass


class ExecutionStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    INDETERMINATE = "indeterminate"
    EXHAUSTED = "exhausted"


@dataclass
class ExecutionResult:
    """Outcome of one SteamCMD command, after retries."""

    status: ExecutionStatus
    output: str
    attempts: int

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    def succeeded_for(self, mod_id: int) -> bool:
        """Whether this (possibly batched) run downloaded the given item."""
        if self.status is not ExecutionStatus.SUCCESS:
            return False
        return re.search(rf"{re.escape(CONTENT_MARKER)} {mod_id}\b", self.output) is not None

    def item_path(self, mod_id: int) -> Path | None:
        """Where SteamCMD reported the item was written, if it said so."""
        for match in DOWNLOADED_ITEM_RE.finditer(self.output):
            if int(match.group("id")) == mod_id:
                return Path(match.group("path"))
        return None

    def message_for(self, mod_id: int) -> str:
        """Most relevant output line for one item of the run."""
        if self.status is ExecutionStatus.EXHAUSTED:
            return self.output

        lines = [line.strip() for line in self.output.splitlines() if line.strip()]
        success = re.compile(rf"{re.escape(CONTENT_MARKER)} {mod_id}\b")
        for line in lines:
            if success.search(line):
                return line
        for line in lines:
            if line.startswith("ERROR!") and str(mod_id) in line:
                return line
        for line in lines:
            if line.startswith("ERROR!"):
                return line
        return f"Download of item {mod_id} failed"


def classify_output(output: str, download: bool = True) -> ExecutionStatus:
    """
    Classify raw SteamCMD stdout.

    Without the three session markers nothing is definitive and the command
    should be retried. With them, a download is a success only when the
    content marker is present; an administrative command is a success as
    soon as the session came up.
    """
    if not all(marker in output for marker in SESSION_MARKERS):
        return ExecutionStatus.INDETERMINATE
    if not download:
        return ExecutionStatus.SUCCESS
    if CONTENT_MARKER in output:
        return ExecutionStatus.SUCCESS
    return ExecutionStatus.FAILURE


def download_directives(mod_ids: list[int], app_id: str = RIMWORLD_APP_ID) -> list[str]:
    """One `+workshop_download_item <app> <id>` directive per item."""
    directives: list[str] = []
    for mod_id in mod_ids:
        directives.extend([DOWNLOAD_DIRECTIVE, app_id, str(mod_id)])
    return directives


def platform_key() -> str:
    if sys.platform.startswith("win"):
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


class SteamCMD:
    """Runs SteamCMD as an anonymous user against a private home directory."""

    def __init__(
        self,
        install_dir: Path,
        home_dir: Path,
        max_attempts: int = DEFAULT_DOWNLOAD_ATTEMPTS,
        on_retry: RetryCallback | None = None,
        app_id: str = RIMWORLD_APP_ID,
    ):
        """
        Args:
            install_dir: Directory holding the SteamCMD binary
            home_dir: Directory used as HOME and working directory
            max_attempts: Attempts per download command; 0 retries forever
            on_retry: Optional callback(attempt, output) fired before each retry
        """
        self.install_dir = Path(install_dir)
        self.home_dir = Path(home_dir)
        self.max_attempts = max_attempts
        self.on_retry = on_retry
        self.app_id = app_id

    @property
    def executable(self) -> Path:
        return self.install_dir / STEAMCMD_BINARIES[platform_key()]

    def is_installed(self) -> bool:
        return self.executable.exists()

    def build_command(self, directives: list[str]) -> list[str]:
        """Full argv: anonymous login, the directives, then quit."""
        return [str(self.executable), "+login", "anonymous", *directives, "+quit"]

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env["HOME"] = str(self.home_dir)
        return env

    def _run_once(self, directives: list[str]) -> str:
        """Spawn SteamCMD once and return its stdout."""
        command = self.build_command(directives)
        logger.debug("Running %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                cwd=self.home_dir,
                env=self._environment(),
                check=False,
            )
        except OSError as e:
            raise SteamCMDNotFound(
                f"Could not execute steamcmd successfully ({self.executable}): {e}"
            )
        return completed.stdout.decode("utf-8", errors="replace")

    def run_command(self, directives: list[str]) -> ExecutionResult:
        """
        Run SteamCMD until its output is definitive.

        Download commands are retried up to `max_attempts` times (forever
        when it is 0); administrative commands give up after
        ADMIN_MAX_ATTEMPTS and return the exhaustion sentinel.
        """
        download = DOWNLOAD_DIRECTIVE in directives
        limit = self.max_attempts if download else ADMIN_MAX_ATTEMPTS

        attempt = 0
        while True:
            attempt += 1
            output = self._run_once(directives)
            status = classify_output(output, download=download)
            if status is not ExecutionStatus.INDETERMINATE:
                return ExecutionResult(status, output, attempt)

            if limit and attempt >= limit:
                logger.error("SteamCMD gave no usable answer after %d attempts", attempt)
                return ExecutionResult(ExecutionStatus.EXHAUSTED, EXHAUSTED_SENTINEL, attempt)

            logger.warning(
                "SteamCMD session not ready (attempt %d/%s), still retrying",
                attempt,
                limit or "unbounded",
            )
            if self.on_retry:
                self.on_retry(attempt, output)

    def download(self, mod_ids: list[int]) -> ExecutionResult:
        """Download one or more workshop items in a single SteamCMD run."""
        if not mod_ids:
            raise ValueError("No workshop items to download")
        return self.run_command(download_directives(mod_ids, self.app_id))

    def find_item(self, mod_id: int, result: ExecutionResult | None = None) -> Path | None:
        """Locate the content directory of a downloaded workshop item."""
        if result is not None:
            reported = result.item_path(mod_id)
            if reported is not None and reported.is_dir():
                return reported

        relative = Path("steamapps") / "workshop" / "content" / self.app_id / str(mod_id)
        roots = [
            self.install_dir,
            self.home_dir / "Steam",
            self.home_dir / ".local" / "share" / "Steam",
            self.home_dir / ".steam" / "steam",
        ]
        for root in roots:
            candidate = root / relative
            if candidate.is_dir():
                return candidate
        return None

    def ensure_installed(self, session: requests.Session | None = None) -> bool:
        """
        Fetch and unpack SteamCMD if it is missing, then let it self-update.

        Returns True when an installation was performed.
        """
        if self.is_installed():
            return False

        key = platform_key()
        archive_name = STEAMCMD_ARCHIVES[key]
        url = f"{STEAMCMD_BASE_URL}/{archive_name}"
        self.install_dir.mkdir(parents=True, exist_ok=True)
        archive_path = self.install_dir / archive_name

        _fetch_archive(url, archive_path, session or requests.Session())
        try:
            extract_archive(archive_path, self.install_dir)
        except ExtractionError as e:
            raise SteamCMDInstallError(str(e))
        finally:
            if archive_path.exists():
                archive_path.unlink()

        if key != "win32":
            _make_executable(self.install_dir)

        result = self.run_command([])
        if not result.succeeded:
            logger.warning("SteamCMD self-update did not finish cleanly")
        return True


def _fetch_archive(url: str, target: Path, session: requests.Session) -> None:
    """Stream a file to disk with a progress bar."""
    temp_path = target.with_name(f".downloading_{target.name}")
    try:
        response = session.get(url, stream=True)
        response.raise_for_status()
        total_size = int(response.headers.get("content-length", 0))

        with create_download_progress() as progress:
            task_id = progress.add_task("download", filename=target.name, total=total_size)
            with open(temp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
                        progress.update(task_id, advance=len(chunk))

        temp_path.rename(target)
    except (requests.RequestException, OSError) as e:
        if temp_path.exists():
            temp_path.unlink()
        raise SteamCMDInstallError(f"Failed to download SteamCMD from {url}: {e}")


def _make_executable(path: Path) -> None:
    """Set 0o744 on every file below path."""
    for entry in path.rglob("*"):
        if entry.is_file():
            entry.chmod(0o744)


def create_download_progress() -> Progress:
    """Create a progress bar for downloads."""
    return Progress(
        TextColumn("[bold blue]{task.fields[filename]}", justify="right"),
        BarColumn(bar_width=30),
        "[progress.percentage]{task.percentage:>3.0f}%",
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
    )
