"""Install orchestration: resolve, download, deploy, then follow dependencies."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .api import WorkshopAPI, WorkshopAPIError
from .deploy import DeployError, install_item
from .identifiers import dedupe_identifiers, parse_workshop_id
from .local_mods import read_about, read_dependencies
from .mods import CandidateRecord
from .search import FilterSpec, filter_records, valid_records
from .steamcmd import ExecutionResult, SteamCMD

logger = logging.getLogger(__name__)

# progress callback: (event_type, identifier, message)
ProgressCallback = Callable[[str, str, str], None]

# chooser callback: (query, candidates) -> picked candidate or None
Chooser = Callable[[str, list[CandidateRecord]], CandidateRecord | None]


class ResolutionError(Exception):
    """Raised when an identifier cannot be turned into a single workshop item."""

    pass


@dataclass
class InstallRequest:
    """
    One install invocation.

    `visited` holds the workshop IDs already handled during this call and is
    the only guard against dependency cycles; it may be pre-seeded.
    """

    requested: list[str]
    resolve_dependencies: bool = False
    filter_spec: FilterSpec | None = None
    filter_query: str | None = None
    visited: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.requested = dedupe_identifiers(list(self.requested))


@dataclass
class InstallOutcome:
    identifier: str
    mod_id: int | None
    succeeded: bool
    raw_message: str
    depth: int = 0
    title: str = ""


@dataclass
class InstallReport:
    """Outcomes in the order they were attempted."""

    outcomes: list[InstallOutcome] = field(default_factory=list)

    def add(self, outcome: InstallOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def succeeded(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


def _noop_progress(event: str, identifier: str, msg: str) -> None:
    pass


class WorkshopResolver:
    """Turns names and URLs into workshop IDs using the catalog search."""

    def __init__(self, api: WorkshopAPI, chooser: Chooser | None = None):
        self.api = api
        self.chooser = chooser

    def resolve(
        self,
        identifier: str,
        filter_spec: FilterSpec | None = None,
        filter_query: str | None = None,
    ) -> tuple[int, CandidateRecord | None]:
        """
        Resolve one identifier.

        Numeric IDs and workshop URLs resolve without a lookup. Names are
        searched; without a filter only a single hit is accepted, with a
        filter several hits go to the chooser (or the first one is taken).
        """
        mod_id = parse_workshop_id(identifier)
        if mod_id is not None:
            return mod_id, None

        try:
            found = self.api.search(identifier)
        except WorkshopAPIError as e:
            raise ResolutionError(f"Could not search the workshop for '{identifier}': {e}")

        if filter_spec is not None:
            candidates = filter_records(found, filter_spec, filter_query or identifier).records
        else:
            candidates = valid_records(found)

        if not candidates:
            raise ResolutionError(f"No mods found for '{identifier}'")
        if len(candidates) == 1:
            return candidates[0].id, candidates[0]
        if filter_spec is None:
            raise ResolutionError(
                f"'{identifier}' matches {len(candidates)} mods; "
                "use --filter or a workshop ID to pick one"
            )

        if self.chooser is None:
            chosen = candidates[0]
        else:
            chosen = self.chooser(identifier, candidates)
            if chosen is None:
                raise ResolutionError(f"No mod selected for '{identifier}'")
        return chosen.id, chosen


class ModInstaller:
    """Installs workshop items into the game's Mods directory."""

    def __init__(
        self,
        steamcmd: SteamCMD,
        resolver: WorkshopResolver,
        mods_dir: Path,
        on_progress: ProgressCallback | None = None,
    ):
        self.steamcmd = steamcmd
        self.resolver = resolver
        self.mods_dir = Path(mods_dir)
        self.progress = on_progress or _noop_progress

    def install(self, request: InstallRequest) -> InstallReport:
        """
        Install every requested mod and, when asked, their dependencies.

        Per-mod failures end up in the report; only a SteamCMD that cannot
        be started at all raises.
        """
        report = InstallReport()
        if request.resolve_dependencies:
            self._install_with_dependencies(request, report)
        else:
            self._install_batch(request, report)
        return report

    def _resolve(
        self,
        identifier: str,
        depth: int,
        request: InstallRequest,
        report: InstallReport,
    ) -> tuple[int, CandidateRecord | None] | None:
        # The filter only disambiguates what the user typed, never dependencies
        if depth == 0:
            filter_spec, filter_query = request.filter_spec, request.filter_query
        else:
            filter_spec, filter_query = None, None
        try:
            return self.resolver.resolve(identifier, filter_spec, filter_query)
        except ResolutionError as e:
            logger.warning("%s", e)
            report.add(InstallOutcome(identifier, None, False, str(e), depth))
            self.progress("unresolved", identifier, str(e))
            return None

    def _install_batch(self, request: InstallRequest, report: InstallReport) -> None:
        """Resolve every request, then fetch them all in one SteamCMD run."""
        batch: list[tuple[str, int, CandidateRecord | None]] = []
        for identifier in request.requested:
            resolved = self._resolve(identifier, 0, request, report)
            if resolved is None:
                continue
            mod_id, record = resolved
            if mod_id in request.visited:
                logger.info("Skipping %d, already handled", mod_id)
                continue
            request.visited.add(mod_id)
            batch.append((identifier, mod_id, record))

        if not batch:
            return

        mod_ids = [mod_id for _, mod_id, _ in batch]
        self.progress("download", ", ".join(map(str, mod_ids)), f"Downloading {len(mod_ids)} mod(s)...")
        result = self.steamcmd.download(mod_ids)

        for identifier, mod_id, record in batch:
            outcome, _ = self._finish(identifier, mod_id, record, result, 0)
            report.add(outcome)

    def _install_with_dependencies(self, request: InstallRequest, report: InstallReport) -> None:
        """
        Walk the dependency graph with an explicit stack.

        Top-level requests are attempted first, in order; their dependencies
        are then explored depth-first, first request first.
        """
        expansions: list[tuple[list[str], int]] = []
        for identifier in request.requested:
            dependencies = self._install_one(identifier, 0, request, report)
            if dependencies:
                expansions.append((dependencies, 1))

        stack: list[tuple[str, int]] = []
        for dependencies, depth in reversed(expansions):
            stack.extend((dep, depth) for dep in reversed(dependencies))

        while stack:
            identifier, depth = stack.pop()
            dependencies = self._install_one(identifier, depth, request, report)
            stack.extend((dep, depth + 1) for dep in reversed(dependencies))

    def _install_one(
        self,
        identifier: str,
        depth: int,
        request: InstallRequest,
        report: InstallReport,
    ) -> list[str]:
        """Install a single identifier; returns the dependencies to visit next."""
        logger.debug("%sResolving %s (depth %d)", "  " * depth, identifier, depth)
        resolved = self._resolve(identifier, depth, request, report)
        if resolved is None:
            return []

        mod_id, record = resolved
        if mod_id in request.visited:
            logger.debug("%sSkipping %d, already handled", "  " * depth, mod_id)
            return []
        request.visited.add(mod_id)

        self.progress("download", identifier, f"Downloading {mod_id}...")
        result = self.steamcmd.download([mod_id])
        outcome, deployed = self._finish(identifier, mod_id, record, result, depth)
        report.add(outcome)
        if not outcome.succeeded:
            return []

        dependencies = list(record.dependencies) if record is not None else []
        if deployed is not None:
            for dep in read_dependencies(deployed):
                if dep not in dependencies:
                    dependencies.append(dep)

        if dependencies:
            logger.debug("%s%d declares %s", "  " * depth, mod_id, ", ".join(dependencies))
        return dependencies

    def _finish(
        self,
        identifier: str,
        mod_id: int,
        record: CandidateRecord | None,
        result: ExecutionResult,
        depth: int,
    ) -> tuple[InstallOutcome, Path | None]:
        """Turn a SteamCMD result into an outcome, deploying on success."""
        title = record.title if record is not None else ""

        if not result.succeeded_for(mod_id):
            message = result.message_for(mod_id)
            self.progress("failed", identifier, message)
            return InstallOutcome(identifier, mod_id, False, message, depth, title), None

        source = self.steamcmd.find_item(mod_id, result)
        if source is None:
            message = f"Downloaded item {mod_id} but could not locate its files"
            self.progress("failed", identifier, message)
            return InstallOutcome(identifier, mod_id, False, message, depth, title), None

        try:
            deployed = install_item(source, self.mods_dir, mod_id)
        except DeployError as e:
            self.progress("failed", identifier, str(e))
            return InstallOutcome(identifier, mod_id, False, str(e), depth, title), None

        if not title:
            about = read_about(deployed)
            title = about.title if about is not None else ""

        self.progress("installed", identifier, f"Installed {title or mod_id}")
        return InstallOutcome(identifier, mod_id, True, result.message_for(mod_id), depth, title), deployed
