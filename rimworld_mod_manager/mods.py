"""Normalized mod metadata shared by the local scan and the workshop catalog."""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class CandidateRecord:
    """A mod as seen by search and install, keyed by its workshop ID."""

    id: int
    title: str
    author: str = ""
    description: str = ""
    dependencies: tuple[str, ...] = ()
    package_id: str = ""
    path: Path | None = None

    @property
    def is_valid(self) -> bool:
        return self.id != 0 and bool(self.title)

    @classmethod
    def from_catalog(cls, raw: dict[str, Any]) -> "CandidateRecord":
        """
        Build a record from the JSON fragment embedded in a catalog page.

        The fragment carries the ID as a string of digits; the author is
        filled in later from the page's author list.
        """
        raw_id = str(raw.get("id", "")).strip()
        if not raw_id.isdigit():
            raise ValueError(f"Invalid workshop id in catalog entry: {raw_id!r}")

        return cls(
            id=int(raw_id),
            title=raw.get("title") or "",
            author=raw.get("author") or "",
            description=raw.get("description") or "",
        )

    def with_author(self, author: str) -> "CandidateRecord":
        """Return a copy carrying the given author name."""
        return replace(self, author=author)
