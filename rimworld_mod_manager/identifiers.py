"""Workshop identifier parsing: plain IDs, workshop URLs and free-text names."""

import re
from urllib.parse import parse_qs, urlparse

RIMWORLD_APP_ID = "294100"

WORKSHOP_HOSTS = ("steamcommunity.com", "www.steamcommunity.com")

# Links found in About.xml: ".../filedetails/?id=818773962" or "steam://url/CommunityFilePage/818773962"
WORKSHOP_ID_RE = re.compile(r"(?:[?&]id=|CommunityFilePage/)(?P<id>\d+)")


def parse_workshop_id(identifier: str) -> int | None:
    """
    Turn a user-supplied identifier into a workshop ID if it is one.

    Supported formats:
        - 818773962
        - https://steamcommunity.com/sharedfiles/filedetails/?id=818773962
        - https://steamcommunity.com/workshop/filedetails/?id=818773962
        - steam://url/CommunityFilePage/818773962

    Returns None for anything else (the identifier is then a mod name).
    """
    text = identifier.strip()
    if text.isdigit():
        mod_id = int(text)
        return mod_id if mod_id > 0 else None

    parsed = urlparse(text)
    if parsed.scheme == "steam":
        return extract_id(text)
    if parsed.netloc.lower() not in WORKSHOP_HOSTS:
        return None

    ids = parse_qs(parsed.query).get("id", [])
    if ids and ids[0].isdigit() and int(ids[0]) > 0:
        return int(ids[0])
    return None


def extract_id(text: str) -> int | None:
    """Extract a workshop ID from a link embedded in mod metadata."""
    match = WORKSHOP_ID_RE.search(text)
    if not match:
        return None
    mod_id = int(match.group("id"))
    return mod_id if mod_id > 0 else None


def dedupe_identifiers(identifiers: list[str]) -> list[str]:
    """Drop exact-string repeats, keeping first occurrence order."""
    seen: set[str] = set()
    result = []
    for identifier in identifiers:
        if identifier in seen:
            continue
        seen.add(identifier)
        result.append(identifier)
    return result
