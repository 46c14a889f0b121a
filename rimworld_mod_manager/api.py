"""Steam Workshop catalog client (HTML browse page scraping)."""

import json
import logging
import re
import time

import requests
from bs4 import BeautifulSoup

from .identifiers import RIMWORLD_APP_ID
from .mods import CandidateRecord

logger = logging.getLogger(__name__)

BROWSE_URL = "https://steamcommunity.com/workshop/browse/"

ITEM_SCRIPT_SELECTOR = "#profileBlock > div > div.workshopBrowseItems > script"
ITEM_AUTHOR_SELECTOR = (
    "#profileBlock > div > div.workshopBrowseItems > div > "
    "div.workshopItemAuthorName.ellipsis > a"
)

# The item JSON is the object literal passed to SharedFileBindMouseHover(...)
ITEM_JSON_RE = re.compile(r"\{.+\}", re.DOTALL)


class WorkshopAPIError(Exception):
    """Base exception for workshop catalog errors."""

    pass


class CatalogParseError(WorkshopAPIError):
    """Raised when a catalog page does not have the expected structure."""

    pass


class WorkshopRateLimited(WorkshopAPIError):
    """Raised when Steam answers with HTTP 429."""

    def __init__(self, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(f"Rate limited. Retry after {retry_after} seconds.")


class WorkshopAPI:
    """Client for the public Steam Workshop browse page."""

    def __init__(self, app_id: str = RIMWORLD_APP_ID, session: requests.Session | None = None):
        self.app_id = app_id
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "rimworld-mod-manager/0.1.0"})
        self._last_request_time = 0.0
        self._min_request_interval = 0.5

    def _rate_limit_wait(self) -> None:
        """Ensure we don't hammer the community site."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _handle_response(self, response: requests.Response) -> str:
        """Handle a page response and raise appropriate errors."""
        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", 60))
            raise WorkshopRateLimited(retry_after)
        if response.status_code >= 400:
            raise WorkshopAPIError(
                f"Workshop request failed ({response.status_code}): {response.url}"
            )
        return response.text

    def fetch_search_page(self, query: str) -> str:
        """Fetch the raw HTML of a workshop search."""
        self._rate_limit_wait()
        try:
            response = self.session.get(
                BROWSE_URL,
                params={"appid": self.app_id, "searchtext": f'"{query}"'},
            )
        except requests.RequestException as e:
            raise WorkshopAPIError(f"Could not reach the Steam Workshop: {e}")
        return self._handle_response(response)

    def search(self, query: str) -> list[CandidateRecord]:
        """
        Search the workshop for `query`.

        Returns candidate records in the order Steam lists them.
        """
        html = self.fetch_search_page(query)
        records = parse_search_page(html)
        logger.debug("Workshop search %r returned %d items", query, len(records))
        return records


def parse_search_page(html: str) -> list[CandidateRecord]:
    """
    Decode the items of a workshop browse page.

    Each item is a <script> tag holding a JSON object with the id, title and
    description; authors live in a separate list of elements matched by
    position.
    """
    soup = BeautifulSoup(html, "html.parser")

    records = [_decode_item_script(tag.string or "") for tag in soup.select(ITEM_SCRIPT_SELECTOR)]

    authors = [tag.get_text(strip=True) for tag in soup.select(ITEM_AUTHOR_SELECTOR)]
    for i, author in enumerate(authors[: len(records)]):
        records[i] = records[i].with_author(author)

    return records


def _decode_item_script(script: str) -> CandidateRecord:
    """Extract the item JSON object from a browse-page <script> tag."""
    match = ITEM_JSON_RE.search(script.strip())
    if not match:
        raise CatalogParseError(f"No item data in catalog script: {script[:80]!r}")

    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise CatalogParseError(f"Invalid item data in catalog script: {e}")

    if not isinstance(raw, dict):
        raise CatalogParseError(f"Unexpected item data in catalog script: {raw!r}")

    try:
        return CandidateRecord.from_catalog(raw)
    except ValueError as e:
        raise CatalogParseError(str(e))
