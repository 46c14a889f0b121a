"""Unit tests for rimworld_mod_manager.api module."""

from unittest.mock import MagicMock

import pytest
import requests

from rimworld_mod_manager.api import (
    BROWSE_URL,
    CatalogParseError,
    WorkshopAPI,
    WorkshopAPIError,
    WorkshopRateLimited,
    parse_search_page,
)


def _item(mod_id: str, title: str, description: str, author: str) -> str:
    return (
        '<div class="workshopItem">'
        f'<div class="workshopItemAuthorName ellipsis">by&nbsp;<a href="#">{author}</a></div>'
        "</div>"
        "<script>"
        f'SharedFileBindMouseHover( "sharedfile_{mod_id}", false, '
        f'{{"id":"{mod_id}","title":"{title}","description":"{description}","user_subscribed":false}} );'
        "</script>"
    )


def _page(*items: str) -> str:
    return (
        "<html><body>"
        '<div id="profileBlock"><div>'
        f'<div class="workshopBrowseItems">{"".join(items)}</div>'
        "</div></div>"
        "</body></html>"
    )


SAMPLE_PAGE = _page(
    _item("818773962", "HugsLib", "Library mod", "UnlimitedHugs"),
    _item("2009463077", "Harmony", "Patching library", "Brrainz"),
)


class TestParseSearchPage:
    """Tests for parse_search_page."""

    def test_items_in_page_order(self):
        records = parse_search_page(SAMPLE_PAGE)
        assert [r.id for r in records] == [818773962, 2009463077]
        assert [r.title for r in records] == ["HugsLib", "Harmony"]
        assert records[0].description == "Library mod"

    def test_authors_assigned_by_position(self):
        records = parse_search_page(SAMPLE_PAGE)
        assert [r.author for r in records] == ["UnlimitedHugs", "Brrainz"]

    def test_empty_page(self):
        assert parse_search_page(_page()) == []
        assert parse_search_page("<html></html>") == []

    def test_script_without_json(self):
        page = _page('<script>console.log("no item here");</script>')
        with pytest.raises(CatalogParseError):
            parse_search_page(page)

    def test_script_with_broken_json(self):
        page = _page('<script>SharedFileBindMouseHover({"id": "1", "title": });</script>')
        with pytest.raises(CatalogParseError):
            parse_search_page(page)

    def test_non_numeric_id(self):
        page = _page(_item("abc", "Broken", "", "Nobody"))
        with pytest.raises(CatalogParseError):
            parse_search_page(page)


class TestWorkshopAPI:
    """Tests for WorkshopAPI with a mocked session."""

    def _api(self, response=None, side_effect=None) -> WorkshopAPI:
        session = MagicMock()
        session.headers = {}
        if side_effect is not None:
            session.get.side_effect = side_effect
        else:
            session.get.return_value = response
        api = WorkshopAPI(session=session)
        api._min_request_interval = 0
        return api

    def _response(self, status: int = 200, text: str = "", headers=None) -> MagicMock:
        response = MagicMock()
        response.status_code = status
        response.text = text
        response.headers = headers or {}
        response.url = BROWSE_URL
        return response

    def test_search_quotes_query(self):
        api = self._api(self._response(text=SAMPLE_PAGE))
        records = api.search("hugs lib")

        assert len(records) == 2
        _, kwargs = api.session.get.call_args
        assert kwargs["params"] == {"appid": "294100", "searchtext": '"hugs lib"'}

    def test_user_agent_set(self):
        api = self._api(self._response(text=SAMPLE_PAGE))
        assert "rimworld-mod-manager" in api.session.headers["User-Agent"]

    def test_rate_limited(self):
        api = self._api(self._response(status=429, headers={"Retry-After": "30"}))
        with pytest.raises(WorkshopRateLimited) as exc_info:
            api.search("hugs")
        assert exc_info.value.retry_after == 30

    def test_http_error(self):
        api = self._api(self._response(status=503))
        with pytest.raises(WorkshopAPIError):
            api.search("hugs")

    def test_network_error(self):
        api = self._api(side_effect=requests.ConnectionError("offline"))
        with pytest.raises(WorkshopAPIError, match="Could not reach"):
            api.search("hugs")
