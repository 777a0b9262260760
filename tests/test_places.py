from unittest.mock import MagicMock, patch

import pytest
import requests

from scraper import places
from scraper.config import FIELD_MASK, PLACES_TEXT_SEARCH_URL
from scraper.geo import Bounds, bbox_tiles


def _response(body=None, status=200):
    resp = MagicMock(ok=200 <= status < 300, status_code=status, text=str(body))
    resp.json.return_value = body
    return resp


def test_search_text_builds_request():
    tile = bbox_tiles(Bounds(1.2, 103.6, 1.3, 103.7), 1, 1)[0]
    with patch("scraper.places._SESSION.post", return_value=_response({"places": []})) as post:
        body = places.search_text("k", "best laksa Singapore", tile, page_token="tok")

    assert body == {"places": []}
    assert post.call_args.args[0] == PLACES_TEXT_SEARCH_URL
    payload = post.call_args.kwargs["json"]
    assert payload["textQuery"] == "best laksa Singapore"
    assert payload["pageSize"] == 20
    assert payload["pageToken"] == "tok"
    assert "locationRestriction" in payload
    headers = post.call_args.kwargs["headers"]
    assert headers["X-Goog-Api-Key"] == "k"
    assert headers["X-Goog-FieldMask"] == FIELD_MASK


def test_search_text_non_2xx_raises():
    error = {"error": {"code": 403, "message": "API key not valid"}}
    with patch("scraper.places._SESSION.post", return_value=_response(error, status=403)):
        with pytest.raises(places.PlacesAPIError) as excinfo:
            places.search_text("bad", "q")
    assert excinfo.value.status == 403
    assert "API key not valid" in str(excinfo.value)


def test_search_text_malformed_body_raises():
    resp = _response(status=200)
    resp.json.side_effect = ValueError("no json")
    with patch("scraper.places._SESSION.post", return_value=resp):
        with pytest.raises(places.PlacesAPIError):
            places.search_text("k", "q")


def test_search_text_transport_error_raises():
    with patch("scraper.places._SESSION.post", side_effect=requests.ConnectionError("dns")):
        with pytest.raises(places.PlacesAPIError):
            places.search_text("k", "q")


@patch("scraper.places.time.sleep")
def test_iter_pages_follows_token_until_exhausted(sleep):
    pages = [
        {"places": [{"id": "a"}], "nextPageToken": "t1"},
        {"places": [{"id": "b"}]},
    ]
    with patch("scraper.places.search_text", side_effect=pages) as search:
        result = list(places.iter_pages("k", "q", None, max_pages=5, page_delay=2.0))

    assert result == [(1, [{"id": "a"}]), (2, [{"id": "b"}])]
    assert search.call_args_list[1].kwargs["page_token"] == "t1"
    sleep.assert_called_once_with(2.0)


@patch("scraper.places.time.sleep")
def test_iter_pages_stops_at_page_cap(sleep):
    page = {"places": [{"id": "x"}], "nextPageToken": "more"}
    with patch("scraper.places.search_text", return_value=page) as search:
        result = list(places.iter_pages("k", "q", None, max_pages=3, page_delay=0))

    assert len(result) == 3
    assert search.call_count == 3
    assert sleep.call_count == 2


@patch("scraper.places.time.sleep")
def test_iter_pages_empty_first_page(sleep):
    with patch("scraper.places.search_text", return_value={}):
        assert list(places.iter_pages("k", "q", None, max_pages=3, page_delay=0)) == [(1, [])]
    sleep.assert_not_called()
