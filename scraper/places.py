import logging
import time

import requests

from scraper.config import FIELD_MASK, PLACES_TEXT_SEARCH_URL, RESULTS_PER_CALL
from scraper.geo import Tile

logger = logging.getLogger(__name__)

_SESSION = requests.Session()


class PlacesAPIError(RuntimeError):
    """Upstream Places call failed (transport error, non-2xx or malformed body)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def search_text(api_key: str, query: str, tile: Tile | None = None,
                page_token: str | None = None, timeout: int = 30) -> dict:
    """
    Call Places API (New) Text Search and return the parsed JSON body.
    No retries: any failure raises PlacesAPIError for the caller to handle.
    """
    payload = {"textQuery": query, "pageSize": RESULTS_PER_CALL}
    if tile is not None:
        payload.update(tile.location_param())
    if page_token:
        payload["pageToken"] = page_token

    headers = {
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": FIELD_MASK,
        "Content-Type": "application/json",
    }
    try:
        resp = _SESSION.post(PLACES_TEXT_SEARCH_URL, json=payload,
                             headers=headers, timeout=timeout)
    except requests.exceptions.RequestException as exc:
        raise PlacesAPIError(f"request failed: {exc}") from exc

    if not resp.ok:
        try:
            msg = resp.json().get("error", {}).get("message") or resp.text[:200]
        except ValueError:
            msg = resp.text[:200]
        raise PlacesAPIError(f"HTTP {resp.status_code}: {msg}", status=resp.status_code)

    try:
        body = resp.json()
    except ValueError as exc:
        raise PlacesAPIError("malformed response body", status=resp.status_code) from exc
    if not isinstance(body, dict):
        raise PlacesAPIError("unexpected response shape", status=resp.status_code)
    return body


def iter_pages(api_key: str, query: str, tile: Tile | None,
               max_pages: int, page_delay: float):
    """
    Yield (page_number, places) for one phrase x tile, following
    nextPageToken until it runs out or max_pages is reached.
    """
    token = None
    for page in range(1, max_pages + 1):
        body = search_text(api_key, query, tile, page_token=token)
        places = body.get("places") or []
        yield page, places

        token = body.get("nextPageToken")
        if not token or not places:
            return
        if page < max_pages:
            logger.debug("waiting %.1fs before page %d", page_delay, page + 1)
            time.sleep(page_delay)
