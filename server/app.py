import logging
import sys
from urllib.parse import quote, urlparse

import psycopg2.extras
import requests
from dotenv import load_dotenv
from flask import Blueprint, Flask, Response, current_app, jsonify, redirect, request
from flask_cors import CORS

from server.config import Settings
from server.db import create_pool, pooled_connection
from server.queries import (
    DETAIL_SQL,
    build_list_queries,
    parse_list_params,
    serialize_eatery,
    total_pages,
)

logger = logging.getLogger(__name__)

PHOTO_MEDIA_URL = "https://places.googleapis.com/v1/{name}/media"
DEFAULT_PHOTO_HEIGHT = 400
MAX_PHOTO_HEIGHT = 4800  # Places media limit

# Legacy /api/image proxy only fetches from Google photo hosts
IMAGE_PROXY_HOSTS = ("maps.googleapis.com", "places.googleapis.com")
IMAGE_PROXY_HOST_SUFFIXES = (".googleusercontent.com",)

_SESSION = requests.Session()

api = Blueprint("api", __name__)


def _settings() -> Settings:
    return current_app.config["SETTINGS"]


def _pool():
    return current_app.extensions["db_pool"]


# ── Eateries ─────────────────────────────────────────────────────────────────

@api.route("/api/eateries")
def list_eateries():
    params = parse_list_params(request.args, max_limit=_settings().max_page_size)
    query = build_list_queries(params)
    try:
        with pooled_connection(_pool()) as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query.count_sql, query.count_params)
                total = cur.fetchone()["total"]
                cur.execute(query.data_sql, query.data_params)
                rows = cur.fetchall()
    except Exception:
        logger.exception("Failed to fetch eateries")
        return jsonify({"error": "Failed to fetch eateries"}), 500

    return jsonify({
        "eateries":     [serialize_eatery(r) for r in rows],
        "currentPage":  params.page,
        "totalPages":   total_pages(total, params.limit),
        "totalItems":   total,
        "itemsPerPage": params.limit,
    })


@api.route("/api/eateries/<int:eatery_id>")
def get_eatery(eatery_id):
    try:
        with pooled_connection(_pool()) as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(DETAIL_SQL, {"id": eatery_id})
                row = cur.fetchone()
    except Exception:
        logger.exception("Failed to fetch eatery %s", eatery_id)
        return jsonify({"error": "Failed to fetch eatery"}), 500

    if row is None:
        return jsonify({"error": "Eatery not found"}), 404
    return jsonify(serialize_eatery(row))


# ── Photos ───────────────────────────────────────────────────────────────────

def _photo_height(raw) -> int:
    try:
        height = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_PHOTO_HEIGHT
    return max(1, min(height, MAX_PHOTO_HEIGHT))


@api.route("/api/photo")
def photo_redirect():
    """
    Resolve a Places photo resource name to its short-lived image URL and
    redirect there. The media lookup is made server-side with the API key in
    a header, so the key never appears in anything the browser sees.
    """
    name = (request.args.get("name") or "").strip()
    if not name:
        return jsonify({"error": "Photo name is required"}), 400

    api_key = _settings().google_maps_api_key
    if not api_key:
        logger.error("GOOGLE_MAPS_API_KEY is not configured, cannot serve photos")
        return jsonify({"error": "Photo service is not configured"}), 500

    url = PHOTO_MEDIA_URL.format(name=quote(name, safe="/"))
    try:
        resp = _SESSION.get(
            url,
            params={"maxHeightPx": _photo_height(request.args.get("h")), "skipHttpRedirect": "true"},
            headers={"X-Goog-Api-Key": api_key},
            timeout=15,
        )
        resp.raise_for_status()
        photo_uri = resp.json()["photoUri"]
    except (requests.exceptions.RequestException, ValueError, KeyError) as exc:
        logger.error("Photo lookup failed for %s: %s", name, exc)
        return jsonify({"error": "Failed to fetch photo"}), 500

    return redirect(photo_uri, code=302)


def _image_host_allowed(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    host = parsed.hostname.lower()
    return host in IMAGE_PROXY_HOSTS or host.endswith(IMAGE_PROXY_HOST_SUFFIXES)


@api.route("/api/image")
def image_proxy():
    url = (request.args.get("url") or "").strip()
    if not url:
        return jsonify({"error": "Image URL is required"}), 400
    if not _image_host_allowed(url):
        return jsonify({"error": "Image host not allowed"}), 400

    try:
        resp = _SESSION.get(url, stream=True, timeout=15)
    except requests.exceptions.RequestException as exc:
        logger.error("Image proxy request failed for %s: %s", url, exc)
        return jsonify({"error": "Failed to fetch image"}), 500
    if not resp.ok:
        logger.error("Image proxy got HTTP %s for %s", resp.status_code, url)
        resp.close()
        return jsonify({"error": "Failed to fetch image"}), 500

    def generate():
        try:
            yield from resp.iter_content(chunk_size=8192)
        finally:
            resp.close()

    return Response(generate(), content_type=resp.headers.get("Content-Type", "image/jpeg"))


@api.app_errorhandler(404)
def not_found(_exc):
    return jsonify({"error": "Not found"}), 404


@api.route("/health")
def health():
    return jsonify({"status": "ok"})


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(settings: Settings | None = None, pool=None) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.extensions["db_pool"] = pool if pool is not None else create_pool(settings)
    CORS(app, resources={r"/api/*": {"origins": list(settings.allowed_origins)}})
    app.register_blueprint(api)
    return app


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        logger.error("FATAL: %s", exc)
        sys.exit(1)
    logger.info("API listening on port %d (CORS: %s)", settings.port, ", ".join(settings.allowed_origins))
    create_app(settings).run(host="0.0.0.0", port=settings.port, debug=False)
