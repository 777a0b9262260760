"""
eatery frontend: list and detail pages.
All data comes from the JSON API (server/app.py) via static/app.js;
this app only serves the page shells. Runs on port 3000.
"""

import os

from dotenv import load_dotenv
from flask import Flask, render_template


def _api_base_url() -> str:
    return os.environ.get("FRONTEND_API_BASE_URL", "http://localhost:3001").rstrip("/")


app = Flask(__name__)
app.config["API_BASE_URL"] = _api_base_url()

PAGE_SIZE = 20
SEARCH_DEBOUNCE_MS = 500
NEARBY_RADIUS_KM = 1


@app.route("/")
def index():
    return render_template(
        "index.html",
        api_base_url=app.config["API_BASE_URL"],
        page_size=PAGE_SIZE,
        debounce_ms=SEARCH_DEBOUNCE_MS,
        radius_km=NEARBY_RADIUS_KM,
        prices=["$", "$$", "$$$", "$$$$"],
    )


@app.route("/eateries/<int:eatery_id>")
def eatery_detail(eatery_id):
    return render_template(
        "eatery.html",
        api_base_url=app.config["API_BASE_URL"],
        eatery_id=eatery_id,
    )


if __name__ == "__main__":
    load_dotenv()
    app.config["API_BASE_URL"] = _api_base_url()
    app.run(host="0.0.0.0", port=int(os.environ.get("FRONTEND_PORT", "3000")), debug=False)
