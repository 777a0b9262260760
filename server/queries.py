"""
SQL assembly for the eatery list and detail endpoints.

Every user-supplied value is bound as a named psycopg2 parameter; only the
fixed fragments below are ever interpolated into the statement text. A
value used in several predicates (the search term across three columns,
the reference point in both the filter and the distance projection) is
bound once and referenced by name.
"""

import json
import math
from dataclasses import dataclass
from typing import NamedTuple

VALID_PRICES = ("$", "$$", "$$$", "$$$$")
SORT_OPTIONS = ("rating", "reviews", "name", "distance")
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

COLUMNS = (
    "id, place_id, name, cuisine, neighbourhood, rating, review_count, price, "
    "photos, latitude, longitude, is_halal, is_vegetarian"
)

DETAIL_SQL = f"SELECT {COLUMNS} FROM eateries WHERE id = %(id)s"

_DISTANCE_EXPR = "haversine_km(%(lat)s, %(lon)s, latitude, longitude)"

# id ASC last everywhere so ties never reshuffle between pages
_ORDER_BY = {
    "distance": "distance ASC, rating DESC, name ASC, id ASC",
    "rating":   "rating DESC, name ASC, id ASC",
    "reviews":  "review_count DESC, rating DESC, name ASC, id ASC",
    "name":     "name ASC, rating DESC, id ASC",
}


@dataclass
class ListParams:
    page: int = 1
    limit: int = DEFAULT_LIMIT
    is_halal: bool = False
    is_vegetarian: bool = False
    price: str | None = None
    search_term: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius: float | None = None
    sort: str | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def geo(self) -> bool:
        return self.radius is not None


class ListQuery(NamedTuple):
    count_sql: str
    count_params: dict
    data_sql: str
    data_params: dict


def _positive_int(raw, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _finite_float(raw) -> float | None:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def parse_list_params(args, max_limit: int = MAX_LIMIT) -> ListParams:
    """Read the list endpoint's query string. Invalid values fall back to defaults or are ignored."""
    params = ListParams(
        page=_positive_int(args.get("page"), 1),
        limit=min(_positive_int(args.get("limit"), DEFAULT_LIMIT), max_limit),
        is_halal=args.get("is_halal") == "true",
        is_vegetarian=args.get("is_vegetarian") == "true",
    )

    price = args.get("price")
    if price in VALID_PRICES:
        params.price = price

    term = (args.get("searchTerm") or "").strip()
    if term:
        params.search_term = term

    lat = _finite_float(args.get("latitude"))
    lon = _finite_float(args.get("longitude"))
    radius = _finite_float(args.get("radius"))
    if lat is not None and lon is not None and radius is not None and radius > 0:
        params.latitude, params.longitude, params.radius = lat, lon, radius

    sort = args.get("sort")
    if sort in SORT_OPTIONS:
        params.sort = sort
    return params


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where(params: ListParams) -> tuple[str, dict]:
    conditions = []
    sql_params: dict = {}

    if params.is_halal:
        conditions.append("is_halal = TRUE")
    if params.is_vegetarian:
        conditions.append("is_vegetarian = TRUE")
    if params.price:
        conditions.append("price = %(price)s")
        sql_params["price"] = params.price
    if params.search_term:
        conditions.append(
            "(name ILIKE %(search)s OR cuisine ILIKE %(search)s OR neighbourhood ILIKE %(search)s)"
        )
        sql_params["search"] = f"%{escape_like(params.search_term)}%"
    if params.geo:
        conditions.append("latitude IS NOT NULL AND longitude IS NOT NULL")
        conditions.append(f"{_DISTANCE_EXPR} <= %(radius)s")
        sql_params.update(lat=params.latitude, lon=params.longitude, radius=params.radius)

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, sql_params


def order_clause(params: ListParams) -> str:
    sort = params.sort
    if sort is None or (sort == "distance" and not params.geo):
        sort = "distance" if params.geo else "rating"
    return _ORDER_BY[sort]


def build_list_queries(params: ListParams) -> ListQuery:
    where, sql_params = build_where(params)
    count_sql = f"SELECT COUNT(*) AS total FROM eateries {where}".rstrip()

    distance = f", {_DISTANCE_EXPR} AS distance" if params.geo else ""
    data_sql = (
        f"SELECT {COLUMNS}{distance} FROM eateries {where} "
        f"ORDER BY {order_clause(params)} LIMIT %(limit)s OFFSET %(offset)s"
    )
    data_params = {**sql_params, "limit": params.limit, "offset": params.offset}
    return ListQuery(count_sql, sql_params, data_sql, data_params)


def total_pages(total: int, limit: int) -> int:
    return -(-total // limit) if total else 0


def parse_photos(raw) -> list[dict]:
    """Deserialize the stored photos column. Never fails: bad or empty data gives []."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, list):
        return []

    photos = []
    for item in raw:
        if isinstance(item, str) and item:
            photos.append({"name": item})
        elif isinstance(item, dict) and item.get("name"):
            photos.append({"name": item["name"]})
    return photos


def _as_float(value):
    return float(value) if value is not None else None


def serialize_eatery(row) -> dict:
    eatery = {
        "id":            row["id"],
        "place_id":      row["place_id"],
        "name":          row["name"],
        "cuisine":       row["cuisine"],
        "neighbourhood": row["neighbourhood"],
        "rating":        _as_float(row["rating"]),
        "review_count":  row["review_count"],
        "price":         row["price"],
        "photos":        parse_photos(row["photos"]),
        "latitude":      _as_float(row["latitude"]),
        "longitude":     _as_float(row["longitude"]),
        "is_halal":      bool(row["is_halal"]),
        "is_vegetarian": bool(row["is_vegetarian"]),
    }
    if "distance" in row:
        eatery["distance"] = _as_float(row["distance"])
    return eatery
