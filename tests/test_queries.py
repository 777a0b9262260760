import json

from server.queries import (
    DEFAULT_LIMIT,
    ListParams,
    build_list_queries,
    escape_like,
    order_clause,
    parse_list_params,
    parse_photos,
    serialize_eatery,
    total_pages,
)

from conftest import make_row


# ── parameter parsing ────────────────────────────────────────────────────────

def test_defaults_when_no_params():
    params = parse_list_params({})
    assert params.page == 1
    assert params.limit == DEFAULT_LIMIT
    assert not params.is_halal and not params.is_vegetarian
    assert params.price is None and params.search_term is None
    assert not params.geo


def test_invalid_page_and_limit_fall_back_to_defaults():
    params = parse_list_params({"page": "zero", "limit": "-5"})
    assert params.page == 1
    assert params.limit == DEFAULT_LIMIT


def test_limit_is_clamped():
    assert parse_list_params({"limit": "5000"}, max_limit=100).limit == 100


def test_dietary_flags_need_literal_true():
    assert parse_list_params({"is_halal": "true"}).is_halal
    assert not parse_list_params({"is_halal": "1"}).is_halal
    assert not parse_list_params({"is_vegetarian": "TRUE"}).is_vegetarian


def test_unknown_price_is_ignored():
    assert parse_list_params({"price": "$$"}).price == "$$"
    assert parse_list_params({"price": "$$$$$"}).price is None
    assert parse_list_params({"price": "Free"}).price is None


def test_search_term_is_trimmed_and_blank_ignored():
    assert parse_list_params({"searchTerm": "  laksa "}).search_term == "laksa"
    assert parse_list_params({"searchTerm": "   "}).search_term is None


def test_geo_needs_all_three_finite_values_and_positive_radius():
    ok = parse_list_params({"latitude": "1.3", "longitude": "103.8", "radius": "1"})
    assert ok.geo and ok.radius == 1.0

    for args in (
        {"latitude": "1.3", "longitude": "103.8"},
        {"latitude": "1.3", "longitude": "103.8", "radius": "0"},
        {"latitude": "1.3", "longitude": "103.8", "radius": "-2"},
        {"latitude": "nan", "longitude": "103.8", "radius": "1"},
        {"latitude": "1.3", "longitude": "inf", "radius": "1"},
        {"latitude": "abc", "longitude": "103.8", "radius": "1"},
    ):
        assert not parse_list_params(args).geo, args


def test_unknown_sort_is_ignored():
    assert parse_list_params({"sort": "reviews"}).sort == "reviews"
    assert parse_list_params({"sort": "random()"}).sort is None


# ── SQL assembly ─────────────────────────────────────────────────────────────

def test_no_filters_has_no_where_clause():
    q = build_list_queries(ListParams())
    assert q.count_sql == "SELECT COUNT(*) AS total FROM eateries"
    assert "WHERE" not in q.data_sql
    assert q.count_params == {}
    assert q.data_params == {"limit": 20, "offset": 0}


def test_filters_are_anded_and_bound():
    q = build_list_queries(parse_list_params({
        "is_halal": "true", "is_vegetarian": "true", "price": "$", "page": "3", "limit": "10",
    }))
    assert "is_halal = TRUE AND is_vegetarian = TRUE AND price = %(price)s" in q.count_sql
    assert q.count_params == {"price": "$"}
    assert q.data_params["offset"] == 20
    assert q.data_params["limit"] == 10


def test_search_term_bound_once_and_used_for_three_columns():
    q = build_list_queries(parse_list_params({"searchTerm": "laksa"}))
    assert q.count_sql.count("%(search)s") == 3
    for column in ("name", "cuisine", "neighbourhood"):
        assert f"{column} ILIKE %(search)s" in q.count_sql
    assert q.count_params == {"search": "%laksa%"}


def test_search_term_never_reaches_sql_text():
    evil = "x'; DROP TABLE eateries; --"
    q = build_list_queries(parse_list_params({"searchTerm": evil}))
    assert "DROP" not in q.count_sql and "DROP" not in q.data_sql
    assert q.data_params["search"] == f"%{evil}%"


def test_like_wildcards_in_search_are_escaped():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


def test_geo_filter_adds_distance_projection_and_order():
    q = build_list_queries(parse_list_params(
        {"latitude": "1.28", "longitude": "103.85", "radius": "1"}))
    assert "latitude IS NOT NULL AND longitude IS NOT NULL" in q.count_sql
    assert "haversine_km(%(lat)s, %(lon)s, latitude, longitude) <= %(radius)s" in q.count_sql
    assert "AS distance" in q.data_sql
    assert "AS distance" not in q.count_sql
    assert "ORDER BY distance ASC, rating DESC, name ASC" in q.data_sql
    assert q.data_params["lat"] == 1.28 and q.data_params["radius"] == 1.0


def test_count_and_data_share_the_same_filter():
    q = build_list_queries(parse_list_params({"searchTerm": "mee", "price": "$$"}))
    where = q.count_sql.split("FROM eateries ", 1)[1]
    assert where in q.data_sql
    for key, value in q.count_params.items():
        assert q.data_params[key] == value


def test_order_clause_options():
    assert order_clause(ListParams()).startswith("rating DESC, name ASC")
    assert order_clause(ListParams(sort="reviews")).startswith("review_count DESC, rating DESC, name ASC")
    assert order_clause(ListParams(sort="name")).startswith("name ASC")
    # distance without a reference point falls back to rating
    assert order_clause(ListParams(sort="distance")).startswith("rating DESC")
    geo = ListParams(latitude=1.3, longitude=103.8, radius=2)
    assert order_clause(geo).startswith("distance ASC")
    geo.sort = "reviews"
    assert order_clause(geo).startswith("review_count DESC")


def test_every_order_is_total():
    for sort in (None, "rating", "reviews", "name", "distance"):
        assert order_clause(ListParams(sort=sort)).endswith("id ASC")


def test_total_pages():
    assert total_pages(0, 20) == 0
    assert total_pages(1, 20) == 1
    assert total_pages(20, 20) == 1
    assert total_pages(45, 20) == 3


# ── row serialization ────────────────────────────────────────────────────────

def test_parse_photos_variants():
    assert parse_photos(None) == []
    assert parse_photos("") == []
    assert parse_photos("not json") == []
    assert parse_photos('{"name": "x"}') == []
    assert parse_photos('["a", {"name": "b"}, {"url": "c"}, 3]') == [{"name": "a"}, {"name": "b"}]
    assert parse_photos([{"name": "already-parsed"}]) == [{"name": "already-parsed"}]


def test_photos_round_trip_keeps_order_and_names():
    photos = [{"name": f"places/p/photos/{i}"} for i in range(5)]
    assert parse_photos(json.dumps(photos)) == photos


def test_serialize_eatery_shape():
    eatery = serialize_eatery(make_row(photos=None))
    assert eatery["photos"] == []
    assert eatery["rating"] == 4.5
    assert "distance" not in eatery
    assert set(eatery) == {
        "id", "place_id", "name", "cuisine", "neighbourhood", "rating", "review_count",
        "price", "photos", "latitude", "longitude", "is_halal", "is_vegetarian",
    }


def test_serialize_eatery_with_distance():
    eatery = serialize_eatery(make_row(distance=0.42))
    assert eatery["distance"] == 0.42
