"""
Turn raw Places API (New) results into eatery rows.

The inclusion predicates and the dietary flags are keyword heuristics over
free text. They drop obvious noise (hotels, supermarkets, results for the
wrong dish) and will both miss and over-tag some places: is_halal and
is_vegetarian are best-effort hints, never a certification.
"""

import re

from scraper.config import (
    ALLOWED_TYPES,
    DENIED_PRIMARY_TYPES,
    MIN_PHOTOS,
    REGION_MARKER,
    DishQuery,
)

_HALAL_RE = re.compile(r"\b(halal|muslim)\b", re.IGNORECASE)
_VEGETARIAN_RE = re.compile(r"\b(vegetarian|vegan|plant[- ]based)\b", re.IGNORECASE)
_UNIT_RE = re.compile(r"^#\S+\s*")
_POSTAL_RE = re.compile(r"^singapore(\s+\d{6})?$", re.IGNORECASE)

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE":           "Free",
    "PRICE_LEVEL_INEXPENSIVE":    "$",
    "PRICE_LEVEL_MODERATE":       "$$",
    "PRICE_LEVEL_EXPENSIVE":      "$$$",
    "PRICE_LEVEL_VERY_EXPENSIVE": "$$$$",
}
DEFAULT_PRICE = "$"


def _display_name(place: dict) -> str:
    name = place.get("displayName")
    if isinstance(name, dict):
        return name.get("text") or ""
    return name or ""


def _types_text(place: dict) -> str:
    types = place.get("types") or []
    return " ".join(t.replace("_", " ") for t in types)


def _search_text(place: dict) -> str:
    primary = (place.get("primaryTypeDisplayName") or {}).get("text", "")
    return " ".join([
        _display_name(place),
        primary,
        _types_text(place),
        place.get("formattedAddress") or "",
    ]).lower()


# ---------------------------------------------------------------------------
# Inclusion predicates
# ---------------------------------------------------------------------------

def in_region(place: dict) -> bool:
    return REGION_MARKER in (place.get("formattedAddress") or "").lower()


def category_ok(place: dict) -> bool:
    if place.get("primaryType") in DENIED_PRIMARY_TYPES:
        return False
    types = place.get("types") or []
    return any(t in ALLOWED_TYPES or t.endswith("_restaurant") for t in types)


def has_min_photos(place: dict, minimum: int = MIN_PHOTOS) -> bool:
    return len(place.get("photos") or []) >= minimum


def matches_dish(place: dict, dish: DishQuery) -> bool:
    """True if the result mentions any alias of the dish. Queries without aliases accept everything."""
    if not dish.aliases:
        return True
    text = _search_text(place)
    return any(alias in text for alias in dish.aliases)


def rejection_reason(place: dict, dish: DishQuery, min_photos: int = MIN_PHOTOS) -> str | None:
    """Run the predicate chain; return the name of the first failing check, or None."""
    if not place.get("id"):
        return "no_id"
    if not in_region(place):
        return "region"
    if not category_ok(place):
        return "category"
    if not has_min_photos(place, min_photos):
        return "photos"
    if not matches_dish(place, dish):
        return "dish"
    return None


# ---------------------------------------------------------------------------
# Field derivation
# ---------------------------------------------------------------------------

def cuisine_label(place: dict) -> str:
    primary = (place.get("primaryTypeDisplayName") or {}).get("text")
    if not primary:
        raw = place.get("primaryType") or next(iter(place.get("types") or []), "")
        primary = raw.replace("_", " ").title()
    if not primary:
        return "Restaurant"
    # "Chinese Restaurant" -> "Chinese", but plain "Restaurant" stays
    label = re.sub(r"\s+restaurant$", "", primary, flags=re.IGNORECASE).strip()
    return label or primary


def neighbourhood_from_address(address: str | None) -> str:
    """
    Pick the most local named part of a Singapore address.

    "1 Kadayanallur St, #01-10 Maxwell Food Centre, Singapore 069184"
    -> "Maxwell Food Centre"
    """
    if not address:
        return "Singapore"
    parts = [p.strip() for p in address.split(",") if p.strip()]
    while parts and _POSTAL_RE.match(parts[-1]):
        parts.pop()
    if len(parts) < 2:
        return "Singapore"
    hood = _UNIT_RE.sub("", parts[-1]).strip()
    return hood or "Singapore"


def price_tier(level) -> str:
    if isinstance(level, int) and not isinstance(level, bool):
        return "$" * level if 1 <= level <= 4 else DEFAULT_PRICE
    return PRICE_LEVELS.get(level, DEFAULT_PRICE)


def infer_dietary(place: dict, dish: DishQuery | None = None) -> tuple[bool, bool]:
    text = _search_text(place)
    is_halal = bool(_HALAL_RE.search(text)) or bool(dish and dish.halal)
    is_vegetarian = bool(_VEGETARIAN_RE.search(text))
    return is_halal, is_vegetarian


def photo_refs(place: dict) -> list[dict]:
    """Full ordered photo list, each reduced to its resource name."""
    return [{"name": p["name"]} for p in place.get("photos") or [] if p.get("name")]


def normalize_place(place: dict, dish: DishQuery | None = None) -> dict:
    location = place.get("location") or {}
    is_halal, is_vegetarian = infer_dietary(place, dish)
    return {
        "place_id":      place["id"],
        "name":          _display_name(place) or "Unnamed",
        "cuisine":       cuisine_label(place),
        "neighbourhood": neighbourhood_from_address(place.get("formattedAddress")),
        "rating":        float(place.get("rating") or 0),
        "review_count":  int(place.get("userRatingCount") or 0),
        "price":         price_tier(place.get("priceLevel")),
        "latitude":      location.get("latitude"),
        "longitude":     location.get("longitude"),
        "is_halal":      is_halal,
        "is_vegetarian": is_vegetarian,
        "photos":        photo_refs(place),
    }
