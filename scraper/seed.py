"""
eatery seed: bulk ingestion from Google Places
Sweeps every (search phrase x tile) pair through Places Text Search,
filters and normalises each result, and upserts it keyed by place_id.

Usage:
    python -m scraper.seed                        # test mode (small sweep, truncates first)
    python -m scraper.seed --mode production      # full sweep, appends
    python -m scraper.seed --truncate             # force a full refresh
    python -m scraper.seed --policy ignore        # insert-only, never touch existing rows
    python -m scraper.seed --dry-run              # list planned sweeps, no API calls

Environment: DATABASE_URL, APP_ENV, GOOGLE_MAPS_API_KEY, SEED_MODE,
SEED_TRUNCATE, SEED_UPSERT_POLICY, SEED_MAX_PAGES, SEED_TILING.
"""

import argparse
import logging
import sys
import time

import psycopg2
from dotenv import load_dotenv

from scraper import places
from scraper.config import (
    DISH_QUERIES,
    GENERIC_QUERIES,
    SINGAPORE_BOUNDS,
    TEST_MODE_PHRASES,
    TEST_MODE_TILES,
    DishQuery,
    SeedSettings,
)
from scraper.db import (
    UPSERT_POLICIES,
    check_connection,
    ensure_schema,
    get_connection,
    mark_halal,
    truncate_eateries,
    upsert_eatery,
)
from scraper.geo import Tile, bbox_tiles, circle_tiles
from scraper.normalize import normalize_place, rejection_reason

logger = logging.getLogger(__name__)


class SeedConfigError(RuntimeError):
    """Settings make a run impossible (missing API key, unknown mode, ...)."""


def validate(settings: SeedSettings, require_key: bool = True):
    if require_key and not settings.api_key:
        raise SeedConfigError("GOOGLE_MAPS_API_KEY is not set")
    if settings.mode not in ("test", "production"):
        raise SeedConfigError(f"unknown mode {settings.mode!r} (test|production)")
    if settings.policy not in UPSERT_POLICIES:
        raise SeedConfigError(f"unknown upsert policy {settings.policy!r} (update|ignore)")
    if settings.tiling not in ("bbox", "circle"):
        raise SeedConfigError(f"unknown tiling {settings.tiling!r} (bbox|circle)")
    if settings.max_pages < 1:
        raise SeedConfigError("max_pages must be >= 1")


def build_catalog(settings: SeedSettings) -> list[DishQuery]:
    catalog = DISH_QUERIES + GENERIC_QUERIES
    if settings.mode == "test":
        return catalog[:TEST_MODE_PHRASES]
    return catalog


def build_tiles(settings: SeedSettings) -> list[Tile]:
    if settings.tiling == "circle":
        tiles = circle_tiles(SINGAPORE_BOUNDS, settings.circle_radius_km, settings.circle_overlap)
    else:
        tiles = bbox_tiles(SINGAPORE_BOUNDS, settings.tile_rows, settings.tile_cols)
    if settings.mode == "test":
        return tiles[:TEST_MODE_TILES]
    return tiles


def new_stats() -> dict:
    return {"fetched": 0, "inserted": 0, "updated": 0, "duplicates": 0,
            "filtered": 0, "errors": 0, "api_errors": 0}


def seed_phrase(conn, settings: SeedSettings, dish: DishQuery, tiles: list[Tile],
                seen: dict, totals: dict) -> dict:
    """Sweep one phrase over every tile. Updates totals in place and returns this phrase's stats."""
    stats = new_stats()

    for t_idx, tile in enumerate(tiles, 1):
        try:
            for page, results in places.iter_pages(settings.api_key, dish.phrase, tile,
                                                   settings.pages_per_sweep, settings.page_delay):
                logger.info("         tile %s page %d -> %d results", tile.label, page, len(results))
                stats["fetched"] += len(results)
                for place in results:
                    _ingest_one(conn, settings, dish, place, seen, stats)
        except places.PlacesAPIError as exc:
            logger.error("         tile %s -> API call failed: %s", tile.label, exc)
            stats["api_errors"] += 1

        if t_idx < len(tiles):
            time.sleep(settings.tile_delay)

    for key, value in stats.items():
        totals[key] += value
    return stats


def _ingest_one(conn, settings, dish, place, seen, stats):
    reason = rejection_reason(place, dish, settings.min_photos)
    if reason:
        logger.debug("         skip %s (%s)", place.get("id"), reason)
        stats["filtered"] += 1
        return

    place_id = place["id"]
    row = normalize_place(place, dish)

    if place_id in seen:
        # already written earlier in this run from another tile or phrase;
        # a halal-guaranteed phrase can still upgrade the stored flag
        if row["is_halal"] and not seen[place_id]:
            try:
                mark_halal(conn, place_id)
            except psycopg2.Error as exc:
                conn.rollback()
                logger.error("         -> error marking '%s' halal: %s", row["name"], exc)
                stats["errors"] += 1
                return
            seen[place_id] = True
            stats["updated"] += 1
            return
        stats["duplicates"] += 1
        return

    try:
        outcome = upsert_eatery(conn, row, settings.policy)
    except psycopg2.Error as exc:
        conn.rollback()
        logger.error("         -> error saving '%s': %s", row["name"], exc)
        stats["errors"] += 1
        return
    seen[place_id] = row["is_halal"]

    if outcome == "inserted":
        stats["inserted"] += 1
    elif outcome == "updated":
        stats["updated"] += 1
    else:
        stats["duplicates"] += 1


def run(settings: SeedSettings, dry_run: bool = False) -> dict:
    validate(settings, require_key=not dry_run)
    catalog = build_catalog(settings)
    tiles = build_tiles(settings)
    totals = new_stats()

    logger.info("=" * 60)
    logger.info("eatery seed")
    logger.info("  mode      : %s", settings.mode)
    logger.info("  phrases   : %d", len(catalog))
    logger.info("  tiles     : %d (%s)", len(tiles), settings.tiling)
    logger.info("  max pages : %d", settings.pages_per_sweep)
    logger.info("  policy    : %s", settings.policy)
    logger.info("  truncate  : %s", settings.should_truncate)
    if dry_run:
        logger.info("  MODE      : DRY RUN (no API calls, no writes)")
    logger.info("=" * 60)

    if dry_run:
        for dish in catalog:
            for tile in tiles:
                logger.info("WOULD SEARCH '%s' in tile %s", dish.phrase, tile.label)
        return totals

    conn = get_connection(settings)
    try:
        check_connection(conn)
        ensure_schema(conn)
        if settings.should_truncate:
            truncate_eateries(conn)

        seen: dict[str, bool] = {}
        total = len(catalog)
        for i, dish in enumerate(catalog, 1):
            logger.info("[%3d/%d] '%s'", i, total, dish.phrase)
            stats = seed_phrase(conn, settings, dish, tiles, seen, totals)
            logger.info("         -> inserted %d | updated %d | duplicates %d | filtered %d | errors %d",
                        stats["inserted"], stats["updated"], stats["duplicates"],
                        stats["filtered"], stats["errors"] + stats["api_errors"])
            logger.info("         running total: %d inserted, %d duplicates",
                        totals["inserted"], totals["duplicates"] + totals["updated"])
            if i < total:
                time.sleep(settings.tile_delay)
    finally:
        conn.close()

    logger.info("=" * 60)
    logger.info("Done.")
    logger.info("  Results fetched : %d", totals["fetched"])
    logger.info("  Inserted        : %d", totals["inserted"])
    logger.info("  Updated         : %d", totals["updated"])
    logger.info("  Duplicates      : %d", totals["duplicates"])
    logger.info("  Filtered out    : %d", totals["filtered"])
    logger.info("  Errors          : %d (API %d)", totals["errors"], totals["api_errors"])
    logger.info("=" * 60)
    return totals


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Seed the eateries table from Google Places")
    ap.add_argument("--mode", choices=["test", "production"], help="sweep size (default: SEED_MODE or test)")
    group = ap.add_mutually_exclusive_group()
    group.add_argument("--truncate", dest="truncate", action="store_const", const=True,
                       help="empty the table before seeding")
    group.add_argument("--append", dest="truncate", action="store_const", const=False,
                       help="keep existing rows")
    ap.add_argument("--policy", choices=list(UPSERT_POLICIES), help="conflict policy on place_id")
    ap.add_argument("--tiling", choices=["bbox", "circle"], help="geographic decomposition")
    ap.add_argument("--max-pages", type=int, help="page cap per phrase x tile")
    ap.add_argument("--dry-run", action="store_true", help="show planned searches, no API calls")
    args = ap.parse_args(argv)

    load_dotenv()
    try:
        settings = SeedSettings.from_env()
    except ValueError as exc:
        logger.error("FATAL: %s", exc)
        return 1
    settings = settings.with_overrides(
        mode=args.mode,
        truncate=args.truncate,
        policy=args.policy,
        tiling=args.tiling,
        max_pages=args.max_pages,
    )

    try:
        run(settings, dry_run=args.dry_run)
    except SeedConfigError as exc:
        logger.error("FATAL: %s", exc)
        return 1
    except psycopg2.OperationalError as exc:
        logger.error("FATAL: cannot reach database: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    sys.exit(main())
