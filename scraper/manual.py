"""
Manual single-row maintenance for the eateries table.

Usage:
    python -m scraper.manual add --place-id manual-001 --name "My New Cafe" \
        --cuisine "Coffee & Pastries" --neighbourhood "Tiong Bahru" \
        --rating 4.8 --reviews 150 --price '$$' --lat 1.2809 --lng 103.8319 --vegetarian
    python -m scraper.manual delete manual-001
"""

import argparse
import logging
import sys

import psycopg2
from dotenv import load_dotenv

from scraper.config import SeedSettings
from scraper.db import delete_eatery, ensure_schema, get_connection, upsert_eatery

logger = logging.getLogger(__name__)

PRICES = ["$", "$$", "$$$", "$$$$", "Free"]


def build_row(args) -> dict:
    return {
        "place_id":      args.place_id,
        "name":          args.name,
        "cuisine":       args.cuisine,
        "neighbourhood": args.neighbourhood,
        "rating":        args.rating,
        "review_count":  args.reviews,
        "price":         args.price,
        "latitude":      args.lat,
        "longitude":     args.lng,
        "is_halal":      args.halal,
        "is_vegetarian": args.vegetarian,
        "photos":        [{"name": p} for p in args.photo],
    }


def add(conn, args) -> int:
    ensure_schema(conn)
    outcome = upsert_eatery(conn, build_row(args), policy="update")
    if outcome == "inserted":
        logger.info("Added '%s' (%s)", args.name, args.place_id)
    else:
        logger.info("'%s' (%s) already existed, updated", args.name, args.place_id)
    return 0


def delete(conn, args) -> int:
    deleted = delete_eatery(conn, args.place_id)
    if deleted:
        logger.info("Deleted %d row(s) for %s", deleted, args.place_id)
        return 0
    logger.warning("No eatery with place_id %s, nothing deleted", args.place_id)
    return 1


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Add or delete a single eatery")
    sub = ap.add_subparsers(dest="command", required=True)

    p_add = sub.add_parser("add", help="insert or update one eatery")
    p_add.add_argument("--place-id", required=True)
    p_add.add_argument("--name", required=True)
    p_add.add_argument("--cuisine", default="Restaurant")
    p_add.add_argument("--neighbourhood", default="Singapore")
    p_add.add_argument("--rating", type=float, default=0.0)
    p_add.add_argument("--reviews", type=int, default=0)
    p_add.add_argument("--price", choices=PRICES, default="$")
    p_add.add_argument("--lat", type=float, default=None)
    p_add.add_argument("--lng", type=float, default=None)
    p_add.add_argument("--halal", action="store_true")
    p_add.add_argument("--vegetarian", action="store_true")
    p_add.add_argument("--photo", action="append", default=[],
                       help="photo resource name (repeatable)")
    p_add.set_defaults(handler=add)

    p_del = sub.add_parser("delete", help="delete one eatery by place_id")
    p_del.add_argument("place_id")
    p_del.set_defaults(handler=delete)

    args = ap.parse_args(argv)
    if args.command == "add" and args.place_id.strip() == "":
        ap.error("--place-id must not be empty")
    if args.command == "add" and not 0 <= args.rating <= 5:
        ap.error("--rating must be between 0 and 5")
    if args.command == "add" and args.reviews < 0:
        ap.error("--reviews must be >= 0")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    load_dotenv()
    try:
        settings = SeedSettings.from_env()
    except ValueError as exc:
        logger.error("FATAL: %s", exc)
        return 1

    try:
        conn = get_connection(settings)
    except psycopg2.OperationalError as exc:
        logger.error("FATAL: cannot reach database: %s", exc)
        return 1
    try:
        return args.handler(conn, args)
    except psycopg2.Error as exc:
        logger.error("Database error: %s", exc)
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    sys.exit(main())
