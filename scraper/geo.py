"""
Geographic decomposition of the sweep region.

Text Search caps results per query, so a broad query over the whole island
only ever returns the first few pages. Splitting the region into tiles and
repeating each phrase per tile surfaces the long tail.

Two strategies are available:
  bbox    rows x cols grid of rectangles, sent as a hard locationRestriction
  circle  grid of circle centres, sent as a soft locationBias
"""

import math
from dataclasses import dataclass

KM_PER_DEG_LAT = 111.0


@dataclass(frozen=True)
class Bounds:
    south: float
    west: float
    north: float
    east: float


@dataclass(frozen=True)
class Tile:
    label: str
    bounds: Bounds | None = None
    center: tuple[float, float] | None = None
    radius_m: float | None = None

    def location_param(self) -> dict:
        """Return the request-body fragment that scopes a search to this tile."""
        if self.bounds is not None:
            b = self.bounds
            return {
                "locationRestriction": {
                    "rectangle": {
                        "low":  {"latitude": b.south, "longitude": b.west},
                        "high": {"latitude": b.north, "longitude": b.east},
                    }
                }
            }
        lat, lng = self.center
        return {
            "locationBias": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": self.radius_m,
                }
            }
        }


def km_to_deg_lat(km: float) -> float:
    return km / KM_PER_DEG_LAT


def km_to_deg_lon(km: float, lat_deg: float) -> float:
    return km / (KM_PER_DEG_LAT * math.cos(math.radians(lat_deg)))


def bbox_tiles(bounds: Bounds, rows: int, cols: int) -> list[Tile]:
    """Split bounds into a rows x cols grid of rectangles, south-west first."""
    if rows < 1 or cols < 1:
        raise ValueError("rows and cols must be >= 1")
    dlat = (bounds.north - bounds.south) / rows
    dlon = (bounds.east - bounds.west) / cols
    tiles = []
    for r in range(rows):
        for c in range(cols):
            south = bounds.south + r * dlat
            west = bounds.west + c * dlon
            # last row/col snap to the outer edge so float drift leaves no gap
            north = bounds.north if r == rows - 1 else south + dlat
            east = bounds.east if c == cols - 1 else west + dlon
            tiles.append(Tile(
                label=f"r{r + 1}c{c + 1}",
                bounds=Bounds(south=south, west=west, north=north, east=east),
            ))
    return tiles


def circle_tiles(bounds: Bounds, radius_km: float, overlap: float = 0.0) -> list[Tile]:
    """
    Cover bounds with a square grid of circles of radius_km.

    Centres are spaced radius * sqrt(2) apart (the largest spacing at which
    neighbouring circles still cover the square between them), shrunk by
    the overlap fraction.
    """
    if radius_km <= 0:
        raise ValueError("radius_km must be positive")
    if not 0 <= overlap < 1:
        raise ValueError("overlap must be in [0, 1)")

    step_km = radius_km * math.sqrt(2) * (1 - overlap)
    lat0 = (bounds.south + bounds.north) / 2.0
    dlat = km_to_deg_lat(step_km)
    dlon = km_to_deg_lon(step_km, lat0)

    lats = []
    lat = bounds.south + dlat / 2
    while lat < bounds.north:
        lats.append(lat)
        lat += dlat
    lons = []
    lon = bounds.west + dlon / 2
    while lon < bounds.east:
        lons.append(lon)
        lon += dlon

    # a region narrower than one step still gets a centre line
    lats = lats or [lat0]
    lons = lons or [(bounds.west + bounds.east) / 2.0]

    return [
        Tile(label=f"c{i + 1}", center=(la, lo), radius_m=radius_km * 1000)
        for i, (la, lo) in enumerate((la, lo) for la in lats for lo in lons)
    ]
