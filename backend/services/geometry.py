"""Geometry resolution for areas of interest.

An area is supplied either as a WKT polygon or as a centre point plus a radius
in meters. Both are resolved to a shapely polygon in EPSG:4326 (x=longitude,
y=latitude), which is what gets stored and matched against event points.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pyproj
import shapely.wkt
from shapely.geometry import Point, Polygon
from shapely.ops import transform

from core.exceptions import ValidationError

WGS84 = pyproj.CRS("EPSG:4326")

POLYGON_PREFIX = "POLYGON(("
POLYGON_SUFFIX = "))"
COORD_PAIR = re.compile(r"^[-+]?[0-9]*\.?[0-9]+ [-+]?[0-9]*\.?[0-9]+$")
MIN_RING_POINTS = 4

# segments per quarter circle when buffering a point (PostGIS ST_Buffer default)
QUAD_SEGMENTS = 8
# a wider ring means the buffer wrapped around at +-180 degrees
MAX_LONGITUDE_SPAN = 180


@dataclass
class ResolvedArea:
    geometry: Polygon
    wkt: str

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.geometry.bounds


def parse_polygon_wkt(polygon: str) -> List[Tuple[float, float]]:
    """Validate a `POLYGON((x y, ...))` string and return its ring.

    Closure is checked on the trimmed point text, so `0 0` and `0.0 0` do not
    close a ring even though they are the same coordinate.
    """
    if not isinstance(polygon, str):
        raise ValidationError("polygon_area must be a string")
    polygon = polygon.strip()
    if not polygon.startswith(POLYGON_PREFIX) or not polygon.endswith(POLYGON_SUFFIX):
        raise ValidationError("invalid polygon format: must start with 'POLYGON((' and end with '))'")

    points = polygon[len(POLYGON_PREFIX):-len(POLYGON_SUFFIX)].split(",")
    if len(points) < MIN_RING_POINTS:
        raise ValidationError("invalid polygon: must have at least 4 points")

    if points[0].strip() != points[-1].strip():
        raise ValidationError("invalid polygon: first and last points must be the same (closed polygon)")

    ring = []
    for point in points:
        point = point.strip()
        if not COORD_PAIR.match(point):
            raise ValidationError(f"invalid coordinate format: '{point}'")
        x, y = point.split(" ")
        ring.append((float(x), float(y)))

    if len(set(ring[:-1])) < MIN_RING_POINTS - 1:
        raise ValidationError("invalid polygon: must have at least 3 distinct points")
    return ring


def polygon_from_wkt(polygon: str) -> Polygon:
    ring = parse_polygon_wkt(polygon)
    geometry = Polygon(ring)
    if geometry.area == 0:
        raise ValidationError("invalid polygon: ring encloses no area")
    return geometry


def buffer_point(latitude: float, longitude: float, radius_in_meters: float) -> Polygon:
    """Return the circle of `radius_in_meters` around a point as a lon/lat polygon.

    The buffer is built in an azimuthal equidistant projection centred on the
    point, so the radius is metric at any latitude. Circles that cross the
    antimeridian or enclose a pole have no single lon/lat ring and are rejected.
    """
    local = pyproj.CRS.from_dict(
        {"proj": "aeqd", "lat_0": latitude, "lon_0": longitude, "datum": "WGS84", "units": "m"}
    )
    to_wgs84 = pyproj.Transformer.from_crs(local, WGS84, always_xy=True)
    circle = transform(to_wgs84.transform, Point(0, 0).buffer(radius_in_meters, quad_segs=QUAD_SEGMENTS))
    min_lon, _, max_lon, _ = circle.bounds
    if max_lon - min_lon > MAX_LONGITUDE_SPAN:
        raise ValidationError("circle crosses the antimeridian or a pole")
    return circle


def _validate_center(latitude, longitude, radius_in_meters):
    if not -90 <= latitude <= 90:
        raise ValidationError("latitude must be between -90 and 90")
    if not -180 <= longitude <= 180:
        raise ValidationError("longitude must be between -180 and 180")
    if radius_in_meters <= 0:
        raise ValidationError("radius_in_meters must be positive")


def resolve(
    polygon_area: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    radius_in_meters: Optional[float] = None,
) -> ResolvedArea:
    """Resolve exactly one of the polygon or point+radius forms."""
    has_polygon = polygon_area is not None
    circle_parts = (latitude, longitude, radius_in_meters)
    has_circle = all(part is not None for part in circle_parts)

    if has_polygon and any(part is not None for part in circle_parts):
        raise ValidationError("polygon_area and latitude/longitude/radius_in_meters are mutually exclusive")
    if has_polygon:
        geometry = polygon_from_wkt(polygon_area)
    elif has_circle:
        _validate_center(latitude, longitude, radius_in_meters)
        geometry = buffer_point(latitude, longitude, radius_in_meters)
    else:
        raise ValidationError("either polygon_area or latitude, longitude and radius_in_meters is required")

    return ResolvedArea(geometry=geometry, wkt=to_wkt(geometry))


def to_wkt(geometry) -> str:
    return shapely.wkt.dumps(geometry, trim=True)


def load_geometry(wkt: str):
    return shapely.wkt.loads(wkt)


def event_point(latitude: float, longitude: float) -> Point:
    return Point(longitude, latitude)
