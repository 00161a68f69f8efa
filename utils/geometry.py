"""
Polygon centroids for geocoding results.

Nominatim's point for a large parcel is often on its edge. The area centroid
of the returned outline is a better location for the building.

Coordinates follow GeoJSON order: (lng, lat).
"""

from typing import Optional, Sequence

Point = tuple[float, float]

# Rings with an absolute area below this (in squared degrees) are degenerate
_MIN_AREA = 1e-14


def _ring_area_and_moments(ring: Sequence[Sequence[float]]) -> tuple[float, float, float]:
    """
    Shoelace sums for one ring.

    Returns:
        (signed area, x moment, y moment); centroid = moment / (6 * area)
    """
    points = [(float(p[0]), float(p[1])) for p in ring]
    if len(points) > 1 and points[0] == points[-1]:
        points = points[:-1]

    area = 0.0
    moment_x = 0.0
    moment_y = 0.0
    count = len(points)

    for i in range(count):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % count]
        cross = x0 * y1 - x1 * y0
        area += cross
        moment_x += (x0 + x1) * cross
        moment_y += (y0 + y1) * cross

    return area / 2.0, moment_x, moment_y


def _vertex_mean(ring: Sequence[Sequence[float]]) -> Optional[Point]:
    points = [(float(p[0]), float(p[1])) for p in ring]
    if not points:
        return None
    return (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )


def polygon_centroid(ring: Sequence[Sequence[float]]) -> Optional[Point]:
    """
    Area centroid of a simple polygon ring (shoelace formula).

    The ring may be open or closed and in either winding order.
    Degenerate rings (zero area) fall back to the mean of their vertices.
    """
    if not ring:
        return None

    area, moment_x, moment_y = _ring_area_and_moments(ring)
    if abs(area) < _MIN_AREA:
        return _vertex_mean(ring)

    return moment_x / (6.0 * area), moment_y / (6.0 * area)


def _polygons_centroid(polygons: Sequence[Sequence[Sequence[Sequence[float]]]]) -> Optional[Point]:
    """Area-weighted centroid of polygons given as [outer ring, *holes]."""
    total_area = 0.0
    sum_x = 0.0
    sum_y = 0.0

    for rings in polygons:
        for index, ring in enumerate(rings):
            if not ring:
                continue
            area, moment_x, moment_y = _ring_area_and_moments(ring)
            # Outer rings add area, holes remove it, whatever their winding
            sign = 1.0 if (index == 0) == (area > 0) else -1.0
            total_area += sign * area
            sum_x += sign * moment_x / 6.0
            sum_y += sign * moment_y / 6.0

    if abs(total_area) < _MIN_AREA:
        outer_rings = [rings[0] for rings in polygons if rings and rings[0]]
        if not outer_rings:
            return None
        return _vertex_mean([point for ring in outer_rings for point in ring])

    return sum_x / total_area, sum_y / total_area


def geometry_centroid(geometry: Optional[dict]) -> Optional[Point]:
    """
    Centroid of a GeoJSON geometry.

    Supports Point, Polygon and MultiPolygon. Returns None for anything else
    so callers keep their own point estimate.
    """
    if not geometry:
        return None

    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not coordinates:
        return None

    if geometry_type == "Point":
        return float(coordinates[0]), float(coordinates[1])
    if geometry_type == "Polygon":
        return _polygons_centroid([coordinates])
    if geometry_type == "MultiPolygon":
        return _polygons_centroid(coordinates)

    return None


def is_areal(geometry: Optional[dict]) -> bool:
    """True for Polygon and MultiPolygon geometries."""
    return bool(geometry) and geometry.get("type") in ("Polygon", "MultiPolygon")
