"""Targeted geometry repair: fill small holes and normalize to MultiPolygon."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Sequence

import shapely
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from .errors import NotFoundError, RepairError
from .models import RecordLocator

_LOGGER = logging.getLogger("globemap.repair")

_M2_PER_KM2 = 1_000_000.0


def locate_record(frame: Any, locator: RecordLocator, *, name_column: str) -> int:
    """Return the row position addressed by `locator`."""
    if locator.index is not None:
        if not 0 <= locator.index < len(frame):
            raise NotFoundError(
                f"Record index {locator.index} is out of range for {len(frame)} records"
            )
        return locator.index

    if name_column not in frame.columns:
        raise NotFoundError(f"Name column '{name_column}' not present; cannot locate {locator.describe()}")
    wanted = str(locator.name).strip().casefold()
    names = frame[name_column].astype(str).str.strip().str.casefold().tolist()
    positions = [pos for pos, value in enumerate(names) if value == wanted]
    if not positions:
        raise NotFoundError(f"No record with {name_column} {locator.name!r}")
    if len(positions) > 1:
        raise RepairError(f"{len(positions)} records match {name_column} {locator.name!r}")
    return positions[0]


def repair_geometry(geometry: BaseGeometry, *, threshold_km2: float, geographic: bool = True) -> MultiPolygon:
    """Make valid, fill holes below `threshold_km2` and cast to MultiPolygon."""
    if geometry is None or geometry.is_empty:
        raise RepairError("Cannot repair an empty geometry")

    geom = geometry if geometry.is_valid else shapely.make_valid(geometry)
    polygons = [
        _fill_small_holes(polygon, threshold_km2=threshold_km2, geographic=geographic)
        for polygon in _polygonal_parts(geom)
    ]
    if not polygons:
        raise RepairError(f"Geometry of type {geometry.geom_type} has no polygonal parts")

    merged: BaseGeometry = MultiPolygon(polygons)
    if not merged.is_valid:
        # Parts that sat inside a filled hole now overlap their container.
        merged = shapely.unary_union(polygons)
        polygons = _polygonal_parts(merged)
    return MultiPolygon(polygons)


def repair_record(
    frame: Any,
    locator: RecordLocator,
    *,
    threshold_km2: float,
    name_column: str,
) -> Any:
    """Return a copy of `frame` with the located record's geometry repaired."""
    position = locate_record(frame, locator, name_column=name_column)
    geographic = _is_geographic(frame)
    out = frame.copy()
    geom_col = out.geometry.name
    before = out.geometry.iloc[position]
    after = repair_geometry(before, threshold_km2=threshold_km2, geographic=geographic)
    out.loc[out.index[position], geom_col] = after

    holes_before = _count_interiors(before)
    holes_after = _count_interiors(after)
    _LOGGER.info(
        "Repaired record %s: %s -> %s, interior rings %d -> %d",
        locator.describe(),
        before.geom_type,
        after.geom_type,
        holes_before,
        holes_after,
    )
    return out


def repair_records(
    frame: Any,
    locators: Sequence[RecordLocator],
    *,
    threshold_km2: float,
    name_column: str,
) -> Any:
    out = frame
    for locator in locators:
        out = repair_record(out, locator, threshold_km2=threshold_km2, name_column=name_column)
    return out


def simplify_geometries(frame: Any, tolerance: float) -> Any:
    """Topology-preserving simplification in CRS units."""
    out = frame.copy()
    out[out.geometry.name] = out.geometry.simplify(tolerance, preserve_topology=True)
    _LOGGER.info("Simplified %d geometries with tolerance %s", len(out), tolerance)
    return out


def _fill_small_holes(polygon: Polygon, *, threshold_km2: float, geographic: bool) -> Polygon:
    kept = [
        interior
        for interior in polygon.interiors
        if _ring_area_km2(interior, geographic=geographic) >= threshold_km2
    ]
    if len(kept) == len(polygon.interiors):
        return polygon
    return Polygon(polygon.exterior, kept)


def _ring_area_km2(ring: Any, *, geographic: bool) -> float:
    shape = Polygon(ring)
    if geographic:
        area_m2, _ = _wgs84_geod().geometry_area_perimeter(shape)
        return abs(float(area_m2)) / _M2_PER_KM2
    return float(shape.area) / _M2_PER_KM2


def _polygonal_parts(geometry: BaseGeometry) -> list[Polygon]:
    geom_type = geometry.geom_type
    if geom_type == "Polygon":
        return [] if geometry.is_empty else [geometry]
    if geom_type == "MultiPolygon":
        return [part for part in geometry.geoms if not part.is_empty]
    if geom_type == "GeometryCollection":
        parts: list[Polygon] = []
        for part in geometry.geoms:
            parts.extend(_polygonal_parts(part))
        return parts
    return []


def _count_interiors(geometry: BaseGeometry) -> int:
    return sum(len(polygon.interiors) for polygon in _polygonal_parts(geometry))


def _is_geographic(frame: Any) -> bool:
    crs = getattr(frame, "crs", None)
    return crs is None or bool(crs.is_geographic)


@lru_cache(maxsize=1)
def _wgs84_geod() -> Any:
    from pyproj import Geod

    return Geod(ellps="WGS84")
