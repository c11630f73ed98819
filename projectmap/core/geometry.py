"""Geometry helpers over region boundary features."""

import logging
from typing import Any, Optional

from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry

from projectmap.core.schema import REGION_NAME_PROPERTY

logger = logging.getLogger(__name__)

BBox = tuple[float, float, float, float]


def feature_geometry(feature: dict[str, Any]) -> BaseGeometry:
    return shape(feature["geometry"])


def feature_bbox(feature: dict[str, Any]) -> BBox:
    """Bounding box (min_lon, min_lat, max_lon, max_lat) of a GeoJSON feature."""
    return tuple(feature_geometry(feature).bounds)


def bbox_center(bbox: BBox) -> tuple[float, float]:
    min_lon, min_lat, max_lon, max_lat = bbox
    return (min_lon + max_lon) / 2, (min_lat + max_lat) / 2


def feature_contains(feature: dict[str, Any], lon: float, lat: float) -> bool:
    return feature_geometry(feature).intersects(Point(lon, lat))


def find_region_feature(
    features: list[dict[str, Any]], region_name: str
) -> Optional[dict[str, Any]]:
    """Find the boundary feature whose name matches region_name case-insensitively."""
    wanted = region_name.strip().upper()
    for feature in features:
        name = (feature.get("properties") or {}).get(REGION_NAME_PROPERTY)
        if name is not None and str(name).strip().upper() == wanted:
            return feature
    logger.debug(f"No boundary feature for {region_name=}")
    return None
