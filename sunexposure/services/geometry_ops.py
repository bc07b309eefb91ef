"""
2D polygon operations used by the shadow engine.

The engine only talks to the GeometryOps interface. ShapelyGeometryOps is
the production implementation; coordinates are WGS84 lon/lat degrees and
metre-based operations use a local equirectangular approximation, which
is accurate to well under 1% at the few-hundred-metre scale of shadows.
"""
import math
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from shapely import wkt
from shapely.affinity import scale, translate
from shapely.geometry import MultiPoint, Polygon, box, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

# Metres per degree of latitude (and of longitude at the equator)
METERS_PER_DEGREE = 111320.0


def meters_per_degree_lon(latitude: float) -> float:
    return METERS_PER_DEGREE * max(math.cos(math.radians(latitude)), 1e-6)


class GeometryOps(ABC):
    """Polygon capability interface."""

    @abstractmethod
    def empty(self) -> Any:
        """An empty geometry."""

    @abstractmethod
    def is_empty(self, geom: Any) -> bool:
        pass

    @abstractmethod
    def centroid(self, geom: Any) -> tuple[float, float]:
        """(lon, lat) of the centroid."""

    @abstractmethod
    def area_m2(self, geom: Any) -> float:
        pass

    @abstractmethod
    def buffer_meters(self, geom: Any, meters: float) -> Any:
        """Buffer by at least ``meters`` in every direction."""

    @abstractmethod
    def translate_meters(self, geom: Any, dx_m: float, dy_m: float) -> Any:
        """Shift east by dx_m and north by dy_m."""

    @abstractmethod
    def convex_hull(self, geoms: Iterable[Any]) -> Any:
        """Convex hull of all vertices of the given geometries."""

    @abstractmethod
    def union(self, geoms: Iterable[Any]) -> Any:
        pass

    @abstractmethod
    def intersection(self, a: Any, b: Any) -> Any:
        pass

    @abstractmethod
    def difference(self, a: Any, b: Any) -> Any:
        pass

    @abstractmethod
    def intersects(self, a: Any, b: Any) -> bool:
        pass

    @abstractmethod
    def envelope(self, geoms: Iterable[Any]) -> Any:
        """Axis-aligned bounding box of all geometries."""

    @abstractmethod
    def to_wkt(self, geom: Any) -> str:
        pass

    @abstractmethod
    def from_wkt(self, text: str) -> Any:
        pass

    @abstractmethod
    def to_geojson(self, geom: Any) -> Optional[dict]:
        pass

    @abstractmethod
    def from_geojson(self, data: dict) -> Any:
        pass


class ShapelyGeometryOps(GeometryOps):
    """GeometryOps backed by shapely."""

    def empty(self) -> BaseGeometry:
        return Polygon()

    def is_empty(self, geom: Optional[BaseGeometry]) -> bool:
        return geom is None or geom.is_empty

    def centroid(self, geom: BaseGeometry) -> tuple[float, float]:
        c = geom.centroid
        return c.x, c.y

    def area_m2(self, geom: Optional[BaseGeometry]) -> float:
        if self.is_empty(geom):
            return 0.0
        _, lat = self.centroid(geom)
        projected = scale(
            geom,
            xfact=meters_per_degree_lon(lat),
            yfact=METERS_PER_DEGREE,
            origin=(0, 0),
        )
        return projected.area

    def buffer_meters(self, geom: BaseGeometry, meters: float) -> BaseGeometry:
        # Degrees of longitude are the shorter unit, so this over-covers north/south
        _, lat = self.centroid(geom)
        return geom.buffer(meters / meters_per_degree_lon(lat))

    def translate_meters(self, geom: BaseGeometry, dx_m: float, dy_m: float) -> BaseGeometry:
        _, lat = self.centroid(geom)
        return translate(
            geom,
            xoff=dx_m / meters_per_degree_lon(lat),
            yoff=dy_m / METERS_PER_DEGREE,
        )

    def convex_hull(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        points = []
        for geom in geoms:
            if geom.is_empty:
                continue
            if geom.geom_type == "Polygon":
                points.extend(geom.exterior.coords)
            else:
                points.extend(geom.convex_hull.exterior.coords)
        return MultiPoint(points).convex_hull

    def union(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        geoms = [g for g in geoms if not g.is_empty]
        if not geoms:
            return self.empty()
        return unary_union(geoms)

    def intersection(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        return a.intersection(b)

    def difference(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        return a.difference(b)

    def intersects(self, a: BaseGeometry, b: BaseGeometry) -> bool:
        return a.intersects(b)

    def envelope(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        geoms = list(geoms)
        if not geoms:
            return self.empty()
        minx = min(g.bounds[0] for g in geoms)
        miny = min(g.bounds[1] for g in geoms)
        maxx = max(g.bounds[2] for g in geoms)
        maxy = max(g.bounds[3] for g in geoms)
        return box(minx, miny, maxx, maxy)

    def to_wkt(self, geom: BaseGeometry) -> str:
        return geom.wkt

    def from_wkt(self, text: str) -> BaseGeometry:
        return wkt.loads(text)

    def to_geojson(self, geom: Optional[BaseGeometry]) -> Optional[dict]:
        if self.is_empty(geom):
            return None
        return mapping(geom)

    def from_geojson(self, data: dict) -> BaseGeometry:
        return shape(data)


_geometry_ops: Optional[GeometryOps] = None


def get_geometry_ops() -> GeometryOps:
    """Get the shared GeometryOps instance."""
    global _geometry_ops
    if _geometry_ops is None:
        _geometry_ops = ShapelyGeometryOps()
    return _geometry_ops
