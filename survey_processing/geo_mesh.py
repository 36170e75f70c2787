"""
geo_mesh.py - Static barrio polygon mesh

Loads the city's neighborhood polygons (a GeoJSON FeatureCollection whose
features carry ``id``, ``nombre``, ``localidad`` and ``pieza_urba``) into a
GeoDataFrame and answers the lookups the heatmap and reporting steps need.

The mesh is an owned handle: load it once and pass it to whoever needs it.

Usage:
    mesh = BarrioMesh.from_file("data/geo-barranquilla.json")
    geometry = mesh.find_polygon("El Prado")
    bounds = mesh.bounds()
"""

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import geopandas as gpd
from loguru import logger
from shapely.geometry import mapping

MIN_RING_POINTS = 3


@dataclass(frozen=True)
class BarrioInfo:
    id: Any
    nombre: str
    localidad: str
    pieza_urba: str
    center: Tuple[float, float]


@dataclass(frozen=True)
class LocalidadInfo:
    nombre: str
    barrios: List[BarrioInfo]
    center: Tuple[float, float]


def _valid_position(position: Any) -> bool:
    return (
        isinstance(position, (list, tuple))
        and len(position) >= 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in position[:2])
        and not any(math.isnan(v) for v in position[:2])
    )


def _valid_polygon_rings(rings: Any) -> bool:
    if not isinstance(rings, list) or not rings:
        return False
    outer = rings[0]
    if not isinstance(outer, list) or len(outer) < MIN_RING_POINTS:
        return False
    return all(_valid_position(p) for ring in rings for p in ring)


def is_usable_feature(feature: Dict[str, Any]) -> bool:
    """True when a feature has a polygon geometry with numeric rings of 3+ points."""
    geometry = feature.get("geometry") or {}
    coordinates = geometry.get("coordinates")
    geom_type = geometry.get("type")

    if geom_type == "Polygon":
        return _valid_polygon_rings(coordinates)
    if geom_type == "MultiPolygon":
        return (
            isinstance(coordinates, list)
            and bool(coordinates)
            and all(_valid_polygon_rings(polygon) for polygon in coordinates)
        )
    return False


class BarrioMesh:
    """Read-only access to the barrio polygons."""

    def __init__(self, gdf: gpd.GeoDataFrame):
        self.gdf = gdf
        self._name_index: Dict[str, int] = {}
        for position, name in enumerate(gdf["nombre"] if "nombre" in gdf.columns else []):
            key = str(name).lower()
            if key and key not in self._name_index:
                self._name_index[key] = position

    @classmethod
    def from_geojson(cls, geojson_data: Dict[str, Any]) -> "BarrioMesh":
        """Build a mesh from a parsed FeatureCollection, dropping unusable features."""
        if geojson_data.get("type") == "FeatureCollection":
            features = geojson_data.get("features", []) or []
        elif geojson_data.get("type") == "Feature":
            features = [geojson_data]
        else:
            raise ValueError("Unsupported GeoJSON structure for barrio mesh")

        usable = []
        for feature in features:
            if is_usable_feature(feature):
                usable.append(feature)
            else:
                feature_id = (feature.get("properties") or {}).get("id")
                logger.warning(f"⚠️ Barrio feature {feature_id} has no valid polygon geometry")

        logger.info(f"🗺️ Barrio mesh: {len(features)} features, {len(usable)} valid")

        if usable:
            gdf = gpd.GeoDataFrame.from_features(usable, crs="EPSG:4326")
        else:
            gdf = gpd.GeoDataFrame(
                {"id": [], "nombre": [], "localidad": [], "pieza_urba": []},
                geometry=[],
                crs="EPSG:4326",
            )
        for column in ("id", "nombre", "localidad", "pieza_urba"):
            if column not in gdf.columns:
                gdf[column] = None
        return cls(gdf.reset_index(drop=True))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "BarrioMesh":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Barrio mesh not found: {path}")
        logger.info(f"🗺️ Loading barrio mesh from {path}")
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_geojson(json.load(f))

    def __len__(self) -> int:
        return len(self.gdf)

    def find_polygon(self, name: str) -> Optional[Dict[str, Any]]:
        """GeoJSON geometry of the barrio whose name matches case-insensitively, if any."""
        position = self._name_index.get(str(name or "").lower())
        if position is None:
            return None
        return mapping(self.gdf.geometry.iloc[position])

    def barrios(self) -> List[BarrioInfo]:
        result = []
        for row in self.gdf.itertuples(index=False):
            centroid = row.geometry.centroid
            result.append(
                BarrioInfo(
                    id=row.id,
                    nombre=row.nombre or "",
                    localidad=row.localidad or "",
                    pieza_urba=row.pieza_urba or "",
                    center=(centroid.x, centroid.y),
                )
            )
        return result

    def localidades(self) -> List[str]:
        return sorted({b.localidad for b in self.barrios() if b.localidad})

    def barrios_by_localidad(self, localidad: str) -> List[BarrioInfo]:
        return [b for b in self.barrios() if b.localidad == localidad]

    def localidades_info(self) -> List[LocalidadInfo]:
        info = []
        for localidad in self.localidades():
            barrios = self.barrios_by_localidad(localidad)
            center = (
                sum(b.center[0] for b in barrios) / len(barrios),
                sum(b.center[1] for b in barrios) / len(barrios),
            )
            info.append(LocalidadInfo(nombre=localidad, barrios=barrios, center=center))
        return info

    def search(self, query: str) -> List[BarrioInfo]:
        """Barrios whose name or localidad contains the query (case-insensitive)."""
        term = query.lower()
        return [
            b for b in self.barrios() if term in b.nombre.lower() or term in b.localidad.lower()
        ]

    def bounds(self) -> Optional[List[List[float]]]:
        """[[min_lng, min_lat], [max_lng, max_lat]], or None for an empty mesh."""
        if self.gdf.empty:
            return None
        min_x, min_y, max_x, max_y = self.gdf.total_bounds
        return [[float(min_x), float(min_y)], [float(max_x), float(max_y)]]

    def summary(self) -> Dict[str, Any]:
        localidades = self.localidades()
        return {
            "total_barrios": len(self.gdf),
            "total_localidades": len(localidades),
            "barrios_por_localidad": [
                {"localidad": loc, "count": len(self.barrios_by_localidad(loc))}
                for loc in localidades
            ],
        }
