"""
heatmap.py - Weighted heatmap features from per-barrio statistics

Merges the store's per-barrio aggregate statistics with the static barrio
polygon mesh. Each valid statistic becomes a point feature; when a polygon
with the same barrio name exists, a polygon feature sharing the same
properties is emitted too (flagged ``isPolygon``) so point heatmaps and
choropleths can be drawn from one feature set.

Combined intensity = mean of two min-max normalized signals (intensity score
and match count), capped at 100.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
from loguru import logger

from .coordinates import DEFAULT_BOUNDING_BOX, BoundingBox, normalize_coordinates
from .geo_mesh import BarrioMesh

NEUTRAL_NORMALIZED = 50.0


def _number(value: Any, default: float = 0.0) -> float:
    parsed = pd.to_numeric(pd.Series([value]), errors="coerce").iloc[0]
    return default if pd.isna(parsed) else float(parsed)


@dataclass(frozen=True)
class AggregateStat:
    """Store-computed statistics for one barrio."""

    barrio: str
    localidad: str
    coordx: Any
    coordy: Any
    total_encuestas: float = 0.0
    matches_count: float = 0.0
    match_percentage: float = 0.0
    intensity_score: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AggregateStat":
        coordy = row.get("coordy")
        if coordy is None:
            coordy = row.get("coordsy")
        return cls(
            barrio=str(row.get("barrio") or ""),
            localidad=str(row.get("localidad") or ""),
            coordx=row.get("coordx"),
            coordy=coordy,
            total_encuestas=_number(row.get("total_encuestas")),
            matches_count=_number(row.get("matches_count")),
            match_percentage=_number(row.get("match_percentage")),
            intensity_score=_number(row.get("intensity_score")),
        )


def _stats_frame(stats: Sequence[AggregateStat]) -> pd.DataFrame:
    """Stats as a DataFrame with numeric coordinates; invalid ones filtered out."""
    df = pd.DataFrame(
        [
            {
                "position": i,
                "coordx": stat.coordx,
                "coordy": stat.coordy,
                "total_encuestas": stat.total_encuestas,
                "matches_count": stat.matches_count,
                "intensity_score": stat.intensity_score,
            }
            for i, stat in enumerate(stats)
        ],
        columns=["position", "coordx", "coordy", "total_encuestas", "matches_count", "intensity_score"],
    )
    df["coordx"] = pd.to_numeric(df["coordx"], errors="coerce")
    df["coordy"] = pd.to_numeric(df["coordy"], errors="coerce")

    valid = df["coordx"].notna() & df["coordy"].notna() & (df["coordx"] != 0) & (df["coordy"] != 0)
    dropped = int((~valid).sum())
    if dropped:
        logger.warning(f"⚠️ Skipping {dropped} barrio stats with missing or zero coordinates")
    return df[valid]


class HeatmapFeatureBuilder:
    """Builds point and polygon heatmap features from AggregateStats."""

    def __init__(self, mesh: Optional[BarrioMesh] = None, bbox: Optional[BoundingBox] = None):
        self.mesh = mesh
        self.bbox = bbox or DEFAULT_BOUNDING_BOX

    def build(self, stats: Sequence[AggregateStat]) -> List[Dict[str, Any]]:
        """
        Build GeoJSON features for a run of statistics.

        Args:
            stats: Per-barrio statistics from the store

        Returns:
            Point features, each followed by its polygon feature when the
            barrio exists in the mesh
        """
        if not stats:
            logger.warning("⚠️ No barrio statistics to build heatmap features from")
            return []

        valid = _stats_frame(stats)
        if valid.empty:
            return []

        max_intensity = float(valid["intensity_score"].max())
        max_matches = float(valid["matches_count"].max())
        max_total = float(valid["total_encuestas"].max())

        features: List[Dict[str, Any]] = []
        polygons = 0

        for row in valid.itertuples(index=False):
            stat = stats[row.position]
            longitude, latitude = normalize_coordinates(row.coordx, row.coordy, self.bbox)

            normalized_intensity = (
                stat.intensity_score / max_intensity * 100 if max_intensity > 0 else NEUTRAL_NORMALIZED
            )
            normalized_matches = (
                stat.matches_count / max_matches * 100 if max_matches > 0 else NEUTRAL_NORMALIZED
            )
            intensity = min((normalized_intensity + normalized_matches) / 2, 100.0)

            properties = {
                "id": f"{stat.barrio}-{longitude}-{latitude}",
                "barrio": stat.barrio,
                "localidad": stat.localidad,
                "total": stat.total_encuestas,
                "matches": stat.matches_count,
                "percentage": stat.match_percentage,
                "intensity_score": intensity,
                "weight": intensity / 100,
                "magnitude": stat.total_encuestas / max_total if max_total > 0 else 0.0,
                "category": stat.localidad,
            }
            features.append(
                {
                    "type": "Feature",
                    "geometry": {"type": "Point", "coordinates": [longitude, latitude]},
                    "properties": properties,
                }
            )

            polygon = self.mesh.find_polygon(stat.barrio) if self.mesh is not None else None
            if polygon is not None:
                polygons += 1
                features.append(
                    {
                        "type": "Feature",
                        "geometry": polygon,
                        "properties": {**properties, "isPolygon": True},
                    }
                )

        logger.info(
            f"🔥 Built {len(valid)} heatmap points and {polygons} barrio polygons "
            f"from {len(stats)} stats"
        )
        return features

    def build_feature_collection(self, stats: Sequence[AggregateStat]) -> Dict[str, Any]:
        return {"type": "FeatureCollection", "features": self.build(stats)}


def summarize_stats(stats: Sequence[AggregateStat]) -> Dict[str, float]:
    """City-wide totals over a run of barrio statistics."""
    total_encuestas = sum(s.total_encuestas for s in stats)
    total_coincidencias = sum(s.matches_count for s in stats)
    return {
        "total_barrios": len(stats),
        "total_encuestas": total_encuestas,
        "total_coincidencias": total_coincidencias,
        "porcentaje_general": total_coincidencias / (total_encuestas or 1) * 100 if stats else 0.0,
    }


def top_barrios(stats: Sequence[AggregateStat], n: int = 10) -> List[AggregateStat]:
    """Barrios with the most matches, highest first."""
    return sorted(stats, key=lambda s: s.matches_count, reverse=True)[:n]
