"""
Tests for survey_processing.geo_mesh.

Tests cover:
- Loading and dropping of unusable features
- Case-insensitive polygon lookup
- Localidad grouping, search and bounds
"""

import pytest

from survey_processing.geo_mesh import BarrioMesh, is_usable_feature


class TestLoading:
    def test_unusable_features_are_dropped(self, mesh_geojson):
        mesh = BarrioMesh.from_geojson(mesh_geojson)
        assert len(mesh) == 2

    def test_from_file(self, mesh_file):
        mesh = BarrioMesh.from_file(mesh_file)
        assert len(mesh) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BarrioMesh.from_file(tmp_path / "missing.json")

    def test_unsupported_structure(self):
        with pytest.raises(ValueError):
            BarrioMesh.from_geojson({"type": "Polygon", "coordinates": []})

    def test_empty_collection(self):
        mesh = BarrioMesh.from_geojson({"type": "FeatureCollection", "features": []})
        assert len(mesh) == 0
        assert mesh.bounds() is None
        assert mesh.find_polygon("El Prado") is None

    @pytest.mark.parametrize(
        "geometry,expected",
        [
            ({"type": "Point", "coordinates": [-74.8, 11.0]}, False),
            ({"type": "Polygon", "coordinates": []}, False),
            ({"type": "Polygon", "coordinates": [[[0, 0], [1, "a"], [1, 1]]]}, False),
            ({"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1]]]}, True),
            ({"type": "MultiPolygon", "coordinates": [[[[0, 0], [1, 0], [1, 1]]]]}, True),
            (None, False),
        ],
    )
    def test_is_usable_feature(self, geometry, expected):
        assert is_usable_feature({"type": "Feature", "geometry": geometry}) is expected


class TestLookups:
    @pytest.fixture
    def mesh(self, mesh_geojson):
        return BarrioMesh.from_geojson(mesh_geojson)

    @pytest.mark.parametrize("name", ["El Prado", "el prado", "EL PRADO"])
    def test_find_polygon_case_insensitive(self, mesh, name):
        polygon = mesh.find_polygon(name)
        assert polygon["type"] == "Polygon"

    def test_find_polygon_is_exact(self, mesh):
        assert mesh.find_polygon("Prado") is None
        assert mesh.find_polygon("  El Prado ") is None
        assert mesh.find_polygon("") is None

    def test_barrio_centers(self, mesh):
        prado = next(b for b in mesh.barrios() if b.nombre == "El Prado")
        assert prado.center == pytest.approx((-74.795, 10.995))
        assert prado.localidad == "Norte - Centro Histórico"

    def test_localidades(self, mesh):
        assert mesh.localidades() == ["Norte - Centro Histórico", "Riomar"]
        info = {loc.nombre: loc for loc in mesh.localidades_info()}
        assert [b.nombre for b in info["Riomar"].barrios] == ["Boston"]

    def test_search(self, mesh):
        assert [b.nombre for b in mesh.search("rio")] == ["Boston"]
        assert [b.nombre for b in mesh.search("PRADO")] == ["El Prado"]

    def test_bounds(self, mesh):
        (min_x, min_y), (max_x, max_y) = mesh.bounds()
        assert min_x == pytest.approx(-74.82)
        assert min_y == pytest.approx(10.99)
        assert max_x == pytest.approx(-74.79)
        assert max_y == pytest.approx(11.02)

    def test_summary(self, mesh):
        summary = mesh.summary()
        assert summary["total_barrios"] == 2
        assert summary["total_localidades"] == 2
