"""
Pytest configuration and shared fixtures.

This module provides common fixtures used across test modules: raw survey
grids, an in-memory store that records every call, a tiny barrio mesh and a
Config built from a temporary YAML file.
"""

import json
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import yaml

from survey_ops.config_loader import Config
from survey_ops.migration import MigrationProgress


class FakeStore:
    """In-memory survey store.

    Simulates the server-side migration: ``migrate_batch`` advances the
    processed count by at most ``batch_size`` and reports it in the same
    message format the real store uses.
    """

    def __init__(self, total_persons: int = 0, processed: int = 0):
        self.total_persons = total_persons
        self.processed = processed
        self.calls = []
        self.uploaded = []
        self.fail_upload_chunks = set()
        self.fail_clear = False
        self.fail_progress = False
        self.fail_batch_at = None
        self.batch_response = None
        self.aggregate_stats = []
        self.categories = ["SALUD", "EDUCACIÓN"]

    def clear_destination(self):
        self.calls.append(("clear_destination",))
        if self.fail_clear:
            raise RuntimeError("permission denied for table normalized")
        self.processed = 0

    def get_migration_progress(self):
        self.calls.append(("get_migration_progress",))
        if self.fail_progress:
            raise RuntimeError("connection reset")
        percentage = self.processed / self.total_persons * 100 if self.total_persons else 0.0
        return MigrationProgress(
            total_persons_to_process=self.total_persons,
            processed_persons=self.processed,
            progress_percentage=percentage,
            next_offset=self.processed,
            estimated_remaining_batches=0,
        )

    def migrate_batch(self, batch_size, offset):
        self.calls.append(("migrate_batch", batch_size, offset))
        if self.fail_batch_at is not None and offset == self.fail_batch_at:
            raise RuntimeError("statement timeout")
        if self.batch_response is not None:
            return self.batch_response
        count = max(0, min(batch_size, self.total_persons - offset))
        self.processed = offset + count
        return f"✅ Lote completado: {count} registros procesados"

    def upload_records(self, rows):
        chunk_number = len([c for c in self.calls if c[0] == "upload_records"]) + 1
        self.calls.append(("upload_records", len(rows)))
        if chunk_number in self.fail_upload_chunks:
            raise RuntimeError("duplicate key value violates unique constraint")
        self.uploaded.extend(rows)
        return rows

    def get_aggregate_stats(self, category_filter=None):
        self.calls.append(("get_aggregate_stats", category_filter))
        return list(self.aggregate_stats)

    def get_available_categories(self):
        self.calls.append(("get_available_categories",))
        return list(self.categories)

    def call_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_store():
    """An empty in-memory store."""
    return FakeStore()


@pytest.fixture
def sample_grid():
    """A small survey grid: three header rows plus three data rows."""
    return [
        ["SOCIODEMOGRÁFICA", "SOCIODEMOGRÁFICA", "SALUD", "EDUCACIÓN", "", "", "", "NO INCLUIR"],
        ["", "", "", "", "", "", "", ""],
        ["Edad", "Sexo", "¿Tiene EPS?", "Nivel educativo", "COORDX", "COORDY", "BARRIO", "Nota"],
        ["34", "Mujer", "Si", "Primaria", "-74.81", "10.97", "El Prado", "x"],
        ["", "", "", "", "", "", "", ""],
        ["61", "Hombre", "No", "", "abc", "10,99", "Boston", ""],
    ]


@pytest.fixture
def scenario_grid():
    """Five columns with coordinates identified by the category row."""
    return [
        ["SALUD", "", "SALUD", "COORDX", "COORDY"],
        ["", "", "", "", ""],
        ["q1", "", "q2", "", ""],
        ["a", "skip", "b", "-74.81", "10.97"],
    ]


def square(west, south, size=0.01):
    return [
        [
            [west, south],
            [west + size, south],
            [west + size, south + size],
            [west, south + size],
            [west, south],
        ]
    ]


@pytest.fixture
def mesh_geojson():
    """Two barrios in two localidades, plus one feature without usable geometry."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {
                    "id": 1,
                    "nombre": "El Prado",
                    "localidad": "Norte - Centro Histórico",
                    "pieza_urba": "Prado",
                },
                "geometry": {"type": "Polygon", "coordinates": square(-74.80, 10.99)},
            },
            {
                "type": "Feature",
                "properties": {
                    "id": 2,
                    "nombre": "Boston",
                    "localidad": "Riomar",
                    "pieza_urba": "Riomar",
                },
                "geometry": {"type": "Polygon", "coordinates": square(-74.82, 11.01)},
            },
            {
                "type": "Feature",
                "properties": {"id": 3, "nombre": "Roto", "localidad": "Sur Occidente"},
                "geometry": {"type": "Polygon", "coordinates": [[[-74.8, 10.9], [-74.8, 10.9]]]},
            },
        ],
    }


@pytest.fixture
def mesh_file(tmp_path, mesh_geojson):
    """The sample mesh written to disk."""
    path = tmp_path / "geo-barranquilla.json"
    path.write_text(json.dumps(mesh_geojson), encoding="utf-8")
    return path


@pytest.fixture
def config_file(tmp_path):
    """A config.yaml with small batch sizes and no migration delay."""
    data = {
        "project_name": "Test Survey",
        "input_files": {"barrio_mesh": "geo-barranquilla.json"},
        "upload": {"chunk_size": 2},
        "migration": {"batch_size": 50, "inter_batch_delay_seconds": 0},
        "geo": {"bounding_box": {"west": -74.9}},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return path


@pytest.fixture
def config(config_file):
    """Config loaded from the temporary config.yaml."""
    return Config(config_file)
