"""
record_builder.py - Normalized survey records from spreadsheet rows

Turns each data row of a raw survey grid into a NormalizedRecord:

    sociodemographic   flat question -> response map for SOCIODEMOGRÁFICA
    location           localidad, barrio, coordinates {x, y}, address
    responses          category -> question -> response for everything else
    metadata           stratum, observations, categories seen, row number

Processing is best-effort per column. A cell that fails to parse leaves its
field empty; only a row with no usable data at all is dropped.
"""

import math
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from loguru import logger

from .data_utils import clean_cell
from .schema_mapper import (
    HEADER_ROWS,
    ColumnMapping,
    SpecialField,
    build_column_mappings,
    split_header,
)

MIN_GRID_ROWS = HEADER_ROWS + 1

_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


class MalformedGridError(ValueError):
    """Raised when a grid cannot hold the header rows plus at least one data row."""


@dataclass
class Location:
    localidad: str = ""
    barrio: str = ""
    coordinates: Dict[str, Optional[float]] = field(
        default_factory=lambda: {"x": None, "y": None}
    )
    address: str = ""

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates.get("x") is not None and self.coordinates.get("y") is not None


@dataclass
class RecordMetadata:
    stratum: str = ""
    observations: str = ""
    category_distribution: Set[str] = field(default_factory=set)
    processing_date: str = ""
    row_number: int = 0


@dataclass
class NormalizedRecord:
    """One survey respondent, as persisted to the store."""

    id: str
    sociodemographic: Dict[str, str] = field(default_factory=dict)
    location: Location = field(default_factory=Location)
    responses: Dict[str, Dict[str, str]] = field(default_factory=dict)
    metadata: RecordMetadata = field(default_factory=RecordMetadata)

    def has_data(self) -> bool:
        return bool(
            self.sociodemographic
            or self.responses
            or self.location.localidad
            or self.location.barrio
        )

    def content(self) -> Dict[str, Any]:
        """Field values excluding generated id and timestamp."""
        data = asdict(self)
        data.pop("id")
        data["metadata"].pop("processing_date")
        data["metadata"]["category_distribution"] = sorted(self.metadata.category_distribution)
        return data

    def to_store_row(self, created_at: Optional[str] = None) -> Dict[str, Any]:
        """Row payload for the survey_responses table."""
        metadata = asdict(self.metadata)
        # the store expects a JSON object keyed by category
        metadata["category_distribution"] = {
            category: "" for category in sorted(self.metadata.category_distribution)
        }
        return {
            "id": self.id,
            "sociodemographic_data": dict(self.sociodemographic),
            "location_data": asdict(self.location),
            "responses_data": {cat: dict(answers) for cat, answers in self.responses.items()},
            "metadata": metadata,
            "created_at": created_at or datetime.now(timezone.utc).isoformat(),
        }


def parse_coordinate(value: str) -> Optional[float]:
    """
    Parse a coordinate cell leniently.

    Accepts a comma as decimal separator and trailing garbage after a leading
    number ("-74.81 O"). Returns None when no finite number can be read.
    """
    text = clean_cell(value)
    if "," in text and "." not in text:
        text = text.replace(",", ".")

    try:
        number = float(text)
    except ValueError:
        match = _LEADING_NUMBER.match(text)
        if not match:
            return None
        number = float(match.group(0))

    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _apply_special(record: NormalizedRecord, special: SpecialField, value: str) -> None:
    if special in (SpecialField.COORDINATE_X, SpecialField.COORDINATE_Y):
        # An unparseable later column keeps the earlier coordinate
        coordinate = parse_coordinate(value)
        if coordinate is not None:
            axis = "x" if special is SpecialField.COORDINATE_X else "y"
            record.location.coordinates[axis] = coordinate
    elif special is SpecialField.LOCALIDAD:
        record.location.localidad = value
    elif special is SpecialField.BARRIO:
        record.location.barrio = value
    elif special is SpecialField.ADDRESS:
        record.location.address = value
    elif special is SpecialField.STRATUM:
        record.metadata.stratum = value
    elif special is SpecialField.OBSERVATIONS:
        record.metadata.observations = value


def build_record(
    row: Sequence[Any],
    mappings: Sequence[ColumnMapping],
    row_index: int,
    now: Optional[datetime] = None,
) -> Optional[NormalizedRecord]:
    """
    Build a NormalizedRecord from one data row.

    Args:
        row: Cells of the data row
        mappings: Column mappings from build_column_mappings
        row_index: Zero-based index of the row among the data rows
        now: Processing timestamp (defaults to the current UTC time)

    Returns:
        The record, or None when the row carries no information
    """
    now = now or datetime.now(timezone.utc)
    record = NormalizedRecord(
        id=f"row_{int(now.timestamp() * 1000)}_{row_index}",
        metadata=RecordMetadata(
            processing_date=now.isoformat(),
            row_number=row_index + MIN_GRID_ROWS,
        ),
    )

    for mapping in mappings:
        value = clean_cell(row[mapping.index]) if mapping.index < len(row) else ""
        if not value:
            continue

        if mapping.special is not None:
            _apply_special(record, mapping.special, value)
            continue

        category = mapping.category
        if category.is_demographic:
            record.sociodemographic[mapping.question_key] = value
        else:
            record.responses.setdefault(category.label, {})[mapping.question_key] = value
        record.metadata.category_distribution.add(category.label)

    return record if record.has_data() else None


def process_grid(raw_grid: Sequence[Sequence[Any]]) -> List[NormalizedRecord]:
    """
    Normalize a raw survey grid into records.

    Args:
        raw_grid: Rows of cells; rows 0-2 are headers, rows 3+ are data

    Returns:
        Records for every data row that carries information

    Raises:
        MalformedGridError: If the grid has fewer than four rows
    """
    if len(raw_grid) < MIN_GRID_ROWS:
        raise MalformedGridError(
            f"Grid has {len(raw_grid)} rows; need {HEADER_ROWS} header rows and at least one data row"
        )

    category_row, skip_row, question_row, data_rows = split_header(raw_grid)
    logger.info("🧩 Identified survey structure:")
    logger.info(f"   Categories: {[clean_cell(c) for c in category_row[:10]]}")
    logger.info(f"   Questions: {[clean_cell(q) for q in question_row[:10]]}")
    logger.info(f"   Data rows: {len(data_rows):,}")

    mappings = build_column_mappings(category_row, skip_row, question_row)
    now = datetime.now(timezone.utc)

    records: List[NormalizedRecord] = []
    for index, row in enumerate(data_rows):
        try:
            record = build_record(row, mappings, index, now=now)
        except Exception as e:
            logger.error(f"❌ Error processing row {index + MIN_GRID_ROWS}: {e}")
            continue
        if record is not None:
            records.append(record)

    logger.success(f"✅ Processed {len(records):,} valid rows of {len(data_rows):,}")
    return records


def summarize_records(records: Sequence[NormalizedRecord]) -> Dict[str, Any]:
    """Coverage counts for a batch of records."""
    per_category: Dict[str, int] = {}
    for record in records:
        for category in record.responses:
            per_category[category] = per_category.get(category, 0) + 1

    return {
        "total_records": len(records),
        "with_coordinates": sum(1 for r in records if r.location.has_coordinates),
        "with_location": sum(1 for r in records if r.location.localidad or r.location.barrio),
        "with_sociodemographic": sum(1 for r in records if r.sociodemographic),
        "with_responses": sum(1 for r in records if r.responses),
        "records_per_category": dict(sorted(per_category.items())),
    }
