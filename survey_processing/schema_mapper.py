"""
schema_mapper.py - Header interpretation for survey spreadsheets

Survey workbooks carry their schema in the first three rows:

    row 0  category labels (SOCIODEMOGRÁFICA, SALUD, ...; blank or NO INCLUIR)
    row 1  reserved for sub-categories, ignored
    row 2  question text

This module turns those rows into one ColumnMapping per column. Location and
bookkeeping columns (coordinates, localidad, barrio, address, stratum,
observations) are recognised by keyword and flagged as special so the record
builder can route them out of the category/question grouping.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .data_utils import clean_cell

HEADER_ROWS = 3
EXCLUDED_CATEGORY = "NO INCLUIR"
UNCATEGORIZED_LABEL = "OTROS"


class KnownCategory(str, Enum):
    """Category labels the survey instrument defines."""

    SOCIODEMOGRAFICA = "SOCIODEMOGRÁFICA"
    TIPO_DISCAPACIDAD = "TIPO DE DISCAPACIDAD"
    CAUSAS_DISCAPACIDAD = "CAUSAS DE DISCAPACIDAD"
    SALUD = "SALUD"
    EDUCACION = "EDUCACIÓN"
    TRABAJO = "TRABAJO"
    VIVIENDA = "VIVIENDA"
    PARTICIPACION_SOCIAL = "PARTICIPACIÓN SOCIAL"
    AYUDAS_TECNICAS = "AYUDAS TÉCNICAS"


class CategoryKind(str, Enum):
    KNOWN = "known"
    CUSTOM = "custom"
    UNCATEGORIZED = "uncategorized"


@dataclass(frozen=True)
class Category:
    """A column's category: a known label, a free-form label, or uncategorized."""

    kind: CategoryKind
    label: str

    @classmethod
    def known(cls, category: KnownCategory) -> "Category":
        return cls(CategoryKind.KNOWN, category.value)

    @classmethod
    def custom(cls, label: str) -> "Category":
        return cls(CategoryKind.CUSTOM, label)

    @property
    def is_demographic(self) -> bool:
        return self.kind is CategoryKind.KNOWN and self.label == KnownCategory.SOCIODEMOGRAFICA.value

    def __str__(self) -> str:
        return self.label


UNCATEGORIZED = Category(CategoryKind.UNCATEGORIZED, UNCATEGORIZED_LABEL)


class SpecialField(str, Enum):
    COORDINATE_X = "coordinates_x"
    COORDINATE_Y = "coordinates_y"
    LOCALIDAD = "localidad"
    BARRIO = "barrio"
    ADDRESS = "address"
    STRATUM = "stratum"
    OBSERVATIONS = "observations"


# Checked in order; first keyword contained in the header text wins
SPECIAL_COLUMN_KEYWORDS: Tuple[Tuple[str, SpecialField], ...] = (
    ("COORDX", SpecialField.COORDINATE_X),
    ("COORDY", SpecialField.COORDINATE_Y),
    ("COORDSX", SpecialField.COORDINATE_X),
    ("COORDSY", SpecialField.COORDINATE_Y),
    ("LOCALIDAD", SpecialField.LOCALIDAD),
    ("BARRIO", SpecialField.BARRIO),
    ("DIRECCIÓN", SpecialField.ADDRESS),
    ("DIRECCION", SpecialField.ADDRESS),
    ("ESTRATO", SpecialField.STRATUM),
    ("OBSERVACIONES", SpecialField.OBSERVATIONS),
)

_KNOWN_LABELS = {category.value: category for category in KnownCategory}


@dataclass(frozen=True)
class ColumnMapping:
    """How one spreadsheet column maps into the record model."""

    index: int
    category: Category
    question: str
    original_header: str
    special: Optional[SpecialField] = None

    @property
    def question_key(self) -> str:
        """Key used in the record; unlabeled questions fall back to their column."""
        return self.question or f"col_{self.index}"


def resolve_category(raw: object) -> Category:
    """Classify a raw category cell."""
    label = clean_cell(raw).upper()
    if label in _KNOWN_LABELS:
        return Category.known(_KNOWN_LABELS[label])
    if label and label != EXCLUDED_CATEGORY:
        return Category.custom(label)
    return UNCATEGORIZED


def detect_special_field(*texts: str) -> Optional[SpecialField]:
    """Match header texts (case-insensitive) against the special column keyword table."""
    for text in texts:
        upper = clean_cell(text).upper()
        if not upper:
            continue
        for keyword, field in SPECIAL_COLUMN_KEYWORDS:
            if keyword in upper:
                return field
    return None


def build_column_mappings(
    category_row: Sequence[object],
    skip_row: Sequence[object],
    question_row: Sequence[object],
) -> List[ColumnMapping]:
    """
    Build one ColumnMapping per column present in either header row.

    Ragged header rows are padded with empty strings. The reserved row is
    accepted for signature symmetry with the spreadsheet layout and ignored.
    This function never raises.

    Args:
        category_row: Row 0 of the grid
        skip_row: Row 1 of the grid (ignored)
        question_row: Row 2 of the grid

    Returns:
        List of ColumnMapping, ordered by column index
    """
    width = max(len(category_row), len(question_row))
    mappings: List[ColumnMapping] = []

    for index in range(width):
        raw_category = category_row[index] if index < len(category_row) else ""
        raw_question = question_row[index] if index < len(question_row) else ""

        clean_category = clean_cell(raw_category).upper()
        question = clean_cell(raw_question)
        original_header = "_".join(f"{clean_category}_{question}".split())

        mappings.append(
            ColumnMapping(
                index=index,
                category=resolve_category(clean_category),
                question=question,
                original_header=original_header,
                special=detect_special_field(question, clean_category),
            )
        )

    special_count = sum(1 for m in mappings if m.special is not None)
    logger.debug(f"  🧭 Mapped {len(mappings)} columns ({special_count} special)")
    return mappings


def split_header(
    grid: Sequence[Sequence[object]],
) -> Tuple[Sequence[object], Sequence[object], Sequence[object], Sequence[Sequence[object]]]:
    """Split a raw grid into (category_row, skip_row, question_row, data_rows)."""
    category_row = grid[0] if len(grid) > 0 else []
    skip_row = grid[1] if len(grid) > 1 else []
    question_row = grid[2] if len(grid) > 2 else []
    return category_row, skip_row, question_row, grid[HEADER_ROWS:]


def category_counts(mappings: Sequence[ColumnMapping]) -> dict:
    """Number of non-special columns per category label."""
    counts: dict = {}
    for mapping in mappings:
        if mapping.special is None:
            counts[mapping.category.label] = counts.get(mapping.category.label, 0) + 1
    return counts
