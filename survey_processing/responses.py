"""
Response label normalization and respondent lookups.

Free-text survey answers arrive as "si", "SI", "Sí", ... This module folds
such variants into one display label and extracts the respondent fields the
reporting views show.
"""

import unicodedata
from typing import Any, Dict, Iterable, List, Mapping

CANONICAL_LABELS = {
    "SI": "Si",
    "NO": "No",
    "FEMENINO": "Femenino",
    "MASCULINO": "Masculino",
    "MUJER": "Mujer",
    "HOMBRE": "Hombre",
}


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def normalize_response_label(value: str) -> str:
    """Fold case/accent variants of common answers into a single label."""
    if not value:
        return ""
    folded = _strip_accents(value).strip().upper()
    if folded in CANONICAL_LABELS:
        return CANONICAL_LABELS[folded]
    return value[:1].upper() + value[1:].lower()


def group_and_normalize_responses(items: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Sum ``value`` per normalized ``key`` label, keeping first-seen order."""
    grouped: Dict[str, float] = {}
    for item in items:
        label = normalize_response_label(str(item.get("key") or ""))
        grouped[label] = grouped.get(label, 0) + item.get("value", 0)
    return [{"label": label, "value": value} for label, value in grouped.items()]


def extract_person_info(survey_response: Mapping[str, Any]) -> Dict[str, Any]:
    """Respondent display fields from a survey_responses row."""
    otros = (survey_response.get("responses_data") or {}).get("OTROS") or {}
    location = survey_response.get("location_data") or {}
    coordinates = location.get("coordinates") or {}

    def joined(keys: List[str], separator: str) -> str:
        return separator.join(otros[k] for k in keys if otros.get(k))

    return {
        "nombre": joined(
            ["PRIMER NOMBRE", "SEGUNDO NOMBRE", "PRIMER APELLIDO", "SEGUNDO APELLIDO"], " "
        ),
        "documento": otros.get("Número de documento de la persona con discapacidad", ""),
        "sexo_identidad": otros.get(
            "¿Cuál es su identidad de género / la identidad de género de la persona con "
            "discapacidad actualmente?",
            "",
        ),
        "sexo_nacimiento": otros.get(
            "¿Qué sexo le fue asignado al nacer en su certificado de nacimiento / en el "
            "certificado de nacimiento de la persona con discapacidad?",
            "",
        ),
        "celular": joined(["Celular 1", "Celular 2"], " / "),
        "direccion": location.get("address", ""),
        "barrio": location.get("barrio", ""),
        "localidad": location.get("localidad", ""),
        "coord_x": coordinates.get("x"),
        "coord_y": coordinates.get("y"),
        "edad": otros.get("Edad de la persona con discapacidad", ""),
    }
