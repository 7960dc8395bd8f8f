# src/policy_mapper/extractors/plate_extractor.py
"""
Extracción de matrícula.
Primero campos etiquetados; si el OCR sólo leyó la etiqueta ("PATENTE") o no
hay valor, se barren todos los valores del registro buscando una matrícula.
"""

import logging
import re
from typing import Any, Mapping, Optional

from policy_mapper.pipelines.field_map import FieldCandidateSpec, ResolvedValue, resolve
from policy_mapper.pipelines.normalizers import as_text
from policy_mapper.utils.errors import ValueNotFound
from policy_mapper.utils.validators import PolicyDataValidator

logger = logging.getLogger(__name__)

# Formatos de matrícula uruguaya y variantes regionales
PLATE_PATTERNS = [
    re.compile(r"\b[A-Z]{3}\s*\d{4}\b", re.IGNORECASE),
    re.compile(r"\b[A-Z]{2}\s*\d{4,6}\b", re.IGNORECASE),
    re.compile(r"\b[A-Z]{3}-\d{4}\b", re.IGNORECASE),
    re.compile(r"\b[A-Z]{2}-\d{4,6}\b", re.IGNORECASE),
    re.compile(r"\b[A-Z]{1,3}\s*\d{3,6}\b", re.IGNORECASE),
]

_LABEL_ONLY = {"PATENTE", "MATRICULA", "MATRÍCULA", "PLACA"}
_LABEL_PREFIXES = [
    "MATRÍCULA:", "MATRICULA:", "PATENTE:", "PLACA:",
    "MATRÍCULA", "MATRICULA", "PATENTE", "PLACA",
]

BLIND_SCAN_MIN_LEN = 6
BLIND_SCAN_MAX_LEN = 50


def compact_plate(s: str) -> str:
    return s.replace(" ", "").replace("-", "").upper()


def clean_plate_value(value: str) -> Optional[str]:
    """Quita el prefijo de etiqueta y valida; None si no es una matrícula"""
    cleaned = value.replace("\n", " ").replace("\r", " ").strip()
    upper = cleaned.upper()
    for prefix in _LABEL_PREFIXES:
        if upper.startswith(prefix):
            cleaned = cleaned[len(prefix):].strip()
            break
    candidate = compact_plate(cleaned)
    ok, _ = PolicyDataValidator.validate_plate(candidate)
    return candidate if ok else None


class PlateExtractor:
    """Resuelve la matrícula combinando candidatos etiquetados y barrido ciego"""

    def __init__(self, patterns=None):
        self.patterns = patterns or PLATE_PATTERNS

    def extract(self, record: Mapping[str, Any], spec: FieldCandidateSpec) -> ResolvedValue:
        labeled: Optional[ResolvedValue] = None
        try:
            labeled = resolve(record, spec)
        except ValueNotFound:
            labeled = None

        if labeled is not None and labeled.value.strip().upper() not in _LABEL_ONLY:
            plate = clean_plate_value(labeled.value)
            if plate:
                return ResolvedValue(plate, labeled.raw, labeled.source_key, labeled.candidate_index)
            logger.debug(f"Matrícula etiquetada inválida: '{labeled.value}'")

        found = self.blind_scan(record)
        if found:
            key, plate = found
            logger.info(f"Matrícula encontrada en datos ({key}): {plate}")
            return ResolvedValue(plate, as_text(record.get(key)), key, -1)

        raise ValueNotFound("Matrícula no detectada", field=spec.field)

    def blind_scan(self, record: Mapping[str, Any]) -> Optional[tuple]:
        """Devuelve (clave, matrícula) del primer valor que contenga una matrícula válida"""
        for key, raw in record.items():
            value = as_text(raw)
            if not BLIND_SCAN_MIN_LEN <= len(value) <= BLIND_SCAN_MAX_LEN:
                continue
            for rx in self.patterns:
                for m in rx.finditer(value):
                    candidate = compact_plate(m.group(0))
                    ok, _ = PolicyDataValidator.validate_plate(candidate)
                    if ok:
                        return key, candidate
        return None
