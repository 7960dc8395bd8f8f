# src/policy_mapper/pipelines/field_map.py
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import yaml

from policy_mapper.pipelines.normalizers import as_text
from policy_mapper.utils.errors import ValueFormatError, ValueNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateKey:
    """Clave de origen con patrón opcional para extraer el dato de un blob"""
    key: str
    pattern: Optional[str] = None
    group: int = 1

    def extract(self, raw: str) -> Optional[str]:
        if not self.pattern:
            return raw
        m = re.search(self.pattern, raw, re.IGNORECASE)
        if not m:
            return None
        if m.re.groups >= self.group:
            return (m.group(self.group) or "").strip() or None
        return m.group(0).strip() or None


@dataclass(frozen=True)
class FieldCandidateSpec:
    """Candidatos en orden de prioridad para un campo canónico"""
    field: str
    candidates: Tuple[CandidateKey, ...]
    converter: Optional[Callable[[str], Any]] = None
    required: bool = False

    def with_candidates(self, extra: List[CandidateKey], prepend: bool = True) -> "FieldCandidateSpec":
        merged = tuple(extra) + self.candidates if prepend else self.candidates + tuple(extra)
        return FieldCandidateSpec(self.field, merged, self.converter, self.required)


@dataclass(frozen=True)
class ResolvedValue:
    value: Any
    raw: str
    source_key: str
    candidate_index: int


def keys(*items: Any) -> Tuple[CandidateKey, ...]:
    """Atajo: 'clave' o ('clave', patrón) -> tupla de CandidateKey"""
    out: List[CandidateKey] = []
    for it in items:
        if isinstance(it, CandidateKey):
            out.append(it)
        elif isinstance(it, tuple):
            out.append(CandidateKey(*it))
        else:
            out.append(CandidateKey(str(it)))
    return tuple(out)


def _candidates(record: Mapping[str, Any], spec: FieldCandidateSpec):
    for idx, cand in enumerate(spec.candidates):
        raw = as_text(record.get(cand.key))
        if not raw:
            continue
        value = cand.extract(raw)
        if not value:
            logger.debug(f"{spec.field}: '{cand.key}' no coincide con {cand.pattern}")
            continue
        yield idx, cand, value


def resolve(record: Mapping[str, Any], spec: FieldCandidateSpec) -> ResolvedValue:
    """Primer valor no vacío y válido según el orden de candidatos"""
    for idx, cand, value in _candidates(record, spec):
        logger.debug(f"✓ {spec.field} <- {cand.key}: {value}")
        return ResolvedValue(value, value, cand.key, idx)
    raise ValueNotFound(f"Sin candidatos para {spec.field}", field=spec.field)


def resolve_converted(record: Mapping[str, Any], spec: FieldCandidateSpec) -> ResolvedValue:
    """
    Igual que resolve() pero aplicando el conversor del spec.
    Si hubo valores y ninguno convirtió, lanza ValueFormatError con el primero.
    """
    if spec.converter is None:
        return resolve(record, spec)

    first_bad: Optional[Tuple[str, str]] = None
    for idx, cand, value in _candidates(record, spec):
        try:
            converted = spec.converter(value)
        except (ValueNotFound, ValueError) as e:
            logger.debug(f"{spec.field}: '{cand.key}' = '{value}' no convierte ({e})")
            if first_bad is None:
                first_bad = (value, cand.key)
            continue
        return ResolvedValue(converted, value, cand.key, idx)

    if first_bad is not None:
        raise ValueFormatError(first_bad[0], first_bad[1], field=spec.field)
    raise ValueNotFound(f"Sin candidatos para {spec.field}", field=spec.field)


class FieldMap:
    """
    Claves adicionales por compañía cargadas desde YAML:

        sura:
          numero_poliza:
            - "Nro. Poliza"
            - {key: "encabezado", pattern: "Póliza\\s*(\\d+)"}
    """

    def __init__(self, path: str | Path | None = None):
        path = path or os.getenv("FIELD_MAP_PATH", "")
        self.path = Path(path) if path else None
        self.cfg: Dict[str, Any] = {}
        if self.path and self.path.exists():
            self.cfg = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
            logger.info(f"Mapa de campos cargado: {self.path}")

    def extra_candidates(self, company: str, field_name: str) -> List[CandidateKey]:
        scope = self.cfg.get(company.lower()) or self.cfg.get(company) or {}
        out: List[CandidateKey] = []
        for item in scope.get(field_name) or []:
            if isinstance(item, dict):
                out.append(CandidateKey(str(item["key"]), item.get("pattern"), int(item.get("group", 1))))
            else:
                out.append(CandidateKey(str(item)))
        return out

    def apply(self, company: str, specs: Dict[Any, FieldCandidateSpec]) -> Dict[Any, FieldCandidateSpec]:
        if not self.cfg:
            return specs
        out = {}
        for f, spec in specs.items():
            extra = self.extra_candidates(company, spec.field)
            out[f] = spec.with_candidates(extra) if extra else spec
        return out
