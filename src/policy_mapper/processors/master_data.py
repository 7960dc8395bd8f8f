# src/policy_mapper/processors/master_data.py
"""
Conciliación de valores escaneados contra catálogos maestros.

Orden de decisión:
  1) coincidencia exacta (sin mayúsculas ni tildes) en nombre o código -> 1.0
  2) reglas por palabra clave (DIESEL -> GASOIL, TARJETA -> T, ...)
  3) similitud difusa con rapidfuzz (token_set_ratio), top-K alternativas
  4) valor por defecto del catálogo, o issue si no lo hay
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from policy_mapper.models.canonical import (
    AlternativeSuggestion,
    FieldMappingIssue,
    FieldSuggestion,
    IssueSeverity,
    IssueType,
    MatchSource,
)
from policy_mapper.parsers.types import CatalogEntry
from policy_mapper.pipelines.normalizers import normalize_text
from policy_mapper.settings import DEFAULT_CONFIG, MappingConfig

logger = logging.getLogger(__name__)

# campo -> [(palabras clave en el texto, fragmento del nombre en catálogo)]
KEYWORD_RULES: Dict[str, List[Tuple[Tuple[str, ...], str]]] = {
    "combustible": [
        (("gasoil", "diesel"), "gasoil"),
        (("gasolina", "nafta"), "gasolina"),
        (("electrico",), "electrico"),
        (("hibrido",), "hibrido"),
    ],
    "destino": [
        (("particular",), "particular"),
        (("comercial", "trabajo"), "comercial"),
    ],
    "calidad": [
        (("propietario",), "propietario"),
        (("arrendatario",), "arrendatario"),
    ],
    "categoria": [
        (("automovil", "auto"), "automovil"),
        (("camioneta", "pick"), "camioneta"),
        (("moto",), "moto"),
    ],
    "tarifa": [
        (("todo riesgo",), "todo riesgo"),
        (("terceros",), "terceros"),
    ],
}
RULE_CONFIDENCE = 0.9

# Forma de pago: (palabras clave, código, etiqueta, confianza)
PAYMENT_METHOD_RULES = [
    (("tarjeta", "credito"), "T", "Tarjeta de Crédito", 0.90),
    (("contado", "efectivo"), "1", "Contado", 0.90),
    (("transferencia", "debito"), "B", "Transferencia bancaria", 0.85),
]
PAYMENT_METHOD_DEFAULT = ("1", "Contado", 0.50)

# Ruido habitual del OCR antes de comparar
_FIELD_NOISE = {
    "departamento": re.compile(r"\b(departamento|dpto|depto)\b\.?", re.IGNORECASE),
}


class CatalogMatcher:
    """Sugiere el elemento de catálogo que corresponde a un texto escaneado"""

    def __init__(self, config: Optional[MappingConfig] = None):
        self.config = config or DEFAULT_CONFIG

    # ==================== API ====================

    def suggest(
        self,
        field_name: str,
        scanned: str,
        catalog: Sequence[CatalogEntry],
        default: Optional[CatalogEntry] = None,
    ) -> Optional[FieldSuggestion]:
        suggestion, _ = self.reconcile(field_name, scanned, catalog, default)
        return suggestion

    def reconcile(
        self,
        field_name: str,
        scanned: str,
        catalog: Sequence[CatalogEntry],
        default: Optional[CatalogEntry] = None,
        required: bool = False,
    ) -> Tuple[Optional[FieldSuggestion], List[FieldMappingIssue]]:
        """Devuelve (sugerencia o None, issues asociados). Nunca lanza."""
        issues: List[FieldMappingIssue] = []
        query = self._clean(field_name, scanned)
        if not query:
            return None, issues

        threshold = self.config.acceptance_threshold(field_name)

        # 1) exacta
        exact = self._exact(query, catalog)
        if exact is not None:
            return self._make(field_name, scanned, exact, 1.0, MatchSource.EXACT, [], threshold), issues

        # 2) reglas por palabra clave
        ruled = self._by_rule(field_name, query, catalog)
        if ruled is not None:
            return self._make(field_name, scanned, ruled, RULE_CONFIDENCE, MatchSource.RULE, [], threshold), issues

        # 3) difusa
        ranked = self.rank(query, catalog)
        alternatives = [
            AlternativeSuggestion(id=e.id, label=e.name, confidence=round(s, 4))
            for e, s in ranked[: self.config.TOP_K_ALTERNATIVES]
        ]
        best = ranked[0] if ranked else None

        if best is not None and best[1] >= self.config.MIN_CONFIDENCE_FLOOR:
            entry, score = best
            suggestion = self._make(
                field_name, scanned, entry, score, MatchSource.FUZZY, alternatives[1:], threshold
            )
            if len(ranked) > 1 and score - ranked[1][1] <= self.config.AMBIGUITY_MARGIN:
                issues.append(FieldMappingIssue(
                    field=field_name,
                    scanned_value=scanned,
                    issue_type=IssueType.AMBIGUOUS,
                    severity=IssueSeverity.WARNING,
                    is_required=required,
                    description=f"'{entry.name}' y '{ranked[1][0].name}' coinciden casi por igual",
                    suggested_value=entry.id,
                ))
            elif not suggestion.accepted:
                issues.append(FieldMappingIssue(
                    field=field_name,
                    scanned_value=scanned,
                    issue_type=IssueType.LOW_CONFIDENCE,
                    severity=IssueSeverity.WARNING,
                    is_required=required,
                    description=f"Confianza {score:.2f} menor a {threshold:.2f}",
                    suggested_value=entry.id,
                ))
            return suggestion, issues

        # 4) por defecto
        if default is not None:
            logger.debug(f"{field_name}: '{scanned}' sin coincidencia, se usa default {default.name}")
            suggestion = self._make(
                field_name, scanned, default, self.config.DEFAULT_MATCH_CONFIDENCE,
                MatchSource.DEFAULT, alternatives, threshold,
            )
            return suggestion, issues

        weak = [a for a in alternatives if a.confidence > 0]
        issues.append(FieldMappingIssue(
            field=field_name,
            scanned_value=scanned,
            issue_type=IssueType.AMBIGUOUS if len(weak) > 1 else IssueType.MISSING,
            severity=IssueSeverity.ERROR if required else IssueSeverity.WARNING,
            is_required=required,
            description=f"Sin coincidencia en catálogo para '{scanned}'",
            suggested_value=weak[0].id if weak else None,
        ))
        return None, issues

    def rank(self, query: str, catalog: Sequence[CatalogEntry]) -> List[Tuple[CatalogEntry, float]]:
        """Catálogo ordenado por similitud (0..FUZZY_MAX_CONFIDENCE), mayor primero"""
        cap = self.config.FUZZY_MAX_CONFIDENCE
        scored = []
        for entry in catalog:
            s = fuzz.token_set_ratio(query, normalize_text(entry.name)) / 100.0
            if entry.code:
                s = max(s, fuzz.token_set_ratio(query, normalize_text(entry.code)) / 100.0)
            scored.append((entry, min(s, cap)))
        scored.sort(key=lambda p: p[1], reverse=True)
        return scored

    # ==================== Reglas ====================

    def payment_method(self, scanned: str, catalog: Sequence[CatalogEntry] = ()) -> FieldSuggestion:
        """Forma de pago por palabras clave; sin coincidencia -> Contado"""
        text = normalize_text(scanned)
        exact = self._exact(text, catalog) if text else None
        if exact is not None:
            return self._make("forma_pago", scanned, exact, 1.0, MatchSource.EXACT, [], self.config.ACCEPTANCE_THRESHOLD)

        for words, code, label, conf in PAYMENT_METHOD_RULES:
            if any(w in text for w in words):
                return FieldSuggestion(
                    field="forma_pago", scanned_value=scanned, suggested_id=code,
                    suggested_label=self._label(code, label, catalog), confidence=conf,
                    source=MatchSource.RULE, accepted=conf >= self.config.ACCEPTANCE_THRESHOLD,
                )
        code, label, conf = PAYMENT_METHOD_DEFAULT
        return FieldSuggestion(
            field="forma_pago", scanned_value=scanned, suggested_id=code,
            suggested_label=self._label(code, label, catalog), confidence=conf,
            source=MatchSource.DEFAULT, accepted=False,
        )

    # ==================== internos ====================

    def _clean(self, field_name: str, scanned: str) -> str:
        text = scanned or ""
        noise = _FIELD_NOISE.get(field_name)
        if noise is not None:
            text = noise.sub(" ", text)
        return normalize_text(text)

    @staticmethod
    def _exact(query: str, catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
        for entry in catalog:
            if normalize_text(entry.name) == query or (entry.code and normalize_text(entry.code) == query):
                return entry
        return None

    @staticmethod
    def _by_rule(field_name: str, query: str, catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
        for words, fragment in KEYWORD_RULES.get(field_name, []):
            if any(re.search(r"\b%s" % re.escape(w), query) for w in words):
                hit = next((e for e in catalog if fragment in normalize_text(e.name)), None)
                if hit is not None:
                    return hit
        return None

    @staticmethod
    def _label(code: str, fallback: str, catalog: Sequence[CatalogEntry]) -> str:
        hit = next((e for e in catalog if e.id == code or e.code == code), None)
        return hit.name if hit else fallback

    @staticmethod
    def _make(field_name, scanned, entry, confidence, source, alternatives, threshold) -> FieldSuggestion:
        return FieldSuggestion(
            field=field_name,
            scanned_value=scanned,
            suggested_id=entry.id,
            suggested_label=entry.name,
            confidence=round(confidence, 4),
            source=source,
            alternatives=alternatives,
            accepted=confidence >= threshold,
        )
