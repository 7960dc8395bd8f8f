# src/policy_mapper/processors/metrics.py
"""
Métricas de calidad de un mapeo: conteos, confianza global y campos críticos.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from policy_mapper.models.canonical import (
    CategoryMetric,
    FieldMappingIssue,
    FieldSuggestion,
    IssueSeverity,
    MappedPolicyData,
    MappingMetrics,
)
from policy_mapper.settings import CRITICAL_FIELD_GROUPS, DEFAULT_CONFIG, FIELD_CATEGORIES, MappingConfig
from policy_mapper.utils.validators import PolicyDataValidator


def missing_critical_fields(data: MappedPolicyData, config: MappingConfig = DEFAULT_CONFIG) -> List[str]:
    missing = []
    ok, _ = PolicyDataValidator.validate_policy_number(data.numero_poliza or "", config.MIN_POLICY_NUMBER_LENGTH)
    if not ok:
        missing.append("Número de Póliza")
    if not (data.marca or data.modelo):
        missing.append("Información del Vehículo")
    if data.fecha_desde is None or data.fecha_hasta is None:
        missing.append("Rango de Fechas")
    if data.prima_comercial is None and data.premio_total is None:
        missing.append("Información de Premio")
    return missing


def category_breakdown(data: MappedPolicyData, suggestions: Sequence[FieldSuggestion]) -> Dict[str, CategoryMetric]:
    suggested = {s.field for s in suggestions}
    out = {}
    for category, fields in FIELD_CATEGORIES.items():
        found = sum(1 for f in fields if f in suggested or data.raw_values.get(f))
        out[category] = CategoryMetric(found=found, total=len(fields))
    return out


def compute_metrics(
    record: Mapping[str, Any],
    data: MappedPolicyData,
    issues: Sequence[FieldMappingIssue],
    suggestions: Sequence[FieldSuggestion],
    config: MappingConfig = DEFAULT_CONFIG,
    unresolved: Sequence[str] = (),
) -> MappingMetrics:
    """`unresolved`: campos que se intentaron conciliar sin resultado (cuentan 0.0)"""
    missing = missing_critical_fields(data, config)
    completion = 100.0 * (len(CRITICAL_FIELD_GROUPS) - len(missing)) / len(CRITICAL_FIELD_GROUPS)

    attempted = len(suggestions) + len(unresolved)
    if attempted:
        overall = sum(s.confidence for s in suggestions) / attempted
    else:
        # nada que conciliar: la confianza es la completitud de los críticos
        overall = completion / 100.0

    fields_with_issues = {i.field for i in issues}
    attention = {
        i.field for i in issues
        if i.severity == IssueSeverity.ERROR or i.is_required
    }
    attention.update(s.field for s in suggestions if not s.accepted)
    attention.update(unresolved)

    return MappingMetrics(
        total_fields_scanned=len(record),
        fields_mapped=len(data.raw_values),
        fields_with_issues=len(fields_with_issues),
        fields_requiring_attention=len(attention),
        overall_confidence=round(overall, 4),
        mapping_quality=config.quality_for(overall),
        missing_critical_fields=missing,
        completion_percentage=round(completion, 1),
        category_breakdown=category_breakdown(data, suggestions),
    )


def is_complete(metrics: MappingMetrics, issues: Sequence[FieldMappingIssue],
                config: MappingConfig = DEFAULT_CONFIG) -> bool:
    """Críticos suficientes y ningún error bloqueante"""
    has_errors = any(i.severity == IssueSeverity.ERROR for i in issues)
    return metrics.completion_percentage >= config.COMPLETION_THRESHOLD and not has_errors
