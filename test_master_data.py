#!/usr/bin/env python3
"""
Pruebas de conciliación contra catálogos maestros y métricas de calidad
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent / "src"))

from policy_mapper.models.canonical import (
    FieldMappingIssue,
    FieldSuggestion,
    IssueSeverity,
    IssueType,
    MappedPolicyData,
    MatchSource,
)
from policy_mapper.parsers.types import CatalogEntry, MasterDataCatalogs
from policy_mapper.processors.master_data import CatalogMatcher
from policy_mapper.processors.metrics import compute_metrics, is_complete, missing_critical_fields
from policy_mapper.settings import DEFAULT_CONFIG, MappingConfig, MappingQuality

FUELS = [
    CatalogEntry(id="1", code="NAF", name="Gasolina"),
    CatalogEntry(id="2", code="GO", name="Gasoil"),
    CatalogEntry(id="3", name="Eléctrico"),
]
DEPARTMENTS = [
    CatalogEntry(id="10", name="Montevideo"),
    CatalogEntry(id="11", name="Canelones"),
    CatalogEntry(id="12", name="Maldonado"),
]


def test_exact_match_is_full_confidence():
    suggestion, issues = CatalogMatcher().reconcile("combustible", "GÁSOIL", FUELS)
    assert suggestion.suggested_id == "2"
    assert suggestion.confidence == 1.0
    assert suggestion.source == MatchSource.EXACT
    assert suggestion.accepted
    assert issues == []


def test_exact_match_on_code():
    suggestion = CatalogMatcher().suggest("combustible", "naf", FUELS)
    assert suggestion.suggested_id == "1"
    assert suggestion.source == MatchSource.EXACT


def test_keyword_rule():
    suggestion, issues = CatalogMatcher().reconcile("combustible", "DIESEL", FUELS)
    assert suggestion.suggested_label == "Gasoil"
    assert suggestion.source == MatchSource.RULE
    assert suggestion.confidence == pytest.approx(0.9)
    assert issues == []


def test_fuzzy_match_strips_department_noise():
    suggestion, issues = CatalogMatcher().reconcile("departamento", "Depto. Montevideo Centro", DEPARTMENTS)
    assert suggestion.suggested_id == "10"
    assert suggestion.source == MatchSource.FUZZY
    # sólo una coincidencia exacta llega a 1.0
    assert suggestion.confidence == pytest.approx(0.95)
    assert suggestion.accepted
    assert len(suggestion.alternatives) <= DEFAULT_CONFIG.TOP_K_ALTERNATIVES - 1
    assert issues == []


def test_field_threshold_marks_low_confidence():
    config = MappingConfig(FIELD_ACCEPTANCE_THRESHOLDS={"departamento": 0.99})
    suggestion, issues = CatalogMatcher(config).reconcile("departamento", "Montevideo Centro", DEPARTMENTS)
    assert not suggestion.accepted
    assert [i.issue_type for i in issues] == [IssueType.LOW_CONFIDENCE]


def test_tied_candidates_are_ambiguous():
    clients = [CatalogEntry(id="1", name="Juan Perez"), CatalogEntry(id="2", name="Juan Pereira")]
    suggestion, issues = CatalogMatcher().reconcile("cliente", "Juan", clients)
    assert suggestion is not None
    assert issues[0].issue_type == IssueType.AMBIGUOUS


def test_unmatched_uses_catalog_default():
    suggestion, issues = CatalogMatcher().reconcile("combustible", "xyzzy", FUELS, default=FUELS[0])
    assert suggestion.suggested_id == "1"
    assert suggestion.source == MatchSource.DEFAULT
    assert suggestion.confidence == DEFAULT_CONFIG.DEFAULT_MATCH_CONFIDENCE
    assert not suggestion.accepted
    assert issues == []


def test_unmatched_without_default_is_an_issue():
    suggestion, issues = CatalogMatcher().reconcile("combustible", "xyzzy", FUELS)
    assert suggestion is None
    assert len(issues) == 1
    assert issues[0].issue_type in (IssueType.MISSING, IssueType.AMBIGUOUS)
    assert issues[0].severity == IssueSeverity.WARNING

    _, issues = CatalogMatcher().reconcile("combustible", "xyzzy", FUELS, required=True)
    assert issues[0].severity == IssueSeverity.ERROR


def test_empty_scan_is_skipped():
    assert CatalogMatcher().reconcile("combustible", "   ", FUELS) == (None, [])


@pytest.mark.parametrize("scanned,code,confidence,source", [
    ("TARJETA VISA", "T", 0.90, MatchSource.RULE),
    ("Efectivo", "1", 0.90, MatchSource.RULE),
    ("Débito automático", "B", 0.85, MatchSource.RULE),
    ("Cheque", "1", 0.50, MatchSource.DEFAULT),
])
def test_payment_method_rules(scanned, code, confidence, source):
    suggestion = CatalogMatcher().payment_method(scanned)
    assert suggestion.suggested_id == code
    assert suggestion.confidence == pytest.approx(confidence)
    assert suggestion.source == source


def test_payment_method_label_from_catalog():
    catalog = [CatalogEntry(id="T", name="Tarjeta Crédito OCA")]
    suggestion = CatalogMatcher().payment_method("pago con tarjeta", catalog)
    assert suggestion.suggested_label == "Tarjeta Crédito OCA"


def test_catalogs_from_dict():
    catalogs = MasterDataCatalogs.from_dict({
        "fuels": [{"id": 1, "code": "NAF", "name": "Gasolina"}, {"id": 2, "name": "Gasoil"}],
        "defaults": {"fuels": 1},
    })
    assert catalogs.catalog_for("combustible")[1].id == "2"
    assert catalogs.default_for("combustible").name == "Gasolina"
    assert catalogs.default_for("departamento") is None
    assert catalogs.catalog_for("inexistente") == []


# ==================== MÉTRICAS ====================

@pytest.mark.parametrize("confidence,quality", [
    (0.95, MappingQuality.EXCELLENT),
    (0.9, MappingQuality.EXCELLENT),
    (0.75, MappingQuality.GOOD),
    (0.5, MappingQuality.ACCEPTABLE),
    (0.3, MappingQuality.NEEDS_IMPROVEMENT),
    (0.1, MappingQuality.PROBLEMATIC),
])
def test_quality_buckets(confidence, quality):
    assert DEFAULT_CONFIG.quality_for(confidence) == quality


def _complete_data(**kw):
    base = dict(
        numero_poliza="1234567",
        marca="VOLKSWAGEN",
        fecha_desde=date(2024, 1, 15),
        fecha_hasta=date(2025, 1, 15),
        prima_comercial=Decimal("12000.00"),
        raw_values={"numero_poliza": "1234567", "marca": "VOLKSWAGEN"},
    )
    base.update(kw)
    return MappedPolicyData(**base)


def test_metrics_without_suggestions_use_completion():
    metrics = compute_metrics({"a": 1, "b": 2, "c": 3}, _complete_data(), [], [])
    assert metrics.missing_critical_fields == []
    assert metrics.completion_percentage == 100.0
    assert metrics.overall_confidence == 1.0
    assert metrics.mapping_quality == MappingQuality.EXCELLENT
    assert metrics.total_fields_scanned == 3
    assert metrics.fields_mapped == 2


def test_metrics_average_suggestion_confidence():
    suggestions = [
        FieldSuggestion(field="combustible", scanned_value="x", suggested_id="1", suggested_label="x",
                        confidence=1.0, source=MatchSource.EXACT, accepted=True),
        FieldSuggestion(field="departamento", scanned_value="y", suggested_id="2", suggested_label="y",
                        confidence=0.5, source=MatchSource.DEFAULT, accepted=False),
    ]
    metrics = compute_metrics({}, _complete_data(), [], suggestions)
    assert metrics.overall_confidence == 0.75
    assert metrics.mapping_quality == MappingQuality.GOOD
    assert metrics.fields_requiring_attention == 1
    assert metrics.category_breakdown["maestros"].found == 2


def test_unresolved_fields_count_as_zero_confidence():
    suggestions = [
        FieldSuggestion(field="combustible", scanned_value="DIESEL", suggested_id="2", suggested_label="Gasoil",
                        confidence=0.9, source=MatchSource.RULE, accepted=True),
    ]
    metrics = compute_metrics({}, _complete_data(), [], suggestions, unresolved=["cliente"])
    assert metrics.overall_confidence == pytest.approx(0.45)
    assert metrics.mapping_quality == MappingQuality.NEEDS_IMPROVEMENT
    assert metrics.fields_requiring_attention == 1


def test_missing_critical_groups_and_completion():
    data = _complete_data(numero_poliza="12345", prima_comercial=None)
    assert missing_critical_fields(data) == ["Número de Póliza", "Información de Premio"]

    metrics = compute_metrics({}, data, [], [])
    assert metrics.completion_percentage == 50.0
    assert not is_complete(metrics, [])


def test_error_issue_blocks_completion():
    metrics = compute_metrics({}, _complete_data(), [], [])
    error = FieldMappingIssue(field="fecha_desde", issue_type=IssueType.INVALID_FORMAT,
                              severity=IssueSeverity.ERROR, is_required=True)
    assert is_complete(metrics, [])
    assert not is_complete(metrics, [error])
