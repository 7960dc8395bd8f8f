# src/policy_mapper/pipelines/mapper.py
"""
Orquestador del mapeo de una póliza escaneada.

    START -> STRATEGY_SELECTED -> FIELDS_RESOLVED -> RECONCILED
          -> METRICS_COMPUTED -> DONE

Un campo que no se resuelve se registra como issue y la corrida sigue.
Sólo un registro ausente o que no es un mapa aborta (StructuralError).
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from policy_mapper.extractors.company_strategies import MappingStrategy, StrategyFactory, clean_text
from policy_mapper.extractors.plate_extractor import PlateExtractor
from policy_mapper.models.canonical import (
    RECONCILED_FIELDS,
    CanonicalField,
    FieldMappingIssue,
    FieldSuggestion,
    IntentRequest,
    IssueSeverity,
    IssueType,
    MappedPolicyData,
    MappingResult,
    MappingStage,
    PolicyValidationResult,
)
from policy_mapper.parsers.types import MasterDataCatalogs, PolicyLookup
from policy_mapper.pipelines.field_map import FieldCandidateSpec, resolve_converted
from policy_mapper.pipelines.normalizers import as_text
from policy_mapper.processors.installments import schedule_from_record
from policy_mapper.processors.master_data import CatalogMatcher
from policy_mapper.processors.metrics import compute_metrics, is_complete
from policy_mapper.processors.observations import (
    ObservationsContext,
    ObservationsGenerator,
    automatic_findings,
    detect_changes,
)
from policy_mapper.processors.policy_conflicts import PolicyConflictChecker
from policy_mapper.settings import DEFAULT_CONFIG, MappingConfig, MappingIntent
from policy_mapper.utils.errors import StructuralError, ValueFormatError, ValueNotFound

logger = logging.getLogger(__name__)


class PolicyMappingEngine:
    """Motor sin estado: una instancia puede atender corridas en paralelo"""

    def __init__(
        self,
        config: Optional[MappingConfig] = None,
        factory: Optional[StrategyFactory] = None,
        matcher: Optional[CatalogMatcher] = None,
        observations: Optional[ObservationsGenerator] = None,
        plate_extractor: Optional[PlateExtractor] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.factory = factory or StrategyFactory(self.config)
        self.matcher = matcher or CatalogMatcher(self.config)
        self.observations = observations or ObservationsGenerator()
        self.plates = plate_extractor or PlateExtractor()

    # ==================== API ====================

    def map_policy(
        self,
        record: Optional[Mapping[str, Any]],
        company: Union[int, str, None] = None,
        catalogs: Optional[MasterDataCatalogs] = None,
        intent: MappingIntent = MappingIntent.NEW,
        request: Optional[IntentRequest] = None,
        today: Optional[date] = None,
    ) -> MappingResult:
        if record is None:
            raise StructuralError("El registro de extracción es nulo")
        if not isinstance(record, Mapping):
            raise StructuralError(f"El registro de extracción debe ser un mapa, no {type(record).__name__}")

        request = request or IntentRequest()
        stages = [MappingStage.START]

        strategy = self.factory.for_company(company)
        stages.append(self._stage(MappingStage.STRATEGY_SELECTED))

        cleaned = strategy.preprocess(record)
        values, raw, sources, issues = self.resolve_fields(strategy, cleaned)
        values = strategy.postprocess(values)
        scanned = self._build_data(values, raw, sources, strategy, company)
        stages.append(self._stage(MappingStage.FIELDS_RESOLVED))

        changes: Dict[str, str] = {}
        data = scanned
        if intent in (MappingIntent.MODIFY, MappingIntent.RENEW) and request.overrides:
            overrides, override_issues = self.convert_overrides(strategy, scanned, request.overrides)
            issues = self._merge_override_issues(issues, overrides, override_issues)
            changes = detect_changes(scanned, overrides)
            data = self._apply_overrides(scanned, overrides)

        suggestions: List[FieldSuggestion] = []
        unresolved: List[str] = []
        if catalogs is not None:
            suggestions, rec_issues, unresolved = self.reconcile(data, catalogs)
            issues.extend(rec_issues)
        stages.append(self._stage(MappingStage.RECONCILED))

        metrics = compute_metrics(record, data, issues, suggestions, self.config, unresolved)
        stages.append(self._stage(MappingStage.METRICS_COMPUTED))

        total = data.premio_total or data.prima_comercial
        schedule = None
        if total is not None:
            schedule = schedule_from_record(
                cleaned, total, data.cantidad_cuotas, data.fecha_desde, today, self.config
            )

        findings = automatic_findings(data, self.config)
        ctx = ObservationsContext(
            schedule=schedule,
            user_notes="\n".join(t for t in (request.observations, request.notes) if t),
            user_comments=request.comments,
            previous_policy_number=request.previous_policy_number,
            previous_policy_id=request.previous_policy_id,
            previous_end_date=request.previous_end_date,
            change_type=request.change_type,
            detected_changes=changes,
            findings=findings,
        )
        observations = self.observations.build(intent, ctx)
        stages.append(self._stage(MappingStage.DONE))

        logger.info(
            f"Mapeo {intent.value} ({strategy.name}): {metrics.fields_mapped} campos, "
            f"{len(issues)} issues, confianza {metrics.overall_confidence:.2f} "
            f"({metrics.mapping_quality.value})"
        )
        return MappingResult(
            intent=intent,
            data=data,
            issues=issues,
            suggestions=suggestions,
            metrics=metrics,
            schedule=schedule,
            observations=observations,
            findings=findings,
            stages=stages,
            is_complete=is_complete(metrics, issues, self.config),
        )

    def validate_intent(
        self,
        intent: MappingIntent,
        policy_number: Optional[str],
        company_id: int,
        lookup: PolicyLookup,
    ) -> PolicyValidationResult:
        return PolicyConflictChecker(lookup).check(intent, policy_number, company_id)

    # ==================== RESOLUCIÓN ====================

    def resolve_fields(
        self, strategy: MappingStrategy, record: Mapping[str, Any]
    ) -> Tuple[Dict[CanonicalField, Any], Dict[str, str], Dict[str, str], List[FieldMappingIssue]]:
        values: Dict[CanonicalField, Any] = {}
        raw: Dict[str, str] = {}
        sources: Dict[str, str] = {}
        issues: List[FieldMappingIssue] = []

        for f, spec in strategy.candidate_specs().items():
            try:
                if f == CanonicalField.VEHICLE_PLATE:
                    resolved = self.plates.extract(record, spec)
                else:
                    resolved = resolve_converted(record, spec)
            except ValueFormatError as e:
                logger.warning(f"{f.value}: valor ilegible '{e.raw_value}' en {e.source_key}")
                issues.append(FieldMappingIssue(
                    field=f.value,
                    scanned_value=e.raw_value,
                    issue_type=IssueType.INVALID_FORMAT,
                    severity=IssueSeverity.ERROR if spec.required else IssueSeverity.WARNING,
                    is_required=spec.required,
                    description=f"Formato no reconocido (clave {e.source_key})",
                    suggested_value=self._default_for(f),
                ))
                continue
            except ValueNotFound:
                issues.append(self._missing_issue(f, spec))
                continue

            values[f] = resolved.value
            raw[f.value] = resolved.raw
            sources[f.value] = resolved.source_key

        return values, raw, sources, issues

    def _missing_issue(self, f: CanonicalField, spec: FieldCandidateSpec) -> FieldMappingIssue:
        default = self._default_for(f)
        if default is not None:
            description = f"No encontrado, se usa el valor por defecto {default}"
        else:
            description = "No encontrado en ninguna clave candidata"
        return FieldMappingIssue(
            field=f.value,
            issue_type=IssueType.MISSING,
            severity=IssueSeverity.ERROR if spec.required else IssueSeverity.INFO,
            is_required=spec.required,
            description=description,
            suggested_value=default,
        )

    def _default_for(self, f: CanonicalField) -> Optional[str]:
        defaults = {
            CanonicalField.CURRENCY: self.config.DEFAULT_CURRENCY,
            CanonicalField.ENDORSEMENT: self.config.DEFAULT_ENDORSEMENT,
            CanonicalField.INSTALLMENT_COUNT: str(self.config.DEFAULT_INSTALLMENTS),
        }
        return defaults.get(f)

    def _build_data(self, values: Dict[CanonicalField, Any], raw: Dict[str, str],
                    sources: Dict[str, str], strategy: MappingStrategy,
                    company: Union[int, str, None]) -> MappedPolicyData:
        payload = {f.value: v for f, v in values.items()}
        payload.setdefault(CanonicalField.CURRENCY.value, self.config.DEFAULT_CURRENCY)
        payload.setdefault(CanonicalField.ENDORSEMENT.value, self.config.DEFAULT_ENDORSEMENT)
        payload.setdefault(CanonicalField.INSTALLMENT_COUNT.value, self.config.DEFAULT_INSTALLMENTS)
        company_id = int(company) if isinstance(company, int) or (isinstance(company, str) and company.strip().isdigit()) else None
        return MappedPolicyData(
            **payload,
            company_id=company_id,
            company_name=strategy.name,
            strategy=type(strategy).__name__,
            raw_values=raw,
            source_keys=sources,
        )

    # ==================== OVERRIDES ====================

    def convert_overrides(
        self, strategy: MappingStrategy, scanned: MappedPolicyData, overrides: Mapping[Any, Any]
    ) -> Tuple[Dict[CanonicalField, Any], List[FieldMappingIssue]]:
        """
        Pasa los valores del usuario por los mismos conversores que el escaneo.
        Un override ilegible o de un campo desconocido queda como issue y se
        mantiene el valor escaneado.
        """
        converters = strategy.converters()
        converted: Dict[CanonicalField, Any] = {}
        issues: List[FieldMappingIssue] = []

        for key, value in overrides.items():
            text = as_text(value)
            try:
                f = CanonicalField(key)
            except ValueError:
                logger.warning(f"Override ignorado, campo desconocido: {key!r}")
                issues.append(FieldMappingIssue(
                    field=str(key),
                    scanned_value=text or None,
                    issue_type=IssueType.INVALID_FORMAT,
                    severity=IssueSeverity.WARNING,
                    description="Campo desconocido, override ignorado",
                ))
                continue
            if not text:
                continue

            conv = converters.get(f)
            try:
                converted[f] = conv(text) if conv else clean_text(text)
            except (ValueNotFound, ValueError) as e:
                kept = as_text(scanned.value_of(f))
                required = f in strategy.REQUIRED
                logger.warning(f"{f.value}: override ilegible '{text}' ({e})")
                issues.append(FieldMappingIssue(
                    field=f.value,
                    scanned_value=text,
                    issue_type=IssueType.INVALID_FORMAT,
                    severity=IssueSeverity.ERROR if required and not kept else IssueSeverity.WARNING,
                    is_required=required,
                    description="Override con formato no reconocido, se mantiene el valor escaneado",
                    suggested_value=kept or None,
                ))

        return converted, issues

    @staticmethod
    def _merge_override_issues(issues: List[FieldMappingIssue], applied: Mapping[CanonicalField, Any],
                               override_issues: List[FieldMappingIssue]) -> List[FieldMappingIssue]:
        """Un issue por campo: lo aplicado borra el del escaneo, lo ilegible lo reemplaza"""
        replaced = {f.value for f in applied} | {i.field for i in override_issues}
        return [i for i in issues if i.field not in replaced] + override_issues

    @staticmethod
    def _apply_overrides(data: MappedPolicyData, overrides: Mapping[CanonicalField, Any]) -> MappedPolicyData:
        update = {f.value: v for f, v in overrides.items()}
        return MappedPolicyData(**{**data.model_dump(), **update})

    # ==================== CONCILIACIÓN ====================

    def reconcile(
        self, data: MappedPolicyData, catalogs: MasterDataCatalogs
    ) -> Tuple[List[FieldSuggestion], List[FieldMappingIssue], List[str]]:
        """Devuelve (sugerencias, issues, campos intentados sin coincidencia)"""
        suggestions: List[FieldSuggestion] = []
        issues: List[FieldMappingIssue] = []
        unresolved: List[str] = []

        pending = []
        for f in RECONCILED_FIELDS:
            scanned = data.value_of(f)
            catalog = catalogs.catalog_for(f.value)
            default = catalogs.default_for(f.value)
            if scanned and (catalog or default is not None):
                pending.append((f.value, scanned, catalog, default))
        if catalogs.currencies:
            pending.append((
                CanonicalField.CURRENCY.value, data.moneda, catalogs.currencies,
                catalogs.default_for(CanonicalField.CURRENCY.value),
            ))

        for field_name, scanned, catalog, default in pending:
            suggestion, found = self.matcher.reconcile(field_name, scanned, catalog, default)
            issues.extend(found)
            if suggestion is not None:
                suggestions.append(suggestion)
            elif found:
                unresolved.append(field_name)

        if data.forma_pago:
            suggestions.append(self.matcher.payment_method(data.forma_pago, catalogs.payment_methods))

        if unresolved:
            logger.warning(f"Sin coincidencia en catálogo: {', '.join(unresolved)}")
        return suggestions, issues, unresolved

    @staticmethod
    def _stage(stage: MappingStage) -> MappingStage:
        logger.debug(f"→ {stage.value}")
        return stage


_DEFAULT_ENGINE: Optional[PolicyMappingEngine] = None


def map_policy(record: Optional[Mapping[str, Any]], company: Union[int, str, None] = None,
               catalogs: Optional[MasterDataCatalogs] = None,
               intent: MappingIntent = MappingIntent.NEW,
               request: Optional[IntentRequest] = None) -> MappingResult:
    """Atajo con un motor compartido y la configuración por defecto"""
    global _DEFAULT_ENGINE
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = PolicyMappingEngine()
    return _DEFAULT_ENGINE.map_policy(record, company, catalogs, intent, request)
