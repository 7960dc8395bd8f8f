# src/policy_mapper/models/canonical.py
"""
Modelos del resultado de mapeo.
Todos son inmutables una vez construidos: se crean de nuevo en cada corrida.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from policy_mapper.settings import MappingIntent, MappingQuality


class CanonicalField(str, Enum):
    """Campos destino de una póliza"""
    POLICY_NUMBER = "numero_poliza"
    ENDORSEMENT = "endoso"
    START_DATE = "fecha_desde"
    END_DATE = "fecha_hasta"
    VEHICLE_BRAND = "marca"
    VEHICLE_MODEL = "modelo"
    VEHICLE_YEAR = "anio"
    VEHICLE_PLATE = "matricula"
    MOTOR_NUMBER = "motor"
    CHASSIS_NUMBER = "chasis"
    PREMIUM = "prima_comercial"
    TOTAL_AMOUNT = "premio_total"
    INSTALLMENT_COUNT = "cantidad_cuotas"
    PAYMENT_METHOD = "forma_pago"
    CURRENCY = "moneda"
    MOVEMENT_TYPE = "tipo_movimiento"
    # Campos que se concilian contra maestros
    CLIENT = "cliente"
    BROKER = "corredor"
    DEPARTMENT = "departamento"
    FUEL = "combustible"
    DESTINATION = "destino"
    CATEGORY = "categoria"
    QUALITY = "calidad"
    TARIFF = "tarifa"


# Campos cuyo valor final es un id de catálogo
RECONCILED_FIELDS = [
    CanonicalField.CLIENT,
    CanonicalField.BROKER,
    CanonicalField.DEPARTMENT,
    CanonicalField.FUEL,
    CanonicalField.DESTINATION,
    CanonicalField.CATEGORY,
    CanonicalField.QUALITY,
    CanonicalField.TARIFF,
]


class IssueType(str, Enum):
    MISSING = "missing"
    AMBIGUOUS = "ambiguous"
    INVALID_FORMAT = "invalid_format"
    LOW_CONFIDENCE = "low_confidence"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class MatchSource(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    DEFAULT = "default"
    RULE = "rule"


class MappingStage(str, Enum):
    START = "start"
    STRATEGY_SELECTED = "strategy_selected"
    FIELDS_RESOLVED = "fields_resolved"
    RECONCILED = "reconciled"
    METRICS_COMPUTED = "metrics_computed"
    DONE = "done"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# =========================
#     Datos mapeados
# =========================

class MappedPolicyData(_Frozen):
    numero_poliza: Optional[str] = None
    endoso: str = "0"
    fecha_desde: Optional[date] = None
    fecha_hasta: Optional[date] = None
    marca: Optional[str] = None
    modelo: Optional[str] = None
    anio: Optional[int] = None
    matricula: Optional[str] = None
    motor: Optional[str] = None
    chasis: Optional[str] = None
    prima_comercial: Optional[Decimal] = None
    premio_total: Optional[Decimal] = None
    cantidad_cuotas: int = 1
    forma_pago: Optional[str] = None
    moneda: str = "UYU"
    tipo_movimiento: Optional[str] = None

    # texto escaneado de los campos que se concilian
    cliente: Optional[str] = None
    corredor: Optional[str] = None
    departamento: Optional[str] = None
    combustible: Optional[str] = None
    destino: Optional[str] = None
    categoria: Optional[str] = None
    calidad: Optional[str] = None
    tarifa: Optional[str] = None

    company_id: Optional[int] = None
    company_name: Optional[str] = None
    strategy: Optional[str] = None
    # valor crudo y clave de origen de cada campo resuelto
    raw_values: Dict[str, str] = Field(default_factory=dict)
    source_keys: Dict[str, str] = Field(default_factory=dict)

    def value_of(self, f: CanonicalField) -> Any:
        return getattr(self, f.value)

    def has(self, f: CanonicalField) -> bool:
        v = self.value_of(f)
        return v is not None and v != ""


# =========================
#   Issues y sugerencias
# =========================

class FieldMappingIssue(_Frozen):
    field: str
    scanned_value: Optional[str] = None
    issue_type: IssueType
    severity: IssueSeverity = IssueSeverity.WARNING
    is_required: bool = False
    description: str = ""
    suggested_value: Optional[str] = None


class AlternativeSuggestion(_Frozen):
    id: str
    label: str
    confidence: float = Field(ge=0.0, le=1.0)


class FieldSuggestion(_Frozen):
    field: str
    scanned_value: str
    suggested_id: str
    suggested_label: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: MatchSource
    alternatives: List[AlternativeSuggestion] = Field(default_factory=list)
    accepted: bool = False


class CategoryMetric(_Frozen):
    found: int = 0
    total: int = 0

    @property
    def percentage(self) -> float:
        return round(100.0 * self.found / self.total, 1) if self.total else 0.0


class MappingMetrics(_Frozen):
    total_fields_scanned: int = 0
    fields_mapped: int = 0
    fields_with_issues: int = 0
    fields_requiring_attention: int = 0
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    mapping_quality: MappingQuality = MappingQuality.PROBLEMATIC
    missing_critical_fields: List[str] = Field(default_factory=list)
    completion_percentage: float = 0.0
    category_breakdown: Dict[str, CategoryMetric] = Field(default_factory=dict)


# =========================
#   Cuotas y observaciones
# =========================

class Installment(_Frozen):
    number: int
    due_date: date
    amount: Decimal
    source: str = "computed"  # computed | scanned


class InstallmentSchedule(_Frozen):
    total: Decimal
    count: int
    installments: List[Installment] = Field(default_factory=list)
    matches_total: bool = True

    @property
    def amounts_sum(self) -> Decimal:
        return sum((i.amount for i in self.installments), Decimal("0"))


class ObservationSection(_Frozen):
    title: Optional[str] = None
    lines: List[str] = Field(default_factory=list)

    def render(self) -> str:
        body = "\n".join(self.lines)
        return f"{self.title}\n{body}" if self.title else body


class ObservationsDocument(_Frozen):
    intent: MappingIntent
    sections: List[ObservationSection] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(s.render() for s in self.sections if s.lines or s.title)


# =========================
#   Validación y resultado
# =========================

class ExistingPolicySummary(_Frozen):
    id: str
    numero: str
    estado: Optional[str] = None
    fecha_desde: Optional[date] = None
    fecha_hasta: Optional[date] = None
    cliente_nombre: Optional[str] = None
    monto_total: Optional[Decimal] = None


class PolicyValidationResult(_Frozen):
    is_valid: bool
    error_message: Optional[str] = None
    existing_policy_id: Optional[str] = None
    existing_policy_status: Optional[str] = None
    suggested_actions: List[str] = Field(default_factory=list)
    existing_policy: Optional[ExistingPolicySummary] = None


class IntentRequest(_Frozen):
    """Datos que aporta el usuario junto al escaneo"""
    notes: Optional[str] = None
    comments: Optional[str] = None
    observations: Optional[str] = None
    previous_policy_id: Optional[str] = None
    previous_policy_number: Optional[str] = None
    previous_end_date: Optional[date] = None
    change_type: Optional[str] = None
    # campo canónico (enum o nombre) -> texto o valor; el motor lo valida al aplicarlo
    overrides: Dict[Any, Any] = Field(default_factory=dict)


class MappingResult(_Frozen):
    intent: MappingIntent
    data: MappedPolicyData
    issues: List[FieldMappingIssue] = Field(default_factory=list)
    suggestions: List[FieldSuggestion] = Field(default_factory=list)
    metrics: MappingMetrics
    schedule: Optional[InstallmentSchedule] = None
    observations: ObservationsDocument
    findings: List[str] = Field(default_factory=list)
    stages: List[MappingStage] = Field(default_factory=list)
    is_complete: bool = False

    def suggestion_for(self, f: CanonicalField) -> Optional[FieldSuggestion]:
        return next((s for s in self.suggestions if s.field == f.value), None)

    def issues_for(self, f: CanonicalField) -> List[FieldMappingIssue]:
        return [i for i in self.issues if i.field == f.value]
