# src/policy_mapper/processors/observations.py
"""
Armado de observaciones para la póliza (nueva, renovación o cambio) y
hallazgos automáticos sobre los datos normalizados.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from policy_mapper.models.canonical import (
    CanonicalField,
    InstallmentSchedule,
    MappedPolicyData,
    ObservationSection,
    ObservationsDocument,
)
from policy_mapper.pipelines.normalizers import format_amount, format_date, parse_amount
from policy_mapper.settings import DEFAULT_CONFIG, MappingConfig, MappingIntent
from policy_mapper.utils.validators import PLATE_PLACEHOLDERS, PolicyDataValidator

logger = logging.getLogger(__name__)

AUTO_HEADER = "Generado desde escaneo automático."
# Textos que inserta el propio sistema y no deben volver como nota del usuario
BOILERPLATE_MARKERS = ("Renovación automática", AUTO_HEADER)

CHANGE_LABELS = {
    CanonicalField.VEHICLE_BRAND: "Marca del vehículo",
    CanonicalField.VEHICLE_MODEL: "Modelo del vehículo",
    CanonicalField.VEHICLE_YEAR: "Año del vehículo",
    CanonicalField.PREMIUM: "Premio",
    CanonicalField.TOTAL_AMOUNT: "Monto total",
    CanonicalField.INSTALLMENT_COUNT: "Cantidad de cuotas",
}
_MONEY_FIELDS = (CanonicalField.PREMIUM, CanonicalField.TOTAL_AMOUNT)


@dataclass
class ObservationsContext:
    """Todo lo que necesita el generador para una intención dada"""
    schedule: Optional[InstallmentSchedule] = None
    user_notes: Optional[str] = None
    user_comments: Optional[str] = None
    previous_policy_number: Optional[str] = None
    previous_policy_id: Optional[str] = None
    previous_end_date: Optional[date] = None
    change_type: Optional[str] = None
    detected_changes: Dict[str, str] = field(default_factory=dict)
    findings: List[str] = field(default_factory=list)


def money(v: Decimal) -> str:
    return f"${format_amount(v)}"


def detect_changes(data: MappedPolicyData, overrides: Mapping[Any, Any]) -> Dict[str, str]:
    """
    Etiqueta -> nuevo valor, para cada override que difiere de lo escaneado.
    Los importes pueden llegar ya convertidos o como texto ('12.500,00').
    """
    changes: Dict[str, str] = {}
    for f, label in CHANGE_LABELS.items():
        new = overrides.get(f, overrides.get(f.value))
        if new in (None, "", 0):
            continue
        if f in _MONEY_FIELDS:
            new_v = new if isinstance(new, Decimal) else parse_amount(new)
            if new_v == data.value_of(f):
                continue
            changes[label] = money(new_v)
        else:
            if str(new) == str(data.value_of(f) or ""):
                continue
            changes[label] = str(new)
    return changes


class ObservationsGenerator:
    """Construye el documento de observaciones por intención"""

    def build(self, intent: MappingIntent, ctx: ObservationsContext) -> ObservationsDocument:
        sections: List[ObservationSection] = [ObservationSection(lines=self._header(intent, ctx))]

        if intent == MappingIntent.MODIFY and ctx.detected_changes:
            sections.append(ObservationSection(
                title="CAMBIOS REALIZADOS:",
                lines=[f"- {k}: {v}" for k, v in ctx.detected_changes.items()],
            ))

        if ctx.schedule is not None:
            sections.append(self.schedule_section(ctx.schedule))

        if ctx.findings:
            sections.append(findings_section(ctx.findings))

        notes = self.user_notes(ctx.user_notes, ctx.user_comments)
        if notes:
            sections.append(ObservationSection(title="OBSERVACIONES ADICIONALES:", lines=notes))

        doc = ObservationsDocument(intent=intent, sections=sections)
        logger.debug(f"Observaciones generadas ({intent.value}): {len(doc.text)} caracteres")
        return doc

    def _header(self, intent: MappingIntent, ctx: ObservationsContext) -> List[str]:
        if intent == MappingIntent.RENEW:
            lines = [f"Renovación de Póliza {ctx.previous_policy_number or '-'} (ID: {ctx.previous_policy_id or '-'})"]
            if ctx.previous_end_date is not None:
                lines.append(f"Vencimiento anterior: {format_date(ctx.previous_end_date)}")
            return lines
        if intent == MappingIntent.MODIFY:
            return [
                f"Cambio de Póliza {ctx.previous_policy_number or '-'} (ID: {ctx.previous_policy_id or '-'})",
                f"Tipo de cambio: {ctx.change_type or 'No especificado'}",
            ]
        return [AUTO_HEADER]

    @staticmethod
    def schedule_section(schedule: InstallmentSchedule) -> ObservationSection:
        if schedule.count <= 1:
            return ObservationSection(lines=[f"Pago contado: {money(schedule.total)}"])
        lines = [f"Total: {money(schedule.total)} en {schedule.count} cuotas"]
        lines += [
            f"Cuota {i.number:02d}: {format_date(i.due_date)} - {money(i.amount)}"
            for i in schedule.installments
        ]
        lines.append("=== FIN CRONOGRAMA ===")
        return ObservationSection(title="CRONOGRAMA DE CUOTAS", lines=lines)

    @staticmethod
    def user_notes(observations: Optional[str], comments: Optional[str]) -> List[str]:
        """Notas del usuario sin duplicados ni texto autogenerado"""
        out: List[str] = []
        for text in (observations, comments):
            for line in (text or "").splitlines():
                line = line.strip()
                if not line or any(m in line for m in BOILERPLATE_MARKERS):
                    continue
                if line not in out:
                    out.append(line)
        return out


# ==================== HALLAZGOS AUTOMÁTICOS ====================

def automatic_findings(data: MappedPolicyData, config: MappingConfig = DEFAULT_CONFIG) -> List[str]:
    """Avisos sobre los datos normalizados. Nunca bloquean el procesamiento."""
    findings: List[str] = []

    if not data.matricula or data.matricula.upper() in PLATE_PLACEHOLDERS:
        findings.append("ATENCIÓN: Matrícula del vehículo no detectada correctamente")

    if data.fecha_desde and data.fecha_hasta:
        ok, _ = PolicyDataValidator.validate_date_range(data.fecha_desde, data.fecha_hasta)
        if not ok:
            findings.append("ATENCIÓN: Fechas de vigencia inconsistentes - Revisar manualmente")
        else:
            days = (data.fecha_hasta - data.fecha_desde).days
            if days > config.MAX_VALIDITY_DAYS:
                findings.append(f"NOTA: Vigencia extendida detectada ({days} días) - Verificar si es correcto")

    premio = data.prima_comercial
    if premio is not None:
        if premio > config.PREMIUM_HIGH:
            findings.append(f"ATENCIÓN: Premio elevado ({money(premio)}) - Verificar monto")
        elif premio < config.PREMIUM_LOW:
            findings.append(f"ATENCIÓN: Premio bajo ({money(premio)}) - Verificar monto")

    return findings


def findings_section(findings: List[str]) -> ObservationSection:
    return ObservationSection(title="OBSERVACIONES AUTOMÁTICAS:", lines=list(findings))


def combine_observations(findings: List[str], notes: Optional[str] = None,
                         comments: Optional[str] = None) -> str:
    """Texto plano con hallazgos, notas y comentarios del usuario"""
    parts: List[str] = []
    if findings:
        parts.append(findings_section(findings).render())
    if notes and notes.strip():
        if parts:
            parts.append("")
        parts.append("NOTAS DEL USUARIO:")
        parts.append(notes.strip())
    if comments and comments.strip():
        if parts:
            parts.append("")
        parts.append("COMENTARIOS:")
        parts.append(comments.strip())
    return "\n".join(parts)
