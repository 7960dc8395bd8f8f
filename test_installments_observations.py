#!/usr/bin/env python3
"""
Pruebas del cronograma de cuotas, las observaciones por intención y los hallazgos automáticos
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent / "src"))

from policy_mapper.models.canonical import CanonicalField as CF
from policy_mapper.models.canonical import MappedPolicyData
from policy_mapper.processors.installments import build_schedule, schedule_from_record
from policy_mapper.processors.observations import (
    AUTO_HEADER,
    ObservationsContext,
    ObservationsGenerator,
    automatic_findings,
    combine_observations,
    detect_changes,
)
from policy_mapper.settings import MappingConfig, MappingIntent


# ==================== CRONOGRAMA ====================

def test_three_installments_from_start_date():
    schedule = build_schedule(Decimal("1000.00"), 3, date(2024, 1, 15))

    assert [i.number for i in schedule.installments] == [1, 2, 3]
    assert [i.due_date for i in schedule.installments] == [
        date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15),
    ]
    assert [i.amount for i in schedule.installments] == [
        Decimal("333.33"), Decimal("333.33"), Decimal("333.34"),
    ]
    assert schedule.amounts_sum == Decimal("1000.00")
    assert schedule.matches_total


@pytest.mark.parametrize("total,count", [
    ("100", 3),
    ("1234.57", 7),
    ("0.05", 4),
    ("99999.99", 12),
    ("14640.00", 10),
    ("500", 1),
])
def test_installments_always_sum_to_total(total, count):
    schedule = build_schedule(Decimal(total), count, date(2024, 1, 1))
    amounts = [i.amount for i in schedule.installments]

    assert len(amounts) == count
    assert sum(amounts) == Decimal(total)
    # todas salvo la última usan el mismo monto redondeado
    assert len(set(amounts[:-1])) <= 1


def test_month_end_start_date():
    schedule = build_schedule(Decimal("300"), 3, date(2024, 1, 31))
    assert [i.due_date for i in schedule.installments] == [
        date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31),
    ]


def test_without_start_date_uses_thirty_day_steps():
    schedule = build_schedule(Decimal("200"), 2, None, today=date(2024, 5, 1))
    assert [i.due_date for i in schedule.installments] == [date(2024, 5, 31), date(2024, 6, 30)]


def test_invalid_count():
    with pytest.raises(ValueError):
        build_schedule(Decimal("100"), 0, date(2024, 1, 1))


def test_scanned_installments_are_preferred():
    record = {
        "pago.cuotas[0].vencimiento": "20/01/2024",
        "pago.cuotas[0].prima": "400,00",
    }
    schedule = schedule_from_record(record, Decimal("1000.00"), 3, date(2024, 1, 15))
    first, second, last = schedule.installments

    assert (first.due_date, first.amount, first.source) == (date(2024, 1, 20), Decimal("400.00"), "scanned")
    assert (second.due_date, second.amount, second.source) == (date(2024, 2, 15), Decimal("333.33"), "computed")
    assert last.amount == Decimal("266.67")
    assert schedule.amounts_sum == Decimal("1000.00")
    assert schedule.matches_total


def test_scanned_schedule_that_does_not_add_up_keeps_literals():
    record = {
        "pago.cuotas[0].prima": "500,00",
        "pago.cuotas[1].prima": "600,00",
    }
    schedule = schedule_from_record(record, Decimal("1000.00"), 2, date(2024, 1, 15))
    assert [i.amount for i in schedule.installments] == [Decimal("500.00"), Decimal("600.00")]
    assert not schedule.matches_total


def test_record_without_installment_data_returns_computed():
    schedule = schedule_from_record({}, Decimal("90"), 3, date(2024, 1, 15))
    assert all(i.source == "computed" for i in schedule.installments)
    assert schedule.amounts_sum == Decimal("90.00")


# ==================== OBSERVACIONES ====================

def test_new_policy_observations_with_schedule():
    ctx = ObservationsContext(schedule=build_schedule(Decimal("1000.00"), 3, date(2024, 1, 15)))
    text = ObservationsGenerator().build(MappingIntent.NEW, ctx).text

    assert text.startswith(AUTO_HEADER)
    assert "CRONOGRAMA DE CUOTAS" in text
    assert "Total: $1,000.00 en 3 cuotas" in text
    assert "Cuota 01: 15/01/2024 - $333.33" in text
    assert "Cuota 03: 15/03/2024 - $333.34" in text
    assert text.rstrip().endswith("=== FIN CRONOGRAMA ===")


def test_single_payment_line():
    ctx = ObservationsContext(schedule=build_schedule(Decimal("1000.00"), 1, date(2024, 1, 15)))
    text = ObservationsGenerator().build(MappingIntent.NEW, ctx).text
    assert "Pago contado: $1,000.00" in text
    assert "CRONOGRAMA" not in text


def test_renewal_header():
    ctx = ObservationsContext(
        previous_policy_number="9876543",
        previous_policy_id="55",
        previous_end_date=date(2023, 12, 31),
        detected_changes={"Marca del vehículo": "FIAT"},
    )
    doc = ObservationsGenerator().build(MappingIntent.RENEW, ctx)

    assert doc.sections[0].lines == [
        "Renovación de Póliza 9876543 (ID: 55)",
        "Vencimiento anterior: 31/12/2023",
    ]
    # los cambios sólo se listan en un cambio de póliza
    assert "CAMBIOS REALIZADOS:" not in doc.text


def test_modification_lists_changes():
    ctx = ObservationsContext(
        previous_policy_number="1234567",
        previous_policy_id="77",
        change_type="Cambio de vehículo",
        detected_changes={"Marca del vehículo": "FIAT", "Premio": "$1,200.00"},
    )
    text = ObservationsGenerator().build(MappingIntent.MODIFY, ctx).text

    assert text.startswith("Cambio de Póliza 1234567 (ID: 77)\nTipo de cambio: Cambio de vehículo")
    assert "CAMBIOS REALIZADOS:\n- Marca del vehículo: FIAT\n- Premio: $1,200.00" in text


def test_user_notes_skip_boilerplate_and_duplicates():
    notes = ObservationsGenerator.user_notes(
        "Renovación automática de póliza 123\nCliente pidió débito\nCliente pidió débito",
        AUTO_HEADER + "\nLlamar el lunes",
    )
    assert notes == ["Cliente pidió débito", "Llamar el lunes"]

    ctx = ObservationsContext(user_notes=AUTO_HEADER)
    doc = ObservationsGenerator().build(MappingIntent.NEW, ctx)
    assert "OBSERVACIONES ADICIONALES:" not in doc.text


def test_detect_changes_reports_only_differences():
    data = MappedPolicyData(marca="VW", prima_comercial=Decimal("1000.00"))
    changes = detect_changes(data, {CF.VEHICLE_BRAND: "VW", CF.PREMIUM: "1200"})
    assert changes == {"Premio": "$1,200.00"}

    assert detect_changes(data, {"marca": "FIAT"}) == {"Marca del vehículo": "FIAT"}


def test_detect_changes_with_local_amount_format():
    data = MappedPolicyData(prima_comercial=Decimal("12500.00"))
    assert detect_changes(data, {CF.PREMIUM: "12.500,00"}) == {}
    assert detect_changes(data, {CF.PREMIUM: Decimal("13000")}) == {"Premio": "$13,000.00"}


def test_findings_section_before_user_notes():
    ctx = ObservationsContext(
        findings=["ATENCIÓN: Premio bajo ($500.00) - Verificar monto"],
        user_notes="Cliente pidió débito",
    )
    doc = ObservationsGenerator().build(MappingIntent.NEW, ctx)
    titles = [s.title for s in doc.sections]

    assert titles == [None, "OBSERVACIONES AUTOMÁTICAS:", "OBSERVACIONES ADICIONALES:"]
    assert "OBSERVACIONES AUTOMÁTICAS:\nATENCIÓN: Premio bajo ($500.00) - Verificar monto" in doc.text


# ==================== HALLAZGOS ====================

def test_findings_flag_placeholder_plate_and_dates():
    data = MappedPolicyData(
        matricula="PATENTE",
        fecha_desde=date(2024, 6, 1),
        fecha_hasta=date(2024, 1, 1),
        prima_comercial=Decimal("12000"),
    )
    findings = automatic_findings(data)
    assert "ATENCIÓN: Matrícula del vehículo no detectada correctamente" in findings
    assert "ATENCIÓN: Fechas de vigencia inconsistentes - Revisar manualmente" in findings
    assert len(findings) == 2


def test_findings_extended_validity_and_premium_band():
    data = MappedPolicyData(
        matricula="SBC1234",
        fecha_desde=date(2024, 1, 1),
        fecha_hasta=date(2025, 6, 1),
        prima_comercial=Decimal("600000"),
    )
    findings = automatic_findings(data)
    assert findings[0].startswith("NOTA: Vigencia extendida detectada (517 días)")
    assert findings[1].startswith("ATENCIÓN: Premio elevado")

    low = MappedPolicyData(matricula="SBC1234", prima_comercial=Decimal("500"))
    assert automatic_findings(low) == ["ATENCIÓN: Premio bajo ($500.00) - Verificar monto"]


def test_premium_band_is_configurable():
    # banda heurística, no una regla de negocio: se ajusta por configuración
    low = MappedPolicyData(matricula="SBC1234", prima_comercial=Decimal("500"))
    assert automatic_findings(low, MappingConfig(PREMIUM_LOW="100")) == []


def test_combine_observations():
    text = combine_observations(["ATENCIÓN: algo"], notes="nota", comments=" ")
    assert text == "OBSERVACIONES AUTOMÁTICAS:\nATENCIÓN: algo\n\nNOTAS DEL USUARIO:\nnota"
    assert combine_observations([]) == ""
