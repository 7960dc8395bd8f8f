# src/policy_mapper/processors/installments.py
"""
Cronograma de cuotas.

El monto por cuota se redondea a centavos y la última cuota absorbe la
diferencia, de modo que la suma coincide exactamente con el total.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional

from dateutil.relativedelta import relativedelta

from policy_mapper.models.canonical import Installment, InstallmentSchedule
from policy_mapper.pipelines.normalizers import as_text, parse_amount, parse_date
from policy_mapper.settings import DEFAULT_CONFIG, MappingConfig
from policy_mapper.utils.errors import ValueNotFound

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _due_dates(count: int, start_date: Optional[date], today: Optional[date],
               fallback_days: int) -> List[date]:
    if start_date is not None:
        return [start_date + relativedelta(months=i) for i in range(count)]
    # sin fecha de inicio confiable: pasos de N días desde hoy
    base = today or date.today()
    return [base + timedelta(days=fallback_days * (i + 1)) for i in range(count)]


def build_schedule(
    total: Decimal,
    count: int,
    start_date: Optional[date] = None,
    today: Optional[date] = None,
    config: MappingConfig = DEFAULT_CONFIG,
) -> InstallmentSchedule:
    if count < 1:
        raise ValueError(f"La cantidad de cuotas debe ser >= 1 (recibido {count})")
    total = Decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)

    per = (total / count).quantize(CENT, rounding=ROUND_HALF_UP)
    last = total - per * (count - 1)
    dues = _due_dates(count, start_date, today, config.FALLBACK_INSTALLMENT_DAYS)

    installments = [
        Installment(number=i + 1, due_date=dues[i], amount=per if i < count - 1 else last)
        for i in range(count)
    ]
    return InstallmentSchedule(total=total, count=count, installments=installments, matches_total=True)


def scanned_installments(record: Mapping[str, Any], count: int,
                         swap_day_year: bool = True) -> Dict[int, Dict[str, Any]]:
    """Cuotas reales del registro: índice -> {'due_date', 'amount'} (sólo lo legible)"""
    found: Dict[int, Dict[str, Any]] = {}
    for i in range(count):
        entry: Dict[str, Any] = {}
        due_raw = as_text(record.get(f"pago.cuotas[{i}].vencimiento"))
        amount_raw = as_text(record.get(f"pago.cuotas[{i}].prima"))
        if due_raw:
            try:
                entry["due_date"] = parse_date(due_raw, swap_day_year=swap_day_year)
            except ValueNotFound:
                logger.debug(f"Cuota {i + 1}: vencimiento ilegible '{due_raw}'")
        if amount_raw:
            try:
                entry["amount"] = parse_amount(amount_raw).quantize(CENT, rounding=ROUND_HALF_UP)
            except ValueNotFound:
                logger.debug(f"Cuota {i + 1}: monto ilegible '{amount_raw}'")
        if entry:
            found[i] = entry
    return found


def schedule_from_record(
    record: Mapping[str, Any],
    total: Decimal,
    count: int,
    start_date: Optional[date] = None,
    today: Optional[date] = None,
    config: MappingConfig = DEFAULT_CONFIG,
) -> InstallmentSchedule:
    """
    Prefiere fechas y montos escaneados; completa con valores calculados.
    Si la última cuota es calculada, absorbe total - suma(resto).
    """
    computed = build_schedule(total, count, start_date, today, config)
    real = scanned_installments(record, count, config.DATE_SWAP_DAY_YEAR)
    if not real:
        return computed

    merged: List[Installment] = []
    for inst in computed.installments:
        r = real.get(inst.number - 1, {})
        merged.append(Installment(
            number=inst.number,
            due_date=r.get("due_date", inst.due_date),
            amount=r.get("amount", inst.amount),
            source="scanned" if r else "computed",
        ))

    last_has_amount = "amount" in real.get(count - 1, {})
    if not last_has_amount:
        rest = sum((i.amount for i in merged[:-1]), Decimal("0"))
        if computed.total - rest > 0:
            merged[-1] = merged[-1].model_copy(update={"amount": computed.total - rest})

    amounts = sum((i.amount for i in merged), Decimal("0"))
    matches = amounts == computed.total
    if not matches:
        logger.warning(f"Cuotas escaneadas suman {amounts} y el total es {computed.total}")
    logger.info(f"Cronograma: {len(real)} cuotas escaneadas de {count}")
    return InstallmentSchedule(total=computed.total, count=count, installments=merged, matches_total=matches)
