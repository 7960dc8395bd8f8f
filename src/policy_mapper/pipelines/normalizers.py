# src/policy_mapper/pipelines/normalizers.py
import re
import unicodedata
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from policy_mapper.utils.errors import ValueNotFound

# Etiquetas y monedas que el OCR deja pegadas al importe (las largas primero)
_AMOUNT_NOISE = [
    "Prima Comercial:", "Premio Total a Pagar:", "Prima:", "Premio:", "Total:",
    "PESO URUGUAYO", "PESOS", "UYU", "USD", "U$S", "$", "€",
]
_AMOUNT_NOISE_RE = re.compile("|".join(re.escape(t) for t in _AMOUNT_NOISE), re.IGNORECASE)

_UY_AMOUNT = re.compile(r"(?<![\d.,])(\d{1,3}(?:\.\d{3})*,\d{2})(?!\d)")
_STD_AMOUNT = re.compile(r"(?<![\d.,])(\d{1,3}(?:,\d{3})*\.\d{2})(?!\d)")
_ANY_NUMBER = re.compile(r"(\d+(?:[.,]\d+)?)")

# (patrón, orden de grupos día/mes/año). El primer grupo con barras admite
# 4 dígitos para recuperar lecturas invertidas como 2024/01/15
_DATE_IN = [
    (re.compile(r"(?<!\d)(\d{1,4})/(\d{1,2})/(\d{4}|\d{2})(?!\d)"), ("d", "m", "y")),
    (re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)"), ("y", "m", "d")),
    (re.compile(r"(?<!\d)(\d{1,2})-(\d{1,2})-(\d{4}|\d{2})(?!\d)"), ("d", "m", "y")),
]


def as_text(v: Any) -> str:
    """Convierte un valor escalar del registro a texto limpio ('' si no hay)"""
    if v is None:
        return ""
    if isinstance(v, (list, tuple)):
        return as_text(v[0]) if v else ""
    if isinstance(v, dict):
        return as_text(v.get("value"))
    return str(v).strip()


def normalize_text(s: str) -> str:
    """Minúsculas, sin tildes y con espacios colapsados"""
    t = "".join(c for c in unicodedata.normalize("NFD", (s or "").casefold().strip())
                if unicodedata.category(c) != "Mn")
    return re.sub(r"\s+", " ", t)


def parse_amount(s: Any) -> Decimal:
    t = as_text(s)
    if not t:
        raise ValueNotFound("Importe vacío")
    t = _AMOUNT_NOISE_RE.sub(" ", t.replace("\r", " ").replace("\n", " ")).strip()

    # 1.234,56 (uruguayo)
    m = _UY_AMOUNT.search(t)
    if m:
        return _to_decimal(m.group(1).replace(".", "").replace(",", "."))
    # 1,234.56 (estándar)
    m = _STD_AMOUNT.search(t)
    if m:
        return _to_decimal(m.group(1).replace(",", ""))
    # cualquier número suelto
    m = _ANY_NUMBER.search(t)
    if m:
        return _to_decimal(m.group(1).replace(",", "."))
    raise ValueNotFound(f"Sin importe reconocible en '{t}'")


def _to_decimal(s: str) -> Decimal:
    try:
        return Decimal(s)
    except InvalidOperation:
        raise ValueNotFound(f"Importe inválido: {s}")


def parse_date(s: Any, swap_day_year: bool = True) -> date:
    t = as_text(s)
    if not t:
        raise ValueNotFound("Fecha vacía")
    for rx, order in _DATE_IN:
        m = rx.search(t)
        if not m:
            continue
        parts = dict(zip(order, (int(g) for g in m.groups())))
        day, month, year = parts["d"], parts["m"], parts["y"]
        if swap_day_year and day > 31 and year <= 31:
            # OCR con día y año invertidos
            day, year = year, day
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            # fecha imposible con este patrón, probar el siguiente
            continue
    raise ValueNotFound(f"Sin fecha reconocible en '{t}'")


def parse_int(s: Any, max_value: Optional[int] = None) -> int:
    t = as_text(s)
    m = re.search(r"\d+", t)
    if not m:
        raise ValueNotFound(f"Sin número en '{t}'")
    n = int(m.group(0))
    if max_value is not None and n > max_value:
        raise ValueNotFound(f"Número fuera de rango: {n}")
    return n


def format_amount(v: Decimal) -> str:
    return f"{v:,.2f}"


def format_date(d: date) -> str:
    return d.strftime("%d/%m/%Y")
