# utils/validators.py
"""
Validadores de datos de póliza.

Provee utilidades para validar matrículas, números de póliza, montos y rangos
de vigencia. Todos devuelven (es_válido, error) y nunca lanzan.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Tuple
import re

# Palabras que el OCR devuelve como valor cuando sólo leyó la etiqueta
PLATE_PLACEHOLDERS = {"PATENTE", "MATRICULA", "MATRÍCULA", "PLACA", "VEHICULO", "VEHÍCULO", "AUTO", "COCHE"}


class PolicyDataValidator:
    """Validador de campos canónicos."""

    @staticmethod
    def validate_plate(plate: str) -> Tuple[bool, Optional[str]]:
        """Valida una matrícula ya limpia (sin espacios ni guiones).

        Reglas:
        - No puede ser una palabra de etiqueta (PATENTE, MATRICULA...).
        - Al menos 2 letras y 3 dígitos.
        - Largo total entre 5 y 8.
        """
        if not plate:
            return False, "Matrícula vacía"

        plate = plate.upper().strip()
        if plate in PLATE_PLACEHOLDERS:
            return False, f"Es una etiqueta, no una matrícula: {plate}"

        letters = sum(1 for c in plate if c.isalpha())
        digits = sum(1 for c in plate if c.isdigit())
        if letters < 2:
            return False, "Menos de 2 letras"
        if digits < 3:
            return False, "Menos de 3 dígitos"
        if not 5 <= len(plate) <= 8:
            return False, f"Largo inválido ({len(plate)})"

        return True, None

    @staticmethod
    def validate_policy_number(policy: str, min_length: int = 7) -> Tuple[bool, Optional[str]]:
        """Valida número de póliza y devuelve (es_válido, error)."""
        if not policy:
            return False, "Número de póliza vacío"

        policy = policy.strip()
        if not re.search(r"\d", policy):
            return False, "No contiene números"
        if len(policy) < min_length:
            return False, f"Muy corto (< {min_length} caracteres)"
        if len(policy) > 50:
            return False, "Muy largo (> 50 caracteres)"
        if re.search(r"[^\w\s\-/]", policy):
            return False, "Contiene caracteres no válidos"

        return True, None

    @staticmethod
    def validate_amount(amount: Any) -> Tuple[bool, Optional[str]]:
        if amount is None:
            return False, "Monto nulo"
        try:
            value = Decimal(str(amount))
        except ArithmeticError:
            return False, f"Monto no numérico: {amount}"
        if value <= 0:
            return False, "Monto debe ser positivo"
        return True, None

    @staticmethod
    def validate_date_range(start: Optional[date], end: Optional[date]) -> Tuple[bool, Optional[str]]:
        if start is None or end is None:
            return False, "Rango incompleto"
        if end <= start:
            return False, f"Fin ({end.isoformat()}) no posterior a inicio ({start.isoformat()})"
        return True, None
