# utils/errors.py
"""
Taxonomía de errores del motor de mapeo.

- ValueNotFound: ningún candidato produjo un valor (se registra como issue).
- ValueFormatError: hubo valor pero no se pudo interpretar (se conserva el crudo).
- PolicyConflictError: la intención choca con el estado de la póliza existente.
- StructuralError: el registro de extracción falta o no es un mapa. Aborta.
"""

from typing import Any, Optional


class MappingError(Exception):
    """Base de todos los errores del motor"""


class ValueNotFound(MappingError):
    def __init__(self, message: str = "Valor no encontrado", field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ValueFormatError(MappingError):
    def __init__(self, raw_value: str, source_key: Optional[str] = None, field: Optional[str] = None):
        super().__init__(f"No se pudo interpretar '{raw_value}' (clave: {source_key})")
        self.raw_value = raw_value
        self.source_key = source_key
        self.field = field


class PolicyConflictError(MappingError):
    def __init__(self, result: Any):
        super().__init__(getattr(result, "error_message", None) or "Conflicto con póliza existente")
        self.result = result


class StructuralError(MappingError):
    """El registro de extracción es inutilizable"""
