# src/policy_mapper/settings.py

"""
Configuración del motor de mapeo de pólizas escaneadas.
Incluye valores por defecto, umbrales de confianza y heurísticas ajustables.
"""
import os
import logging
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple
from pathlib import Path
from decimal import Decimal

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class MappingIntent(Enum):
    """Intención del usuario sobre la póliza escaneada"""
    NEW = "nueva"
    RENEW = "renovacion"
    MODIFY = "cambio"


class MappingQuality(Enum):
    """Niveles cualitativos de calidad del mapeo"""
    EXCELLENT = "excelente"
    GOOD = "buena"
    ACCEPTABLE = "aceptable"
    NEEDS_IMPROVEMENT = "necesita_mejoras"
    PROBLEMATIC = "problematica"


class CompanyCode(Enum):
    """Códigos de compañía conocidos en el sistema de gestión"""
    BSE = 1
    SURA = 2
    MAPFRE = 3
    SURA_ALT = 4


class MappingConfig:
    """Configuración del motor de mapeo"""

    # ========== VALORES POR DEFECTO ==========
    DEFAULT_CURRENCY = "UYU"
    DEFAULT_ENDORSEMENT = "0"
    DEFAULT_INSTALLMENTS = 1

    # Código ISO numérico por moneda
    CURRENCY_CODES = {
        "UYU": "858",
        "USD": "840",
    }

    # ========== RECONCILIACIÓN ==========
    TOP_K_ALTERNATIVES = 3
    MIN_CONFIDENCE_FLOOR = 0.6
    FUZZY_MAX_CONFIDENCE = 0.95
    DEFAULT_MATCH_CONFIDENCE = 0.5
    AMBIGUITY_MARGIN = 0.02

    # Umbral para aceptar una sugerencia automáticamente
    ACCEPTANCE_THRESHOLD = 0.7
    FIELD_ACCEPTANCE_THRESHOLDS = {
        "departamento": 0.8,
    }

    # ========== CALIDAD ==========
    # (umbral mínimo, nivel) en orden descendente
    QUALITY_THRESHOLDS: List[Tuple[float, MappingQuality]] = [
        (0.9, MappingQuality.EXCELLENT),
        (0.7, MappingQuality.GOOD),
        (0.5, MappingQuality.ACCEPTABLE),
        (0.3, MappingQuality.NEEDS_IMPROVEMENT),
    ]

    # Porcentaje mínimo de grupos críticos para considerar el mapeo completo
    COMPLETION_THRESHOLD = 75.0
    MIN_POLICY_NUMBER_LENGTH = 7

    # ========== HEURÍSTICAS ==========
    # Intercambia día y año cuando el OCR los invierte (ej. 2024-01-15 leído al revés)
    DATE_SWAP_DAY_YEAR = True

    # Banda de premio plausible, fuera de ella se emite un aviso
    PREMIUM_LOW = Decimal("1000")
    PREMIUM_HIGH = Decimal("500000")

    # Vigencia máxima esperada (~13 meses)
    MAX_VALIDITY_DAYS = 400

    # Paso en días cuando no hay fecha de inicio confiable
    FALLBACK_INSTALLMENT_DAYS = 30
    MAX_INSTALLMENTS = 60

    # Variables de entorno reconocidas -> atributo
    ENV_OVERRIDES = {
        "POLICY_MAPPER_DEFAULT_CURRENCY": "DEFAULT_CURRENCY",
        "POLICY_MAPPER_DEFAULT_ENDORSEMENT": "DEFAULT_ENDORSEMENT",
        "POLICY_MAPPER_DEFAULT_INSTALLMENTS": "DEFAULT_INSTALLMENTS",
        "POLICY_MAPPER_MIN_CONFIDENCE": "MIN_CONFIDENCE_FLOOR",
        "POLICY_MAPPER_TOP_K": "TOP_K_ALTERNATIVES",
        "POLICY_MAPPER_DATE_SWAP": "DATE_SWAP_DAY_YEAR",
        "POLICY_MAPPER_PREMIUM_LOW": "PREMIUM_LOW",
        "POLICY_MAPPER_PREMIUM_HIGH": "PREMIUM_HIGH",
        "POLICY_MAPPER_MAX_VALIDITY_DAYS": "MAX_VALIDITY_DAYS",
    }

    def __init__(self, **overrides: Any):
        for name, value in overrides.items():
            self.set(name, value)

    def set(self, name: str, value: Any) -> None:
        """Sobrescribe un valor conservando el tipo del original"""
        attr = name.upper()
        if not hasattr(type(self), attr) or attr.startswith("_"):
            raise KeyError(f"Parámetro de configuración desconocido: {name}")
        current = getattr(type(self), attr)
        setattr(self, attr, _coerce(current, value))

    def acceptance_threshold(self, field_name: str) -> float:
        return self.FIELD_ACCEPTANCE_THRESHOLDS.get(field_name, self.ACCEPTANCE_THRESHOLD)

    def quality_for(self, confidence: float) -> MappingQuality:
        for threshold, quality in self.QUALITY_THRESHOLDS:
            if confidence >= threshold:
                return quality
        return MappingQuality.PROBLEMATIC

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]] = None) -> "MappingConfig":
        return cls(**(overrides or {}))

    @classmethod
    def from_env(cls, path: Optional[str] = None) -> "MappingConfig":
        """
        Construye la configuración.
        Precedencia:
          1) YAML explícito o ENV POLICY_MAPPER_CONFIG
          2) variables POLICY_MAPPER_*
          3) constantes de la clase
        """
        overrides: Dict[str, Any] = {}
        for env_name, attr in cls.ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw not in (None, ""):
                overrides[attr] = raw

        candidate = path or os.getenv("POLICY_MAPPER_CONFIG")
        if candidate:
            overrides.update(load_yaml_overrides(candidate))

        return cls(**overrides)


def load_yaml_overrides(path: str) -> Dict[str, Any]:
    """Lee un YAML plano {parametro: valor}. Archivo ausente -> sin cambios."""
    p = Path(path)
    if not p.exists():
        logger.warning(f"No existe el archivo de configuración {p}. Usando defaults.")
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuración inválida en {p}: se esperaba un mapa")
    logger.info(f"Config de mapeo cargada: {p}")
    return {str(k).upper(): v for k, v in data.items()}


def _coerce(current: Any, value: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "si", "sí")
        return bool(value)
    if isinstance(current, Decimal):
        return Decimal(str(value))
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, dict) and isinstance(value, dict):
        merged = dict(current)
        merged.update(value)
        return merged
    if isinstance(current, list) and current and isinstance(current[0], tuple):
        # QUALITY_THRESHOLDS llega desde YAML como {nivel: umbral}
        if isinstance(value, dict):
            pairs = [(float(v), MappingQuality(k)) for k, v in value.items()]
            return sorted(pairs, key=lambda p: p[0], reverse=True)
    return value


# Grupos críticos para considerar una póliza utilizable
CRITICAL_FIELD_GROUPS = {
    "Número de Póliza": ["numero_poliza"],
    "Información del Vehículo": ["marca", "modelo"],
    "Rango de Fechas": ["fecha_desde", "fecha_hasta"],
    "Información de Premio": ["prima_comercial", "premio_total"],
}

# Categorías para el desglose de métricas
FIELD_CATEGORIES = {
    "poliza": ["numero_poliza", "endoso", "fecha_desde", "fecha_hasta", "tipo_movimiento"],
    "vehiculo": ["marca", "modelo", "anio", "matricula", "motor", "chasis"],
    "financiero": ["prima_comercial", "premio_total", "cantidad_cuotas", "forma_pago", "moneda"],
    "maestros": [
        "cliente", "corredor", "departamento", "combustible",
        "destino", "categoria", "calidad", "tarifa",
    ],
}

DEFAULT_CONFIG = MappingConfig()
