"""
Tipos y contratos con los colaboradores externos.

Este módulo define:
- La forma del registro crudo que entrega el paso de OCR/IA.
- Las entradas de catálogos maestros y su contenedor.
- El protocolo de consulta de pólizas existentes en el sistema de gestión
  (la implementación real vive fuera del motor, p. ej. un cliente HTTP).

El motor nunca modifica estos datos: los recibe como instantáneas de solo lectura.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Protocol, TypedDict, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


# Registro crudo: clave con ruta ("pago.cuotas[0].prima") o etiqueta libre -> valor
RawExtractionRecord = Mapping[str, Any]


class ExistingPolicyInfo(TypedDict, total=False):
    """Resumen de una póliza existente tal como lo devuelve el sistema de gestión"""
    id: str
    numero: str
    estado: str
    fecha_desde: date
    fecha_hasta: date
    cliente_nombre: str
    monto_total: Decimal


class CatalogEntry(BaseModel):
    """Elemento de un catálogo maestro"""
    model_config = ConfigDict(frozen=True)

    id: str
    code: Optional[str] = None
    name: str


# Catálogos reconocidos (campo canónico -> atributo del contenedor)
CATALOG_FIELDS = {
    "cliente": "clients",
    "corredor": "brokers",
    "departamento": "departments",
    "combustible": "fuels",
    "destino": "destinations",
    "categoria": "categories",
    "calidad": "qualities",
    "tarifa": "tariffs",
    "moneda": "currencies",
    "forma_pago": "payment_methods",
    "compania": "companies",
}


class MasterDataCatalogs(BaseModel):
    """Instantánea de los maestros usados para conciliar"""
    model_config = ConfigDict(frozen=True)

    clients: List[CatalogEntry] = Field(default_factory=list)
    brokers: List[CatalogEntry] = Field(default_factory=list)
    companies: List[CatalogEntry] = Field(default_factory=list)
    departments: List[CatalogEntry] = Field(default_factory=list)
    fuels: List[CatalogEntry] = Field(default_factory=list)
    destinations: List[CatalogEntry] = Field(default_factory=list)
    categories: List[CatalogEntry] = Field(default_factory=list)
    qualities: List[CatalogEntry] = Field(default_factory=list)
    tariffs: List[CatalogEntry] = Field(default_factory=list)
    currencies: List[CatalogEntry] = Field(default_factory=list)
    payment_methods: List[CatalogEntry] = Field(default_factory=list)

    # id por defecto de cada catálogo (clave = atributo del catálogo)
    defaults: Dict[str, str] = Field(default_factory=dict)

    def catalog_for(self, field_name: str) -> List[CatalogEntry]:
        attr = CATALOG_FIELDS.get(field_name)
        return list(getattr(self, attr)) if attr else []

    def default_for(self, field_name: str) -> Optional[CatalogEntry]:
        attr = CATALOG_FIELDS.get(field_name)
        default_id = self.defaults.get(attr or "")
        if not default_id:
            return None
        return next((e for e in self.catalog_for(field_name) if e.id == default_id), None)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MasterDataCatalogs":
        """
        Acepta listas de dicts {id, code, name}; ids numéricos se pasan a texto.
        """
        payload: Dict[str, Any] = {}
        for attr in CATALOG_FIELDS.values():
            items = data.get(attr) or []
            payload[attr] = [
                {"id": str(i.get("id")), "code": _opt_str(i.get("code")), "name": str(i.get("name") or "")}
                for i in items
            ]
        payload["defaults"] = {k: str(v) for k, v in (data.get("defaults") or {}).items()}
        return cls(**payload)


def _opt_str(v: Any) -> Optional[str]:
    return None if v is None else str(v)


@runtime_checkable
class PolicyLookup(Protocol):
    """
    Contrato mínimo de consulta al sistema de gestión de pólizas.
    """

    def find_policy(self, policy_number: str, company_id: int) -> Optional[ExistingPolicyInfo]:
        """Devuelve el resumen de la póliza o None si no existe."""
        ...


__all__ = [
    "RawExtractionRecord",
    "ExistingPolicyInfo",
    "CatalogEntry",
    "MasterDataCatalogs",
    "CATALOG_FIELDS",
    "PolicyLookup",
]
