# src/policy_mapper/processors/policy_conflicts.py
"""
Chequeo de conflictos entre la intención del usuario y el estado de la póliza
en el sistema de gestión (consulta externa vía PolicyLookup).
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from policy_mapper.models.canonical import ExistingPolicySummary, PolicyValidationResult
from policy_mapper.parsers.types import ExistingPolicyInfo, PolicyLookup
from policy_mapper.settings import MappingIntent
from policy_mapper.utils.errors import PolicyConflictError

logger = logging.getLogger(__name__)

ACTIONS_WHEN_EXISTS = ["Modificar la póliza existente", "Renovar la póliza existente"]
ACTIONS_WHEN_MISSING = ["Crear una nueva póliza", "Verificar el número de póliza"]


class PolicyConflictChecker:

    def __init__(self, lookup: PolicyLookup):
        self.lookup = lookup

    def check(self, intent: MappingIntent, policy_number: Optional[str], company_id: int) -> PolicyValidationResult:
        number = (policy_number or "").strip()
        if not number:
            return PolicyValidationResult(
                is_valid=False,
                error_message="No se detectó número de póliza para validar",
                suggested_actions=["Verificar el número de póliza"],
            )

        info = self.lookup.find_policy(number, company_id)
        summary = _summary(info) if info else None

        if intent == MappingIntent.NEW:
            if summary is None:
                return PolicyValidationResult(is_valid=True)
            logger.info(f"Póliza {number} ya existe (ID {summary.id}) para compañía {company_id}")
            return PolicyValidationResult(
                is_valid=False,
                error_message=f"La póliza {number} ya existe en el sistema",
                existing_policy_id=summary.id,
                existing_policy_status=summary.estado,
                suggested_actions=list(ACTIONS_WHEN_EXISTS),
                existing_policy=summary,
            )

        # renovación o cambio: la póliza tiene que existir
        if summary is None:
            verb = "renovar" if intent == MappingIntent.RENEW else "modificar"
            logger.info(f"Póliza {number} no existe; no se puede {verb}")
            return PolicyValidationResult(
                is_valid=False,
                error_message=f"No existe la póliza {number} para {verb}",
                suggested_actions=list(ACTIONS_WHEN_MISSING),
            )
        return PolicyValidationResult(
            is_valid=True,
            existing_policy_id=summary.id,
            existing_policy_status=summary.estado,
            existing_policy=summary,
        )

    def check_or_raise(self, intent: MappingIntent, policy_number: Optional[str], company_id: int) -> PolicyValidationResult:
        result = self.check(intent, policy_number, company_id)
        if not result.is_valid:
            raise PolicyConflictError(result)
        return result


def _summary(info: ExistingPolicyInfo) -> ExistingPolicySummary:
    return ExistingPolicySummary(
        id=str(info.get("id")),
        numero=str(info.get("numero") or ""),
        estado=info.get("estado"),
        fecha_desde=info.get("fecha_desde"),
        fecha_hasta=info.get("fecha_hasta"),
        cliente_nombre=info.get("cliente_nombre"),
        monto_total=info.get("monto_total"),
    )


class InMemoryPolicyLookup:
    """Consulta sobre un diccionario (pruebas y ejecución sin conexión)"""

    def __init__(self, policies: Optional[Dict[Tuple[str, int], ExistingPolicyInfo]] = None):
        self.policies = dict(policies or {})

    def add(self, company_id: int, info: ExistingPolicyInfo) -> None:
        self.policies[(str(info["numero"]), int(company_id))] = info

    def find_policy(self, policy_number: str, company_id: int) -> Optional[ExistingPolicyInfo]:
        return self.policies.get((policy_number, int(company_id)))
